"""
Batch Runner.

Runs the pipeline over many independent files. Each file gets its own
:class:`PipelineOrchestrator`, so snapshot history, change tracking and
traces are never shared between workers.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, Field
from rich.markup import escape
from rich.progress import track

from neurolint.config import RuntimeConfig
from neurolint.core.orchestrator import CancellationToken, PipelineOrchestrator
from neurolint.core.report import PipelineReport
from neurolint.utils.console import log_error, log_success


class BatchItem(BaseModel):
  """
  Result for one file of a batch.

  ``report`` is None when the file could not be read or written.
  """

  name: str
  report: Optional[PipelineReport] = None
  error: Optional[str] = None
  written: bool = False


class BatchResult(BaseModel):
  items: List[BatchItem] = Field(default_factory=list)

  @property
  def changed(self) -> List[str]:
    return [i.name for i in self.items if i.report is not None and i.report.changed]

  @property
  def failed(self) -> List[str]:
    return [i.name for i in self.items if i.error is not None]


class BatchRunner:
  """
  Processes files or in-memory sources on a thread pool.

  Args:
      config: Base options. ``file_path`` is set per file.
      max_workers: Thread pool size.
      verbose: Show a rich progress bar.
  """

  def __init__(self, config: Optional[RuntimeConfig] = None, max_workers: int = 4, verbose: bool = False) -> None:
    if max_workers < 1:
      raise ValueError("max_workers must be at least 1")
    self.config = config or RuntimeConfig()
    self.max_workers = max_workers
    self.verbose = verbose

  def _config_for(self, name: str) -> RuntimeConfig:
    return self.config.model_copy(update={"file_path": name})

  def _run_one(self, name: str, source: str, cancel_token: Optional[CancellationToken]) -> PipelineReport:
    return PipelineOrchestrator(self._config_for(name)).run(source, cancel_token=cancel_token)

  def run_sources(
    self, sources: Mapping[str, str], cancel_token: Optional[CancellationToken] = None
  ) -> Dict[str, PipelineReport]:
    """
    Transforms in-memory sources.

    Args:
        sources: File name to source text. Names select the grammar.
        cancel_token: Shared token; every run stops at its next pass boundary.

    Returns:
        Dict[str, PipelineReport]: Reports keyed like ``sources``.
    """
    reports: Dict[str, PipelineReport] = {}
    with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
      futures = {executor.submit(self._run_one, name, code, cancel_token): name for name, code in sources.items()}
      completed = as_completed(futures)
      if self.verbose:
        completed = track(completed, total=len(futures), description="Transforming...")
      for future in completed:
        reports[futures[future]] = future.result()
    return {name: reports[name] for name in sources}

  def run_files(
    self,
    paths: Iterable[Union[str, Path]],
    write: bool = False,
    cancel_token: Optional[CancellationToken] = None,
  ) -> BatchResult:
    """
    Transforms files on disk.

    Args:
        paths: Files to process.
        write: Write changed results back in place.
        cancel_token: Shared cancellation token.

    Returns:
        BatchResult: One item per path, in input order.
    """
    paths = [Path(p) for p in paths]
    items: Dict[Path, BatchItem] = {}

    def work(path: Path) -> BatchItem:
      item = BatchItem(name=str(path))
      try:
        source = path.read_text(encoding="utf-8")
      except (OSError, UnicodeDecodeError) as e:
        item.error = f"Could not read {path}: {e}"
        return item
      item.report = self._run_one(str(path), source, cancel_token)
      if write and item.report.changed:
        try:
          path.write_text(item.report.final_code, encoding="utf-8")
          item.written = True
        except OSError as e:
          item.error = f"Could not write {path}: {e}"
      return item

    with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
      futures = {executor.submit(work, path): path for path in paths}
      completed = as_completed(futures)
      if self.verbose:
        completed = track(completed, total=len(futures), description="Transforming files...")
      for future in completed:
        items[futures[future]] = future.result()

    result = BatchResult(items=[items[p] for p in paths])
    for item in result.items:
      if item.error:
        log_error(escape(item.error))
    if result.items:
      log_success(f"Processed {len(result.items)} file(s), {len(result.changed)} changed")
    return result
