"""
Runtime Configuration Store.

Options controlling a pipeline run. Values come from three places, highest
priority first: explicit arguments, the ``[tool.neurolint]`` table of the
nearest ``pyproject.toml``, and the field defaults below.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from neurolint.enums import Language

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib


class RuntimeConfig(BaseModel):
  """
  Configuration container for the transformation pipeline.
  """

  enabled_passes: Optional[List[int]] = Field(None, description="Pass ids to run. None runs every registered pass.")
  prefer_structural: bool = Field(True, description="Try the AST implementation before the textual one.")
  include_dependencies: bool = Field(False, description="Pull in declared pass dependencies that were not requested.")
  parse_timeout: float = Field(5.0, description="Seconds allowed for one structural execution.")
  run_timeout: Optional[float] = Field(None, description="Deadline in seconds for the whole run.")
  snapshot_limit: int = Field(10, description="Maximum snapshots retained by the rollback manager.")
  complexity_threshold: int = Field(10, description="Complexity increase that counts as a semantic conflict.")
  conflict_detection: bool = Field(True, description="Run cross-pass conflict detection after each pass.")
  auto_rollback: bool = Field(True, description="Restore snapshots automatically on high-severity conflicts.")
  language: Optional[Language] = Field(None, description="Grammar override. Inferred from file_path otherwise.")
  file_path: Optional[str] = Field(None, description="Name of the file being transformed, used as a hint.")

  @field_validator("enabled_passes")
  @classmethod
  def validate_passes(cls, v: Optional[List[int]]) -> Optional[List[int]]:
    """
    Ensures every requested pass id is registered.

    Args:
        v: Requested pass ids.

    Returns:
        Optional[List[int]]: The ids, de-duplicated and in ascending order.

    Raises:
        ValueError: If a pass id is unknown.
    """
    if v is None:
      return None
    from neurolint.passes import available_passes

    known = available_passes()
    # Unregistered ids are allowed while the registry is empty (bootstrap/test mode)
    unknown = [p for p in v if known and p not in known]
    if unknown:
      raise ValueError(f"Unknown pass ids: {unknown}. Available passes: {known}")
    return sorted(set(v))

  @field_validator("parse_timeout", "run_timeout")
  @classmethod
  def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
    if v is not None and v <= 0:
      raise ValueError("Timeouts must be positive")
    return v

  @field_validator("snapshot_limit", "complexity_threshold")
  @classmethod
  def validate_limit(cls, v: int) -> int:
    if v < 1:
      raise ValueError("Limits must be at least 1")
    return v

  @property
  def effective_language(self) -> Language:
    """
    Resolves the grammar for this run.

    Returns:
        Language: The explicit override, else the grammar implied by ``file_path``.
    """
    from neurolint.core.parser import language_for_path

    return self.language if self.language else language_for_path(self.file_path)

  @classmethod
  def load(
    cls,
    enabled_passes: Optional[List[int]] = None,
    prefer_structural: Optional[bool] = None,
    search_path: Optional[Path] = None,
    **overrides: Any,
  ) -> "RuntimeConfig":
    """
    Loads configuration from pyproject.toml and applies explicit overrides.

    Args:
        enabled_passes: Override for the pass selection.
        prefer_structural: Override for the execution strategy preference.
        search_path: Directory to start searching for TOML config.
        **overrides: Any other field of this model. ``None`` values are ignored.

    Returns:
        RuntimeConfig: The fully resolved configuration object.
    """
    start_dir = search_path or Path.cwd()
    toml_config, _ = _load_toml_settings(start_dir)

    values: Dict[str, Any] = {k: v for k, v in toml_config.items() if k in cls.model_fields}
    if enabled_passes is not None:
      values["enabled_passes"] = enabled_passes
    if prefer_structural is not None:
      values["prefer_structural"] = prefer_structural
    for key, value in overrides.items():
      if value is not None:
        values[key] = value

    return cls(**values)


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Recursively searches parents for 'pyproject.toml' and extracts config.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The config dict and the directory it was found in.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.exists() and toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except (OSError, tomllib.TOMLDecodeError):
        return {}, None

      tool_section = data.get("tool", {})
      return tool_section.get("neurolint", {}), parent

  return {}, None
