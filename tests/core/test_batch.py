"""
Tests for the Batch Runner.
"""

import pytest

from neurolint.config import RuntimeConfig
from neurolint.core.batch import BatchRunner
from neurolint.core.orchestrator import CancellationToken
from neurolint.enums import PassStatus


def test_run_sources_keeps_input_order():
  runner = BatchRunner(RuntimeConfig(enabled_passes=[2, 4]), max_workers=2)
  sources = {
    "b.tsx": 'const i = <img src="a.png" />;\n',
    "a.ts": "console.log(1);\n",
    "c.tsx": "export const c = 1;\n",
  }
  reports = runner.run_sources(sources)
  assert list(reports) == ["b.tsx", "a.ts", "c.tsx"]
  assert reports["b.tsx"].final_code == 'const i = <img src="a.png" alt="" />;\n'
  assert reports["a.ts"].final_code == "console.debug(1);\n"
  assert not reports["c.tsx"].changed


def test_run_files_writes_changes(tmp_path):
  changed = tmp_path / "page.tsx"
  changed.write_text("console.log(1);\n", encoding="utf-8")
  clean = tmp_path / "util.ts"
  clean.write_text("export const a = 1;\n", encoding="utf-8")
  missing = tmp_path / "missing.ts"

  result = BatchRunner(RuntimeConfig(enabled_passes=[2])).run_files([changed, clean, missing], write=True)

  assert [item.name for item in result.items] == [str(changed), str(clean), str(missing)]
  assert changed.read_text(encoding="utf-8") == "console.debug(1);\n"
  assert result.items[0].written
  assert not result.items[1].written
  assert result.changed == [str(changed)]
  assert result.failed == [str(missing)]
  assert result.items[2].report is None


def test_run_files_without_write_leaves_disk_untouched(tmp_path):
  path = tmp_path / "page.tsx"
  path.write_text("console.log(1);\n", encoding="utf-8")
  result = BatchRunner(RuntimeConfig(enabled_passes=[2])).run_files([path])
  assert result.items[0].report.final_code == "console.debug(1);\n"
  assert path.read_text(encoding="utf-8") == "console.log(1);\n"


def test_shared_cancel_token():
  token = CancellationToken()
  token.cancel()
  reports = BatchRunner(RuntimeConfig(enabled_passes=[2])).run_sources({"a.ts": "console.log(1);\n"}, token)
  assert reports["a.ts"].outcome(2).status == PassStatus.NOT_RUN


def test_invalid_worker_count():
  with pytest.raises(ValueError):
    BatchRunner(max_workers=0)
