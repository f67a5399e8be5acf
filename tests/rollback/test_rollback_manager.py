"""
Tests for the Rollback Manager.

Covers:
1.  Bounded, ordered snapshot history.
2.  Strategy selection.
3.  Restoration per strategy, including the empty-history failure.
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from neurolint.conflicts.detector import Conflict
from neurolint.enums import BlastRadius, ConflictType, RollbackStrategyType, Severity
from neurolint.rollback.manager import INITIAL_SNAPSHOT, RollbackManager, fingerprint_text


def _conflict(severity=Severity.LOW):
  return Conflict(type=ConflictType.OVERLAPPING_EDIT, severity=severity, description="x")


class _Descriptor:
  def __init__(self, blast_radius):
    self.blast_radius = blast_radius


def _manager_with(*names, limit=10):
  manager = RollbackManager(limit=limit)
  for index, name in enumerate(names):
    manager.capture(name, f"code-{name}", pass_id=index or None)
  return manager


def test_limit_must_be_positive():
  with pytest.raises(ValueError):
    RollbackManager(limit=0)


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(limit=st.integers(min_value=1, max_value=12), count=st.integers(min_value=0, max_value=30))
def test_history_is_bounded_and_keeps_most_recent(limit, count):
  manager = RollbackManager(limit=limit)
  for i in range(count):
    manager.capture(f"pass-{i}", f"code {i}")
  names = [s.pass_name for s in manager.history()]
  assert len(names) == min(limit, count)
  assert names == [f"pass-{i}" for i in range(max(0, count - limit), count)]


def test_capture_records_metadata():
  manager = RollbackManager()
  snapshot = manager.capture("Components", "const a = 1;\n", pass_id=3, change_count=2, contract_outcome="passed")
  assert snapshot.fingerprint == fingerprint_text("const a = 1;\n")
  assert snapshot.metadata.change_count == 2
  assert snapshot.metadata.contract_outcome == "passed"
  assert manager.latest() is snapshot
  assert len(manager) == 1


def test_determine_strategy():
  assert RollbackManager.determine_strategy([_conflict(Severity.HIGH)]) == RollbackStrategyType.CASCADE
  assert RollbackManager.determine_strategy([_conflict(Severity.CRITICAL)]) == RollbackStrategyType.CASCADE
  assert (
    RollbackManager.determine_strategy([_conflict()], _Descriptor(BlastRadius.WIDE)) == RollbackStrategyType.CASCADE
  )
  assert RollbackManager.determine_strategy([_conflict(), _conflict()]) == RollbackStrategyType.SELECTIVE
  assert (
    RollbackManager.determine_strategy([_conflict()], _Descriptor(BlastRadius.NARROW))
    == RollbackStrategyType.SINGLE_LAYER
  )


@pytest.mark.parametrize("strategy", list(RollbackStrategyType))
def test_empty_history_fails_explicitly(strategy):
  result = RollbackManager().execute(strategy)
  assert not result.success
  assert result.code is None
  assert result.reason


def test_single_layer_restores_latest():
  manager = _manager_with(INITIAL_SNAPSHOT, "Config", "Patterns")
  result = manager.execute(RollbackStrategyType.SINGLE_LAYER)
  assert result.success
  assert result.restored_pass_name == "Patterns"
  assert result.code == "code-Patterns"


def test_single_layer_target():
  manager = _manager_with(INITIAL_SNAPSHOT, "Config", "Patterns")
  result = manager.execute(RollbackStrategyType.SINGLE_LAYER, target="Config")
  assert result.restored_index == 1
  assert not manager.execute(RollbackStrategyType.SINGLE_LAYER, target="Missing").success


def test_cascade_restores_predecessor():
  manager = _manager_with(INITIAL_SNAPSHOT, "Config", "Patterns")
  result = manager.execute(RollbackStrategyType.CASCADE)
  assert result.restored_pass_name == "Config"
  assert manager.execute(RollbackStrategyType.CASCADE, target="Config").restored_pass_name == INITIAL_SNAPSHOT


def test_cascade_at_start_restores_earliest():
  manager = _manager_with(INITIAL_SNAPSHOT)
  result = manager.execute(RollbackStrategyType.CASCADE)
  assert result.success
  assert result.restored_index == 0
  assert "start of history" in result.reason


def test_complete_restores_oldest_retained():
  manager = _manager_with(INITIAL_SNAPSHOT, "a", "b", "c", limit=2)
  result = manager.execute(RollbackStrategyType.COMPLETE)
  assert result.restored_pass_name == "b"


def test_clear():
  manager = _manager_with(INITIAL_SNAPSHOT, "a")
  manager.clear()
  assert manager.latest() is None
