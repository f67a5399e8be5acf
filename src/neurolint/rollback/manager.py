"""
Rollback Manager.

Keeps a bounded, ordered history of whole-file snapshots for one run and
restores earlier states on demand. The history behaves as a ring buffer:
once the cap is reached the oldest snapshot is evicted, so the manager always
holds the most recent entries in order.
"""

import hashlib
import time
from collections import deque
from typing import Deque, List, Optional, Sequence

from pydantic import BaseModel, Field

from neurolint.conflicts.detector import Conflict
from neurolint.enums import BlastRadius, RollbackStrategyType, Severity

INITIAL_SNAPSHOT = "initial"


def fingerprint_text(code: str) -> str:
  """Short content hash identifying a snapshot."""
  return hashlib.sha256(code.encode("utf8")).hexdigest()[:16]


class SnapshotMetadata(BaseModel):
  change_count: int = 0
  duration_ms: float = 0.0
  contract_outcome: str = "n/a"


class Snapshot(BaseModel):
  """
  A full-source checkpoint taken after a pass.

  Attributes:
      pass_name: Name of the pass, ``initial`` for the pre-pipeline state.
      pass_id: Id of the pass, None for the initial snapshot.
      code: Complete source text.
      timestamp: Capture time (epoch seconds).
      fingerprint: Content hash of ``code``.
      metadata: Change count, duration and contract outcome.
  """

  pass_name: str
  pass_id: Optional[int] = None
  code: str
  timestamp: float
  fingerprint: str
  metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)


class RollbackResult(BaseModel):
  """
  Outcome of a restoration request.

  ``success`` is False, with a reason, when no suitable snapshot exists.
  """

  success: bool
  strategy: RollbackStrategyType
  restored_pass_name: Optional[str] = None
  restored_index: Optional[int] = None
  code: Optional[str] = None
  reason: str = ""


class RollbackManager:
  """
  Snapshot history plus restoration strategies.

  Args:
      limit: Maximum number of retained snapshots.
  """

  def __init__(self, limit: int = 10) -> None:
    if limit < 1:
      raise ValueError("Snapshot limit must be at least 1")
    self.limit = limit
    self._snapshots: Deque[Snapshot] = deque(maxlen=limit)

  def capture(
    self,
    pass_name: str,
    code: str,
    pass_id: Optional[int] = None,
    change_count: int = 0,
    duration_ms: float = 0.0,
    contract_outcome: str = "n/a",
  ) -> Snapshot:
    """
    Appends a snapshot, evicting the oldest when the cap is reached.

    Returns:
        Snapshot: The stored snapshot.
    """
    snapshot = Snapshot(
      pass_name=pass_name,
      pass_id=pass_id,
      code=code,
      timestamp=time.time(),
      fingerprint=fingerprint_text(code),
      metadata=SnapshotMetadata(
        change_count=change_count,
        duration_ms=duration_ms,
        contract_outcome=contract_outcome,
      ),
    )
    self._snapshots.append(snapshot)
    return snapshot

  def history(self) -> List[Snapshot]:
    return list(self._snapshots)

  def latest(self) -> Optional[Snapshot]:
    return self._snapshots[-1] if self._snapshots else None

  def clear(self) -> None:
    self._snapshots.clear()

  def __len__(self) -> int:
    return len(self._snapshots)

  @staticmethod
  def determine_strategy(conflicts: Sequence[Conflict], pass_descriptor=None) -> RollbackStrategyType:
    """
    Picks a restoration strategy for a failing pass.

    Args:
        conflicts: Conflicts that triggered the rollback.
        pass_descriptor: The failing pass, consulted for its blast radius.

    Returns:
        RollbackStrategyType: ``cascade`` for high severity or wide blast
        radius, ``selective`` for several lesser conflicts, else
        ``single_layer``.
    """
    severity = Severity.highest(c.severity for c in conflicts)
    wide = pass_descriptor is not None and pass_descriptor.blast_radius == BlastRadius.WIDE
    if severity.rank >= Severity.HIGH.rank or wide:
      return RollbackStrategyType.CASCADE
    if len(conflicts) > 1:
      return RollbackStrategyType.SELECTIVE
    return RollbackStrategyType.SINGLE_LAYER

  def execute(self, strategy: RollbackStrategyType, target: Optional[str] = None) -> RollbackResult:
    """
    Restores a snapshot according to ``strategy``.

    Args:
        strategy: How far back to go.
        target: Optional pass name to restore to (``single_layer``) or to
            restore the predecessor of (``cascade``).

    Returns:
        RollbackResult: The restored code, or an explicit failure.
    """
    snapshots = self.history()
    if not snapshots:
      return RollbackResult(success=False, strategy=strategy, reason="No snapshots available")

    if strategy in (RollbackStrategyType.SINGLE_LAYER, RollbackStrategyType.SELECTIVE):
      index = self._find(snapshots, target) if target else len(snapshots) - 1
      if index is None:
        return RollbackResult(success=False, strategy=strategy, reason=f"No snapshot found for '{target}'")
      return self._restore(snapshots, index, strategy)

    if strategy == RollbackStrategyType.CASCADE:
      from_index = self._find(snapshots, target) if target else len(snapshots) - 1
      if from_index is None:
        return RollbackResult(success=False, strategy=strategy, reason=f"No snapshot found for '{target}'")
      if from_index <= 0:
        result = self._restore(snapshots, 0, strategy)
        result.reason = "Cascade reached the start of history; restored the earliest snapshot"
        return result
      return self._restore(snapshots, from_index - 1, strategy)

    return self._restore(snapshots, 0, strategy)

  @staticmethod
  def _find(snapshots: List[Snapshot], pass_name: str) -> Optional[int]:
    for index in range(len(snapshots) - 1, -1, -1):
      if snapshots[index].pass_name == pass_name:
        return index
    return None

  @staticmethod
  def _restore(snapshots: List[Snapshot], index: int, strategy: RollbackStrategyType) -> RollbackResult:
    snapshot = snapshots[index]
    return RollbackResult(
      success=True,
      strategy=strategy,
      restored_pass_name=snapshot.pass_name,
      restored_index=index,
      code=snapshot.code,
      reason=f"Restored snapshot '{snapshot.pass_name}'",
    )
