"""
Pipeline Report.

The structured result of one orchestration run: the final source, one
outcome per requested pass, the aggregate conflict and change analysis, and
the snapshot and rollback history. Reports are plain pydantic models so
callers can persist them with ``model_dump_json``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from neurolint.analysis.semantic import SemanticDelta
from neurolint.conflicts.detector import Conflict, ConflictResult
from neurolint.conflicts.tracker import ChangeAnalysis
from neurolint.core.quality_gate import ImpactReport
from neurolint.enums import ErrorKind, ExecutionStrategy, PassState, PassStatus
from neurolint.errors import (
  ConflictDetected,
  ContractViolation,
  ExecutionError,
  IntegrityFailure,
  NeuroLintError,
  ParseFailure,
)
from neurolint.resolution.resolver import ResolutionResult
from neurolint.rollback.manager import RollbackResult, Snapshot

_ERROR_KINDS = (
  (ParseFailure, ErrorKind.PARSE_FAILURE),
  (ContractViolation, ErrorKind.CONTRACT_VIOLATION),
  (ConflictDetected, ErrorKind.CONFLICT_DETECTED),
  (IntegrityFailure, ErrorKind.INTEGRITY_FAILURE),
  (ExecutionError, ErrorKind.EXECUTION_ERROR),
)


class PassError(BaseModel):
  """
  Why a pass did not commit its output.

  Attributes:
      kind: Error taxonomy entry.
      message: Human readable description.
      rule_names: Failed contract rules, for contract violations.
      line: 1-based location, for parse and integrity failures.
      column: 0-based column, when known.
  """

  kind: ErrorKind
  message: str
  rule_names: List[str] = Field(default_factory=list)
  line: Optional[int] = None
  column: Optional[int] = None

  @classmethod
  def from_exception(cls, error: BaseException) -> "PassError":
    kind = ErrorKind.EXECUTION_ERROR
    for error_type, error_kind in _ERROR_KINDS:
      if isinstance(error, error_type):
        kind = error_kind
        break
    message = str(error) if isinstance(error, NeuroLintError) else f"{type(error).__name__}: {error}"
    return cls(
      kind=kind,
      message=message,
      rule_names=list(getattr(error, "rule_names", [])),
      line=getattr(error, "line", None),
      column=getattr(error, "column", None),
    )


class PassOutcome(BaseModel):
  """
  Result of a single pass.

  ``success`` mirrors ``status.is_success``; ``states`` is the trail of
  state machine states the pass went through. ``semantic_deltas`` and
  ``impact`` describe the pass output before any conflict resolution or
  rollback, and stay empty when the pass changed nothing.
  """

  pass_id: int
  name: str
  status: PassStatus = PassStatus.NOT_RUN
  success: bool = False
  duration_ms: float = 0.0
  change_count: int = 0
  improvements: List[str] = Field(default_factory=list)
  error: Optional[PassError] = None
  strategy: Optional[ExecutionStrategy] = None
  states: List[PassState] = Field(default_factory=list)
  warnings: List[str] = Field(default_factory=list)
  fingerprint_before: Optional[str] = None
  fingerprint_after: Optional[str] = None
  conflicts: List[Conflict] = Field(default_factory=list)
  resolution: Optional[ResolutionResult] = None
  semantic_deltas: List[SemanticDelta] = Field(default_factory=list)
  impact: Optional[ImpactReport] = None

  def finish(self, status: PassStatus, error: Optional[PassError] = None) -> "PassOutcome":
    self.status = status
    self.success = status.is_success
    if error is not None:
      self.error = error
    return self


class PipelineReport(BaseModel):
  """
  The sole output of ``run``.

  Attributes:
      source: The input text.
      final_code: The text after every pass.
      outcomes: One outcome per requested pass, in execution order.
      conflicts: Conflicts observed during the run, de-duplicated.
      change_analysis: Aggregate change statistics of the committed passes.
      snapshots: Retained snapshot history, oldest first.
      rollbacks: Every snapshot restoration attempted.
      warnings: Run level warnings.
      cancelled: True when a cancellation or run timeout stopped the run.
      trace_events: Exported trace of the run.
  """

  source: str
  final_code: str
  outcomes: List[PassOutcome] = Field(default_factory=list)
  conflicts: ConflictResult = Field(default_factory=ConflictResult)
  change_analysis: ChangeAnalysis = Field(default_factory=ChangeAnalysis)
  snapshots: List[Snapshot] = Field(default_factory=list)
  rollbacks: List[RollbackResult] = Field(default_factory=list)
  warnings: List[str] = Field(default_factory=list)
  cancelled: bool = False
  trace_events: List[Dict[str, Any]] = Field(default_factory=list)

  @property
  def success(self) -> bool:
    """True when no pass failed or was rolled back."""
    return all(o.status not in (PassStatus.FAILED, PassStatus.ROLLED_BACK) for o in self.outcomes)

  @property
  def changed(self) -> bool:
    return self.final_code != self.source

  def outcome(self, pass_id: int) -> Optional[PassOutcome]:
    return next((o for o in self.outcomes if o.pass_id == pass_id), None)

  def summary(self) -> Dict[str, int]:
    """Counts outcomes per status."""
    counts: Dict[str, int] = {}
    for o in self.outcomes:
      counts[o.status.value] = counts.get(o.status.value, 0) + 1
    return counts
