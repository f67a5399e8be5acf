"""
Pipeline Trace Logger.

Records the step-by-step execution of a single ``run``:

1. Phases (one per pass, nested under the pipeline phase).
2. Decisions (contract outcomes, structural fallbacks, integrity rejections).
3. Recovery actions (contract rollbacks, snapshot restores, resolutions).

Each run owns its own ``TraceLogger``; instances are never shared between
concurrent runs. The output is a list of plain dictionaries suitable for
JSON serialization.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TraceEventType(str, Enum):
  PHASE_START = "phase_start"
  PHASE_END = "phase_end"
  STATE_TRANSITION = "state_transition"
  CONTRACT_CHECK = "contract_check"
  FALLBACK = "fallback"
  INTEGRITY = "integrity"
  CONFLICT = "conflict"
  ROLLBACK = "rollback"
  RESOLUTION = "resolution"
  WARNING = "warning"


@dataclass
class TraceEvent:
  id: str
  type: TraceEventType
  timestamp: float
  description: str
  parent_id: Optional[str] = None
  metadata: Dict[str, Any] = field(default_factory=dict)


class TraceLogger:
  """
  Records pipeline events for a single orchestration run.
  """

  def __init__(self) -> None:
    self._events: List[TraceEvent] = []
    self._active_phases: List[str] = []

  def start_phase(self, name: str, description: str = "") -> str:
    """Starts a nested phase (e.g. one pass). Returns the phase id."""
    phase_id = str(uuid.uuid4())
    parent = self._active_phases[-1] if self._active_phases else None
    self._events.append(
      TraceEvent(
        id=phase_id,
        type=TraceEventType.PHASE_START,
        timestamp=time.time(),
        description=name,
        parent_id=parent,
        metadata={"detail": description},
      )
    )
    self._active_phases.append(phase_id)
    return phase_id

  def end_phase(self) -> None:
    """Ends the current active phase. No-op when no phase is open."""
    if not self._active_phases:
      return
    phase_id = self._active_phases.pop()
    self._events.append(
      TraceEvent(
        id=str(uuid.uuid4()),
        type=TraceEventType.PHASE_END,
        timestamp=time.time(),
        description="End Phase",
        parent_id=phase_id,
      )
    )

  def log_transition(self, pass_name: str, state: str) -> None:
    self._log_simple(TraceEventType.STATE_TRANSITION, f"{pass_name} -> {state}", {"state": state})

  def log_contract(self, pass_name: str, stage: str, passed: bool, failed_rules: List[str]) -> None:
    """Logs the outcome of a precondition or postcondition check."""
    self._log_simple(
      TraceEventType.CONTRACT_CHECK,
      f"{stage} for {pass_name}: {'passed' if passed else 'failed'}",
      {"stage": stage, "passed": passed, "failed_rules": list(failed_rules)},
    )

  def log_fallback(self, pass_name: str, reason: str) -> None:
    self._log_simple(TraceEventType.FALLBACK, f"{pass_name} fell back to textual execution", {"reason": reason})

  def log_integrity(self, pass_name: str, message: str) -> None:
    self._log_simple(TraceEventType.INTEGRITY, f"{pass_name} output rejected", {"reason": message})

  def log_conflict(self, description: str, severity: str) -> None:
    self._log_simple(TraceEventType.CONFLICT, description, {"severity": severity})

  def log_rollback(self, pass_name: str, strategy: str, success: bool, reason: str) -> None:
    """Logs a contract rollback or a snapshot restoration."""
    self._log_simple(
      TraceEventType.ROLLBACK,
      f"Rollback ({strategy}) for {pass_name}",
      {"strategy": strategy, "success": success, "reason": reason},
    )

  def log_resolution(self, pass_name: str, strategy: str, applied: List[str]) -> None:
    self._log_simple(
      TraceEventType.RESOLUTION,
      f"Resolution ({strategy}) for {pass_name}",
      {"strategy": strategy, "applied_fixes": list(applied)},
    )

  def log_warning(self, message: str) -> None:
    self._log_simple(TraceEventType.WARNING, message, {"level": "warning"})

  def _log_simple(self, evt_type: TraceEventType, desc: str, meta: Dict[str, Any]) -> None:
    parent = self._active_phases[-1] if self._active_phases else None
    self._events.append(
      TraceEvent(
        id=str(uuid.uuid4()),
        type=evt_type,
        timestamp=time.time(),
        description=desc,
        parent_id=parent,
        metadata=meta,
      )
    )

  def export(self) -> List[Dict[str, Any]]:
    """Returns the recorded events as dictionaries."""
    return [asdict(e) for e in self._events]
