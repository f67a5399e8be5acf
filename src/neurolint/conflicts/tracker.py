"""
Change Tracker.

Records each pass's diff into a :class:`ConflictDetector` and scores how
risky the pass was, producing the aggregate ``ChangeAnalysis`` attached to a
pipeline report.
"""

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from neurolint.conflicts.changes import CodeChange
from neurolint.conflicts.detector import ConflictDetector, ConflictResult
from neurolint.enums import ChangeKind, ChangeType, Severity

_KIND_WEIGHTS = {
  ChangeKind.IMPORT: 3.0,
  ChangeKind.FUNCTION: 2.0,
  ChangeKind.HOOK: 2.0,
  ChangeKind.TYPE: 1.0,
  ChangeKind.MARKUP: 1.0,
}
_TYPE_WEIGHTS = {
  ChangeType.DELETION: 2.0,
  ChangeType.MODIFICATION: 1.0,
  ChangeType.ADDITION: 0.5,
}


class PassChangeReport(BaseModel):
  pass_id: int
  pass_name: str
  changes: List[CodeChange] = Field(default_factory=list)
  impact_score: float = 0.0
  risk: Severity = Severity.LOW


class ChangeAnalysis(BaseModel):
  """
  Aggregate view over every tracked pass.

  Attributes:
      total_changes: Sum of change counts.
      by_pass: Per-pass reports keyed by pass id.
      risk: Highest per-pass risk level.
      recommendations: Review hints derived from the changes.
  """

  total_changes: int = 0
  by_pass: Dict[int, PassChangeReport] = Field(default_factory=dict)
  risk: Severity = Severity.LOW
  recommendations: List[str] = Field(default_factory=list)


def impact_score(changes: Sequence[CodeChange]) -> float:
  """
  Weighted size of a change set.

  Each change scores 1, plus a weight for the kind of code it touches and
  a weight for whether it deletes, modifies or adds.
  """
  score = 0.0
  for change in changes:
    score += 1.0
    score += _KIND_WEIGHTS.get(change.kind, 0.0)
    score += _TYPE_WEIGHTS[change.type]
  return score


def assess_risk(changes: Sequence[CodeChange], score: float) -> Severity:
  if score > 15 or any(c.kind == ChangeKind.IMPORT and c.type == ChangeType.DELETION for c in changes):
    return Severity.HIGH
  if score > 8 or sum(1 for c in changes if c.kind == ChangeKind.FUNCTION) > 2:
    return Severity.MEDIUM
  return Severity.LOW


class ChangeTracker:
  """
  Tracks the changes of every pass in one run.

  Args:
      complexity_threshold: Forwarded to the owned ConflictDetector.
  """

  def __init__(self, complexity_threshold: int = 10) -> None:
    self.detector = ConflictDetector(complexity_threshold=complexity_threshold)
    self._reports: Dict[int, PassChangeReport] = {}

  def track(
    self,
    pass_id: int,
    pass_name: str,
    before: str,
    after: str,
    complexity_before: Optional[int] = None,
    complexity_after: Optional[int] = None,
  ) -> PassChangeReport:
    """
    Records a pass diff and scores it. Re-tracking a pass replaces its report.

    Returns:
        PassChangeReport: Changes, impact score and risk level of the pass.
    """
    changes = self.detector.record(
      pass_id,
      before,
      after,
      pass_name=pass_name,
      complexity_before=complexity_before,
      complexity_after=complexity_after,
    )
    score = impact_score(changes)
    report = PassChangeReport(
      pass_id=pass_id,
      pass_name=pass_name,
      changes=changes,
      impact_score=score,
      risk=assess_risk(changes, score),
    )
    self._reports.pop(pass_id, None)
    self._reports[pass_id] = report
    return report

  def forget(self, pass_ids: Sequence[int]) -> None:
    """Discards passes whose output was undone by a rollback."""
    self.detector.forget(pass_ids)
    for pass_id in pass_ids:
      self._reports.pop(pass_id, None)

  def check_conflicts(self) -> ConflictResult:
    return self.detector.detect_conflicts()

  def analysis(self) -> ChangeAnalysis:
    reports = dict(self._reports)
    return ChangeAnalysis(
      total_changes=sum(len(r.changes) for r in reports.values()),
      by_pass=reports,
      risk=Severity.highest(r.risk for r in reports.values()),
      recommendations=self._recommendations(list(reports.values())),
    )

  @staticmethod
  def _recommendations(reports: List[PassChangeReport]) -> List[str]:
    recommendations = []
    high_risk = [r.pass_name for r in reports if r.risk == Severity.HIGH]
    if high_risk:
      recommendations.append(f"Review high-risk passes: {', '.join(high_risk)}")
    if any(c.kind == ChangeKind.IMPORT for r in reports for c in r.changes):
      recommendations.append("Validate import integrity after transformation")
    if any(c.kind == ChangeKind.FUNCTION and c.type != ChangeType.ADDITION for r in reports for c in r.changes):
      recommendations.append("Test function modifications for breaking changes")
    return recommendations

  def clear(self) -> None:
    self.detector.clear()
    self._reports.clear()
