"""
Intelligent Resolver.

Decides what to do with non-fatal conflicts raised around a pass:

1. ``automatic_fix`` when at least 70% of the conflicts carry a registered
   fix. Only those fixes are applied; the rest are returned as remaining.
2. ``priority_based`` when any conflict is critical. The pass output is
   dropped in favour of the pre-pass source.
3. ``semantic_merge`` otherwise. The pass output is kept and the conflicts
   are reported for review.

``user_guided`` is never selected automatically; a caller may force it to
get every conflict back untouched.
"""

import re
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from neurolint.conflicts.detector import Conflict
from neurolint.core.quality_gate import QualityGate
from neurolint.enums import Language, ResolutionStrategyType, Severity
from neurolint.utils.console import log_warning

AUTO_FIX_RATIO = 0.7

FixFunction = Callable[[str, Conflict], str]


class ResolutionResult(BaseModel):
  """
  Outcome of a resolution attempt.

  Attributes:
      success: False when a critical conflict remains unaddressed or the
          resolved code no longer parses.
      strategy: The strategy that was applied.
      confidence: low, medium or high.
      description: Why the strategy was chosen.
      code: The resolved source.
      applied_fixes: Human readable list of applied fixes.
      remaining_conflicts: Conflicts left for the caller.
      warnings: Notes produced during resolution.
  """

  success: bool
  strategy: ResolutionStrategyType
  confidence: str = "high"
  description: str = ""
  code: str
  applied_fixes: List[str] = Field(default_factory=list)
  remaining_conflicts: List[Conflict] = Field(default_factory=list)
  warnings: List[str] = Field(default_factory=list)


def dedupe_directive(code: str, conflict: Conflict) -> str:
  """Keeps only the first occurrence of a directive statement line."""
  directive = conflict.fix_args.get("directive", "use client")
  pattern = re.compile(rf"^\s*(['\"]){re.escape(directive)}\1;?\s*$")
  lines = code.split("\n")
  seen = False
  kept = []
  for line in lines:
    if pattern.match(line):
      if seen:
        continue
      seen = True
    kept.append(line)
  return "\n".join(kept)


def alias_import(code: str, conflict: Conflict) -> str:
  """Aliases the rebound import so it no longer shadows the original binding."""
  name = conflict.fix_args.get("name")
  source = conflict.fix_args.get("source")
  if not name or not source:
    return code
  alias = f"{name}Aliased"
  statement = re.compile(
    rf"(import\s+)(?P<clause>[^;'\"]+?)(\s+from\s*['\"]){re.escape(source)}(['\"])",
  )

  def _rewrite(match: re.Match) -> str:
    clause = match.group("clause")
    clause = re.sub(rf"(\{{[^}}]*?)(?<![\w$]){re.escape(name)}(?![\w$])(?!\s+as\b)", rf"\g<1>{name} as {alias}", clause)
    clause = re.sub(rf"^{re.escape(name)}(?![\w$])", alias, clause.lstrip())
    return f"{match.group(1)}{clause}{match.group(3)}{source}{match.group(4)}"

  return statement.sub(_rewrite, code)


_FIXES: Dict[str, FixFunction] = {
  "dedupe_directive": dedupe_directive,
  "alias_import": alias_import,
}


def register_fix(name: str, fn: FixFunction) -> None:
  """
  Registers a named automatic fix.

  Args:
      name: Value used in ``Conflict.fix``.
      fn: Callable receiving the code and the conflict, returning new code.
  """
  _FIXES[name] = fn


def unregister_fix(name: str) -> None:
  _FIXES.pop(name, None)


class IntelligentResolver:
  """
  Chooses and applies a resolution strategy for a set of conflicts.
  """

  def __init__(self, language: Optional[Language] = None) -> None:
    self.language = language

  @staticmethod
  def determine_strategy(conflicts: Sequence[Conflict]) -> ResolutionStrategyType:
    if not conflicts:
      return ResolutionStrategyType.SEMANTIC_MERGE
    fixable = sum(1 for c in conflicts if c.auto_fixable and c.fix in _FIXES)
    if fixable >= AUTO_FIX_RATIO * len(conflicts):
      return ResolutionStrategyType.AUTOMATIC_FIX
    if any(c.severity == Severity.CRITICAL for c in conflicts):
      return ResolutionStrategyType.PRIORITY_BASED
    return ResolutionStrategyType.SEMANTIC_MERGE

  def resolve(
    self,
    original: str,
    transformed: str,
    conflicts: Sequence[Conflict],
    pass_name: str,
    strategy: Optional[ResolutionStrategyType] = None,
  ) -> ResolutionResult:
    """
    Resolves ``conflicts`` raised by ``pass_name``.

    Args:
        original: Pre-pass source.
        transformed: Pass output.
        conflicts: Conflicts to resolve.
        pass_name: Label used in warnings.
        strategy: Forces a strategy instead of choosing one.

    Returns:
        ResolutionResult: The resolved code and a record of what happened.
    """
    chosen = strategy or self.determine_strategy(conflicts)
    conflicts = list(conflicts)

    if chosen == ResolutionStrategyType.AUTOMATIC_FIX:
      result = self._automatic_fix(transformed, conflicts)
    elif chosen == ResolutionStrategyType.PRIORITY_BASED:
      critical = [c for c in conflicts if c.severity == Severity.CRITICAL]
      result = ResolutionResult(
        success=True,
        strategy=chosen,
        confidence="medium",
        description="Critical conflicts require priority-based resolution",
        code=original if critical else transformed,
        remaining_conflicts=[] if critical else conflicts,
        warnings=[f"Critical conflicts detected, reverting {pass_name} changes"] if critical else [],
      )
    elif chosen == ResolutionStrategyType.USER_GUIDED:
      result = ResolutionResult(
        success=not any(c.severity == Severity.CRITICAL for c in conflicts),
        strategy=chosen,
        confidence="low",
        description="Conflicts handed back to the caller",
        code=transformed,
        remaining_conflicts=conflicts,
        warnings=["Manual resolution required for complex conflicts"],
      )
    else:
      result = ResolutionResult(
        success=True,
        strategy=ResolutionStrategyType.SEMANTIC_MERGE,
        description="Changes kept; conflicts reported for review",
        code=transformed,
        remaining_conflicts=conflicts,
        warnings=[f"Kept {pass_name} changes with {len(conflicts)} unresolved conflict(s)"] if conflicts else [],
      )

    if result.code != original and result.code != transformed:
      check = QualityGate.validate_syntax(result.code, self.language)
      if not check.valid:
        log_warning(f"Resolution for {pass_name} produced invalid syntax")
        result.success = False
        result.warnings.append(f"Resolution produced invalid syntax: {check.message}")
    return result

  def _automatic_fix(self, code: str, conflicts: List[Conflict]) -> ResolutionResult:
    applied: List[str] = []
    remaining: List[Conflict] = []
    warnings: List[str] = []
    for conflict in conflicts:
      fix = _FIXES.get(conflict.fix) if conflict.auto_fixable and conflict.fix else None
      if fix is None:
        remaining.append(conflict)
        continue
      try:
        fixed = fix(code, conflict)
      except Exception as e:
        warnings.append(f"Fix '{conflict.fix}' failed: {e}")
        remaining.append(conflict)
        continue
      if fixed != code:
        applied.append(f"{conflict.fix}: {conflict.description}")
      code = fixed
    return ResolutionResult(
      success=not any(c.severity == Severity.CRITICAL for c in remaining),
      strategy=ResolutionStrategyType.AUTOMATIC_FIX,
      description="Most conflicts can be resolved automatically",
      code=code,
      applied_fixes=applied,
      remaining_conflicts=remaining,
      warnings=warnings,
    )


def render_markdown(result: ResolutionResult) -> str:
  """
  Renders a resolution summary as Markdown.

  Args:
      result: The resolution to describe.

  Returns:
      str: The report text.
  """
  lines = [
    "## Conflict Resolution Report",
    "",
    f"**Strategy:** {result.strategy.value} ({result.confidence} confidence)",
    f"**Description:** {result.description}",
    "",
  ]
  if result.applied_fixes:
    lines.append("### Applied Fixes")
    lines.extend(f"- {fix}" for fix in result.applied_fixes)
    lines.append("")
  if result.remaining_conflicts:
    lines.append("### Remaining Conflicts")
    for conflict in result.remaining_conflicts:
      lines.append(f"- **{conflict.type.value}** ({conflict.severity.value}): {conflict.description}")
      if conflict.suggestion:
        lines.append(f"  *Suggestion: {conflict.suggestion}*")
    lines.append("")
  if result.warnings:
    lines.append("### Warnings")
    lines.extend(f"- {warning}" for warning in result.warnings)
    lines.append("")
  return "\n".join(lines)
