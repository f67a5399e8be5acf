"""
Cross-pass Conflict Detector.

Accumulates the changes of every pass in a run and reports edits that
interfere with each other:

- line-range overlaps between two passes, unless both sides added the very
  same text (benign duplication),
- semantic conflicts that hold even without textual overlap (the same
  directive added by several passes, complexity jumps),
- imports removed by one pass while the name is still referenced.

A detector is owned by a single run. Conflicts are derived on demand and
never outlive the run.
"""

import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field

from neurolint.conflicts.changes import CodeChange, compute_changes
from neurolint.enums import ChangeKind, ChangeType, ConflictType, Severity

DIRECTIVES = ("use client", "use server")

_IMPORT_STMT = re.compile(r"^[ \t]*import\s+(?:type\s+)?(?P<clause>[^;'\"]+?)\s+from\s*['\"][^'\"]+['\"];?", re.M)


class Conflict(BaseModel):
  """
  A detected interference between passes.

  Attributes:
      type: Category of the conflict.
      passes: Ids of the participating passes.
      line: 1-based location, if known.
      column: 0-based column, if known.
      severity: How dangerous the conflict is.
      description: Human readable summary.
      suggestion: Optional remediation hint.
      auto_fixable: Whether a registered fix can resolve it.
      fix: Name of the fix the resolver should apply.
      fix_args: Parameters for that fix.
  """

  type: ConflictType
  passes: List[int] = Field(default_factory=list)
  line: Optional[int] = None
  column: Optional[int] = None
  severity: Severity = Severity.LOW
  description: str
  suggestion: Optional[str] = None
  auto_fixable: bool = False
  fix: Optional[str] = None
  fix_args: Dict[str, str] = Field(default_factory=dict)

  @property
  def key(self) -> Tuple:
    """Identity used to de-duplicate conflicts observed across a run."""
    return (self.type.value, tuple(sorted(self.passes)), self.line, self.description)


class ConflictResult(BaseModel):
  has_conflicts: bool = False
  conflicts: List[Conflict] = Field(default_factory=list)
  severity: Severity = Severity.LOW

  @classmethod
  def from_conflicts(cls, conflicts: Sequence[Conflict]) -> "ConflictResult":
    return cls(
      has_conflicts=bool(conflicts),
      conflicts=list(conflicts),
      severity=Severity.highest(c.severity for c in conflicts),
    )


def imported_names(text: str) -> Set[str]:
  """
  Local names bound by the import statements of ``text``.

  Args:
      text: Source text.

  Returns:
      Set[str]: Default, namespace and named (aliased) import bindings.
  """
  names: Set[str] = set()
  for match in _IMPORT_STMT.finditer(text):
    clause = match.group("clause")
    braces = re.search(r"\{([^}]*)\}", clause)
    if braces:
      for part in braces.group(1).split(","):
        part = re.sub(r"^type\s+", "", part.strip())
        if part:
          names.add(re.split(r"\s+as\s+", part)[-1].strip())
      clause = clause[: braces.start()] + clause[braces.end() :]
    namespace = re.search(r"\*\s*as\s+([\w$]+)", clause)
    if namespace:
      names.add(namespace.group(1))
      clause = clause[: namespace.start()] + clause[namespace.end() :]
    default = clause.strip().strip(",").strip()
    if re.fullmatch(r"[\w$]+", default):
      names.add(default)
  return names


def is_referenced(name: str, text: str) -> bool:
  """True when ``name`` occurs in ``text`` outside import statements."""
  body = _IMPORT_STMT.sub("", text)
  return re.search(rf"(?<![\w$.]){re.escape(name)}(?![\w$])", body) is not None


def _directive_lines(text: str) -> Set[str]:
  found = set()
  for line in text.splitlines():
    stripped = line.strip().rstrip(";").strip()
    for directive in DIRECTIVES:
      if stripped in (f"'{directive}'", f'"{directive}"'):
        found.add(directive)
  return found


class ConflictDetector:
  """
  Records per-pass changes and derives conflicts between them.

  Args:
      complexity_threshold: Complexity increase above which a pass is flagged.
  """

  def __init__(self, complexity_threshold: int = 10) -> None:
    self.complexity_threshold = complexity_threshold
    self._changes: Dict[int, List[CodeChange]] = {}
    self._names: Dict[int, str] = {}
    self._complexity: Dict[int, Tuple[int, int]] = {}
    self._removed_imports: Dict[int, Set[str]] = {}
    self._latest_source: Optional[str] = None

  def record(
    self,
    pass_id: int,
    before: str,
    after: str,
    pass_name: Optional[str] = None,
    complexity_before: Optional[int] = None,
    complexity_after: Optional[int] = None,
  ) -> List[CodeChange]:
    """
    Records the diff a pass produced, replacing any earlier record of it.

    Args:
        pass_id: Owner of the change set.
        before: Pass input.
        after: Committed pass output.
        pass_name: Label used in descriptions.
        complexity_before: Semantic complexity of ``before``.
        complexity_after: Semantic complexity of ``after``.

    Returns:
        List[CodeChange]: The computed changes.
    """
    changes = compute_changes(pass_id, before, after)
    self._changes.pop(pass_id, None)
    self._changes[pass_id] = changes
    self._names[pass_id] = pass_name or f"pass {pass_id}"
    if complexity_before is not None and complexity_after is not None:
      self._complexity[pass_id] = (complexity_before, complexity_after)
    else:
      self._complexity.pop(pass_id, None)
    self._removed_imports[pass_id] = imported_names(before) - imported_names(after) if changes else set()
    self._latest_source = after
    return changes

  def changes_for(self, pass_id: int) -> List[CodeChange]:
    return list(self._changes.get(pass_id, []))

  @property
  def recorded_passes(self) -> List[int]:
    return list(self._changes)

  def forget(self, pass_ids: Sequence[int]) -> None:
    """Drops the records of passes whose output was undone."""
    for pass_id in pass_ids:
      self._changes.pop(pass_id, None)
      self._complexity.pop(pass_id, None)
      self._removed_imports.pop(pass_id, None)

  def clear(self) -> None:
    self._changes.clear()
    self._names.clear()
    self._complexity.clear()
    self._removed_imports.clear()
    self._latest_source = None

  def detect_conflicts(self) -> ConflictResult:
    """
    Examines every recorded change set.

    Returns:
        ConflictResult: All current conflicts and their maximum severity.
    """
    conflicts: List[Conflict] = []
    conflicts.extend(self._overlaps())
    conflicts.extend(self._directive_conflicts())
    conflicts.extend(self._complexity_conflicts())
    conflicts.extend(self._import_conflicts())
    return ConflictResult.from_conflicts(conflicts)

  def _overlaps(self) -> List[Conflict]:
    conflicts = []
    ids = list(self._changes)
    for i, first in enumerate(ids):
      for second in ids[i + 1 :]:
        for a in self._changes[first]:
          for b in self._changes[second]:
            if not a.overlaps(b) or self._is_benign(a, b):
              continue
            conflicts.append(
              Conflict(
                type=ConflictType.OVERLAPPING_EDIT,
                passes=[first, second],
                line=b.start_line,
                column=0,
                severity=self._overlap_severity(a, b),
                description=(
                  f"{self._names[first]} and {self._names[second]} both modify line {b.start_line}"
                ),
                suggestion=f"Review the changes of {self._names[second]} against {self._names[first]}",
              )
            )
    return conflicts

  @staticmethod
  def _is_benign(a: CodeChange, b: CodeChange) -> bool:
    # Also masks two passes that add the same text for different reasons
    return a.type == ChangeType.ADDITION and b.type == ChangeType.ADDITION and a.content.strip() == b.content.strip()

  @staticmethod
  def _overlap_severity(a: CodeChange, b: CodeChange) -> Severity:
    if a.type == ChangeType.MODIFICATION and b.type == ChangeType.MODIFICATION and a.start_line == b.start_line:
      # The later pass rewrote the exact text the earlier pass produced
      if b.previous_content.strip() == a.content.strip():
        return Severity.HIGH
      return Severity.MEDIUM
    if {a.type, b.type} == {ChangeType.ADDITION, ChangeType.DELETION}:
      return Severity.MEDIUM
    return Severity.LOW

  def _directive_conflicts(self) -> List[Conflict]:
    conflicts = []
    for directive in DIRECTIVES:
      owners = [
        pass_id
        for pass_id, changes in self._changes.items()
        if any(
          c.type != ChangeType.DELETION
          and directive in _directive_lines(c.content)
          and directive not in _directive_lines(c.previous_content)
          for c in changes
        )
      ]
      if len(owners) > 1:
        labels = ", ".join(self._names[p] for p in owners)
        conflicts.append(
          Conflict(
            type=ConflictType.SEMANTIC_CONFLICT,
            passes=owners,
            line=1,
            column=0,
            severity=Severity.LOW,
            description=f"Multiple passes ({labels}) add the '{directive}' directive",
            suggestion="Keep a single directive at the top of the file",
            auto_fixable=True,
            fix="dedupe_directive",
            fix_args={"directive": directive},
          )
        )
    return conflicts

  def _complexity_conflicts(self) -> List[Conflict]:
    conflicts = []
    for pass_id, (before, after) in self._complexity.items():
      if after - before > self.complexity_threshold:
        conflicts.append(
          Conflict(
            type=ConflictType.SEMANTIC_CONFLICT,
            passes=[pass_id],
            line=1,
            column=0,
            severity=Severity.MEDIUM,
            description=f"{self._names[pass_id]} increased complexity by {after - before}",
            suggestion="Split the transformation or simplify the generated code",
          )
        )
    return conflicts

  def _import_conflicts(self) -> List[Conflict]:
    if self._latest_source is None:
      return []
    conflicts = []
    still_imported = imported_names(self._latest_source)
    for pass_id, removed in self._removed_imports.items():
      for name in sorted(removed - still_imported):
        if not is_referenced(name, self._latest_source):
          continue
        line = next(
          (c.start_line for c in self._changes.get(pass_id, []) if c.kind == ChangeKind.IMPORT),
          1,
        )
        conflicts.append(
          Conflict(
            type=ConflictType.IMPORT_CONFLICT,
            passes=[pass_id],
            line=line,
            column=0,
            severity=Severity.HIGH,
            description=f"{self._names[pass_id]} removed the import of '{name}' which is still referenced",
            suggestion=f"Restore the import of '{name}'",
          )
        )
    return conflicts
