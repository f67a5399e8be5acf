"""
Line-level change extraction.

Turns a (before, after) pair into a list of :class:`CodeChange` records using
``difflib`` opcodes, and classifies each change by the kind of code it
touches. Line numbers refer to the ``after`` text of the owning pass.
"""

import difflib
import re
from typing import List

from pydantic import BaseModel

from neurolint.enums import ChangeKind, ChangeType

_IMPORT_LINE = re.compile(r"^\s*(?:import\b|export\s+(?:\*|\{[^}]*\})\s+from\b)|\brequire\(")
_TYPE_LINE = re.compile(r"^\s*(?:export\s+)?(?:declare\s+)?(?:interface|type|enum)\s+[A-Za-z_$]")
_HOOK_CALL = re.compile(r"\buse[A-Z]\w*\s*\(")
_FUNCTION_LINE = re.compile(r"\bfunction\b|=>|^\s*(?:async\s+)?[a-zA-Z_$][\w$]*\s*\([^)]*\)\s*\{")
_MARKUP_LINE = re.compile(r"<\s*[A-Za-z/>]")


class CodeChange(BaseModel):
  """
  One contiguous edit detected in a pass output.

  Attributes:
      type: Addition, modification or deletion.
      start_line: First affected line (1-based, in the pass output).
      end_line: Last affected line. Equals ``start_line`` for deletions.
      content: Resulting text. Empty for deletions.
      previous_content: Text that was replaced or removed.
      pass_id: Id of the pass that produced the edit.
      kind: Classification of the touched code.
  """

  type: ChangeType
  start_line: int
  end_line: int
  content: str = ""
  previous_content: str = ""
  pass_id: int
  kind: ChangeKind = ChangeKind.UNCLASSIFIED

  def overlaps(self, other: "CodeChange") -> bool:
    return not (self.end_line < other.start_line or other.end_line < self.start_line)


def classify(text: str) -> ChangeKind:
  """
  Classifies a block of changed lines.

  The first matching category wins, checked in the order import, type,
  hook, function, markup.

  Args:
      text: The changed lines.

  Returns:
      ChangeKind: The category.
  """
  lines = text.splitlines() or [text]
  for pattern, kind in (
    (_IMPORT_LINE, ChangeKind.IMPORT),
    (_TYPE_LINE, ChangeKind.TYPE),
    (_HOOK_CALL, ChangeKind.HOOK),
    (_FUNCTION_LINE, ChangeKind.FUNCTION),
    (_MARKUP_LINE, ChangeKind.MARKUP),
  ):
    if any(pattern.search(line) for line in lines):
      return kind
  return ChangeKind.UNCLASSIFIED


def compute_changes(pass_id: int, before: str, after: str) -> List[CodeChange]:
  """
  Computes the line diff between ``before`` and ``after``.

  Args:
      pass_id: Owner of the changes.
      before: Pass input.
      after: Pass output.

  Returns:
      List[CodeChange]: One entry per non-equal opcode, in order.
  """
  if before == after:
    return []
  old_lines = before.splitlines()
  new_lines = after.splitlines()
  matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
  changes: List[CodeChange] = []

  for tag, i1, i2, j1, j2 in matcher.get_opcodes():
    if tag == "equal":
      continue
    previous = "\n".join(old_lines[i1:i2])
    content = "\n".join(new_lines[j1:j2])
    if tag == "insert":
      change_type: ChangeType = ChangeType.ADDITION
      start, end = j1 + 1, j2
    elif tag == "delete":
      change_type = ChangeType.DELETION
      start = end = j1 + 1
    else:
      change_type = ChangeType.MODIFICATION
      start, end = j1 + 1, j2
    changes.append(
      CodeChange(
        type=change_type,
        start_line=start,
        end_line=end,
        content=content,
        previous_content=previous,
        pass_id=pass_id,
        kind=classify(content or previous),
      )
    )

  if not changes:
    # Only trailing newline or line ending differences
    changes.append(
      CodeChange(
        type=ChangeType.MODIFICATION,
        start_line=max(len(new_lines), 1),
        end_line=max(len(new_lines), 1),
        content=new_lines[-1] if new_lines else "",
        previous_content=old_lines[-1] if old_lines else "",
        pass_id=pass_id,
      )
    )
  return changes
