"""
Pass 7: Cleanup.

Removes exact duplicates left behind by earlier rewrites or merges: repeated
import statements and repeated top-level function declarations. Only
byte-identical copies are removed; the first occurrence wins.
"""

import re
from typing import Set

from neurolint.core.parser import SourceTree, node_text
from neurolint.passes.base import PassContext, PassDescriptor, register_pass

_DEDUPED_TYPES = {"import_statement", "function_declaration"}

_IMPORT_LINE = re.compile(r"^[ \t]*import\b[^\n]*['\"][^'\"\n]+['\"][ \t]*;?[ \t]*$")
_FUNCTION_START = re.compile(r"^(?:export\s+)?(?:async\s+)?function\s+[\w$]+\s*\(")


def _unwrap_export(node):
  # export function f() {} wraps the declaration
  if node.type == "export_statement":
    inner = node.child_by_field_name("declaration")
    if inner is not None and inner.type == "function_declaration":
      return inner
  return node


def structural(tree: SourceTree, ctx: PassContext) -> None:
  seen: Set[str] = set()
  for statement in tree.root.named_children:
    if _unwrap_export(statement).type not in _DEDUPED_TYPES:
      continue
    text = node_text(statement)
    if text in seen:
      tree.remove(statement)
    else:
      seen.add(text)


def _function_block(lines, start):
  """Returns the index past the closing brace of the function starting at ``start``, or None."""
  depth = 0
  opened = False
  for index in range(start, len(lines)):
    for char in lines[index]:
      if char == "{":
        depth += 1
        opened = True
      elif char == "}":
        depth -= 1
    if opened and depth == 0:
      return index + 1
  return None


def textual(code: str, ctx: PassContext) -> str:
  lines = code.splitlines(keepends=True)
  seen: Set[str] = set()
  out = []
  index = 0
  while index < len(lines):
    line = lines[index]
    if _IMPORT_LINE.match(line.rstrip("\r\n")):
      key = line.strip()
      if key not in seen:
        seen.add(key)
        out.append(line)
      index += 1
      continue
    if _FUNCTION_START.match(line):
      end = _function_block(lines, index)
      if end is not None:
        block = "".join(lines[index:end])
        key = block.rstrip()
        if key not in seen:
          seen.add(key)
          out.append(block)
        index = end
        continue
    out.append(line)
    index += 1
  return "".join(out)


register_pass(
  PassDescriptor(
    id=7,
    name="Cleanup",
    description="Remove duplicate imports and duplicate function declarations",
    textual=textual,
    structural=structural,
    dependencies=(2,),
  )
)
