"""
Pass 5: Hydration.

Guards Web Storage access so server-side rendering does not touch browser
globals:

- reads become ``(typeof window !== "undefined" ? localStorage.getItem(k) : null)``
- calls used as statements become ``typeof window !== "undefined" && localStorage.setItem(k, v);``

Calls that already sit under a ``typeof window`` check or inside an effect
callback are left alone, which keeps the pass idempotent. The textual path
approximates this by skipping guarded lines and the bodies of
``if (typeof window ...) {`` blocks and effect callbacks.
"""

import re
from typing import Iterator, List, Tuple

from tree_sitter import Node

from neurolint.analysis.semantic import is_guarded
from neurolint.core.parser import SourceTree, ancestors, iter_nodes, node_text
from neurolint.passes.base import PassContext, PassDescriptor, register_pass

STORAGE_OBJECTS = ("localStorage", "sessionStorage")
GUARD = 'typeof window !== "undefined"'

_ARGS = r"\((?:[^()]|\([^()]*\))*\)"
_GUARD_TEXT = r"typeof window !== [\"']undefined[\"']"
_STORAGE_ACCESS = rf"(?:localStorage|sessionStorage)\.\w+{_ARGS}"
_STORAGE_CALL = re.compile(rf"(?<![\w$.]){_STORAGE_ACCESS}")
_STATEMENT_CALL = re.compile(rf"^(?P<indent>[ \t]*)(?P<call>{_STORAGE_ACCESS})(?P<rest>[ \t]*;?)", re.M)

_GUARDED_BLOCK = re.compile(r"\bif\s*\(\s*typeof\s+window\s*!==?\s*[\"']undefined[\"']\s*\)\s*\{")
_EFFECT_BLOCK = re.compile(r"\buse(?:Layout|Insertion)?Effect\(\s*(?:async\s*)?(?:\([^()]*\)|\w+)\s*=>\s*\{")

_REPEATED_GUARD = re.compile(rf"({_GUARD_TEXT}\s*&&\s*)(?:{_GUARD_TEXT}\s*&&\s*)+(?={_STORAGE_ACCESS})")
_NESTED_READ = re.compile(rf"\(({_GUARD_TEXT}) \? \({_GUARD_TEXT} \? ({_STORAGE_ACCESS}) : null\) : null\)")
_GUARD_IN_GUARDED_BLOCK = re.compile(rf"(\bif\s*\(\s*{_GUARD_TEXT}\s*\)\s*\{{\s*){_GUARD_TEXT}\s*&&\s*(?={_STORAGE_ACCESS})")


def _is_storage_call(node: Node) -> bool:
  if node.type != "call_expression":
    return False
  callee = node.child_by_field_name("function")
  if callee is None or callee.type != "member_expression":
    return False
  obj = callee.child_by_field_name("object")
  return obj is not None and obj.type == "identifier" and node_text(obj) in STORAGE_OBJECTS


def storage_calls(root) -> Iterator[Node]:
  """Yields ``localStorage.x(...)`` / ``sessionStorage.x(...)`` call nodes."""
  return (call for call in iter_nodes(root, "call_expression") if _is_storage_call(call))


def _nested_in_storage_call(call: Node) -> bool:
  return any(_is_storage_call(a) for a in ancestors(call))


def structural(tree: SourceTree, ctx: PassContext) -> None:
  for call in storage_calls(tree):
    if is_guarded(call) or _nested_in_storage_call(call):
      continue
    parent = call.parent
    if parent is not None and parent.type == "expression_statement":
      tree.insert_before(call, f"{GUARD} && ")
    else:
      tree.replace(call, f"({GUARD} ? {tree.text(call)} : null)")


def _line_prefix(code: str, offset: int) -> str:
  return code[code.rfind("\n", 0, offset) + 1 : offset]


def _block_end(code: str, open_brace: int) -> int:
  depth = 0
  for index in range(open_brace, len(code)):
    char = code[index]
    if char == "{":
      depth += 1
    elif char == "}":
      depth -= 1
      if depth == 0:
        return index + 1
  return len(code)


def protected_spans(code: str) -> List[Tuple[int, int]]:
  """
  Offsets of ``if (typeof window ...) { ... }`` bodies and effect callback bodies.

  Brace matching ignores strings and comments, so the spans are approximate.
  """
  spans = []
  for pattern in (_GUARDED_BLOCK, _EFFECT_BLOCK):
    for match in pattern.finditer(code):
      spans.append((match.end() - 1, _block_end(code, match.end() - 1)))
  return sorted(spans)


def _protected(offset: int, spans: List[Tuple[int, int]]) -> bool:
  return any(start < offset < end for start, end in spans)


def textual(code: str, ctx: PassContext) -> str:
  spans = protected_spans(code)

  def guard_statement(match: re.Match) -> str:
    if _protected(match.start("call"), spans):
      return match.group(0)
    return f"{match.group('indent')}{GUARD} && {match.group('call')}{match.group('rest')}"

  fixed = _STATEMENT_CALL.sub(guard_statement, code)

  spans = protected_spans(fixed)
  out = []
  cursor = 0
  for match in _STORAGE_CALL.finditer(fixed):
    if "typeof window" in _line_prefix(fixed, match.start()) or _protected(match.start(), spans):
      continue
    out.append(fixed[cursor : match.start()])
    out.append(f"({GUARD} ? {match.group(0)} : null)")
    cursor = match.end()
  out.append(fixed[cursor:])
  return "".join(out)


def collapse_duplicate_guards(code: str) -> str:
  """
  Removes guards that wrap an already guarded storage access.

  Used as the rollback function of the hydration contract. The outermost
  guard of every access is kept, so the result is never less protected
  than ``code``.
  """
  previous = None
  while previous != code:
    previous = code
    code = _REPEATED_GUARD.sub(r"\1", code)
    code = _NESTED_READ.sub(r"(\1 ? \2 : null)", code)
    code = _GUARD_IN_GUARDED_BLOCK.sub(r"\1", code)
  return code


register_pass(
  PassDescriptor(
    id=5,
    name="Hydration",
    description="Guard Web Storage access for server-side rendering",
    textual=textual,
    structural=structural,
    dependencies=(1, 2),
  )
)
