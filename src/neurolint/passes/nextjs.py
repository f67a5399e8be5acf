"""
Pass 6: Next.js.

Manages the ``'use client'`` directive of App Router modules:

- Adds it when the module uses state or effect hooks, browser globals, or
  JSX event handlers.
- Moves a misplaced directive to the top of the file and drops duplicates.
- Leaves exactly one blank line after it.

Modules marked ``'use server'`` are never touched.
"""

import re
from typing import List, Optional

from tree_sitter import Node

from neurolint.core.parser import SourceTree, ancestors, iter_nodes, node_text
from neurolint.passes.base import PassContext, PassDescriptor, register_pass

CLIENT_DIRECTIVE = "'use client';"
CLIENT_HOOKS = {"useState", "useEffect", "useReducer", "useLayoutEffect"}
CLIENT_GLOBALS = {"window", "document", "localStorage", "sessionStorage"}
_HANDLER_ATTR = re.compile(r"^on[A-Z]\w*$")

_DIRECTIVE_TEXT = re.compile(r"""^(['"])use (client|server)\1$""")
_CLIENT_LINE = re.compile(r"""^[ \t]*(['"])use client\1;?[ \t]*(?:\n|$)""", re.M)
_SERVER_LINE = re.compile(r"""^[ \t]*(['"])use server\1;?[ \t]*$""", re.M)
_TEXT_HOOK = re.compile(r"(?<![\w$.])(?:useState|useEffect|useReducer|useLayoutEffect)\s*\(")
_TEXT_GLOBAL = re.compile(r"(?<![\w$.])(?:window|document|localStorage|sessionStorage)\s*\.")
_TEXT_HANDLER = re.compile(r"\son[A-Z]\w*\s*=\s*\{")


def directive_kind(statement: Node) -> Optional[str]:
  """Returns ``"client"`` or ``"server"`` when ``statement`` is a directive."""
  if statement.type != "expression_statement" or not statement.named_children:
    return None
  expr = statement.named_children[0]
  if expr.type != "string":
    return None
  match = _DIRECTIVE_TEXT.match(node_text(expr))
  return match.group(2) if match else None


def _in_typeof(node: Node) -> bool:
  parent = node.parent
  return parent is not None and parent.type == "unary_expression" and node_text(parent).startswith("typeof")


def needs_client(tree: SourceTree) -> bool:
  for node in iter_nodes(tree):
    if node.type == "call_expression":
      callee = node.child_by_field_name("function")
      if callee is not None and callee.type == "identifier" and node_text(callee) in CLIENT_HOOKS:
        return True
    elif node.type == "identifier" and node_text(node) in CLIENT_GLOBALS:
      if not _in_typeof(node) and not any(a.type == "import_statement" for a in ancestors(node)):
        return True
    elif node.type == "jsx_attribute" and node.named_children:
      if _HANDLER_ATTR.match(node_text(node.named_children[0])):
        return True
  return False


def structural(tree: SourceTree, ctx: PassContext) -> None:
  statements = tree.root.named_children
  kinds = [directive_kind(s) for s in statements]
  if "server" in kinds:
    return
  clients: List[int] = [i for i, kind in enumerate(kinds) if kind == "client"]
  if not clients and not needs_client(tree):
    return

  data = tree.source_bytes
  if clients and clients[0] == 0 and statements[0].start_byte == 0:
    keep = statements[0]
    following = 1
    while following < len(statements) and kinds[following] == "client":
      following += 1
    gap_end = statements[following].start_byte if following < len(statements) else len(data)
    separator = "\n\n" if following < len(statements) else "\n"
    if data[keep.end_byte : gap_end].decode("utf8") != separator:
      tree.replace_range(keep.end_byte, gap_end, separator)
    for index in clients:
      if index >= following:
        tree.remove(statements[index])
    return

  body = _without(data, [statements[i] for i in clients]).lstrip()
  tree.replace_range(0, len(data), _with_directive(body))


def _without(data: bytes, nodes: List[Node]) -> str:
  """Drops ``nodes`` from ``data``, along with the rest of their lines when blank."""
  out = []
  cursor = 0
  for node in nodes:
    out.append(data[cursor : node.start_byte].rstrip(b" \t"))
    end = node.end_byte
    newline = data.find(b"\n", end)
    if newline != -1 and not data[end:newline].strip():
      end = newline + 1
    cursor = end
  out.append(data[cursor:])
  return b"".join(out).decode("utf8")


def _with_directive(body: str) -> str:
  return CLIENT_DIRECTIVE + "\n\n" + body if body else CLIENT_DIRECTIVE + "\n"


def _textual_needs_client(code: str) -> bool:
  return bool(_TEXT_HOOK.search(code) or _TEXT_GLOBAL.search(code) or _TEXT_HANDLER.search(code))


def textual(code: str, ctx: PassContext) -> str:
  if _SERVER_LINE.search(code):
    return code
  had_client = bool(_CLIENT_LINE.search(code))
  if not had_client and not _textual_needs_client(code):
    return code
  return _with_directive(_CLIENT_LINE.sub("", code).lstrip())


register_pass(
  PassDescriptor(
    id=6,
    name="Next.js",
    description="Place a single 'use client' directive at the top of client modules",
    textual=textual,
    structural=structural,
    dependencies=(1, 2, 3, 4, 5),
  )
)
