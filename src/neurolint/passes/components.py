"""
Pass 3: Components.

- Adds a ``key`` prop to JSX returned from ``.map`` callbacks. The callback's
  index parameter is used when present, otherwise ``<item>.id``.
- Imports React hooks that are called but never imported or declared.
"""

import re
from typing import List, Optional, Set

from tree_sitter import Node

from neurolint.conflicts.detector import imported_names
from neurolint.core.parser import SourceTree, iter_nodes, node_text
from neurolint.enums import BlastRadius
from neurolint.passes.base import PassContext, PassDescriptor, prologue_end, register_pass

REACT_HOOKS = (
  "useState",
  "useEffect",
  "useContext",
  "useReducer",
  "useCallback",
  "useMemo",
  "useRef",
  "useLayoutEffect",
  "useId",
  "useTransition",
  "useDeferredValue",
)
_REACT_SOURCES = ("'react'", '"react"')

_MAP_CALLBACK = re.compile(
  r"\.map\(\s*\(?\s*(?P<item>[A-Za-z_$][\w$]*)(?:\s*,\s*(?P<index>[A-Za-z_$][\w$]*))?\s*\)?\s*=>\s*\(?\s*"
  r"<(?P<tag>[A-Za-z][\w.]*)(?P<attrs>(?:[^>{}]|\{[^{}]*\})*?)(?P<end>\s*/?)>"
)
_KEY_ATTR = re.compile(r"(?<![\w-])key\s*=")
_HOOK_CALL = re.compile(r"(?<![\w$.])(use[A-Z]\w*)\s*\(")
_REACT_NAMED_IMPORT = re.compile(r"(import\s+(?:[\w$]+\s*,\s*)?\{)([^}]*)(\}\s*from\s*['\"]react['\"])")
_REACT_DEFAULT_IMPORT = re.compile(r"(import\s+[\w$]+)(\s+from\s*['\"]react['\"])")


# Structural


def _returned_jsx(callback: Node) -> Optional[Node]:
  body = callback.child_by_field_name("body")
  if body is None:
    return None
  if body.type == "statement_block":
    returns = [c for c in body.named_children if c.type == "return_statement"]
    if len(returns) != 1 or not returns[0].named_children:
      return None
    body = returns[0].named_children[0]
  while body.type == "parenthesized_expression" and body.named_children:
    body = body.named_children[0]
  if body.type in ("jsx_element", "jsx_self_closing_element"):
    return body
  return None


def _callback_params(callback: Node) -> List[Node]:
  single = callback.child_by_field_name("parameter")
  if single is not None:
    return [single]
  params = callback.child_by_field_name("parameters")
  if params is None:
    return []
  result = []
  for p in params.named_children:
    if p.type in ("required_parameter", "optional_parameter"):
      p = p.child_by_field_name("pattern") or p
    result.append(p)
  return result


def _key_expression(callback: Node) -> Optional[str]:
  params = _callback_params(callback)
  if len(params) >= 2 and params[1].type == "identifier":
    return node_text(params[1])
  if params and params[0].type == "identifier":
    return f"{node_text(params[0])}.id"
  return None


def _opening(element: Node) -> Node:
  if element.type == "jsx_self_closing_element":
    return element
  return next(c for c in element.named_children if c.type == "jsx_opening_element")


def _has_attribute(opening: Node, name: str) -> bool:
  for attr in opening.named_children:
    if attr.type == "jsx_attribute" and attr.named_children and node_text(attr.named_children[0]) == name:
      return True
  return False


def _attribute_anchor(opening: Node) -> Node:
  """Node after which new attributes are inserted: last attribute, else the tag name."""
  attrs = [c for c in opening.named_children if c.type in ("jsx_attribute", "jsx_expression")]
  if attrs:
    return attrs[-1]
  return opening.child_by_field_name("name") or opening.named_children[0]


def _add_missing_keys(tree: SourceTree) -> None:
  for call in iter_nodes(tree, "call_expression"):
    callee = call.child_by_field_name("function")
    if callee is None or callee.type != "member_expression":
      continue
    if node_text(callee.child_by_field_name("property")) != "map":
      continue
    args = call.child_by_field_name("arguments")
    if args is None or not args.named_children:
      continue
    callback = args.named_children[0]
    if callback.type not in ("arrow_function", "function_expression", "function"):
      continue
    element = _returned_jsx(callback)
    if element is None:
      continue
    opening = _opening(element)
    if opening.child_by_field_name("name") is None or _has_attribute(opening, "key"):
      continue
    key = _key_expression(callback)
    if key:
      tree.insert_after(_attribute_anchor(opening), f" key={{{key}}}")


def _declared_names(tree: SourceTree) -> Set[str]:
  names = set()
  for node in iter_nodes(tree):
    if node.type in ("function_declaration", "variable_declarator"):
      name = node.child_by_field_name("name")
      if name is not None and name.type == "identifier":
        names.add(node_text(name))
  return names | imported_names(tree.source)


def _called_react_hooks(tree: SourceTree) -> List[str]:
  called = []
  for call in iter_nodes(tree, "call_expression"):
    callee = call.child_by_field_name("function")
    if callee is not None and callee.type == "identifier" and node_text(callee) in REACT_HOOKS:
      called.append(node_text(callee))
  return called


def _add_missing_hook_imports(tree: SourceTree) -> None:
  declared = _declared_names(tree)
  missing = sorted({h for h in _called_react_hooks(tree) if h not in declared})
  if not missing:
    return

  for statement in tree.root.named_children:
    if statement.type != "import_statement":
      continue
    if node_text(statement.child_by_field_name("source")) not in _REACT_SOURCES:
      continue
    clause = next((c for c in statement.named_children if c.type == "import_clause"), None)
    if clause is None:
      continue
    named = next((c for c in clause.named_children if c.type == "named_imports"), None)
    if named is not None:
      specs = [c for c in named.named_children if c.type == "import_specifier"]
      if specs:
        tree.insert_after(specs[-1], ", " + ", ".join(missing))
      else:
        tree.replace(named, "{ " + ", ".join(missing) + " }")
      return
    default = next((c for c in clause.named_children if c.type == "identifier"), None)
    if default is not None:
      tree.insert_after(default, ", { " + ", ".join(missing) + " }")
      return

  tree.insert_at(_import_offset(tree.source), _import_line(tree.source, missing))


def _import_offset(code: str) -> int:
  return len(code[: prologue_end(code)].encode("utf8"))


def _import_line(code: str, hooks: List[str]) -> str:
  line = "import { " + ", ".join(hooks) + " } from 'react';\n"
  end = prologue_end(code)
  if end and not code[:end].endswith("\n"):
    line = "\n" + line
  return line


def structural(tree: SourceTree, ctx: PassContext) -> None:
  _add_missing_keys(tree)
  _add_missing_hook_imports(tree)


# Textual


def _textual_keys(code: str) -> str:
  def add_key(match: re.Match) -> str:
    if _KEY_ATTR.search(match.group("attrs")):
      return match.group(0)
    key = match.group("index") or f"{match.group('item')}.id"
    head = match.group(0)[: match.start("end") - match.start()]
    return f"{head} key={{{key}}}{match.group('end')}>"

  return _MAP_CALLBACK.sub(add_key, code)


def _textual_hook_imports(code: str) -> str:
  used = {m.group(1) for m in _HOOK_CALL.finditer(code)} & set(REACT_HOOKS)
  declared = imported_names(code) | set(re.findall(r"(?:function|const|let|var)\s+(use[A-Z]\w*)", code))
  missing = sorted(used - declared)
  if not missing:
    return code

  named = _REACT_NAMED_IMPORT.search(code)
  if named:
    existing = named.group(2).rstrip()
    separator = ", " if existing.strip() else " "
    trailing = named.group(2)[len(existing) :] or " "
    updated = named.group(1) + existing + separator + ", ".join(missing) + trailing + named.group(3)
    return code[: named.start()] + updated + code[named.end() :]
  default = _REACT_DEFAULT_IMPORT.search(code)
  if default:
    updated = default.group(1) + ", { " + ", ".join(missing) + " }" + default.group(2)
    return code[: default.start()] + updated + code[default.end() :]

  end = prologue_end(code)
  return code[:end] + _import_line(code, missing) + code[end:]


def textual(code: str, ctx: PassContext) -> str:
  return _textual_hook_imports(_textual_keys(code))


register_pass(
  PassDescriptor(
    id=3,
    name="Components",
    description="Add missing list keys and React hook imports",
    textual=textual,
    structural=structural,
    dependencies=(1, 2),
    blast_radius=BlastRadius.WIDE,
  )
)
