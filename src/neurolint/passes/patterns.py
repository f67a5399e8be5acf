"""
Pass 2: Patterns.

Repairs common source-level problems:

- HTML entities that leaked into code (``&quot;``, ``&#x27;``, ``&amp;``).
  Only sources that fail to parse are touched, since entities in valid
  code are intentional.
- ``console.log`` calls become ``console.debug``.
- ``<React.Fragment>`` without props becomes ``<>``.
- Unused imports are removed (``React`` is always kept).

Import removal changes what later passes see, so the blast radius is wide.
"""

import re
from typing import List, Optional, Set

from tree_sitter import Node

from neurolint.core.parser import SourceTree, iter_nodes, node_text, parse
from neurolint.enums import BlastRadius
from neurolint.errors import ParseFailure
from neurolint.passes.base import PassContext, PassDescriptor, register_pass

ALWAYS_KEPT_IMPORTS = {"React"}
ENTITIES = {
  "&quot;": '"',
  "&#x27;": "'",
  "&#39;": "'",
  "&apos;": "'",
  "&amp;": "&",
}
_REFERENCE_TYPES = {"identifier", "type_identifier", "shorthand_property_identifier"}

_CONSOLE_LOG = re.compile(r"\bconsole\.log\s*\(")
_FRAGMENT_OPEN = re.compile(r"<React\.Fragment>")
_FRAGMENT_CLOSE = re.compile(r"</React\.Fragment>")
_SIMPLE_IMPORT = re.compile(
  r"^(?P<indent>[ \t]*)import\s+(?P<clause>[^;'\"\n]+?)\s+from\s+(?P<source>['\"][^'\"]+['\"])(?P<semi>;?)[ \t]*$",
  re.M,
)


# Structural


def _referenced_names(tree: SourceTree) -> Set[str]:
  names = set()
  for node in iter_nodes(tree):
    if node.type in _REFERENCE_TYPES and not _inside_import(node):
      names.add(node_text(node))
  return names


def _inside_import(node: Node) -> bool:
  current = node.parent
  while current is not None:
    if current.type == "import_statement":
      return True
    current = current.parent
  return False


def _rebuild_import(statement: Node, clause: Node, used: Set[str]) -> str:
  """Renders ``statement`` keeping only the bindings in ``used``; empty when none survive."""
  default = None
  namespace = None
  specifiers: List[str] = []
  for child in clause.named_children:
    if child.type == "identifier" and node_text(child) in used:
      default = node_text(child)
    elif child.type == "namespace_import":
      local = next((node_text(c) for c in child.named_children if c.type == "identifier"), "")
      if local in used:
        namespace = node_text(child)
    elif child.type == "named_imports":
      for spec in child.named_children:
        if spec.type != "import_specifier":
          continue
        local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
        if node_text(local) in used:
          specifiers.append(node_text(spec))

  parts = []
  if default:
    parts.append(default)
  if namespace:
    parts.append(namespace)
  if specifiers:
    parts.append("{ " + ", ".join(specifiers) + " }")
  if not parts:
    return ""

  text = node_text(statement)
  keyword = "import type " if re.match(r"import\s+type\s", text) else "import "
  source = node_text(statement.child_by_field_name("source"))
  semi = ";" if text.rstrip().endswith(";") else ""
  return f"{keyword}{', '.join(parts)} from {source}{semi}"


def _import_locals(clause: Node) -> List[str]:
  names = []
  for child in clause.named_children:
    if child.type == "identifier":
      names.append(node_text(child))
    elif child.type == "namespace_import":
      names.extend(node_text(c) for c in child.named_children if c.type == "identifier")
    elif child.type == "named_imports":
      for spec in child.named_children:
        if spec.type == "import_specifier":
          local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
          names.append(node_text(local))
  return names


def _remove_unused_imports(tree: SourceTree) -> None:
  referenced = _referenced_names(tree)
  for statement in tree.root.named_children:
    if statement.type != "import_statement":
      continue
    clause = next((c for c in statement.named_children if c.type == "import_clause"), None)
    if clause is None:
      continue  # side-effect import
    local_names = _import_locals(clause)
    used = {n for n in local_names if n in referenced or n in ALWAYS_KEPT_IMPORTS}
    if len(used) == len(local_names):
      continue
    rebuilt = _rebuild_import(statement, clause, used)
    if rebuilt:
      tree.replace(statement, rebuilt)
    else:
      tree.remove(statement)


def structural(tree: SourceTree, ctx: PassContext) -> None:
  for node in iter_nodes(tree, "call_expression"):
    callee = node.child_by_field_name("function")
    if callee is None or callee.type != "member_expression":
      continue
    obj = callee.child_by_field_name("object")
    prop = callee.child_by_field_name("property")
    if node_text(obj) == "console" and node_text(prop) == "log":
      tree.replace(prop, "debug")

  for element in iter_nodes(tree, "jsx_element"):
    opening = next((c for c in element.named_children if c.type == "jsx_opening_element"), None)
    closing = next((c for c in element.named_children if c.type == "jsx_closing_element"), None)
    if opening is None or closing is None:
      continue
    if node_text(opening) == "<React.Fragment>":
      tree.replace(opening, "<>")
      tree.replace(closing, "</>")

  _remove_unused_imports(tree)


# Textual


def _repair_entities(code: str, ctx: PassContext) -> str:
  if not any(entity in code for entity in ENTITIES):
    return code
  try:
    parse(code, ctx.language)
  except ParseFailure:
    for entity, replacement in ENTITIES.items():
      code = code.replace(entity, replacement)
  return code


def _textual_unused_imports(code: str) -> str:
  body = _SIMPLE_IMPORT.sub("", code)

  def used(name: str) -> bool:
    return name in ALWAYS_KEPT_IMPORTS or re.search(rf"(?<![\w$]){re.escape(name)}(?![\w$])", body) is not None

  def rewrite(match: re.Match) -> Optional[str]:
    """Returns the new statement, None to delete it."""
    clause = match.group("clause").strip()
    if clause.startswith("type "):
      return match.group(0)
    named: List[str] = []
    braces = re.search(r"\{([^}]*)\}", clause)
    head = clause
    if braces:
      named = [p.strip() for p in braces.group(1).split(",") if p.strip()]
      head = clause[: braces.start()]
    head_parts = [p.strip() for p in head.split(",") if p.strip()]

    kept_head = [p for p in head_parts if used(re.split(r"\s+as\s+", p)[-1].strip())]
    kept_named = [p for p in named if used(re.split(r"\s+as\s+", p)[-1].strip())]
    if len(kept_head) == len(head_parts) and len(kept_named) == len(named):
      return match.group(0)
    parts = kept_head + (["{ " + ", ".join(kept_named) + " }"] if kept_named else [])
    if not parts:
      return None
    return f"{match.group('indent')}import {', '.join(parts)} from {match.group('source')}{match.group('semi')}"

  out = []
  cursor = 0
  for match in _SIMPLE_IMPORT.finditer(code):
    replacement = rewrite(match)
    out.append(code[cursor : match.start()])
    if replacement is None:
      cursor = match.end() + 1 if code[match.end() : match.end() + 1] == "\n" else match.end()
    else:
      out.append(replacement)
      cursor = match.end()
  out.append(code[cursor:])
  return "".join(out)


def textual(code: str, ctx: PassContext) -> str:
  fixed = _repair_entities(code, ctx)
  fixed = _CONSOLE_LOG.sub("console.debug(", fixed)
  fixed = _FRAGMENT_OPEN.sub("<>", fixed)
  fixed = _FRAGMENT_CLOSE.sub("</>", fixed)
  return _textual_unused_imports(fixed)


register_pass(
  PassDescriptor(
    id=2,
    name="Patterns",
    description="Repair entities, quiet console logging, simplify fragments, drop unused imports",
    textual=textual,
    structural=structural,
    dependencies=(1,),
    blast_radius=BlastRadius.WIDE,
  )
)
