"""
Pass 4: Accessibility.

- ``<img>`` elements without ``alt`` get ``alt=""``.
- Empty ``<button>`` elements without a label get ``aria-label="Button"``.

The textual implementation also handles unclosed elements such as
``<img src={x}>`` that the parser rejects.
"""

import re

from tree_sitter import Node

from neurolint.core.parser import SourceTree, iter_nodes, node_text
from neurolint.passes.base import PassContext, PassDescriptor, register_pass

IMG_TAG = re.compile(r"<img\b((?:[^>{}]|\{[^{}]*\})*?)(\s*/?)>")
EMPTY_BUTTON = re.compile(r"<button\b((?:[^>{}]|\{[^{}]*\})*?)>(\s*)</button>")
_ALT_ATTR = re.compile(r"(?<![\w-])alt\s*=")
_LABEL_ATTR = re.compile(r"(?<![\w-])aria-label(?:ledby)?\s*=")
_SPREAD = re.compile(r"\{\s*\.\.\.")


def _has_spread(opening: Node) -> bool:
  return any(c.type == "jsx_expression" for c in opening.named_children)


def _attribute_names(opening: Node):
  return {node_text(a.named_children[0]) for a in opening.named_children if a.type == "jsx_attribute" and a.named_children}


def _anchor(opening: Node) -> Node:
  attrs = [c for c in opening.named_children if c.type in ("jsx_attribute", "jsx_expression")]
  return attrs[-1] if attrs else opening.child_by_field_name("name")


def _tag(opening: Node) -> str:
  return node_text(opening.child_by_field_name("name"))


def structural(tree: SourceTree, ctx: PassContext) -> None:
  for node in iter_nodes(tree):
    if node.type in ("jsx_opening_element", "jsx_self_closing_element") and _tag(node) == "img":
      if "alt" not in _attribute_names(node) and not _has_spread(node):
        tree.insert_after(_anchor(node), ' alt=""')
    elif node.type == "jsx_element":
      opening = next((c for c in node.named_children if c.type == "jsx_opening_element"), None)
      if opening is None or _tag(opening) != "button" or _has_spread(opening):
        continue
      children = [c for c in node.named_children if c.type not in ("jsx_opening_element", "jsx_closing_element")]
      if any(c.type != "jsx_text" or node_text(c).strip() for c in children):
        continue
      names = _attribute_names(opening)
      if "aria-label" not in names and "aria-labelledby" not in names:
        tree.insert_after(_anchor(opening), ' aria-label="Button"')


def _add_alt(match: re.Match) -> str:
  attrs, end = match.group(1), match.group(2)
  if _ALT_ATTR.search(attrs) or _SPREAD.search(attrs):
    return match.group(0)
  return f'<img{attrs} alt=""{end}>'


def _label_button(match: re.Match) -> str:
  attrs = match.group(1)
  if _LABEL_ATTR.search(attrs) or _SPREAD.search(attrs):
    return match.group(0)
  return f'<button{attrs} aria-label="Button">{match.group(2)}</button>'


def textual(code: str, ctx: PassContext) -> str:
  fixed = IMG_TAG.sub(_add_alt, code)
  return EMPTY_BUTTON.sub(_label_button, fixed)


register_pass(
  PassDescriptor(
    id=4,
    name="Accessibility",
    description="Add alt text to images and labels to empty buttons",
    textual=textual,
    structural=structural,
    dependencies=(1, 2, 3),
  )
)
