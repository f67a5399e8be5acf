"""
Contracts of the built-in passes.

Rules receive ``(code, tree)``; ``tree`` is None when the code does not
parse. Rules that need a tree to say anything pass on unparsable input and
leave syntax to the explicit ``valid-syntax`` rule.
"""

import re
from typing import Optional

from neurolint.analysis.semantic import is_guarded
from neurolint.contracts.base import TransformationContract, ValidationRule
from neurolint.core.parser import SourceTree, iter_nodes, node_text
from neurolint.core.quality_gate import QualityGate
from neurolint.passes.accessibility import IMG_TAG
from neurolint.passes.hydration import collapse_duplicate_guards, storage_calls
from neurolint.passes.nextjs import directive_kind

_ALT_ATTR = re.compile(r"(?<![\w-])alt\s*=")


def _valid_syntax(code: str, tree: Optional[SourceTree]) -> bool:
  return tree is not None


def _no_malformed_handlers(code: str, tree: Optional[SourceTree]) -> bool:
  return QualityGate.validate_no_malformed_handlers(code)


VALID_SYNTAX = ValidationRule("valid-syntax", _valid_syntax, "Code must parse without errors")
NO_MALFORMED_HANDLERS = ValidationRule(
  "no-malformed-handlers", _no_malformed_handlers, "Event handlers must hold well formed arrow functions"
)


# Components


def _hooks_imported(code: str, tree: Optional[SourceTree]) -> bool:
  if tree is None:
    return True
  return QualityGate.validate_import_integrity(code, tree.language, include_components=False)


def _components_fingerprint(tree: SourceTree) -> str:
  hooks = set()
  keys = 0
  elements = 0
  interfaces = set()
  for node in iter_nodes(tree):
    if node.type == "call_expression":
      callee = node.child_by_field_name("function")
      if callee is not None and callee.type == "identifier" and node_text(callee).startswith("use"):
        hooks.add(node_text(callee))
    elif node.type in ("jsx_opening_element", "jsx_self_closing_element"):
      elements += 1
      if any(a.type == "jsx_attribute" and node_text(a).startswith("key") for a in node.named_children):
        keys += 1
    elif node.type in ("interface_declaration", "type_alias_declaration"):
      interfaces.add(node_text(node.child_by_field_name("name")))
  return f"hooks={','.join(sorted(hooks))};jsx={elements};keys={keys};types={','.join(sorted(interfaces))}"


COMPONENTS = TransformationContract(
  name="components",
  preconditions=(VALID_SYNTAX,),
  postconditions=(
    NO_MALFORMED_HANDLERS,
    ValidationRule("hooks-imported", _hooks_imported, "Every React hook used must be imported"),
  ),
  fingerprint=_components_fingerprint,
)


# Accessibility


def _images_have_alt(code: str, tree: Optional[SourceTree]) -> bool:
  return all(_ALT_ATTR.search(m.group(1)) or "{..." in m.group(1) for m in IMG_TAG.finditer(code))


def _accessibility_fingerprint(tree: SourceTree) -> str:
  labelled = 0
  for node in iter_nodes(tree, "jsx_attribute"):
    if node.named_children and node_text(node.named_children[0]) in ("alt", "aria-label", "aria-labelledby"):
      labelled += 1
  return f"labelled={labelled}"


ACCESSIBILITY = TransformationContract(
  name="accessibility",
  postconditions=(
    ValidationRule("images-have-alt", _images_have_alt, "Every <img> must carry an alt attribute"),
    NO_MALFORMED_HANDLERS,
  ),
  fingerprint=_accessibility_fingerprint,
)


# Hydration


def _not_fully_protected(code: str, tree: Optional[SourceTree]) -> bool:
  calls = list(storage_calls(tree)) if tree is not None else []
  return not calls or not all(is_guarded(call) for call in calls)


def _no_double_wrapping(code: str, tree: Optional[SourceTree]) -> bool:
  return QualityGate.validate_no_double_wrapping(code)


def _storage_protected(code: str, tree: Optional[SourceTree]) -> bool:
  if tree is None:
    return True
  return all(is_guarded(call) for call in storage_calls(tree))


def _hydration_fingerprint(tree: SourceTree) -> str:
  calls = list(storage_calls(tree))
  guarded = sum(1 for call in calls if is_guarded(call))
  return f"storage={len(calls)};guarded={guarded}"


HYDRATION = TransformationContract(
  name="hydration",
  preconditions=(
    VALID_SYNTAX,
    ValidationRule(
      "not-already-protected", _not_fully_protected, "Storage access is already guarded, nothing to do"
    ),
  ),
  postconditions=(
    ValidationRule("no-double-wrapping", _no_double_wrapping, "Browser guards must not be applied twice"),
    ValidationRule("storage-protected", _storage_protected, "Every storage access must be guarded"),
  ),
  fingerprint=_hydration_fingerprint,
  rollback=collapse_duplicate_guards,
)


# Next.js


def _directive_first(code: str, tree: Optional[SourceTree]) -> bool:
  if tree is None:
    return True
  kinds = [directive_kind(s) for s in tree.root.named_children]
  return "client" not in kinds or kinds[0] == "client"


def _single_directive(code: str, tree: Optional[SourceTree]) -> bool:
  if tree is None:
    return True
  return [directive_kind(s) for s in tree.root.named_children].count("client") <= 1


NEXTJS = TransformationContract(
  name="nextjs",
  postconditions=(
    ValidationRule("directive-first", _directive_first, "'use client' must be the first statement"),
    ValidationRule("single-directive", _single_directive, "'use client' must appear once"),
  ),
)


BUILTIN_CONTRACTS = {
  3: COMPONENTS,
  4: ACCESSIBILITY,
  5: HYDRATION,
  6: NEXTJS,
}
