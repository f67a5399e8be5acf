"""
Quality Gate.

Stateless structural checks shared by every other component:

- ``validate_syntax``: the source parses cleanly.
- ``validate_no_malformed_handlers``: JSX event handlers hold well formed
  arrow functions.
- ``validate_import_integrity``: every hook and component used is imported
  or declared.
- ``validate_no_double_wrapping``: browser guards are not applied twice.

All checks are pure and linear in the size of the source.
"""

import re
from typing import Optional, Set

from pydantic import BaseModel
from tree_sitter import Node

from neurolint.analysis.semantic import SemanticAnalyzer
from neurolint.core.parser import NodeVisitor, node_text, parse, traverse
from neurolint.enums import Language, Severity
from neurolint.errors import ParseFailure

_HANDLER_VALUE = re.compile(r"\bon[A-Z]\w*\s*=\s*\{((?:[^{}]|\{(?:[^{}]|\{[^{}]*\})*\})*)\}")
_MANGLED_ARROW = re.compile(r"\)\s*=(?![>=])")
_GUARD = r"typeof\s+window\s*!==?\s*['\"]undefined['\"]"
_DOUBLE_GUARD = re.compile(_GUARD + r"\s*\)?\s*(?:&&|\?|\{)\s*(?:if\s*)?\(*\s*" + _GUARD)
_HOOK_NAME = re.compile(r"^use[A-Z]\w*$")


class SyntaxCheck(BaseModel):
  """
  Result of a syntax validation.

  Attributes:
      valid: True when the source parsed without errors.
      message: Parser diagnostic when invalid.
      line: 1-based line of the first error.
      column: 0-based column of the first error.
  """

  valid: bool
  message: Optional[str] = None
  line: Optional[int] = None
  column: Optional[int] = None


class ImpactReport(BaseModel):
  size_increase_pct: float = 0.0
  complexity_increase: int = 0
  impact: Severity = Severity.LOW


class _BindingCollector(NodeVisitor):
  """Collects names declared or imported, and hooks/components referenced."""

  def __init__(self) -> None:
    self.declared: Set[str] = set()
    self.hooks: Set[str] = set()
    self.components: Set[str] = set()

  def visit_import_statement(self, node: Node) -> None:
    for child in node.named_children:
      if child.type == "import_clause":
        self._bind_all(child)

  def visit_function_declaration(self, node: Node) -> None:
    self._bind(node.child_by_field_name("name"))
    self._bind_all(node.child_by_field_name("parameters"))

  def visit_generator_function_declaration(self, node: Node) -> None:
    self.visit_function_declaration(node)

  def visit_class_declaration(self, node: Node) -> None:
    self._bind(node.child_by_field_name("name"))

  def visit_variable_declarator(self, node: Node) -> None:
    self._bind_all(node.child_by_field_name("name"))

  def visit_formal_parameters(self, node: Node) -> None:
    self._bind_all(node)

  def visit_arrow_function(self, node: Node) -> None:
    self._bind(node.child_by_field_name("parameter"))

  def visit_catch_clause(self, node: Node) -> None:
    self._bind_all(node.child_by_field_name("parameter"))

  def visit_call_expression(self, node: Node) -> None:
    callee = node.child_by_field_name("function")
    if callee is not None and callee.type == "identifier" and _HOOK_NAME.match(node_text(callee)):
      self.hooks.add(node_text(callee))

  def visit_jsx_opening_element(self, node: Node) -> None:
    name = node.child_by_field_name("name")
    if name is not None and name.type == "identifier" and node_text(name)[:1].isupper():
      self.components.add(node_text(name))
    elif name is not None and name.type in ("member_expression", "nested_identifier"):
      root = node_text(name).split(".")[0]
      if root[:1].isupper():
        self.components.add(root)

  def visit_jsx_self_closing_element(self, node: Node) -> None:
    self.visit_jsx_opening_element(node)

  def _bind(self, node: Optional[Node]) -> None:
    if node is not None and node.type in ("identifier", "type_identifier"):
      self.declared.add(node_text(node))

  def _bind_all(self, node: Optional[Node]) -> None:
    if node is None:
      return
    stack = [node]
    while stack:
      current = stack.pop()
      if current.type in ("identifier", "shorthand_property_identifier_pattern", "type_identifier"):
        self.declared.add(node_text(current))
        continue
      if current.type in ("string", "default_value_type", "type_annotation"):
        continue
      if current.type in ("assignment_pattern", "object_assignment_pattern"):
        stack.append(current.child_by_field_name("left"))
        continue
      if current.type == "pair_pattern":
        stack.append(current.child_by_field_name("value"))
        continue
      if current.type in ("required_parameter", "optional_parameter"):
        stack.append(current.child_by_field_name("pattern"))
        continue
      if current.type == "import_specifier":
        stack.append(current.child_by_field_name("alias") or current.child_by_field_name("name"))
        continue
      stack.extend(c for c in current.named_children if c is not None)


class QualityGate:
  """
  Pure structural checks over source text.
  """

  @staticmethod
  def validate_syntax(code: str, language: Optional[Language] = None) -> SyntaxCheck:
    """
    Parses ``code`` and reports the first error.

    Args:
        code: Source text.
        language: Grammar override.

    Returns:
        SyntaxCheck: ``valid`` with the parser location when invalid.
    """
    try:
      parse(code, language)
    except ParseFailure as e:
      return SyntaxCheck(valid=False, message=e.message, line=e.line, column=e.column)
    return SyntaxCheck(valid=True)

  @staticmethod
  def validate_no_malformed_handlers(code: str) -> bool:
    """
    Checks that ``on<Event>={...}`` values contain no mangled arrows.

    A mangled arrow is ``) =`` not followed by ``>`` or ``=``, the typical
    residue of a broken ``() => fn()`` rewrite.
    """
    for match in _HANDLER_VALUE.finditer(code):
      if _MANGLED_ARROW.search(match.group(1)):
        return False
    return True

  @staticmethod
  def validate_import_integrity(code: str, language: Optional[Language] = None, include_components: bool = True) -> bool:
    """
    Checks that every bare hook call and JSX component is bound.

    Args:
        code: Source text.
        language: Grammar override.
        include_components: Also require capitalised JSX components to be bound.

    Returns:
        bool: False when a hook or component is used without an import or a
        local declaration, or when the source does not parse.
    """
    try:
      tree = parse(code, language)
    except ParseFailure:
      return False
    collector = _BindingCollector()
    traverse(tree, collector)
    used = collector.hooks | collector.components if include_components else collector.hooks
    return used <= collector.declared

  @staticmethod
  def validate_no_double_wrapping(code: str) -> bool:
    """True when no ``typeof window`` guard directly wraps another."""
    return _DOUBLE_GUARD.search(code) is None

  @staticmethod
  def measure_impact(original: str, transformed: str, language: Optional[Language] = None) -> ImpactReport:
    """
    Compares size and complexity of two versions.

    Returns:
        ImpactReport: ``high`` above 50% growth or +10 complexity, ``medium``
        above 20% or +5, otherwise ``low``.
    """
    size_pct = ((len(transformed) - len(original)) / len(original) * 100.0) if original else 0.0
    before = SemanticAnalyzer.analyze(original, language).complexity
    after = SemanticAnalyzer.analyze(transformed, language).complexity
    delta = after - before
    if size_pct > 50 or delta > 10:
      impact = Severity.HIGH
    elif size_pct > 20 or delta > 5:
      impact = Severity.MEDIUM
    else:
      impact = Severity.LOW
    return ImpactReport(size_increase_pct=round(size_pct, 2), complexity_increase=delta, impact=impact)
