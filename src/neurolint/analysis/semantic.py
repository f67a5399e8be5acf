"""
Semantic Analyzer.

Computes a lightweight fingerprint of a code unit from its syntax tree:
what kind of unit it is, whether it holds state or runs effects, a weighted
complexity score, and a set of risk factors. The analyzer walks the tree once
with a single visitor and is deterministic: the same source always yields the
same context.

The (before, after) pair of contexts around a pass feeds conflict detection.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field
from tree_sitter import Node

from neurolint.conflicts.detector import Conflict
from neurolint.core.parser import NodeVisitor, ancestors, node_text, parse, traverse
from neurolint.enums import ConflictType, Language, Severity, UnitKind
from neurolint.errors import ParseFailure

STATE_HOOKS = {"useState", "useReducer"}
EFFECT_HOOKS = {"useEffect", "useLayoutEffect", "useInsertionEffect"}
BROWSER_GLOBALS = {"window", "document", "localStorage", "sessionStorage", "navigator"}
DOM_QUERIES = {
  "querySelector",
  "querySelectorAll",
  "getElementById",
  "getElementsByClassName",
  "getElementsByTagName",
  "createElement",
}
COMPONENT_BASES = re.compile(r"\b(?:React\.)?(?:Pure)?Component\b")
GUARD_PATTERN = re.compile(r"typeof\s+(?:window|document|localStorage|sessionStorage)\b")

RISK_UNGUARDED_GLOBAL = "unguarded-global-access"
RISK_INLINE_OBJECT = "inline-object-in-hot-path"
RISK_ASYNC_UNHANDLED = "async-without-error-handling"
RISK_RENDER_LOOP = "unoptimized-render-loop"
RISK_DOM_MANIPULATION = "direct-dom-manipulation"

# Complexity weights per construct; the total starts at 1.
_COMPLEXITY_WEIGHTS = {
  "if_statement": 2,
  "ternary_expression": 2,
  "switch_statement": 1,
  "for_statement": 3,
  "for_in_statement": 3,
  "while_statement": 3,
  "do_statement": 3,
  "function_declaration": 1,
  "generator_function_declaration": 1,
  "function_expression": 1,
  "function": 1,
  "arrow_function": 1,
  "method_definition": 1,
  "jsx_element": 1,
  "jsx_self_closing_element": 1,
  "catch_clause": 1,
}
_LOGICAL_OPERATORS = {"&&", "||", "??"}
_FUNCTION_TYPES = {"function_expression", "function", "arrow_function"}


class SemanticContext(BaseModel):
  """
  Semantic summary of one source unit.
  """

  unit_kind: UnitKind = Field(UnitKind.UTILITY, description="Component, hook or utility module.")
  has_state: bool = False
  has_effects: bool = False
  has_event_handlers: bool = False
  imports: Dict[str, str] = Field(default_factory=dict, description="Local name -> module source.")
  exports: List[str] = Field(default_factory=list)
  dependencies: List[str] = Field(default_factory=list, description="Relative module sources.")
  complexity: int = 1
  risk_factors: List[str] = Field(default_factory=list)


class SemanticDelta(BaseModel):
  """
  One semantic difference between two contexts.

  Attributes:
      kind: Category such as ``state_introduced`` or ``complexity_changed``.
      subject: The affected name (import, risk factor), if any.
      magnitude: Signed size of numeric changes.
      description: Human readable summary.
  """

  kind: str
  subject: Optional[str] = None
  magnitude: int = 0
  description: str


class _SemanticVisitor(NodeVisitor):
  def __init__(self) -> None:
    self.imports: Dict[str, str] = {}
    self.exports: List[str] = []
    self.dependencies: List[str] = []
    self.complexity = 1
    self.risks: Set[str] = set()
    self.has_state = False
    self.has_effects = False
    self.has_event_handlers = False
    self.class_component = False
    self.component_names: List[str] = []
    self.hook_names: List[str] = []

  def visit(self, node: Node) -> Optional[bool]:
    self.complexity += _COMPLEXITY_WEIGHTS.get(node.type, 0)
    return super().visit(node)

  # Module surface

  def visit_import_statement(self, node: Node) -> bool:
    source_node = node.child_by_field_name("source")
    source = _unquote(node_text(source_node))
    for child in node.named_children:
      if child.type == "import_clause":
        for local in _import_locals(child):
          self.imports[local] = source
    if source.startswith("./") or source.startswith("../"):
      self.dependencies.append(source)
    return False

  def visit_export_statement(self, node: Node) -> Optional[bool]:
    if any(child.type == "default" for child in node.children):
      self.exports.append("default")
    declaration = node.child_by_field_name("declaration")
    if declaration is not None:
      name = declaration.child_by_field_name("name")
      if name is not None:
        self.exports.append(node_text(name))
      for declarator in declaration.named_children:
        if declarator.type == "variable_declarator":
          self.exports.append(node_text(declarator.child_by_field_name("name")))
    for child in node.named_children:
      if child.type == "export_clause":
        for spec in child.named_children:
          target = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
          self.exports.append(node_text(target))
    return None

  # Unit kind

  def visit_function_declaration(self, node: Node) -> None:
    self._note_binding(node_text(node.child_by_field_name("name")))

  def visit_variable_declarator(self, node: Node) -> None:
    value = node.child_by_field_name("value")
    name = node.child_by_field_name("name")
    if value is not None and value.type in _FUNCTION_TYPES and name is not None and name.type == "identifier":
      self._note_binding(node_text(name))

  def _note_binding(self, name: str) -> None:
    if name[:1].isupper():
      self.component_names.append(name)
    elif re.match(r"^use[A-Z]", name):
      self.hook_names.append(name)

  def visit_class_declaration(self, node: Node) -> None:
    self._check_class(node)

  def visit_class(self, node: Node) -> None:
    self._check_class(node)

  def _check_class(self, node: Node) -> None:
    for child in node.named_children:
      if child.type == "class_heritage" and COMPONENT_BASES.search(node_text(child)):
        self.class_component = True

  # Behaviour

  def visit_call_expression(self, node: Node) -> None:
    callee = node.child_by_field_name("function")
    name = _callee_name(callee)
    if name in STATE_HOOKS or (name == "setState" and callee.type == "member_expression"):
      self.has_state = True
    if name in EFFECT_HOOKS:
      self.has_effects = True
    if callee is not None and callee.type == "member_expression":
      obj = node_text(callee.child_by_field_name("object"))
      if name in DOM_QUERIES and obj == "document":
        self.risks.add(RISK_DOM_MANIPULATION)
      if name == "then" and not _inside(node, "try_statement") and not _chained_catch(node):
        self.risks.add(RISK_ASYNC_UNHANDLED)
      if name == "map" and _inside(node, "jsx_expression") and not _inside_call(node, {"useMemo"}):
        self.risks.add(RISK_RENDER_LOOP)

  def visit_await_expression(self, node: Node) -> None:
    if not _inside(node, "try_statement"):
      self.risks.add(RISK_ASYNC_UNHANDLED)

  def visit_member_expression(self, node: Node) -> None:
    obj = node.child_by_field_name("object")
    if obj is not None and obj.type == "identifier" and node_text(obj) in BROWSER_GLOBALS:
      if not is_guarded(node):
        self.risks.add(RISK_UNGUARDED_GLOBAL)

  def visit_jsx_attribute(self, node: Node) -> None:
    if not node.named_children:
      return
    name = node_text(node.named_children[0])
    if re.match(r"^on[A-Z]", name):
      self.has_event_handlers = True
    for value in node.named_children[1:]:
      if value.type == "jsx_expression" and any(c.type == "object" for c in value.named_children):
        self.risks.add(RISK_INLINE_OBJECT)

  def visit_binary_expression(self, node: Node) -> None:
    if node_text(node.child_by_field_name("operator")) in _LOGICAL_OPERATORS:
      self.complexity += 1

  def unit_kind(self) -> UnitKind:
    if self.class_component:
      return UnitKind.CLASS_COMPONENT
    if self.component_names:
      return UnitKind.FUNCTION_COMPONENT
    if self.hook_names:
      return UnitKind.HOOK
    return UnitKind.UTILITY


def _unquote(text: str) -> str:
  return text[1:-1] if len(text) >= 2 and text[0] in "'\"`" else text


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


def _callee_name(callee: Optional[Node]) -> str:
  if callee is None:
    return ""
  if callee.type == "identifier":
    return node_text(callee)
  if callee.type == "member_expression":
    return node_text(callee.child_by_field_name("property"))
  return ""


def _inside(node: Node, node_type: str) -> bool:
  return any(a.type == node_type for a in ancestors(node))


def _inside_call(node: Node, names: Set[str]) -> bool:
  for a in ancestors(node):
    if a.type == "call_expression" and _callee_name(a.child_by_field_name("function")) in names:
      return True
  return False


def _chained_catch(call: Node) -> bool:
  """True when ``x.then(...)`` is followed somewhere up the chain by ``.catch``."""
  current = call
  while current.parent is not None and current.parent.type in ("member_expression", "call_expression"):
    parent = current.parent
    if parent.type == "member_expression" and node_text(parent.child_by_field_name("property")) == "catch":
      return True
    current = parent
  return False


def _is_effect_callback(fn: Node) -> bool:
  args = fn.parent
  if args is None or args.type != "arguments" or args.parent is None:
    return False
  return _callee_name(args.parent.child_by_field_name("function")) in EFFECT_HOOKS


def is_guarded(node: Node) -> bool:
  for a in ancestors(node):
    if a.type in ("if_statement", "ternary_expression"):
      if GUARD_PATTERN.search(node_text(a.child_by_field_name("condition"))):
        return True
    elif a.type == "binary_expression" and node_text(a.child_by_field_name("operator")) == "&&":
      if GUARD_PATTERN.search(node_text(a.child_by_field_name("left"))):
        return True
    elif a.type in _FUNCTION_TYPES and _is_effect_callback(a):
      return True
  return False


class SemanticAnalyzer:
  """
  Builds and compares :class:`SemanticContext` values.
  """

  @staticmethod
  def analyze(code: str, language: Optional[Language] = None) -> SemanticContext:
    """
    Analyzes ``code`` with a single tree walk.

    Args:
        code: Source text.
        language: Grammar override.

    Returns:
        SemanticContext: The summary. Unparsable input yields the empty context.
    """
    try:
      tree = parse(code, language)
    except ParseFailure:
      return SemanticContext()

    visitor = _SemanticVisitor()
    traverse(tree, visitor)
    return SemanticContext(
      unit_kind=visitor.unit_kind(),
      has_state=visitor.has_state,
      has_effects=visitor.has_effects,
      has_event_handlers=visitor.has_event_handlers,
      imports=dict(sorted(visitor.imports.items())),
      exports=sorted(set(visitor.exports)),
      dependencies=sorted(set(visitor.dependencies)),
      complexity=visitor.complexity,
      risk_factors=sorted(visitor.risks),
    )

  @staticmethod
  def diff(before: SemanticContext, after: SemanticContext) -> List[SemanticDelta]:
    """
    Lists the semantic differences between two contexts.

    Args:
        before: Context of the pre-pass source.
        after: Context of the post-pass source.

    Returns:
        List[SemanticDelta]: Deltas in a stable order.
    """
    deltas: List[SemanticDelta] = []

    for attr, label in (("has_state", "state"), ("has_effects", "effects"), ("has_event_handlers", "event_handlers")):
      was, now = getattr(before, attr), getattr(after, attr)
      if not was and now:
        deltas.append(SemanticDelta(kind=f"{label}_introduced", description=f"{label.replace('_', ' ')} introduced"))
      elif was and not now:
        deltas.append(SemanticDelta(kind=f"{label}_removed", description=f"{label.replace('_', ' ')} removed"))

    change = after.complexity - before.complexity
    if change:
      verb = "increased" if change > 0 else "decreased"
      deltas.append(
        SemanticDelta(
          kind="complexity_changed", magnitude=change, description=f"complexity {verb} by {abs(change)}"
        )
      )

    for name in sorted(set(after.imports) - set(before.imports)):
      deltas.append(SemanticDelta(kind="import_added", subject=name, description=f"import '{name}' added"))
    for name in sorted(set(before.imports) - set(after.imports)):
      deltas.append(SemanticDelta(kind="import_removed", subject=name, description=f"import '{name}' removed"))
    for name in sorted(set(before.imports) & set(after.imports)):
      if before.imports[name] != after.imports[name]:
        deltas.append(
          SemanticDelta(
            kind="import_rebound",
            subject=name,
            description=f"'{name}' now imported from '{after.imports[name]}' instead of '{before.imports[name]}'",
          )
        )

    for risk in sorted(set(after.risk_factors) - set(before.risk_factors)):
      deltas.append(SemanticDelta(kind="risk_introduced", subject=risk, description=f"risk '{risk}' introduced"))
    for risk in sorted(set(before.risk_factors) - set(after.risk_factors)):
      deltas.append(SemanticDelta(kind="risk_resolved", subject=risk, description=f"risk '{risk}' resolved"))

    if before.unit_kind != after.unit_kind:
      deltas.append(
        SemanticDelta(
          kind="unit_kind_changed",
          subject=after.unit_kind.value,
          description=f"unit kind changed from {before.unit_kind.value} to {after.unit_kind.value}",
        )
      )
    return deltas

  @staticmethod
  def detect_conflicts(
    before: SemanticContext,
    after: SemanticContext,
    pass_id: int,
    pass_name: str,
    file_path: Optional[str] = None,
  ) -> List[Conflict]:
    """
    Derives semantic conflicts introduced by a single pass.

    Args:
        before: Context before the pass.
        after: Context after the pass.
        pass_id: Id of the pass that produced ``after``.
        pass_name: Name used in descriptions.
        file_path: Name of the file, used to spot self-imports.

    Returns:
        List[Conflict]: Conflicts of type ``semantic_conflict``.
    """
    conflicts: List[Conflict] = []

    if not before.has_state and after.has_state:
      conflicts.append(
        Conflict(
          type=ConflictType.SEMANTIC_CONFLICT,
          passes=[pass_id],
          severity=Severity.MEDIUM,
          description=f"{pass_name} introduced state to a previously stateless unit",
          suggestion="Check whether the state belongs in a parent component",
        )
      )

    if after.has_effects and after.complexity > before.complexity + 10:
      conflicts.append(
        Conflict(
          type=ConflictType.SEMANTIC_CONFLICT,
          passes=[pass_id],
          severity=Severity.HIGH,
          description=f"{pass_name} significantly increased complexity around effects",
          suggestion="Break down complex effects or narrow their dependencies",
        )
      )

    for name in sorted(set(before.imports) & set(after.imports)):
      if before.imports[name] != after.imports[name]:
        conflicts.append(
          Conflict(
            type=ConflictType.SEMANTIC_CONFLICT,
            passes=[pass_id],
            severity=Severity.CRITICAL,
            description=f"Import name collision for '{name}'",
            suggestion="Alias the conflicting import",
            auto_fixable=True,
            fix="alias_import",
            fix_args={"name": name, "source": after.imports[name]},
          )
        )

    if file_path:
      stem = Path(file_path).stem
      for dep in sorted(set(after.dependencies) - set(before.dependencies)):
        if Path(dep).stem == stem:
          conflicts.append(
            Conflict(
              type=ConflictType.SEMANTIC_CONFLICT,
              passes=[pass_id],
              severity=Severity.CRITICAL,
              description=f"Circular dependency: '{dep}' imports the file itself",
              suggestion="Remove the self import",
            )
          )
    return conflicts

  @staticmethod
  def validate_integrity(context: SemanticContext) -> List[str]:
    """
    Flags anti-patterns visible in a context.

    Returns:
        List[str]: Human readable issues, empty when none.
    """
    issues = []
    if context.has_state and context.has_effects and context.complexity > 50:
      issues.append("Unit has high complexity with both state and effects; consider splitting it")
    if RISK_DOM_MANIPULATION in context.risk_factors and context.unit_kind == UnitKind.FUNCTION_COMPONENT:
      issues.append("Direct DOM manipulation in a function component; use refs instead")
    if RISK_INLINE_OBJECT in context.risk_factors and context.has_state:
      issues.append("Inline object props with state may cause unnecessary re-renders")
    if RISK_ASYNC_UNHANDLED in context.risk_factors:
      issues.append("Async operations without error handling")
    return issues
