"""
Pass descriptors and the pass registry.

A pass is one independent, nameable rewrite. It exposes a textual
implementation ``(code, ctx) -> code``, a structural implementation
``(tree, ctx) -> None`` that queues edits on a :class:`SourceTree`, or both.
The orchestrator dispatches on :attr:`PassDescriptor.kind`.

Descriptors are immutable and registered once at import time.
"""

import heapq
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from neurolint.core.parser import SourceTree
from neurolint.enums import BlastRadius, Language


@dataclass(frozen=True)
class PassContext:
  """
  Read-only information handed to pass bodies.

  Attributes:
      file_path: Name of the file being transformed, if known.
      language: Grammar the source is parsed with.
  """

  file_path: Optional[str] = None
  language: Language = Language.TSX


TextualFunction = Callable[[str, PassContext], str]
StructuralFunction = Callable[[SourceTree, PassContext], None]


@dataclass(frozen=True)
class PassDescriptor:
  """
  Static description of a pass.

  Attributes:
      id: Ordinal. Passes run in ascending id order once dependencies are satisfied.
      name: Human readable name.
      description: What the pass fixes.
      textual: Pattern-based implementation.
      structural: Tree-based implementation.
      dependencies: Ids of passes that must run first when enabled.
      blast_radius: How many later passes its output may invalidate.
  """

  id: int
  name: str
  description: str = ""
  textual: Optional[TextualFunction] = None
  structural: Optional[StructuralFunction] = None
  dependencies: Tuple[int, ...] = field(default_factory=tuple)
  blast_radius: BlastRadius = BlastRadius.NARROW

  @property
  def kind(self) -> str:
    if self.textual and self.structural:
      return "both"
    return "structural" if self.structural else "textual"

  @property
  def supports_structural(self) -> bool:
    return self.structural is not None


_PASS_REGISTRY: Dict[int, PassDescriptor] = {}


def register_pass(descriptor: PassDescriptor) -> PassDescriptor:
  """
  Adds a pass to the registry, replacing an existing one with the same id.

  Args:
      descriptor: The pass to register.

  Returns:
      PassDescriptor: The registered descriptor.

  Raises:
      ValueError: If the pass has no implementation or its dependencies
          close a cycle with registered passes.
  """
  if descriptor.textual is None and descriptor.structural is None:
    raise ValueError(f"Pass {descriptor.id} ({descriptor.name}) has no implementation")
  previous = _PASS_REGISTRY.get(descriptor.id)
  _PASS_REGISTRY[descriptor.id] = descriptor
  try:
    _topological_order(set(_PASS_REGISTRY))
  except ValueError:
    if previous is None:
      del _PASS_REGISTRY[descriptor.id]
    else:
      _PASS_REGISTRY[descriptor.id] = previous
    raise
  return descriptor


def unregister_pass(pass_id: int) -> Optional[PassDescriptor]:
  return _PASS_REGISTRY.pop(pass_id, None)


def get_pass(pass_id: int) -> Optional[PassDescriptor]:
  return _PASS_REGISTRY.get(pass_id)


def available_passes() -> List[int]:
  """
  Returns the registered pass ids in ascending order.
  """
  return sorted(_PASS_REGISTRY)


@dataclass(frozen=True)
class PassPlan:
  """
  Which passes a run executes, and in what order.

  Attributes:
      order: Ids with every dependency before its dependents; independent
          passes run in ascending id order.
      added: Dependencies pulled in by ``include_dependencies``.
      missing: Pass id -> declared dependencies that will not run.
  """

  order: List[int]
  added: List[int] = field(default_factory=list)
  missing: Dict[int, List[int]] = field(default_factory=dict)


def _topological_order(selected: Set[int]) -> List[int]:
  """
  Orders ``selected`` so dependencies come first, smallest id first among ready passes.

  Raises:
      ValueError: If the dependencies form a cycle.
  """
  waiting = {pass_id: 0 for pass_id in selected}
  dependents: Dict[int, List[int]] = {pass_id: [] for pass_id in selected}
  for pass_id in selected:
    for dependency in set(_PASS_REGISTRY[pass_id].dependencies):
      if dependency in selected:
        waiting[pass_id] += 1
        dependents[dependency].append(pass_id)

  ready = [pass_id for pass_id, count in waiting.items() if count == 0]
  heapq.heapify(ready)
  order: List[int] = []
  while ready:
    pass_id = heapq.heappop(ready)
    order.append(pass_id)
    for dependent in dependents[pass_id]:
      waiting[dependent] -= 1
      if waiting[dependent] == 0:
        heapq.heappush(ready, dependent)

  if len(order) != len(selected):
    raise ValueError(f"Dependency cycle between passes {sorted(selected - set(order))}")
  return order


def plan_passes(pass_ids: Optional[Iterable[int]], include_dependencies: bool = False) -> PassPlan:
  """
  Builds the execution plan for a run.

  Args:
      pass_ids: Requested ids. None selects every registered pass.
      include_dependencies: Pull in the transitive dependencies of the
          requested passes.

  Returns:
      PassPlan: Dependency-ordered ids plus added and missing dependencies.

  Raises:
      ValueError: If an id is not registered or the dependencies form a cycle.
  """
  requested = list(_PASS_REGISTRY) if pass_ids is None else list(pass_ids)
  for pass_id in requested:
    if pass_id not in _PASS_REGISTRY:
      raise ValueError(f"Unknown pass id: {pass_id}")

  selected: Set[int] = set(requested)
  if include_dependencies:
    pending = list(requested)
    while pending:
      for dependency in _PASS_REGISTRY[pending.pop()].dependencies:
        if dependency in _PASS_REGISTRY and dependency not in selected:
          selected.add(dependency)
          pending.append(dependency)

  order = _topological_order(selected)
  missing = {}
  for pass_id in order:
    absent = [d for d in _PASS_REGISTRY[pass_id].dependencies if d not in selected]
    if absent:
      missing[pass_id] = absent
  return PassPlan(order=order, added=sorted(selected - set(requested)), missing=missing)


def resolve_pass_order(pass_ids: Optional[Iterable[int]], include_dependencies: bool = False) -> List[int]:
  """
  Ids to run, dependencies first. See :func:`plan_passes`.
  """
  return plan_passes(pass_ids, include_dependencies).order


_DIRECTIVE_LINE = re.compile(r"""^[ \t]*(['"])use (?:client|server)\1;?[ \t]*\n?""")
_LEADING_COMMENT = re.compile(r"^(?:[ \t]*(?://[^\n]*|/\*.*?\*/)[ \t]*\n|[ \t]*\n)", re.S)


def prologue_end(code: str) -> int:
  """
  Offset just past the leading comments and directive lines of ``code``.

  Imports added by passes go here so directives stay first.
  """
  offset = 0
  last_directive_end = 0
  while True:
    rest = code[offset:]
    match = _DIRECTIVE_LINE.match(rest)
    if match:
      offset += match.end()
      last_directive_end = offset
      continue
    match = _LEADING_COMMENT.match(rest)
    if match and match.end() > 0:
      offset += match.end()
      continue
    break
  return last_directive_end
