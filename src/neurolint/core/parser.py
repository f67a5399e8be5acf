"""
Parser collaborator built on tree-sitter.

Exposes the three operations the pipeline consumes:

- ``parse(source, language)`` builds a :class:`SourceTree` or raises
  :class:`~neurolint.errors.ParseFailure`.
- ``generate(tree)`` renders the tree back to source, applying the byte-range
  edits that structural passes queued on it.
- ``traverse(tree, visitor)`` walks the concrete syntax tree depth-first and
  dispatches ``visit_<type>`` / ``leave_<type>`` methods on a
  :class:`NodeVisitor`.

tree-sitter nodes are read-only, so "mutating the tree in place" means queuing
edits on the owning ``SourceTree``. Untouched regions are emitted verbatim,
which keeps formatting and comments stable across passes.
"""

import functools
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import tree_sitter_javascript as tsjavascript
import tree_sitter_typescript as tstypescript
from tree_sitter import Language as TSLanguage
from tree_sitter import Node, Parser

from neurolint.enums import Language
from neurolint.errors import ExecutionError, ParseFailure

_SUFFIX_LANGUAGES = {
  ".ts": Language.TYPESCRIPT,
  ".mts": Language.TYPESCRIPT,
  ".cts": Language.TYPESCRIPT,
  ".tsx": Language.TSX,
  ".js": Language.JAVASCRIPT,
  ".jsx": Language.JAVASCRIPT,
  ".mjs": Language.JAVASCRIPT,
  ".cjs": Language.JAVASCRIPT,
}


@functools.lru_cache(maxsize=None)
def _grammar(language: Language) -> TSLanguage:
  if language == Language.TYPESCRIPT:
    return TSLanguage(tstypescript.language_typescript())
  if language == Language.JAVASCRIPT:
    return TSLanguage(tsjavascript.language())
  return TSLanguage(tstypescript.language_tsx())


def language_for_path(path: Union[str, Path, None]) -> Language:
  """
  Maps a file name to the grammar used to parse it.

  Args:
      path: File path or name. ``None`` selects the default grammar.

  Returns:
      Language: The grammar. Unknown suffixes fall back to TSX.
  """
  if not path:
    return Language.TSX
  return _SUFFIX_LANGUAGES.get(Path(str(path)).suffix.lower(), Language.TSX)


class SourceTree:
  """
  A parsed source file plus the edits queued against it.

  Attributes:
      source (str): The text the tree was parsed from.
      language (Language): Grammar used for parsing.
      tree: The underlying ``tree_sitter.Tree``.
  """

  def __init__(self, source: str, tree, language: Language) -> None:
    self.source = source
    self.source_bytes = source.encode("utf8")
    self.tree = tree
    self.language = language
    self._edits: List[Tuple[int, int, str]] = []

  @property
  def root(self) -> Node:
    return self.tree.root_node

  @property
  def has_edits(self) -> bool:
    return bool(self._edits)

  @property
  def edits(self) -> List[Tuple[int, int, str]]:
    return list(self._edits)

  def text(self, node: Node) -> str:
    return self.source_bytes[node.start_byte : node.end_byte].decode("utf8")

  def replace(self, node: Node, text: str) -> None:
    self._edits.append((node.start_byte, node.end_byte, text))

  def insert_before(self, node: Node, text: str) -> None:
    self._edits.append((node.start_byte, node.start_byte, text))

  def insert_after(self, node: Node, text: str) -> None:
    self._edits.append((node.end_byte, node.end_byte, text))

  def insert_at(self, offset: int, text: str) -> None:
    self._edits.append((offset, offset, text))

  def replace_range(self, start: int, end: int, text: str) -> None:
    self._edits.append((start, end, text))

  def remove(self, node: Node, whole_line: bool = True) -> None:
    """
    Queues deletion of ``node``.

    Args:
        node: The node to delete.
        whole_line: When the node is the only thing on its line(s), delete
            the line including its newline.
    """
    start, end = node.start_byte, node.end_byte
    if whole_line:
      data = self.source_bytes
      line_start = data.rfind(b"\n", 0, start) + 1
      line_end = data.find(b"\n", end)
      line_end = len(data) if line_end == -1 else line_end + 1
      if not data[line_start:start].strip() and not data[end:line_end].strip():
        start, end = line_start, line_end
    self._edits.append((start, end, ""))


def parse(source: str, language: Optional[Language] = None) -> SourceTree:
  """
  Parses ``source`` into a :class:`SourceTree`.

  Args:
      source: Program text.
      language: Grammar to use, TSX when omitted.

  Returns:
      SourceTree: The clean tree.

  Raises:
      ParseFailure: If the tree contains ERROR or MISSING nodes.
  """
  language = Language(language) if language else Language.TSX
  parser = Parser(_grammar(language))
  tree = parser.parse(source.encode("utf8"))
  if tree.root_node.has_error:
    bad = _first_error(tree.root_node)
    if bad is None:
      raise ParseFailure("Syntax error")
    row, column = bad.start_point
    label = f"Missing {bad.type}" if bad.is_missing else "Unexpected token"
    raise ParseFailure(f"{label} at line {row + 1}, column {column}", line=row + 1, column=column)
  return SourceTree(source, tree, language)


def _first_error(root: Node) -> Optional[Node]:
  for node in iter_nodes(root):
    if node.type == "ERROR" or node.is_missing:
      return node
  return None


def generate(tree: SourceTree) -> str:
  """
  Renders ``tree`` with its queued edits applied.

  Insertions at the same offset keep their queue order. Overlapping
  replacements cannot be merged and raise.

  Raises:
      ExecutionError: If two queued edits overlap.
  """
  if not tree.has_edits:
    return tree.source

  ordered = sorted(enumerate(tree.edits), key=lambda item: (item[1][0], item[1][1], item[0]))
  data = tree.source_bytes
  out: List[bytes] = []
  cursor = 0
  for _, (start, end, text) in ordered:
    if start < cursor:
      raise ExecutionError(f"Overlapping edits at byte {start}")
    out.append(data[cursor:start])
    out.append(text.encode("utf8"))
    cursor = end
  out.append(data[cursor:])
  return b"".join(out).decode("utf8")


class NodeVisitor:
  """
  Base class for tree walkers.

  Subclasses define ``visit_<node_type>`` (return ``False`` to skip the
  subtree) and ``leave_<node_type>`` methods. Only named nodes dispatch.
  """

  def visit(self, node: Node) -> Optional[bool]:
    method = getattr(self, f"visit_{node.type}", None)
    if method is None:
      return None
    return method(node)

  def leave(self, node: Node) -> None:
    method = getattr(self, f"leave_{node.type}", None)
    if method is not None:
      method(node)


def traverse(target: Union[SourceTree, Node], visitor: NodeVisitor) -> None:
  """
  Depth-first walk of ``target`` driving ``visitor``.

  Iterative so deeply nested sources do not hit the recursion limit.
  """
  root = target.root if isinstance(target, SourceTree) else target
  stack: List[Tuple[Node, bool]] = [(root, False)]
  while stack:
    node, leaving = stack.pop()
    if leaving:
      visitor.leave(node)
      continue
    if not node.is_named:
      continue
    descend = visitor.visit(node)
    stack.append((node, True))
    if descend is False:
      continue
    for child in reversed(node.children):
      stack.append((child, False))


def iter_nodes(root: Union[SourceTree, Node], node_type: Optional[str] = None) -> Iterator[Node]:
  """Yields every node (pre-order), optionally filtered by type."""
  start = root.root if isinstance(root, SourceTree) else root
  stack = [start]
  while stack:
    node = stack.pop()
    if node_type is None or node.type == node_type:
      yield node
    stack.extend(reversed(node.children))


def ancestors(node: Node) -> Iterator[Node]:
  current = node.parent
  while current is not None:
    yield current
    current = current.parent


def node_text(node: Optional[Node]) -> str:
  if node is None or node.text is None:
    return ""
  return node.text.decode("utf8")


def same_node(a: Optional[Node], b: Optional[Node]) -> bool:
  if a is None or b is None:
    return False
  return (a.start_byte, a.end_byte, a.type) == (b.start_byte, b.end_byte, b.type)
