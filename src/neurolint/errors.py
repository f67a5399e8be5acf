"""
Error taxonomy for the transformation pipeline.

These exceptions are raised inside the collaborators (parser, contracts,
pass bodies) and caught at the pass boundary by the orchestrator, which
downgrades them into a structured ``PassError`` on the pass outcome.
None of them escapes ``run``.
"""

from typing import List, Optional


class NeuroLintError(Exception):
  """Base class for all pipeline errors."""


class ParseFailure(NeuroLintError):
  """
  The parser collaborator could not build a clean tree.

  Recoverable via textual fallback.

  Attributes:
      line: 1-based line of the first syntax error, if known.
      column: 0-based column of the first syntax error, if known.
  """

  def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
    super().__init__(message)
    self.message = message
    self.line = line
    self.column = column


class PassTimeout(ParseFailure):
  """Structural execution exceeded the configured timeout. Treated as a parse failure."""


class ContractViolation(NeuroLintError):
  """A precondition or postcondition rule failed."""

  def __init__(self, message: str, rule_names: Optional[List[str]] = None):
    super().__init__(message)
    self.rule_names = list(rule_names or [])


class ConflictDetected(NeuroLintError):
  """Cross-pass interference was detected."""

  def __init__(self, message: str, conflicts: Optional[list] = None):
    super().__init__(message)
    self.conflicts = list(conflicts or [])


class IntegrityFailure(NeuroLintError):
  """The quality gate rejected a pass output as structurally broken."""


class ExecutionError(NeuroLintError):
  """A pass body raised, or its edits could not be applied."""

  def __init__(self, message: str, cause: Optional[BaseException] = None):
    super().__init__(message)
    self.cause = cause
