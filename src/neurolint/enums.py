"""
Enumerations for neurolint.

This module defines the standard enumerations shared across the pipeline:
severity levels, change and conflict categories, pass lifecycle states and
the strategy names used by the rollback manager and the resolver.
"""

from enum import Enum


class Language(str, Enum):
  """
  Grammar used by the parser collaborator.

  ``TSX`` is the default because it accepts plain JavaScript, JSX and most
  TypeScript in a single grammar.
  """

  TSX = "tsx"
  TYPESCRIPT = "typescript"
  JAVASCRIPT = "javascript"


class Severity(str, Enum):
  """
  Ordered severity scale for conflicts and risk levels.
  """

  LOW = "low"
  MEDIUM = "medium"
  HIGH = "high"
  CRITICAL = "critical"

  @property
  def rank(self) -> int:
    """
    Numeric rank used for max() aggregation.

    Returns:
        int: 0 for LOW up to 3 for CRITICAL.
    """
    return _SEVERITY_ORDER.index(self)

  @classmethod
  def highest(cls, values) -> "Severity":
    """
    Returns the maximum severity of an iterable, LOW when empty.

    Args:
        values: Iterable of Severity members.

    Returns:
        Severity: The highest ranked member.
    """
    result = cls.LOW
    for value in values:
      if value.rank > result.rank:
        result = value
    return result


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class ChangeType(str, Enum):
  ADDITION = "addition"
  MODIFICATION = "modification"
  DELETION = "deletion"


class ChangeKind(str, Enum):
  """
  Classification of the code touched by a line change.
  """

  IMPORT = "import"
  HOOK = "hook"  # hook or effect call
  FUNCTION = "function"
  MARKUP = "markup"  # JSX element
  TYPE = "type"  # interface / type alias
  UNCLASSIFIED = "unclassified"


class ConflictType(str, Enum):
  OVERLAPPING_EDIT = "overlapping_edit"
  SEMANTIC_CONFLICT = "semantic_conflict"
  IMPORT_CONFLICT = "import_conflict"
  SYNTAX_BREAKING = "syntax_breaking"


class UnitKind(str, Enum):
  """
  Kind of code unit detected by the semantic analyzer.
  """

  FUNCTION_COMPONENT = "function_component"
  CLASS_COMPONENT = "class_component"
  HOOK = "hook"
  UTILITY = "utility"


class BlastRadius(str, Enum):
  """
  Static estimate of how many later passes a pass's output can invalidate.
  """

  NARROW = "narrow"
  WIDE = "wide"


class ExecutionStrategy(str, Enum):
  STRUCTURAL = "structural"
  TEXTUAL = "textual"


class PassState(str, Enum):
  """
  States of the per-pass orchestrator state machine.
  """

  PENDING = "pending"
  PRECONDITION_CHECK = "precondition_check"
  EXECUTING_STRUCTURAL = "executing_structural"
  EXECUTING_TEXTUAL = "executing_textual"
  POST_SYNTAX_CHECK = "post_syntax_check"
  POSTCONDITION_CHECK = "postcondition_check"
  COMMITTED = "committed"
  REVERTED = "reverted"
  ROLLED_BACK = "rolled_back"
  FAILED = "failed"
  DONE = "done"


class PassStatus(str, Enum):
  """
  Final outcome recorded for a pass in the pipeline report.
  """

  COMMITTED = "committed"
  NO_OP = "no_op"
  REVERTED = "reverted"  # contract rollback function applied
  ROLLED_BACK = "rolled_back"  # snapshot restored or resolver reverted the pass
  FAILED = "failed"
  SKIPPED = "skipped"  # precondition failed
  NOT_RUN = "not_run"  # cancelled or timed out before the pass started

  @property
  def is_success(self) -> bool:
    return self in (PassStatus.COMMITTED, PassStatus.NO_OP, PassStatus.REVERTED)


class ErrorKind(str, Enum):
  """
  Error taxonomy surfaced on failed pass outcomes.
  """

  PARSE_FAILURE = "parse_failure"
  CONTRACT_VIOLATION = "contract_violation"
  CONFLICT_DETECTED = "conflict_detected"
  INTEGRITY_FAILURE = "integrity_failure"
  EXECUTION_ERROR = "execution_error"
  CANCELLED = "cancelled"


class RollbackStrategyType(str, Enum):
  SINGLE_LAYER = "single_layer"
  CASCADE = "cascade"
  SELECTIVE = "selective"
  COMPLETE = "complete"


class ResolutionStrategyType(str, Enum):
  AUTOMATIC_FIX = "automatic_fix"
  SEMANTIC_MERGE = "semantic_merge"
  PRIORITY_BASED = "priority_based"
  USER_GUIDED = "user_guided"
