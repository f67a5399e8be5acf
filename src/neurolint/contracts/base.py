"""
Contract Engine.

A :class:`TransformationContract` wraps a pass with named precondition and
postcondition rules, an optional fingerprint function used to spot re-applied
work, and an optional rollback function. Contracts are stateless and can be
shared between runs.

The :class:`ContractEngine` evaluates rules in isolation: a rule that raises
counts as a failed rule and never aborts the check.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field

from neurolint.core.parser import SourceTree, parse
from neurolint.enums import Language
from neurolint.errors import ParseFailure

logger = logging.getLogger(__name__)

RuleCheck = Callable[[str, Optional[SourceTree]], bool]
FingerprintFunction = Callable[[SourceTree], str]
RollbackFunction = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class ValidationRule:
  """
  A named predicate over source text and, when available, its tree.

  Attributes:
      name: Identifier reported when the rule fails.
      check: ``(code, tree) -> bool``. ``tree`` is None for unparsable code.
      message: Human readable failure message.
  """

  name: str
  check: RuleCheck
  message: str


@dataclass(frozen=True)
class TransformationContract:
  name: str
  preconditions: Tuple[ValidationRule, ...] = ()
  postconditions: Tuple[ValidationRule, ...] = ()
  fingerprint: Optional[FingerprintFunction] = None
  rollback: Optional[RollbackFunction] = None


class ContractResult(BaseModel):
  """
  Outcome of a contract check.

  Attributes:
      passed: True when every rule held.
      failed_rules: Names of the rules that failed or raised.
      messages: Failure messages, aligned with ``failed_rules``.
      fingerprint: Fingerprint of the checked code, when declared and parsable.
  """

  passed: bool = True
  failed_rules: List[str] = Field(default_factory=list)
  messages: List[str] = Field(default_factory=list)
  fingerprint: Optional[str] = None


class ContractEngine:
  """
  Evaluates contracts against source text.

  Args:
      language: Grammar used when a tree has to be built.
  """

  def __init__(self, language: Optional[Language] = None) -> None:
    self.language = language

  def check_preconditions(
    self, contract: TransformationContract, code: str, tree: Optional[SourceTree] = None
  ) -> ContractResult:
    """
    Runs the precondition rules against the pass input.

    Args:
        contract: The contract of the pass.
        code: Pass input.
        tree: Pre-parsed tree of ``code``, parsed on demand when omitted.

    Returns:
        ContractResult: Failed rules and the input fingerprint.
    """
    return self._check(contract, contract.preconditions, code, tree)

  def check_postconditions(
    self,
    contract: TransformationContract,
    original: str,
    transformed: str,
    tree: Optional[SourceTree] = None,
  ) -> ContractResult:
    """
    Runs the postcondition rules against the pass output.

    Args:
        contract: The contract of the pass.
        original: Pass input, kept for diagnostics.
        transformed: Pass output the rules are evaluated on.
        tree: Pre-parsed tree of ``transformed``.

    Returns:
        ContractResult: Failed rules and the output fingerprint.
    """
    result = self._check(contract, contract.postconditions, transformed, tree)
    if not result.passed:
      logger.debug(
        "Postconditions of %s failed (%d -> %d chars): %s",
        contract.name,
        len(original),
        len(transformed),
        result.failed_rules,
      )
    return result

  def _check(
    self,
    contract: TransformationContract,
    rules: Tuple[ValidationRule, ...],
    code: str,
    tree: Optional[SourceTree],
  ) -> ContractResult:
    if tree is None and (rules or contract.fingerprint is not None):
      tree = self._try_parse(code)

    result = ContractResult()
    for rule in rules:
      try:
        ok = bool(rule.check(code, tree))
        message = rule.message
      except Exception as e:
        ok = False
        message = f"{rule.message} (rule raised {type(e).__name__}: {e})"
      if not ok:
        result.passed = False
        result.failed_rules.append(rule.name)
        result.messages.append(message)

    if contract.fingerprint is not None and tree is not None:
      try:
        result.fingerprint = contract.fingerprint(tree)
      except Exception as e:
        logger.debug("Fingerprint of %s raised %s", contract.name, e)
    return result

  def _try_parse(self, code: str) -> Optional[SourceTree]:
    try:
      return parse(code, self.language)
    except ParseFailure:
      return None
