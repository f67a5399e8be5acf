"""
Pipeline Orchestrator.

Drives an ordered sequence of passes over one source file. Every pass walks
the same state machine:

1.  **Precondition check**: the pass contract is evaluated on the input. A
    failure skips the pass and carries the input forward.
2.  **Execution**: the structural implementation runs on a worker thread
    guarded by ``parse_timeout``. Parse failures, timeouts and traversal
    errors fall back to the textual implementation.
3.  **Post syntax check**: output that no longer parses (when the input did)
    is handed to the contract rollback function, or discarded.
4.  **Postcondition check**: failures trigger the same rollback-or-discard.
5.  **Conflict detection**: the committed diff is tracked; new conflicts go
    to the resolver, or to the rollback manager when severe.
6.  **Snapshot**: the result is captured and the next pass starts.

No exception crosses a pass boundary. Only cancellation or the run deadline
stops the pipeline early.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from rich.markup import escape

from neurolint.analysis.semantic import SemanticAnalyzer, SemanticContext
from neurolint.config import RuntimeConfig
from neurolint.conflicts.changes import compute_changes
from neurolint.conflicts.detector import Conflict, ConflictResult
from neurolint.conflicts.tracker import ChangeTracker
from neurolint.contracts.base import ContractEngine, TransformationContract
from neurolint.contracts.registry import get_contract
from neurolint.core.parser import SourceTree, generate, parse
from neurolint.core.quality_gate import QualityGate
from neurolint.core.report import PassError, PassOutcome, PipelineReport
from neurolint.core.tracer import TraceLogger
from neurolint.enums import (
  ConflictType,
  ErrorKind,
  ExecutionStrategy,
  PassState,
  PassStatus,
  ResolutionStrategyType,
  Severity,
)
from neurolint.errors import (
  ConflictDetected,
  ContractViolation,
  ExecutionError,
  IntegrityFailure,
  ParseFailure,
  PassTimeout,
)
from neurolint.passes import PassContext, PassDescriptor, get_pass, plan_passes
from neurolint.resolution.resolver import IntelligentResolver
from neurolint.rollback.manager import INITIAL_SNAPSHOT, RollbackManager
from neurolint.utils.console import log_info, log_warning, pass_label

logger = logging.getLogger(__name__)


class CancellationToken:
  """
  Cooperative cancellation flag, honoured between passes.

  Safe to set from another thread.
  """

  def __init__(self) -> None:
    self._event = threading.Event()

  def cancel(self) -> None:
    self._event.set()

  @property
  def cancelled(self) -> bool:
    return self._event.is_set()


class PipelineOrchestrator:
  """
  Runs passes over a source file and builds the report.

  Each instance owns its snapshot history, change tracker and tracer, so an
  orchestrator must not be shared between concurrent runs.

  Args:
      config: Run options. Defaults apply when omitted.
  """

  def __init__(self, config: Optional[RuntimeConfig] = None) -> None:
    self.config = config or RuntimeConfig()
    self.language = self.config.effective_language
    self.ctx = PassContext(file_path=self.config.file_path, language=self.language)
    self.contracts = ContractEngine(self.language)
    self.resolver = IntelligentResolver(self.language)
    self._reset()

  def _reset(self) -> None:
    self.tracer = TraceLogger()
    self.rollback = RollbackManager(limit=self.config.snapshot_limit)
    self.tracker = ChangeTracker(complexity_threshold=self.config.complexity_threshold)
    self._observed: Dict[Tuple, Conflict] = {}
    self._missing: Dict[int, List[int]] = {}
    self._executor: Optional[ThreadPoolExecutor] = None

  def run(self, source: str, cancel_token: Optional[CancellationToken] = None) -> PipelineReport:
    """
    Executes every selected pass over ``source``.

    Args:
        source: Input text.
        cancel_token: Optional token checked before each pass.

    Returns:
        PipelineReport: Final code plus one outcome per selected pass.

    Raises:
        ValueError: If an enabled pass id is not registered.
    """
    plan = plan_passes(self.config.enabled_passes, self.config.include_dependencies)
    order = plan.order
    self._reset()
    self._missing = plan.missing
    self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="neurolint-parse")

    report = PipelineReport(source=source, final_code=source)
    deadline = time.monotonic() + self.config.run_timeout if self.config.run_timeout else None
    self.tracer.start_phase("Pipeline", f"{len(order)} pass(es)")
    self.rollback.capture(INITIAL_SNAPSHOT, source)
    self._report_plan(plan.added, report)

    code = source
    try:
      for index, pass_id in enumerate(order):
        stop_reason = self._stop_reason(cancel_token, deadline)
        if stop_reason:
          self._mark_not_run(report, order[index:], stop_reason)
          break
        descriptor = get_pass(pass_id)
        code, outcome = self._run_pass(descriptor, code, report)
        report.outcomes.append(outcome)
    finally:
      self._executor.shutdown(wait=False)
      self._executor = None

    self.tracer.log_transition("pipeline", PassState.DONE.value)
    self.tracer.end_phase()

    report.final_code = code
    report.conflicts = ConflictResult.from_conflicts(list(self._observed.values()))
    report.change_analysis = self.tracker.analysis()
    report.snapshots = self.rollback.history()
    report.trace_events = self.tracer.export()
    log_info(f"Pipeline finished: {report.summary()}")
    return report

  # Run control

  def _report_plan(self, added: List[int], report: PipelineReport) -> None:
    messages = []
    if added:
      messages.append(f"Added dependency pass(es) {added}")
    for pass_id, missing in self._missing.items():
      messages.append(f"Pass {pass_id} depends on pass(es) {missing} that will not run")
    for message in messages:
      report.warnings.append(message)
      self.tracer.log_warning(message)
      log_warning(escape(message))

  @staticmethod
  def _stop_reason(cancel_token: Optional[CancellationToken], deadline: Optional[float]) -> Optional[str]:
    if cancel_token is not None and cancel_token.cancelled:
      return "Run cancelled"
    if deadline is not None and time.monotonic() >= deadline:
      return "Run timeout exceeded"
    return None

  def _mark_not_run(self, report: PipelineReport, pass_ids: Sequence[int], reason: str) -> None:
    report.cancelled = True
    report.warnings.append(f"{reason}; {len(pass_ids)} pass(es) not run")
    self.tracer.log_warning(reason)
    log_warning(reason)
    for pass_id in pass_ids:
      descriptor = get_pass(pass_id)
      outcome = PassOutcome(pass_id=pass_id, name=descriptor.name if descriptor else str(pass_id))
      outcome.finish(PassStatus.NOT_RUN, PassError(kind=ErrorKind.CANCELLED, message=reason))
      report.outcomes.append(outcome)

  # Per-pass state machine

  def _transition(self, outcome: PassOutcome, state: PassState) -> None:
    outcome.states.append(state)
    self.tracer.log_transition(outcome.name, state.value)

  def _run_pass(self, descriptor: PassDescriptor, code: str, report: PipelineReport) -> Tuple[str, PassOutcome]:
    outcome = PassOutcome(pass_id=descriptor.id, name=descriptor.name)
    self._transition(outcome, PassState.PENDING)
    self._warn_failed_dependencies(descriptor, report, outcome)

    started = time.perf_counter()
    self.tracer.start_phase(f"Pass {descriptor.id}: {descriptor.name}", descriptor.description)
    try:
      result = self._process(descriptor, code, outcome, report)
    except Exception as e:
      logger.exception("Unexpected error in pass %s", descriptor.name)
      outcome.finish(PassStatus.FAILED, PassError.from_exception(ExecutionError(str(e), cause=e)))
      result = code
    finally:
      outcome.duration_ms = round((time.perf_counter() - started) * 1000.0, 3)
      self.tracer.end_phase()

    if outcome.status != PassStatus.SKIPPED:
      self.rollback.capture(
        descriptor.name,
        result,
        pass_id=descriptor.id,
        change_count=outcome.change_count,
        duration_ms=outcome.duration_ms,
        contract_outcome=outcome.status.value,
      )
    if outcome.status == PassStatus.FAILED and outcome.error is not None:
      log_warning(f"{pass_label(descriptor.id, descriptor.name)} failed: {escape(outcome.error.message)}")
    return result, outcome

  def _warn_failed_dependencies(self, descriptor: PassDescriptor, report: PipelineReport, outcome: PassOutcome) -> None:
    for dependency in self._missing.get(descriptor.id, []):
      outcome.warnings.append(f"Dependency {dependency} is not enabled")
    for dependency in descriptor.dependencies:
      previous = report.outcome(dependency)
      if previous is not None and not previous.success:
        message = f"Dependency {dependency} ({previous.name}) did not succeed"
        outcome.warnings.append(message)
        self.tracer.log_warning(message)

  def _process(self, descriptor: PassDescriptor, code: str, outcome: PassOutcome, report: PipelineReport) -> str:
    contract = get_contract(descriptor.id)

    # 1. Preconditions
    self._transition(outcome, PassState.PRECONDITION_CHECK)
    input_tree, parse_error = self._try_parse(code)
    pre = self.contracts.check_preconditions(contract, code, input_tree)
    outcome.fingerprint_before = pre.fingerprint
    self.tracer.log_contract(descriptor.name, "preconditions", pre.passed, pre.failed_rules)
    if not pre.passed:
      error = ContractViolation(f"Preconditions failed: {', '.join(pre.messages)}", rule_names=pre.failed_rules)
      self._transition(outcome, PassState.FAILED)
      outcome.finish(PassStatus.SKIPPED, PassError.from_exception(error))
      return code

    # 2. Execution
    output, error = self._execute(descriptor, code, input_tree, parse_error, outcome)
    if output is None:
      self._transition(outcome, PassState.FAILED)
      outcome.finish(PassStatus.FAILED, error)
      return code

    # 3. Syntax gate, only meaningful when the input parsed
    self._transition(outcome, PassState.POST_SYNTAX_CHECK)
    status = None
    failure_error: Optional[PassError] = None
    input_valid = input_tree is not None
    if input_valid:
      check = QualityGate.validate_syntax(output, self.language)
      if not check.valid:
        self.tracer.log_integrity(descriptor.name, check.message)
        failure = IntegrityFailure(f"Output does not parse: {check.message}")
        output, status, error = self._contract_rollback(descriptor, contract, code, failure, outcome)
        if status == PassStatus.FAILED:
          return self._fail(outcome, code, error)
        failure_error = error

    # 4. Postconditions
    self._transition(outcome, PassState.POSTCONDITION_CHECK)
    post = self.contracts.check_postconditions(contract, code, output)
    outcome.fingerprint_after = post.fingerprint
    self.tracer.log_contract(descriptor.name, "postconditions", post.passed, post.failed_rules)
    if not post.passed:
      violation = ContractViolation(f"Postconditions failed: {', '.join(post.messages)}", rule_names=post.failed_rules)
      if status == PassStatus.REVERTED:
        return self._fail(outcome, code, PassError.from_exception(violation))
      output, status, error = self._contract_rollback(descriptor, contract, code, violation, outcome)
      if status == PassStatus.FAILED:
        return self._fail(outcome, code, error)
      failure_error = error

    # 5. Semantic impact, change tracking and conflicts
    if status is None:
      status = PassStatus.NO_OP if output == code else PassStatus.COMMITTED
    if output != code:
      ctx_before = SemanticAnalyzer.analyze(code, self.language)
      ctx_after = SemanticAnalyzer.analyze(output, self.language)
      self._record_semantics(descriptor, code, output, ctx_before, ctx_after, outcome)
    if output != code and self.config.conflict_detection:
      output, status, conflict_error = self._detect_and_handle(
        descriptor, code, output, status, outcome, report, ctx_before, ctx_after
      )
      failure_error = conflict_error or failure_error
      if status == PassStatus.FAILED:
        return self._fail(outcome, code, failure_error)
      if status == PassStatus.ROLLED_BACK:
        self._transition(outcome, PassState.ROLLED_BACK)
        outcome.finish(status, failure_error)
        return output

    outcome.change_count = len(compute_changes(descriptor.id, code, output))
    if outcome.change_count and descriptor.description:
      outcome.improvements.append(descriptor.description)
    self._transition(outcome, PassState.REVERTED if status == PassStatus.REVERTED else PassState.COMMITTED)
    outcome.finish(status, failure_error)
    return output

  def _fail(self, outcome: PassOutcome, code: str, error: Optional[PassError]) -> str:
    self._transition(outcome, PassState.FAILED)
    outcome.finish(PassStatus.FAILED, error)
    return code

  # Execution

  def _try_parse(self, code: str) -> Tuple[Optional[SourceTree], Optional[ParseFailure]]:
    try:
      return self._with_timeout(lambda: parse(code, self.language)), None
    except ParseFailure as e:
      return None, e

  def _with_timeout(self, fn: Callable[[], Any]) -> Any:
    """
    Runs ``fn`` on the run's worker thread.

    Python threads cannot be interrupted, so a timed out ``fn`` keeps running
    on the abandoned worker. The pipeline moves on, but the interpreter joins
    executor threads at exit, so a parse that never returns still delays
    process shutdown.

    Raises:
        PassTimeout: If ``fn`` does not finish within ``parse_timeout``. The
            stuck worker is abandoned and replaced.
    """
    future = self._executor.submit(fn)
    try:
      return future.result(timeout=self.config.parse_timeout)
    except FuturesTimeoutError:
      future.cancel()
      self._executor.shutdown(wait=False)
      self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="neurolint-parse")
      raise PassTimeout(f"Structural execution exceeded {self.config.parse_timeout}s")

  def _execute(
    self,
    descriptor: PassDescriptor,
    code: str,
    tree: Optional[SourceTree],
    parse_error: Optional[ParseFailure],
    outcome: PassOutcome,
  ) -> Tuple[Optional[str], Optional[PassError]]:
    """
    Runs the pass body, structural first when enabled.

    Returns:
        Tuple: ``(output, None)`` on success, ``(None, error)`` when no
        implementation produced output.
    """
    error: Optional[PassError] = None
    use_structural = descriptor.supports_structural and (self.config.prefer_structural or descriptor.textual is None)

    if use_structural:
      self._transition(outcome, PassState.EXECUTING_STRUCTURAL)
      try:
        output = self._run_structural(descriptor, tree, parse_error)
        outcome.strategy = ExecutionStrategy.STRUCTURAL
        return output, None
      except ParseFailure as e:
        error = PassError.from_exception(e)
      except Exception as e:
        error = PassError.from_exception(ExecutionError(f"Structural execution failed: {e}", cause=e))
      if descriptor.textual is not None:
        self.tracer.log_fallback(descriptor.name, error.message)
        outcome.warnings.append(f"Fell back to textual execution: {error.message}")

    if descriptor.textual is None:
      return None, error or PassError(kind=ErrorKind.EXECUTION_ERROR, message="Pass has no usable implementation")

    self._transition(outcome, PassState.EXECUTING_TEXTUAL)
    try:
      output = descriptor.textual(code, self.ctx)
    except Exception as e:
      return None, PassError.from_exception(ExecutionError(f"Textual execution failed: {e}", cause=e))
    if not isinstance(output, str):
      return None, PassError(kind=ErrorKind.EXECUTION_ERROR, message=f"Textual execution returned {type(output).__name__}")
    outcome.strategy = ExecutionStrategy.TEXTUAL
    return output, None

  def _run_structural(
    self, descriptor: PassDescriptor, tree: Optional[SourceTree], parse_error: Optional[ParseFailure]
  ) -> str:
    if tree is None:
      raise parse_error or ParseFailure("Input does not parse")

    def work() -> str:
      descriptor.structural(tree, self.ctx)
      return generate(tree)

    return self._with_timeout(work)

  # Failure handling

  def _contract_rollback(
    self,
    descriptor: PassDescriptor,
    contract: TransformationContract,
    code: str,
    failure: Exception,
    outcome: PassOutcome,
  ) -> Tuple[str, PassStatus, PassError]:
    """
    Applies the contract rollback function to the pass input.

    Returns:
        Tuple: The reverted code with ``REVERTED`` when it parses, else the
        input with ``FAILED``. The error describes the original failure.
    """
    error = PassError.from_exception(failure)
    if contract.rollback is None:
      self.tracer.log_rollback(descriptor.name, "contract", False, "No rollback function")
      return code, PassStatus.FAILED, error

    try:
      reverted = contract.rollback(code)
    except Exception as e:
      logger.debug("Rollback function of %s raised %s", contract.name, e)
      reverted = None

    if reverted is not None and QualityGate.validate_syntax(reverted, self.language).valid:
      self.tracer.log_rollback(descriptor.name, "contract", True, str(failure))
      outcome.warnings.append(f"Reverted by contract rollback: {failure}")
      return reverted, PassStatus.REVERTED, error

    self.tracer.log_rollback(descriptor.name, "contract", False, "Rollback did not produce valid code")
    return code, PassStatus.FAILED, error

  def _accepts(self, before: str, candidate: str) -> bool:
    """Syntax gate for code produced after the pass body (resolutions, restores)."""
    if not QualityGate.validate_syntax(before, self.language).valid:
      return True
    return QualityGate.validate_syntax(candidate, self.language).valid

  def _track(self, descriptor: PassDescriptor, before: str, after: str) -> None:
    ctx_before = SemanticAnalyzer.analyze(before, self.language)
    ctx_after = SemanticAnalyzer.analyze(after, self.language)
    self.tracker.track(descriptor.id, descriptor.name, before, after, ctx_before.complexity, ctx_after.complexity)

  def _record_semantics(
    self,
    descriptor: PassDescriptor,
    code: str,
    output: str,
    ctx_before: SemanticContext,
    ctx_after: SemanticContext,
    outcome: PassOutcome,
  ) -> None:
    """
    Stores the semantic deltas and size impact of the pass output.

    Introduced risk factors and new integrity issues become warnings.
    """
    outcome.semantic_deltas = SemanticAnalyzer.diff(ctx_before, ctx_after)
    outcome.impact = QualityGate.measure_impact(code, output, self.language)
    messages = [f"Introduced risk '{d.subject}'" for d in outcome.semantic_deltas if d.kind == "risk_introduced"]
    known = set(SemanticAnalyzer.validate_integrity(ctx_before))
    messages.extend(issue for issue in SemanticAnalyzer.validate_integrity(ctx_after) if issue not in known)
    for message in messages:
      outcome.warnings.append(message)
      self.tracer.log_warning(f"{descriptor.name}: {message}")

  def _detect_and_handle(
    self,
    descriptor: PassDescriptor,
    code: str,
    output: str,
    status: PassStatus,
    outcome: PassOutcome,
    report: PipelineReport,
    ctx_before: SemanticContext,
    ctx_after: SemanticContext,
  ) -> Tuple[str, PassStatus, Optional[PassError]]:
    self.tracker.track(descriptor.id, descriptor.name, code, output, ctx_before.complexity, ctx_after.complexity)

    detected = list(self.tracker.check_conflicts().conflicts)
    detected.extend(
      SemanticAnalyzer.detect_conflicts(ctx_before, ctx_after, descriptor.id, descriptor.name, self.config.file_path)
    )
    fresh = []
    for conflict in detected:
      if conflict.key in self._observed:
        continue
      self._observed[conflict.key] = conflict
      if descriptor.id in conflict.passes:
        fresh.append(conflict)
        self.tracer.log_conflict(conflict.description, conflict.severity.value)
    if not fresh:
      return output, status, None
    outcome.conflicts = fresh

    severe = [c for c in fresh if c.type != ConflictType.SEMANTIC_CONFLICT and c.severity.rank >= Severity.HIGH.rank]
    if severe and self.config.auto_rollback:
      return self._restore_snapshot(descriptor, code, severe, outcome, report)

    resolved, status, error = self._resolve(descriptor, code, output, status, fresh, outcome)
    if status in (PassStatus.ROLLED_BACK, PassStatus.FAILED):
      self.tracker.forget([descriptor.id])
    else:
      self._track(descriptor, code, resolved)
    return resolved, status, error

  def _restore_snapshot(
    self,
    descriptor: PassDescriptor,
    code: str,
    conflicts: List[Conflict],
    outcome: PassOutcome,
    report: PipelineReport,
  ) -> Tuple[str, PassStatus, Optional[PassError]]:
    strategy = RollbackManager.determine_strategy(conflicts, descriptor)
    result = self.rollback.execute(strategy)
    report.rollbacks.append(result)
    self.tracer.log_rollback(descriptor.name, strategy.value, result.success, result.reason)
    error = PassError.from_exception(
      ConflictDetected(f"{len(conflicts)} severe conflict(s): {conflicts[0].description}", conflicts)
    )

    if not result.success or not self._accepts(code, result.code):
      # Keep the state before this pass
      self.tracker.forget([descriptor.id])
      outcome.warnings.append(f"Snapshot restore failed: {result.reason}")
      return code, PassStatus.FAILED, error

    undone = [s.pass_id for s in self.rollback.history()[result.restored_index + 1 :] if s.pass_id is not None]
    self.tracker.forget(undone + [descriptor.id])
    if undone:
      message = f"{strategy.value} rollback from {descriptor.name} undid pass(es) {undone}"
      report.warnings.append(message)
      log_warning(escape(message))
    outcome.warnings.append(result.reason)
    return result.code, PassStatus.ROLLED_BACK, error

  def _resolve(
    self,
    descriptor: PassDescriptor,
    code: str,
    output: str,
    status: PassStatus,
    conflicts: List[Conflict],
    outcome: PassOutcome,
  ) -> Tuple[str, PassStatus, Optional[PassError]]:
    resolution = self.resolver.resolve(code, output, conflicts, descriptor.name)
    outcome.resolution = resolution
    outcome.warnings.extend(resolution.warnings)
    self.tracer.log_resolution(descriptor.name, resolution.strategy.value, resolution.applied_fixes)

    if not resolution.success or not self._accepts(code, resolution.code):
      error = ConflictDetected(f"Conflicts of {descriptor.name} could not be resolved", conflicts)
      return code, PassStatus.FAILED, PassError.from_exception(error)

    if resolution.strategy == ResolutionStrategyType.PRIORITY_BASED and resolution.code == code:
      error = ConflictDetected(resolution.description, conflicts)
      return code, PassStatus.ROLLED_BACK, PassError.from_exception(error)

    if resolution.code == code:
      return code, PassStatus.NO_OP, None
    if status == PassStatus.NO_OP:
      status = PassStatus.COMMITTED
    return resolution.code, status, None


def _coerce_config(options: Union[RuntimeConfig, Mapping[str, Any], None]) -> RuntimeConfig:
  if options is None:
    return RuntimeConfig()
  if isinstance(options, RuntimeConfig):
    return options
  return RuntimeConfig(**dict(options))


def run(
  source: str,
  enabled_pass_ids: Optional[Sequence[int]] = None,
  options: Union[RuntimeConfig, Mapping[str, Any], None] = None,
  cancel_token: Optional[CancellationToken] = None,
) -> PipelineReport:
  """
  Transforms ``source`` with the selected passes.

  Args:
      source: Program text.
      enabled_pass_ids: Passes to run. None runs every registered pass, or
          the ``enabled_passes`` of ``options`` when set.
      options: A RuntimeConfig or a mapping of its fields, e.g.
          ``{"prefer_structural": False}``.
      cancel_token: Token checked between passes.

  Returns:
      PipelineReport: The final code and per-pass outcomes.

  Raises:
      ValueError: If a pass id is not registered.
  """
  config = _coerce_config(options)
  if enabled_pass_ids is not None:
    config = config.model_copy(update={"enabled_passes": sorted(set(enabled_pass_ids))})
  return PipelineOrchestrator(config).run(source, cancel_token=cancel_token)
