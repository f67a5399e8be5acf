"""
Tests for the Pipeline Orchestrator state machine.

Covers:
1.  Full pipeline over a component with every built-in pass.
2.  Statuses: committed, no-op, skipped, reverted, failed, not run.
3.  Structural/textual dispatch, fallbacks and timeouts.
4.  Snapshots, traces and report helpers.
"""

import time

import pytest

import neurolint
from neurolint.contracts.base import TransformationContract, ValidationRule
from neurolint.contracts.registry import register_contract
from neurolint.core.orchestrator import CancellationToken, PipelineOrchestrator, run
from neurolint.core.quality_gate import QualityGate
from neurolint.core.tracer import TraceEventType
from neurolint.enums import ErrorKind, ExecutionStrategy, PassState, PassStatus, Severity
from neurolint.passes import PassDescriptor, register_pass

COMPONENT = """import React from 'react';
import { format } from './format';

export default function List({ items }) {
  const [open, setOpen] = useState(false);
  console.log(items);
  return (
    <ul onClick={() => setOpen(!open)}>
      {items.map((item) => <li>{format(item)}</li>)}
      <img src="/logo.png" />
    </ul>
  );
}
"""

FIXED_COMPONENT = """'use client';

import React, { useState } from 'react';
import { format } from './format';

export default function List({ items }) {
  const [open, setOpen] = useState(false);
  console.debug(items);
  return (
    <ul onClick={() => setOpen(!open)}>
      {items.map((item) => <li key={item.id}>{format(item)}</li>)}
      <img src="/logo.png" alt="" />
    </ul>
  );
}
"""


def _boom(code, ctx):
  raise RuntimeError("boom")


def _custom(pass_id, textual=None, structural=None, **kwargs):
  return register_pass(
    PassDescriptor(id=pass_id, name=f"Custom {pass_id}", textual=textual, structural=structural, **kwargs)
  )


def test_full_pipeline_on_component():
  report = run(COMPONENT)
  assert report.final_code == FIXED_COMPONENT
  statuses = {o.pass_id: o.status for o in report.outcomes}
  assert statuses == {
    1: PassStatus.NO_OP,
    2: PassStatus.COMMITTED,
    3: PassStatus.COMMITTED,
    4: PassStatus.COMMITTED,
    5: PassStatus.NO_OP,
    6: PassStatus.COMMITTED,
    7: PassStatus.NO_OP,
  }
  assert report.success
  assert report.outcome(3).change_count == 2
  assert report.outcome(3).strategy == ExecutionStrategy.STRUCTURAL
  assert report.outcome(3).improvements == ["Add missing list keys and React hook imports"]
  assert all(c.severity == Severity.LOW for c in report.conflicts.conflicts)


def test_full_pipeline_is_idempotent():
  once = run(COMPONENT).final_code
  again = run(once)
  assert again.final_code == once
  assert all(o.status == PassStatus.NO_OP for o in again.outcomes)


def test_no_op_pass():
  report = run("export const a = 1;\n", enabled_pass_ids=[7])
  outcome = report.outcome(7)
  assert outcome.status == PassStatus.NO_OP
  assert outcome.success
  assert outcome.change_count == 0
  assert outcome.improvements == []
  assert not report.changed


def test_unknown_pass_id_raises():
  with pytest.raises(ValueError):
    run("x;\n", enabled_pass_ids=[99])


def test_options_mapping_selects_textual():
  report = run('const i = <img src="a.png" />;\n', enabled_pass_ids=[4], options={"prefer_structural": False})
  assert report.outcome(4).strategy == ExecutionStrategy.TEXTUAL
  assert report.final_code == 'const i = <img src="a.png" alt="" />;\n'


def test_fix_returns_final_code():
  assert neurolint.fix("console.log(1);\n", enabled_pass_ids=[2]) == "console.debug(1);\n"


def test_precondition_failure_skips_without_snapshot():
  code = 'const v = typeof window !== "undefined" ? localStorage.getItem("k") : null;\n'
  report = run(code, enabled_pass_ids=[5])
  outcome = report.outcome(5)
  assert outcome.status == PassStatus.SKIPPED
  assert outcome.error.kind == ErrorKind.CONTRACT_VIOLATION
  assert outcome.error.rule_names == ["not-already-protected"]
  assert report.final_code == code
  assert [s.pass_name for s in report.snapshots] == ["initial"]


def test_snapshot_after_each_pass():
  report = run("console.log(1);\n", enabled_pass_ids=[1, 2])
  assert [s.pass_name for s in report.snapshots] == ["initial", "Configuration", "Patterns"]
  assert report.snapshots[-1].code == "console.debug(1);\n"
  assert report.snapshots[-1].metadata.contract_outcome == "committed"


def test_failing_pass_does_not_block_later_passes():
  _custom(8, textual=_boom)
  _custom(9, textual=lambda code, ctx: code.replace("console.log", "console.info"))
  report = run("console.log(1);\n", enabled_pass_ids=[8, 9])
  assert [o.pass_id for o in report.outcomes] == [8, 9]
  assert report.outcome(8).status == PassStatus.FAILED
  assert report.outcome(8).error.kind == ErrorKind.EXECUTION_ERROR
  assert "boom" in report.outcome(8).error.message
  assert report.outcome(9).status == PassStatus.COMMITTED
  assert report.final_code == "console.info(1);\n"
  assert not report.success


def test_failed_dependency_is_a_warning_only():
  register_pass(PassDescriptor(id=1, name="Broken config", textual=_boom))
  report = run("console.log(1);\n", enabled_pass_ids=[1, 2])
  outcome = report.outcome(2)
  assert outcome.status == PassStatus.COMMITTED
  assert any("Dependency 1" in w for w in outcome.warnings)


def test_non_string_textual_output_fails():
  _custom(8, textual=lambda code, ctx: None)
  report = run("x;\n", enabled_pass_ids=[8])
  assert report.outcome(8).status == PassStatus.FAILED
  assert report.final_code == "x;\n"


def test_broken_output_is_reverted_by_contract_rollback():
  _custom(8, textual=lambda code, ctx: code + "const = ;\n")
  register_contract(8, TransformationContract(name="custom", rollback=lambda code: code + "// reverted\n"))
  report = run("const a = 1;\n", enabled_pass_ids=[8])
  outcome = report.outcome(8)
  assert outcome.status == PassStatus.REVERTED
  assert outcome.success
  assert outcome.error.kind == ErrorKind.INTEGRITY_FAILURE
  assert PassState.REVERTED in outcome.states
  assert report.final_code == "const a = 1;\n// reverted\n"


def test_broken_output_without_rollback_fails():
  _custom(8, textual=lambda code, ctx: code + "const = ;\n")
  report = run("const a = 1;\n", enabled_pass_ids=[8])
  outcome = report.outcome(8)
  assert outcome.status == PassStatus.FAILED
  assert outcome.error.kind == ErrorKind.INTEGRITY_FAILURE
  assert outcome.states[-1] == PassState.FAILED
  assert report.final_code == "const a = 1;\n"


def test_postcondition_failure_without_rollback_fails():
  _custom(8, textual=lambda code, ctx: code + "// touched\n")
  register_contract(
    8,
    TransformationContract(
      name="strict",
      postconditions=(ValidationRule("never", lambda code, tree: False, "Never holds"),),
    ),
  )
  report = run("const a = 1;\n", enabled_pass_ids=[8])
  assert report.outcome(8).status == PassStatus.FAILED
  assert report.outcome(8).error.rule_names == ["never"]
  assert report.final_code == "const a = 1;\n"


def _append(line):
  return lambda code, ctx: code + line


def test_skipped_pass_in_the_middle_does_not_block_later_passes():
  _custom(8, textual=_append("// eight\n"))
  _custom(9, textual=_append("// nine\n"))
  register_contract(
    9,
    TransformationContract(
      name="never-ready",
      preconditions=(ValidationRule("never", lambda code, tree: False, "Never ready"),),
    ),
  )
  _custom(10, textual=_append("// ten\n"))
  report = run("x;\n", enabled_pass_ids=[8, 9, 10])
  assert [o.status for o in report.outcomes] == [PassStatus.COMMITTED, PassStatus.SKIPPED, PassStatus.COMMITTED]
  assert report.final_code == "x;\n// eight\n// ten\n"


def test_postcondition_failure_applies_rollback_to_pass_input():
  def rollback(code):
    return code + "// reverted\n"

  _custom(8, textual=_append("// touched\n"))
  register_contract(
    8,
    TransformationContract(
      name="strict",
      postconditions=(ValidationRule("never", lambda code, tree: False, "Never holds"),),
      rollback=rollback,
    ),
  )
  source = "const x = 1;\n"
  report = run(source, enabled_pass_ids=[8])
  outcome = report.outcome(8)
  assert outcome.status == PassStatus.REVERTED
  assert outcome.error.kind == ErrorKind.CONTRACT_VIOLATION
  assert outcome.error.rule_names == ["never"]
  assert report.final_code == rollback(source)


def test_dependency_runs_before_dependent():
  _custom(8, textual=_append("// eight\n"), dependencies=(9,))
  _custom(9, textual=_append("// nine\n"))
  report = run("x;\n", enabled_pass_ids=[8, 9])
  assert [o.pass_id for o in report.outcomes] == [9, 8]
  assert report.final_code == "x;\n// nine\n// eight\n"
  assert report.warnings == []


def test_missing_dependency_is_reported():
  _custom(8, textual=_append("// eight\n"), dependencies=(9,))
  _custom(9, textual=_append("// nine\n"))
  report = run("x;\n", enabled_pass_ids=[8])
  assert report.outcome(8).status == PassStatus.COMMITTED
  assert "Pass 8 depends on pass(es) [9] that will not run" in report.warnings
  assert "Dependency 9 is not enabled" in report.outcome(8).warnings


def test_included_dependency_is_reported():
  _custom(8, textual=_append("// eight\n"), dependencies=(9,))
  _custom(9, textual=_append("// nine\n"))
  report = run("x;\n", enabled_pass_ids=[8], options={"include_dependencies": True})
  assert [o.pass_id for o in report.outcomes] == [9, 8]
  assert "Added dependency pass(es) [9]" in report.warnings


def test_semantic_deltas_and_impact_are_recorded():
  _custom(8, textual=_append("const v = localStorage.getItem('k');\n"))
  report = run("const a = 1;\n", enabled_pass_ids=[8])
  outcome = report.outcome(8)
  assert outcome.status == PassStatus.COMMITTED
  assert ("risk_introduced", "unguarded-global-access") in {(d.kind, d.subject) for d in outcome.semantic_deltas}
  assert "Introduced risk 'unguarded-global-access'" in outcome.warnings
  assert outcome.impact is not None
  assert outcome.impact.size_increase_pct > 0


def test_new_integrity_issue_becomes_a_warning():
  _custom(8, textual=_append("async function load() { await fetchAll(); }\n"))
  report = run("const a = 1;\n", enabled_pass_ids=[8])
  assert "Async operations without error handling" in report.outcome(8).warnings


def test_unchanged_output_has_no_semantic_record():
  report = run("export const a = 1;\n", enabled_pass_ids=[7])
  outcome = report.outcome(7)
  assert outcome.semantic_deltas == []
  assert outcome.impact is None


def test_textual_hydration_keeps_existing_guards():
  guard = 'typeof window !== "undefined"'
  source = (
    f"{guard} && localStorage.setItem('a', '1');\n"
    f"if ({guard}) {{\n"
    "  localStorage.removeItem('b');\n"
    "}\n"
    "const v = localStorage.getItem('k');\n"
  )
  report = run(source, enabled_pass_ids=[5], options={"prefer_structural": False})
  assert report.outcome(5).status == PassStatus.COMMITTED
  assert report.final_code == source.replace(
    "const v = localStorage.getItem('k');", f"const v = ({guard} ? localStorage.getItem('k') : null);"
  )
  assert QualityGate.validate_no_double_wrapping(report.final_code)


def test_structural_only_pass_runs_structurally_even_when_textual_preferred():
  def add_header(tree, ctx):
    tree.insert_at(0, "// header\n")

  _custom(8, structural=add_header)
  report = run("x;\n", enabled_pass_ids=[8], options={"prefer_structural": False})
  assert report.outcome(8).strategy == ExecutionStrategy.STRUCTURAL
  assert report.final_code == "// header\nx;\n"


def test_overlapping_structural_edits_fall_back_to_textual():
  def overlapping(tree, ctx):
    tree.replace(tree.root, "a;")
    tree.replace(tree.root.named_children[0], "b;")

  _custom(8, textual=lambda code, ctx: code + "// textual\n", structural=overlapping)
  report = run("x;\n", enabled_pass_ids=[8])
  outcome = report.outcome(8)
  assert outcome.strategy == ExecutionStrategy.TEXTUAL
  assert any("Fell back to textual" in w for w in outcome.warnings)
  assert report.final_code == "x;\n// textual\n"


def test_structural_timeout_falls_back_to_textual():
  def slow(tree, ctx):
    time.sleep(0.5)

  _custom(8, textual=lambda code, ctx: code + "// textual\n", structural=slow)
  report = run("x;\n", enabled_pass_ids=[8], options={"parse_timeout": 0.05})
  outcome = report.outcome(8)
  assert outcome.status == PassStatus.COMMITTED
  assert outcome.strategy == ExecutionStrategy.TEXTUAL
  assert any("exceeded" in w for w in outcome.warnings)


def test_cancelled_before_start():
  token = CancellationToken()
  token.cancel()
  report = run("console.log(1);\n", enabled_pass_ids=[1, 2], cancel_token=token)
  assert report.cancelled
  assert report.final_code == "console.log(1);\n"
  assert [o.status for o in report.outcomes] == [PassStatus.NOT_RUN, PassStatus.NOT_RUN]
  assert report.outcomes[0].error.kind == ErrorKind.CANCELLED


def test_cancelled_between_passes_keeps_earlier_work():
  token = CancellationToken()

  def cancel_after(code, ctx):
    token.cancel()
    return code + "// first\n"

  _custom(8, textual=cancel_after)
  _custom(9, textual=lambda code, ctx: code + "// second\n")
  report = run("x;\n", enabled_pass_ids=[8, 9], cancel_token=token)
  assert report.outcome(8).status == PassStatus.COMMITTED
  assert report.outcome(9).status == PassStatus.NOT_RUN
  assert report.final_code == "x;\n// first\n"
  assert report.cancelled


def test_run_timeout_stops_remaining_passes():
  def slow(code, ctx):
    time.sleep(0.1)
    return code

  _custom(8, textual=slow)
  _custom(9, textual=lambda code, ctx: code + "// late\n")
  report = run("x;\n", enabled_pass_ids=[8, 9], options={"run_timeout": 0.05})
  assert report.outcome(9).status == PassStatus.NOT_RUN
  assert report.final_code == "x;\n"
  assert any("timeout" in w for w in report.warnings)


def test_orchestrator_can_be_reused_sequentially():
  orchestrator = PipelineOrchestrator(neurolint.RuntimeConfig(enabled_passes=[2]))
  first = orchestrator.run("console.log(1);\n")
  second = orchestrator.run("console.log(2);\n")
  assert first.final_code == "console.debug(1);\n"
  assert second.final_code == "console.debug(2);\n"
  assert len(second.snapshots) == 2


def test_report_helpers_and_trace():
  report = run("console.log(1);\n", enabled_pass_ids=[1, 2])
  assert report.summary() == {"no_op": 1, "committed": 1}
  assert report.changed
  assert report.outcome(42) is None
  types = {TraceEventType(e["type"]) for e in report.trace_events}
  assert {
    TraceEventType.PHASE_START,
    TraceEventType.PHASE_END,
    TraceEventType.STATE_TRANSITION,
    TraceEventType.CONTRACT_CHECK,
  } <= types
  assert report.model_dump_json()


def test_deterministic_reports():
  first = run(COMPONENT)
  second = run(COMPONENT)
  assert first.final_code == second.final_code
  assert [o.status for o in first.outcomes] == [o.status for o in second.outcomes]
  assert [c.key for c in first.conflicts.conflicts] == [c.key for c in second.conflicts.conflicts]


def test_valid_input_stays_valid():
  report = run(COMPONENT)
  assert QualityGate.validate_syntax(report.final_code).valid
