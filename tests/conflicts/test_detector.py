"""
Tests for the cross-pass Conflict Detector.

Covers:
1.  Overlapping edits and their severity.
2.  The benign identical-addition exemption.
3.  Directive, complexity and removed-import conflicts.
4.  Forgetting undone passes.
"""

from neurolint.conflicts.detector import (
  Conflict,
  ConflictDetector,
  ConflictResult,
  imported_names,
  is_referenced,
)
from neurolint.enums import ConflictType, Severity

DIRECTIVE = "'use client';"


def test_empty_detector_has_no_conflicts():
  result = ConflictDetector().detect_conflicts()
  assert not result.has_conflicts
  assert result.severity == Severity.LOW


def test_rewriting_previous_pass_output_is_high():
  detector = ConflictDetector()
  detector.record(1, "a\nb\nc\n", "a\nB\nc\n", pass_name="First")
  detector.record(2, "a\nB\nc\n", "a\nBB\nc\n", pass_name="Second")
  result = detector.detect_conflicts()
  (conflict,) = result.conflicts
  assert conflict.type == ConflictType.OVERLAPPING_EDIT
  assert conflict.passes == [1, 2]
  assert conflict.line == 2
  assert conflict.severity == Severity.HIGH
  assert result.severity == Severity.HIGH


def test_disjoint_edits_do_not_conflict():
  detector = ConflictDetector()
  detector.record(1, "a\nb\nc\n", "A\nb\nc\n")
  detector.record(2, "A\nb\nc\n", "A\nb\nC\n")
  assert not detector.detect_conflicts().has_conflicts


def test_identical_additions_are_benign_but_duplicate_directive_is_reported():
  detector = ConflictDetector()
  detector.record(1, "x;\n", f"{DIRECTIVE}\nx;\n", pass_name="First")
  detector.record(2, f"{DIRECTIVE}\nx;\n", f"{DIRECTIVE}\n{DIRECTIVE}\nx;\n", pass_name="Second")
  (conflict,) = detector.detect_conflicts().conflicts
  assert conflict.type == ConflictType.SEMANTIC_CONFLICT
  assert conflict.severity == Severity.LOW
  assert conflict.auto_fixable
  assert conflict.fix == "dedupe_directive"
  assert conflict.fix_args == {"directive": "use client"}
  assert conflict.passes == [1, 2]


def test_complexity_jump():
  detector = ConflictDetector(complexity_threshold=10)
  detector.record(4, "a\n", "b\n", pass_name="Heavy", complexity_before=1, complexity_after=20)
  (conflict,) = detector.detect_conflicts().conflicts
  assert conflict.severity == Severity.MEDIUM
  assert "increased complexity by 19" in conflict.description


def test_removed_import_still_referenced():
  detector = ConflictDetector()
  before = "import { a } from 'x';\nimport b from 'y';\nb(a);\n"
  detector.record(3, before, "import b from 'y';\nb(a);\n", pass_name="Pruner")
  (conflict,) = detector.detect_conflicts().conflicts
  assert conflict.type == ConflictType.IMPORT_CONFLICT
  assert conflict.severity == Severity.HIGH
  assert conflict.passes == [3]
  assert conflict.line == 1


def test_removed_unused_import_is_fine():
  detector = ConflictDetector()
  detector.record(3, "import { a } from 'x';\nb();\n", "b();\n")
  assert not detector.detect_conflicts().has_conflicts


def test_forget_drops_conflicts_of_undone_pass():
  detector = ConflictDetector()
  detector.record(1, "a\nb\n", "a\nB\n")
  detector.record(2, "a\nB\n", "a\nC\n")
  assert detector.detect_conflicts().has_conflicts
  detector.forget([2])
  assert not detector.detect_conflicts().has_conflicts
  assert detector.recorded_passes == [1]


def test_record_replaces_previous_record():
  detector = ConflictDetector()
  detector.record(1, "a\n", "b\n")
  detector.record(1, "a\n", "a\n")
  assert detector.changes_for(1) == []


def test_imported_names():
  text = (
    "import React, { useState as useLocal, type FC } from 'react';\n"
    "import * as utils from './utils';\n"
    "import './styles.css';\n"
  )
  assert imported_names(text) == {"React", "useLocal", "FC", "utils"}


def test_is_referenced_ignores_import_lines_and_members():
  text = "import { a } from 'x';\nobj.a();\n"
  assert not is_referenced("a", text)
  assert is_referenced("a", text + "a();\n")


def test_conflict_key_ignores_pass_order():
  one = Conflict(type=ConflictType.OVERLAPPING_EDIT, passes=[1, 2], line=3, description="d")
  two = Conflict(type=ConflictType.OVERLAPPING_EDIT, passes=[2, 1], line=3, description="d")
  assert one.key == two.key


def test_result_severity_is_the_maximum():
  conflicts = [
    Conflict(type=ConflictType.OVERLAPPING_EDIT, severity=Severity.LOW, description="a"),
    Conflict(type=ConflictType.IMPORT_CONFLICT, severity=Severity.HIGH, description="b"),
  ]
  assert ConflictResult.from_conflicts(conflicts).severity == Severity.HIGH
