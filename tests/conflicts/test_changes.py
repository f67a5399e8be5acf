"""
Tests for line-level change extraction and classification.
"""

import pytest

from neurolint.conflicts.changes import classify, compute_changes
from neurolint.enums import ChangeKind, ChangeType


def test_identical_text_has_no_changes():
  assert compute_changes(1, "a\nb\n", "a\nb\n") == []


def test_addition():
  (change,) = compute_changes(2, "a\nb\n", "a\nx\nb\n")
  assert change.type == ChangeType.ADDITION
  assert (change.start_line, change.end_line) == (2, 2)
  assert change.content == "x"
  assert change.pass_id == 2


def test_deletion_points_at_following_line():
  (change,) = compute_changes(1, "a\nb\nc\n", "a\nc\n")
  assert change.type == ChangeType.DELETION
  assert change.start_line == change.end_line == 2
  assert change.content == ""
  assert change.previous_content == "b"


def test_modification():
  (change,) = compute_changes(1, "a\nb\n", "a\nB\n")
  assert change.type == ChangeType.MODIFICATION
  assert change.start_line == 2
  assert change.previous_content == "b"
  assert change.content == "B"


def test_trailing_newline_only_difference():
  (change,) = compute_changes(1, "a", "a\n")
  assert change.type == ChangeType.MODIFICATION
  assert change.start_line == 1


@pytest.mark.parametrize(
  "text, kind",
  [
    ("import x from 'y';", ChangeKind.IMPORT),
    ("const y = require('y');", ChangeKind.IMPORT),
    ("export interface Props { id: number }", ChangeKind.TYPE),
    ("const [a, setA] = useState(0);", ChangeKind.HOOK),
    ("const f = () => 1;", ChangeKind.FUNCTION),
    ("return <div />;", ChangeKind.MARKUP),
    ("const a = 1;", ChangeKind.UNCLASSIFIED),
  ],
)
def test_classify(text, kind):
  assert classify(text) == kind


def test_classification_order_prefers_import():
  assert classify("import { useState } from 'react';\nconst [a] = useState(0);") == ChangeKind.IMPORT
