"""
Tests for the Intelligent Resolver.
"""

from neurolint.conflicts.detector import Conflict
from neurolint.enums import ConflictType, ResolutionStrategyType, Severity
from neurolint.resolution.resolver import (
  IntelligentResolver,
  alias_import,
  dedupe_directive,
  register_fix,
  render_markdown,
  unregister_fix,
)

DIRECTIVE_CONFLICT = Conflict(
  type=ConflictType.SEMANTIC_CONFLICT,
  passes=[6, 8],
  severity=Severity.LOW,
  description="Multiple passes add the 'use client' directive",
  auto_fixable=True,
  fix="dedupe_directive",
  fix_args={"directive": "use client"},
)


def _plain(severity=Severity.MEDIUM):
  return Conflict(type=ConflictType.OVERLAPPING_EDIT, passes=[1, 2], severity=severity, description="overlap")


def test_dedupe_directive():
  code = "'use client';\n\"use client\";\nexport const a = 1;\n"
  assert dedupe_directive(code, DIRECTIVE_CONFLICT) == "'use client';\nexport const a = 1;\n"


def test_alias_import_named_and_default():
  conflict = Conflict(
    type=ConflictType.SEMANTIC_CONFLICT,
    description="collision",
    fix_args={"name": "Button", "source": "@ui/button"},
  )
  named = "import { Button } from '@ui/button';\n"
  assert alias_import(named, conflict) == "import { Button as ButtonAliased } from '@ui/button';\n"
  default = "import Button from '@ui/button';\nimport Other from './Button';\n"
  assert alias_import(default, conflict) == "import ButtonAliased from '@ui/button';\nimport Other from './Button';\n"


def test_determine_strategy():
  assert IntelligentResolver.determine_strategy([DIRECTIVE_CONFLICT]) == ResolutionStrategyType.AUTOMATIC_FIX
  assert IntelligentResolver.determine_strategy([_plain(Severity.CRITICAL)]) == ResolutionStrategyType.PRIORITY_BASED
  assert IntelligentResolver.determine_strategy([_plain()]) == ResolutionStrategyType.SEMANTIC_MERGE
  # one fixable out of two is below the auto-fix ratio
  assert (
    IntelligentResolver.determine_strategy([DIRECTIVE_CONFLICT, _plain()]) == ResolutionStrategyType.SEMANTIC_MERGE
  )


def test_automatic_fix_applies_registered_fix():
  original = "export const a = 1;\n"
  transformed = "'use client';\n'use client';\nexport const a = 1;\n"
  result = IntelligentResolver().resolve(original, transformed, [DIRECTIVE_CONFLICT], "Directives")
  assert result.success
  assert result.strategy == ResolutionStrategyType.AUTOMATIC_FIX
  assert result.code == "'use client';\nexport const a = 1;\n"
  assert len(result.applied_fixes) == 1
  assert result.remaining_conflicts == []


def test_priority_based_reverts_to_original():
  result = IntelligentResolver().resolve("a;\n", "b;\n", [_plain(Severity.CRITICAL)], "Risky")
  assert result.success
  assert result.strategy == ResolutionStrategyType.PRIORITY_BASED
  assert result.code == "a;\n"
  assert "reverting Risky changes" in result.warnings[0]


def test_semantic_merge_keeps_output():
  result = IntelligentResolver().resolve("a;\n", "b;\n", [_plain()], "Merge")
  assert result.success
  assert result.code == "b;\n"
  assert len(result.remaining_conflicts) == 1


def test_user_guided_is_only_forced():
  result = IntelligentResolver().resolve(
    "a;\n", "b;\n", [_plain(Severity.CRITICAL)], "Manual", strategy=ResolutionStrategyType.USER_GUIDED
  )
  assert not result.success
  assert result.confidence == "low"
  assert result.code == "b;\n"


def test_failing_fix_leaves_conflict_remaining():
  def explode(code, conflict):
    raise RuntimeError("boom")

  register_fix("explode", explode)
  conflict = Conflict(
    type=ConflictType.SEMANTIC_CONFLICT, severity=Severity.CRITICAL, description="c", auto_fixable=True, fix="explode"
  )
  result = IntelligentResolver().resolve("a;\n", "b;\n", [conflict], "Broken")
  assert not result.success
  assert result.remaining_conflicts == [conflict]
  assert "boom" in result.warnings[0]
  unregister_fix("explode")


def test_fix_producing_invalid_syntax_fails():
  register_fix("garble", lambda code, conflict: code + "const = ;\n")
  conflict = Conflict(type=ConflictType.SEMANTIC_CONFLICT, description="c", auto_fixable=True, fix="garble")
  result = IntelligentResolver().resolve("a;\n", "b;\n", [conflict], "Garbled")
  assert not result.success
  assert any("invalid syntax" in w for w in result.warnings)


def test_render_markdown():
  result = IntelligentResolver().resolve("a;\n", "b;\n", [_plain()], "Merge")
  text = render_markdown(result)
  assert text.startswith("## Conflict Resolution Report")
  assert "### Remaining Conflicts" in text
  assert "overlapping_edit" in text
