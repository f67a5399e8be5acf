import pytest

from neurolint.passes import hydration
from neurolint.passes.base import PassContext

GUARD = 'typeof window !== "undefined"'


@pytest.mark.parametrize(
  "code, expected",
  [
    ('localStorage.setItem("k", v);\n', f'{GUARD} && localStorage.setItem("k", v);\n'),
    ('const v = localStorage.getItem("k");\n', f'const v = ({GUARD} ? localStorage.getItem("k") : null);\n'),
    ('  sessionStorage.clear();\n', f'  {GUARD} && sessionStorage.clear();\n'),
  ],
)
def test_guards_added(run_structural, code, expected):
  assert run_structural(hydration.structural, code) == expected
  assert hydration.textual(code, PassContext()) == expected


def test_effect_callbacks_are_left_alone(run_structural):
  code = 'useEffect(() => {\n  localStorage.setItem("k", v);\n}, [v]);\n'
  assert run_structural(hydration.structural, code) == code


def test_already_guarded_code_is_left_alone(run_structural):
  code = 'if (typeof window !== "undefined") {\n  localStorage.removeItem("k");\n}\n'
  assert run_structural(hydration.structural, code) == code


def test_nested_storage_call_wrapped_once(run_structural):
  code = 'const v = localStorage.getItem(sessionStorage.getItem("k"));\n'
  expected = f'const v = ({GUARD} ? localStorage.getItem(sessionStorage.getItem("k")) : null);\n'
  assert run_structural(hydration.structural, code) == expected


def test_idempotent(run_structural):
  code = 'const v = localStorage.getItem("k");\nlocalStorage.setItem("k", v);\n'
  once = run_structural(hydration.structural, code)
  assert run_structural(hydration.structural, once) == once
  assert hydration.textual(once, PassContext()) == once


def test_textual_skips_guarded_blocks_and_effects():
  code = (
    f"{GUARD} && localStorage.setItem('a', '1');\n"
    f"if ({GUARD}) {{\n"
    "  localStorage.removeItem('b');\n"
    "}\n"
    "useEffect(() => {\n"
    "  sessionStorage.clear();\n"
    "}, []);\n"
    "const v = localStorage.getItem('k');\n"
  )
  expected = code.replace(
    "const v = localStorage.getItem('k');", f"const v = ({GUARD} ? localStorage.getItem('k') : null);"
  )
  assert hydration.textual(code, PassContext()) == expected
  assert hydration.textual(expected, PassContext()) == expected


def test_protected_spans_cover_block_bodies():
  code = f"if ({GUARD}) {{ a(); {{ b(); }} }}\nc();\n"
  ((start, end),) = hydration.protected_spans(code)
  assert code[start] == "{"
  assert code[end - 1] == "}"
  assert "c()" not in code[start:end]


@pytest.mark.parametrize(
  "doubled, single",
  [
    (
      f'{GUARD} && {GUARD} && localStorage.setItem("k", v);\n',
      f'{GUARD} && localStorage.setItem("k", v);\n',
    ),
    (
      f'const v = ({GUARD} ? ({GUARD} ? localStorage.getItem("k") : null) : null);\n',
      f'const v = ({GUARD} ? localStorage.getItem("k") : null);\n',
    ),
    (
      f'if ({GUARD}) {{\n  {GUARD} && localStorage.removeItem("k");\n}}\n',
      f'if ({GUARD}) {{\n  localStorage.removeItem("k");\n}}\n',
    ),
  ],
)
def test_collapse_duplicate_guards(doubled, single):
  assert hydration.collapse_duplicate_guards(doubled) == single


def test_collapse_keeps_user_guards():
  code = f"{GUARD} && localStorage.setItem('a', '1');\nconst v = ({GUARD} ? localStorage.getItem('k') : null);\n"
  assert hydration.collapse_duplicate_guards(code) == code
