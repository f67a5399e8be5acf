import pytest

from neurolint.passes import accessibility
from neurolint.passes.base import PassContext


@pytest.mark.parametrize(
  "code, expected",
  [
    ('const i = <img src="a.png" />;\n', 'const i = <img src="a.png" alt="" />;\n'),
    ('const i = <img src="a.png" alt="Logo" />;\n', 'const i = <img src="a.png" alt="Logo" />;\n'),
    ("const i = <img {...props} />;\n", "const i = <img {...props} />;\n"),
    (
      "const b = <button onClick={go}></button>;\n",
      'const b = <button onClick={go} aria-label="Button"></button>;\n',
    ),
    ("const b = <button onClick={go}>Go</button>;\n", "const b = <button onClick={go}>Go</button>;\n"),
  ],
)
def test_structural_and_textual_agree(run_structural, code, expected):
  assert run_structural(accessibility.structural, code) == expected
  assert accessibility.textual(code, PassContext()) == expected


def test_textual_handles_unclosed_image():
  assert accessibility.textual("<img src={x}>", PassContext()) == '<img src={x} alt="">'


def test_idempotent(run_structural):
  once = run_structural(accessibility.structural, 'const i = <div><img src="a.png" /><button></button></div>;\n')
  assert run_structural(accessibility.structural, once) == once
  assert accessibility.textual(once, PassContext()) == once
