import pytest

from neurolint.passes import nextjs
from neurolint.passes.base import PassContext

STATEFUL = "export function A() {\n  const [n] = useState(0);\n  return n;\n}\n"
IMPORT = "import { useState } from 'react';\n"


@pytest.mark.parametrize(
  "code, expected",
  [
    (IMPORT + STATEFUL, "'use client';\n\n" + IMPORT + STATEFUL),
    ("'use client';\n\n" + IMPORT + STATEFUL, "'use client';\n\n" + IMPORT + STATEFUL),
    (IMPORT + "'use client';\n" + STATEFUL, "'use client';\n\n" + IMPORT + STATEFUL),
    ("'use client';\n'use client';\n" + STATEFUL, "'use client';\n\n" + STATEFUL),
    ("const el = <button onClick={go}>Go</button>;\n", "'use client';\n\nconst el = <button onClick={go}>Go</button>;\n"),
    ("window.scrollTo(0, 0);\n", "'use client';\n\nwindow.scrollTo(0, 0);\n"),
  ],
)
def test_client_directive(run_structural, code, expected):
  assert run_structural(nextjs.structural, code) == expected
  assert nextjs.textual(code, PassContext()) == expected


@pytest.mark.parametrize(
  "code",
  [
    "export const a = 1;\n",
    "export const isServer = typeof window === 'undefined';\n",
    "'use server';\n\nexport async function save() { window.x = 1; }\n",
  ],
)
def test_untouched(run_structural, code):
  assert run_structural(nextjs.structural, code) == code


def test_directive_only_file(run_structural):
  assert run_structural(nextjs.structural, "'use client';") == "'use client';\n"


def test_idempotent(run_structural):
  once = run_structural(nextjs.structural, IMPORT + STATEFUL)
  assert run_structural(nextjs.structural, once) == once
  assert nextjs.textual(once, PassContext()) == once
