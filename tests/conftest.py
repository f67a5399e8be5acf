"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- Registry isolation so tests that register ad-hoc passes, contracts or
  resolver fixes do not leak into each other.
- A runner for structural pass bodies.
"""

import sys
from pathlib import Path

import pytest

# Add src to path so we can import 'neurolint' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import neurolint.passes  # noqa: E402
from neurolint.core.parser import generate, parse  # noqa: E402
from neurolint.contracts import registry as contract_registry  # noqa: E402
from neurolint.passes.base import _PASS_REGISTRY, PassContext  # noqa: E402
from neurolint.resolution.resolver import _FIXES  # noqa: E402


@pytest.fixture(autouse=True)
def isolate_registries():
  """
  Restores the pass, contract and fix registries after each test.
  """
  contract_registry.get_contract(0)  # force the built-in contracts to load
  passes = _PASS_REGISTRY.copy()
  contracts = contract_registry._CONTRACTS.copy()
  fixes = _FIXES.copy()
  yield
  _PASS_REGISTRY.clear()
  _PASS_REGISTRY.update(passes)
  contract_registry._CONTRACTS.clear()
  contract_registry._CONTRACTS.update(contracts)
  _FIXES.clear()
  _FIXES.update(fixes)


@pytest.fixture
def run_structural():
  """
  Runs a structural pass body on fresh source and renders the result.
  """

  def _run(fn, code, ctx=None):
    tree = parse(code)
    fn(tree, ctx or PassContext())
    return generate(tree)

  return _run
