"""
Static pass-id to contract lookup.

Built-in contracts are loaded from :mod:`neurolint.contracts.catalog` on
first use. Passes without an entry run under ``ALWAYS_PASS``.
"""

from typing import Dict, Optional

from neurolint.contracts.base import TransformationContract

ALWAYS_PASS = TransformationContract(name="always-pass")

_CONTRACTS: Dict[int, TransformationContract] = {}
_LOADED = False


def _ensure_loaded() -> None:
  global _LOADED
  if _LOADED:
    return
  from neurolint.contracts.catalog import BUILTIN_CONTRACTS

  for pass_id, contract in BUILTIN_CONTRACTS.items():
    _CONTRACTS.setdefault(pass_id, contract)
  _LOADED = True


def register_contract(pass_id: int, contract: TransformationContract) -> None:
  """
  Binds ``contract`` to ``pass_id``, replacing any existing binding.

  Args:
      pass_id: Pass ordinal.
      contract: Contract applied around that pass.
  """
  _ensure_loaded()
  _CONTRACTS[pass_id] = contract


def unregister_contract(pass_id: int) -> Optional[TransformationContract]:
  _ensure_loaded()
  return _CONTRACTS.pop(pass_id, None)


def get_contract(pass_id: int) -> TransformationContract:
  """
  Looks up the contract of a pass.

  Returns:
      TransformationContract: The registered contract or ``ALWAYS_PASS``.
  """
  _ensure_loaded()
  return _CONTRACTS.get(pass_id, ALWAYS_PASS)
