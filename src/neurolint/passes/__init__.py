"""
Pass Catalog.

Discovers and registers the built-in passes by importing every module of
this package. Each module registers its descriptor with ``register_pass`` at
import time, so adding a pass means dropping a new module here.
"""

import importlib
import logging
import pkgutil
from pathlib import Path

from neurolint.passes.base import (
  PassContext,
  PassDescriptor,
  PassPlan,
  available_passes,
  get_pass,
  plan_passes,
  register_pass,
  resolve_pass_order,
  unregister_pass,
)

_EXCLUDED_MODULES = {"base", "__init__"}


def _auto_register_passes() -> None:
  pkg_path = str(Path(__file__).parent)

  for _, module_name, _ in pkgutil.iter_modules([pkg_path]):
    if module_name in _EXCLUDED_MODULES:
      continue
    try:
      importlib.import_module(f".{module_name}", package=__name__)
    except Exception as e:
      # Remaining modules still register
      logging.warning(f"Failed to load pass module '{module_name}': {e}. The pass will not be available.")


_auto_register_passes()

__all__ = [
  "PassContext",
  "PassDescriptor",
  "PassPlan",
  "available_passes",
  "get_pass",
  "plan_passes",
  "register_pass",
  "resolve_pass_order",
  "unregister_pass",
]
