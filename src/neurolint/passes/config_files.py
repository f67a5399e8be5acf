"""
Pass 1: Configuration.

Modernizes project configuration files. Works on text only, since the inputs
are JSON documents or CommonJS config modules:

- ``tsconfig.json``: ES2022 target and modern compiler defaults.
- ``package.json``: default ``lint`` and ``type-check`` scripts.
- ``next.config.js``: removes the deprecated ``experimental.appDir`` flag.
"""

import json
import re
from pathlib import Path

from neurolint.passes.base import PassContext, PassDescriptor, register_pass

TSCONFIG_DEFAULTS = {
  "lib": ["dom", "dom.iterable", "es6", "ES2022"],
  "downlevelIteration": True,
  "allowSyntheticDefaultImports": True,
  "esModuleInterop": True,
  "forceConsistentCasingInFileNames": True,
  "skipLibCheck": True,
}
PACKAGE_SCRIPTS = {
  "lint": "next lint",
  "type-check": "tsc --noEmit",
}

_APP_DIR = re.compile(r"appDir:\s*true,?\s*")
_EMPTY_EXPERIMENTAL = re.compile(r"experimental:\s*\{\s*\},?\s*")


def _load_json(code: str):
  try:
    data = json.loads(code)
  except ValueError:
    return None
  return data if isinstance(data, dict) else None


def _dump_json(data: dict, original: str) -> str:
  text = json.dumps(data, indent=2)
  return text + "\n" if original.endswith("\n") else text


def fix_tsconfig(code: str) -> str:
  data = _load_json(code)
  if data is None:
    return code
  options = data.setdefault("compilerOptions", {})
  if not isinstance(options, dict):
    return code
  options["target"] = "ES2022"
  for key, value in TSCONFIG_DEFAULTS.items():
    options.setdefault(key, value)
  return _dump_json(data, code)


def fix_package_json(code: str) -> str:
  data = _load_json(code)
  if data is None:
    return code
  scripts = data.setdefault("scripts", {})
  if not isinstance(scripts, dict):
    return code
  for key, value in PACKAGE_SCRIPTS.items():
    scripts.setdefault(key, value)
  return _dump_json(data, code)


def fix_next_config(code: str) -> str:
  fixed = _APP_DIR.sub("", code)
  return _EMPTY_EXPERIMENTAL.sub("", fixed)


def transform(code: str, ctx: PassContext) -> str:
  """
  Dispatches on the file name, falling back to content sniffing.
  """
  name = Path(ctx.file_path).name if ctx.file_path else ""

  if name == "tsconfig.json" or (not name and '"compilerOptions"' in code):
    return fix_tsconfig(code)
  if name == "package.json" or (not name and '"scripts"' in code and '"dependencies"' in code):
    return fix_package_json(code)
  if name.startswith("next.config") or (not name and "module.exports" in code and "nextConfig" in code):
    return fix_next_config(code)
  return code


register_pass(
  PassDescriptor(
    id=1,
    name="Configuration",
    description="Modernize tsconfig, package.json and next.config settings",
    textual=transform,
  )
)
