"""
neurolint Package.

A layered transformation engine for JavaScript, TypeScript and JSX sources.
Independent fix passes run in sequence over one file, guarded by contracts,
a syntax gate, cross-pass conflict detection and snapshot rollback.

Usage
-----

.. code-block:: python

    import neurolint

    report = neurolint.run("<img src={x} />", enabled_pass_ids=[4])
    print(report.final_code)
    # <img src={x} alt="" />

    for outcome in report.outcomes:
        print(outcome.name, outcome.status)
"""

from typing import Any, Mapping, Optional, Sequence, Union

from neurolint.config import RuntimeConfig
from neurolint.core.orchestrator import CancellationToken, PipelineOrchestrator, run
from neurolint.core.report import PassOutcome, PipelineReport

__version__ = "0.1.0"


def fix(
  source: str,
  enabled_pass_ids: Optional[Sequence[int]] = None,
  options: Union[RuntimeConfig, Mapping[str, Any], None] = None,
) -> str:
  """
  Transforms ``source`` and returns only the final code.

  Args:
      source: Program text.
      enabled_pass_ids: Passes to run, all when None.
      options: A RuntimeConfig or a mapping of its fields.

  Returns:
      str: The transformed source.
  """
  return run(source, enabled_pass_ids=enabled_pass_ids, options=options).final_code


__all__ = [
  "CancellationToken",
  "PassOutcome",
  "PipelineOrchestrator",
  "PipelineReport",
  "RuntimeConfig",
  "fix",
  "run",
  "__version__",
]
