"""
Console and Logging Utilities.

Pipeline diagnostics go through the standard ``logging`` library and are
rendered by ``rich``. Every module imports the same ``console`` proxy; the
Rich backend behind it can be swapped with ``set_console`` (a recording
console in tests, a shared console in an embedding application) and the
root ``RichHandler`` follows the swap.

Attributes:
    console (_ConsoleProxy): Stable reference to the active Rich Console.
    SUCCESS_LEVEL_NUM (int): Custom logging level between INFO and WARNING.
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

SUCCESS_LEVEL_NUM = 25
logging.addLevelName(SUCCESS_LEVEL_NUM, "SUCCESS")

_LOGGER_NAME = "neurolint"

_THEME = Theme(
  {
    "logging.level.success": "green",
    "pass": "bold blue",
    "warning": "yellow",
    "error": "bold red",
  }
)


def _stderr_console() -> Console:
  return Console(theme=_THEME, stderr=True)


def _install_handler(backend: Console) -> None:
  """
  Replaces any Rich handler on the root logger with one bound to ``backend``.

  The root level is lowered to INFO when it would otherwise hide pipeline
  summaries; stricter application settings are left alone.
  """
  root = logging.getLogger()
  for handler in list(root.handlers):
    if isinstance(handler, RichHandler):
      root.removeHandler(handler)
  root.addHandler(RichHandler(console=backend, show_time=False, show_path=False, markup=True))
  if root.level == logging.NOTSET or root.level > logging.INFO:
    root.setLevel(logging.INFO)


class _ConsoleProxy:
  """
  Forwards attribute access to the active ``rich.console.Console``.
  """

  def __init__(self) -> None:
    self._backend: Console = _stderr_console()
    _install_handler(self._backend)

  @property
  def backend(self) -> Console:
    return self._backend

  def swap(self, backend: Optional[Console] = None) -> None:
    """
    Points the proxy and logging at ``backend`` (a fresh stderr console when None).

    Args:
        backend: Rich console to write to.
    """
    self._backend = backend if backend is not None else _stderr_console()
    _install_handler(self._backend)

  def __getattr__(self, name: str) -> Any:
    return getattr(self._backend, name)


console = _ConsoleProxy()


def set_console(new_console: Console) -> None:
  """
  Redirects console and logging output to ``new_console``.

  Args:
      new_console (Console): The configured Rich console to use globally.
  """
  console.swap(new_console)


def reset_console() -> None:
  console.swap()


def get_console() -> Console:
  return console.backend


def pass_label(pass_id: int, name: str) -> str:
  """
  Markup label for a pass, e.g. ``Pass 3 (Components)`` in the pass style.

  Args:
      pass_id: Numeric pass id.
      name: Human readable pass name.

  Returns:
      str: Rich markup with the name escaped.
  """
  return f"[pass]Pass {pass_id} ({escape(name)})[/pass]"


def _log(level: int, msg: str) -> None:
  logging.getLogger(_LOGGER_NAME).log(level, msg, extra={"markup": True})


def log_info(msg: str) -> None:
  """
  Logs an informational message.

  Args:
      msg (str): The message content. May include rich markup.
  """
  _log(logging.INFO, msg)


def log_success(msg: str) -> None:
  _log(SUCCESS_LEVEL_NUM, msg)


def log_warning(msg: str) -> None:
  """
  Logs a warning message. Untrusted text inside ``msg`` must be escaped.

  Args:
      msg (str): The message content.
  """
  _log(logging.WARNING, msg)


def log_error(msg: str) -> None:
  _log(logging.ERROR, msg)
