"""
Tests for console redirection and logging helpers.
"""

from rich.console import Console

from neurolint.utils.console import get_console, log_success, log_warning, pass_label, reset_console, set_console


def test_log_output_follows_console():
  recording = Console(record=True, width=120)
  set_console(recording)
  try:
    log_warning("Snapshot restore failed")
    log_success("Processed 3 file(s)")
    assert get_console() is recording
    text = recording.export_text()
    assert "Snapshot restore failed" in text
    assert "Processed 3 file(s)" in text
  finally:
    reset_console()
  assert get_console() is not recording


def test_pass_label_escapes_name():
  assert pass_label(3, "Components") == "[pass]Pass 3 (Components)[/pass]"
  assert "\\[x]" in pass_label(9, "[x]")
