"""Tests for UX helpers module."""

from __future__ import annotations

import io

import pytest

from issuesync.ux import (
    Colors,
    colorize,
    print_error,
    print_info,
    print_issue_problems,
    print_lines,
    print_operation_status,
    print_success,
    print_summary_box,
    print_warning,
)


def _tty() -> io.StringIO:
    stream = io.StringIO()
    stream.isatty = lambda: True  # type: ignore[method-assign]
    return stream


def test_colorize_with_tty_support(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.setenv("TERM", "xterm-256color")

    result = colorize("test", Colors.RED, bold=True, stream=_tty())

    assert result == f"{Colors.BOLD}{Colors.RED}test{Colors.RESET}"


def test_colorize_respects_no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")

    assert colorize("test", Colors.RED, bold=True, stream=_tty()) == "test"


def test_colorize_respects_dumb_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.setenv("TERM", "dumb")

    assert colorize("test", Colors.RED, stream=_tty()) == "test"


def test_colorize_no_tty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)

    assert colorize("test", Colors.GREEN, stream=io.StringIO()) == "test"


def test_message_helpers() -> None:
    stream = io.StringIO()

    print_success("done", stream=stream)
    print_error("bad", stream=stream)
    print_warning("careful", stream=stream)
    print_info("fyi", stream=stream)

    assert stream.getvalue().splitlines() == ["✓ done", "✗ bad", "⚠ careful", "ℹ fyi"]


def test_print_error_defaults_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    print_error("bad")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "bad" in captured.err


def test_print_summary_box_aligns_keys() -> None:
    stream = io.StringIO()

    print_summary_box("Push Summary", [("Created", 2), ("Conflicts", 0)], stream=stream)

    lines = stream.getvalue().splitlines()
    assert "Push Summary" in lines[1]
    assert "  Created    2" in lines
    assert "  Conflicts  0" in lines


@pytest.mark.parametrize(
    ("status", "icon"),
    [("success", "✓"), ("failed", "✗"), ("conflict", "✗"), ("skipped", "○"), ("pending", "•")],
)
def test_print_operation_status_icons(status: str, icon: str) -> None:
    stream = io.StringIO()

    print_operation_status("push", status, details="3 issues", stream=stream)

    assert stream.getvalue().strip() == f"{icon} push: {status} (3 issues)"


def test_print_issue_problems() -> None:
    stream = io.StringIO()

    print_issue_problems("Conflicts:", {"5": ["title", "body"], "7": "boom"}, stream=stream)
    print_issue_problems("Nothing:", {}, stream=stream)

    assert stream.getvalue().splitlines() == ["Conflicts:", "  #5: title, body", "  #7: boom"]


def test_print_lines_indents() -> None:
    stream = io.StringIO()

    print_lines(["Would push issue #5"], stream=stream)

    assert stream.getvalue() == "  Would push issue #5\n"
