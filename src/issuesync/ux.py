"""Terminal output helpers for the CLI - no external dependencies."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable, Mapping, Sequence
from typing import TextIO


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


def _supports_color(stream: TextIO | None = None) -> bool:
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR") or os.environ.get("TERM") == "dumb":
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    """Apply color to text if the terminal supports it."""
    if not _supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


def _print_marked(mark: str, color: str, message: str, stream: TextIO) -> None:
    print(colorize(mark, color, bold=True, stream=stream) + " " + message, file=stream)


def print_success(message: str, stream: TextIO | None = None) -> None:
    _print_marked("✓", Colors.GREEN, message, stream or sys.stdout)


def print_error(message: str, stream: TextIO | None = None) -> None:
    _print_marked("✗", Colors.RED, message, stream or sys.stderr)


def print_warning(message: str, stream: TextIO | None = None) -> None:
    _print_marked("⚠", Colors.YELLOW, message, stream or sys.stdout)


def print_info(message: str, stream: TextIO | None = None) -> None:
    _print_marked("ℹ", Colors.BLUE, message, stream or sys.stdout)


def print_summary_box(
    title: str, items: Sequence[tuple[str, str | int]], stream: TextIO | None = None
) -> None:
    """Print a boxed key/value summary; non-zero counts are highlighted."""
    stream = stream or sys.stdout
    width = max((len(k) for k, _ in items), default=0)
    rule = colorize("─" * 60, Colors.DIM, stream=stream)
    print(colorize(f"\n{title}", Colors.CYAN, bold=True, stream=stream), file=stream)
    print(rule, file=stream)
    for key, value in items:
        shown = str(value)
        if isinstance(value, int) and value > 0:
            shown = colorize(shown, Colors.GREEN, bold=True, stream=stream)
        print(f"  {key.ljust(width)}  {shown}", file=stream)
    print(rule, file=stream)


def print_operation_status(
    operation: str, status: str, details: str = "", stream: TextIO | None = None
) -> None:
    """Print ``operation: status (details)`` with status-dependent coloring."""
    stream = stream or sys.stdout
    lowered = status.lower()
    if lowered in ("success", "ok", "done"):
        icon, color = "✓", Colors.GREEN
    elif lowered in ("failed", "error", "conflict"):
        icon, color = "✗", Colors.RED
    elif lowered in ("skipped", "unchanged"):
        icon, color = "○", Colors.YELLOW
    else:
        icon, color = "•", Colors.BLUE
    message = (
        f"{colorize(icon, color, bold=True, stream=stream)} "
        f"{colorize(operation, Colors.BOLD, stream=stream)}: "
        f"{colorize(status, color, stream=stream)}"
    )
    if details:
        message += f" {colorize(f'({details})', Colors.DIM, stream=stream)}"
    print(message, file=stream)


def print_lines(lines: Iterable[str], indent: str = "  ", stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    for line in lines:
        print(f"{indent}{line}", file=stream)


def print_issue_problems(
    heading: str, problems: Mapping[str, object], stream: TextIO | None = None
) -> None:
    """List per-issue problems (conflicting fields or failure messages)."""
    if not problems:
        return
    stream = stream or sys.stdout
    print(colorize(heading, Colors.RED, bold=True, stream=stream), file=stream)
    for number, detail in problems.items():
        if isinstance(detail, (list, tuple)):
            detail = ", ".join(str(d) for d in detail)
        print(f"  #{number}: {detail}", file=stream)


__all__ = [
    "Colors",
    "colorize",
    "print_error",
    "print_info",
    "print_issue_problems",
    "print_lines",
    "print_operation_status",
    "print_success",
    "print_summary_box",
    "print_warning",
]
