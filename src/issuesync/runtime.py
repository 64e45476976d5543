"""Runtime helpers for issuesync CLI commands."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .config import CONFIG_FILE_NAME, SyncConfig, load_config
from .errors import IssueSyncError, classify_error
from .logging import get_logger
from .store import LocalStore

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INCOMPLETE = 2


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def config_path_for(args: Any) -> Path:
    explicit = getattr(args, "config", None)
    if explicit:
        return Path(explicit)
    root = Path(getattr(args, "root", None) or ".")
    return LocalStore(root).config_path(CONFIG_FILE_NAME)


def prepare_config(
    args: Any, *, loader: Callable[[Path], SyncConfig] = load_config
) -> SyncConfig | None:
    """Load SyncConfig for the given argparse namespace.

    ``init`` and ``new`` work without a configuration file; every other
    command requires one.
    """
    command = getattr(args, "cmd", None)
    path = config_path_for(args)
    if command in {"init", "new"} and not path.exists():
        return None
    cfg = loader(path)
    repo_override = getattr(args, "repo", None)
    if repo_override:
        cfg.set_repository(repo_override)
    return cfg


def report_failure(exc: BaseException, command: str) -> None:
    from .ux import print_error  # noqa: PLC0415

    info = classify_error(exc)
    get_logger().log_error(
        f"command {command} failed", error=info.message, category=info.category
    )
    print_error(info.message)
    hint = (info.details or {}).get("hint")
    if hint:
        print_error(str(hint))


def execute_command(
    handler: _HandlerCallable, args: Any, cfg: SyncConfig | None, command: str
) -> int:
    """Run a command handler, mapping expected failures to exit code 1."""
    start = time.monotonic()
    try:
        result = handler()
        exit_code = int(result) if result is not None else EXIT_OK
    except IssueSyncError as exc:
        report_failure(exc, command)
        exit_code = EXIT_FATAL
    duration = max(0.0, time.monotonic() - start)
    get_logger().log_performance(
        f"command_{command}", duration * 1000, exit_code=exit_code, configured=cfg is not None
    )
    return exit_code


__all__ = [
    "EXIT_FATAL",
    "EXIT_INCOMPLETE",
    "EXIT_OK",
    "config_path_for",
    "execute_command",
    "prepare_config",
    "report_failure",
]
