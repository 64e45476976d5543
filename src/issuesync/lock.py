"""Directory-scoped process lock for the local issue store.

The lock is a ``lock.json`` marker created with ``O_CREAT | O_EXCL`` and
holding the owner's pid, a creation timestamp and a random token.  A marker
left behind by a dead process is removed and acquisition retried; a live
holder is polled until the timeout elapses.
"""

from __future__ import annotations

import json
import os
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType
from typing import Any

import psutil

from .errors import LockTimeout
from .logging import get_logger

LOCK_FILE_NAME = "lock.json"
DEFAULT_TIMEOUT = 15.0
POLL_INTERVAL = 0.1
# An unreadable marker younger than this may still be mid-write by its owner.
CORRUPT_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class LockInfo:
    pid: int
    created_at: str
    token: str = ""

    def to_json(self) -> str:
        return json.dumps({"pid": self.pid, "created_at": self.created_at, "token": self.token})


def is_process_alive(pid: int) -> bool:
    """Signal-0 style liveness probe; EPERM counts as alive."""
    if pid <= 0:
        return False
    return bool(psutil.pid_exists(pid))


def _read_marker(path: Path) -> tuple[bool, LockInfo | None]:
    """``(exists, info)``; an unparseable marker reads as ``(True, None)``."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return False, None
    except (OSError, UnicodeDecodeError):
        return True, None
    return True, _parse_lock_info(text)


def read_lock_info(path: Path) -> LockInfo | None:
    """Parse a marker; ``None`` when it is missing, unreadable or malformed."""
    return _read_marker(path)[1]


def _parse_lock_info(text: str) -> LockInfo | None:
    try:
        raw: Any = json.loads(text)
    except ValueError:
        return None
    if not isinstance(raw, dict):
        return None
    pid = raw.get("pid")
    if not isinstance(pid, int) or isinstance(pid, bool):
        return None
    return LockInfo(pid=pid, created_at=str(raw.get("created_at") or ""), token=str(raw.get("token") or ""))


class ProcessLock:
    """A held lock; release it explicitly or use it as a context manager."""

    def __init__(self, path: Path, info: LockInfo):
        self.path = path
        self.info = info
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @classmethod
    def acquire(
        cls,
        directory: str | Path,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> ProcessLock:
        path = Path(directory) / LOCK_FILE_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        logger = get_logger()
        deadline = clock() + max(0.0, timeout)
        holder: LockInfo | None = None
        while True:
            info = LockInfo(
                pid=os.getpid(),
                created_at=datetime.now(timezone.utc).isoformat(),
                token=secrets.token_hex(8),
            )
            if _try_create(path, info):
                logger.debug("lock acquired", path=str(path), pid=info.pid)
                return cls(path, info)
            exists, holder = _read_marker(path)
            if not exists:
                # Released between our create attempt and the re-read.
                continue
            if holder is None:
                if _corrupt_marker_expired(path):
                    logger.warning("removing unreadable lock marker", path=str(path))
                    _remove_if_unchanged(path, None)
                    continue
            elif not is_process_alive(holder.pid):
                logger.warning("removing stale lock", path=str(path), holder_pid=holder.pid)
                _remove_if_unchanged(path, holder)
                continue
            if clock() >= deadline:
                raise LockTimeout(str(path), timeout, holder.pid if holder else None)
            sleep(poll_interval)

    def release(self) -> None:
        """Remove the marker if it is still ours; repeated calls are no-ops."""
        if self._released:
            return
        self._released = True
        current = read_lock_info(self.path)
        if current is None:
            return
        if current.pid != self.info.pid or current.token != self.info.token:
            get_logger().warning(
                "lock owned by another run; leaving it in place",
                path=str(self.path),
                holder_pid=current.pid,
            )
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> ProcessLock:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def _try_create(path: Path, info: LockInfo) -> bool:
    try:
        fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(info.to_json())
        handle.flush()
        os.fsync(handle.fileno())
    return True


def _corrupt_marker_expired(path: Path) -> bool:
    try:
        age = time.time() - path.stat().st_mtime
    except FileNotFoundError:
        return True
    return age >= CORRUPT_GRACE_SECONDS


def _remove_if_unchanged(path: Path, expected: LockInfo | None) -> None:
    # Re-read right before unlinking so a marker freshly recreated by
    # another process is left alone.
    exists, current = _read_marker(path)
    if not exists or current != expected:
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def acquire(
    directory: str | Path,
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
) -> ProcessLock:
    return ProcessLock.acquire(directory, timeout, poll_interval)


def release(lock: ProcessLock | None) -> None:
    if lock is not None:
        lock.release()


__all__ = [
    "DEFAULT_TIMEOUT",
    "LOCK_FILE_NAME",
    "LockInfo",
    "POLL_INTERVAL",
    "ProcessLock",
    "acquire",
    "is_process_alive",
    "read_lock_info",
    "release",
]
