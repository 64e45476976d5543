from __future__ import annotations

import json
import os
import time
from pathlib import Path

import pytest

from issuesync import lock as lock_module
from issuesync.errors import LockTimeout
from issuesync.lock import LOCK_FILE_NAME, ProcessLock, acquire, read_lock_info, release

DEAD_PID = 999_999_999


def _write_marker(directory: Path, payload: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    marker = directory / LOCK_FILE_NAME
    marker.write_text(payload, encoding="utf-8")
    return marker


def test_acquire_writes_marker_and_release_removes_it(tmp_path: Path) -> None:
    held = acquire(tmp_path)
    marker = tmp_path / LOCK_FILE_NAME
    info = read_lock_info(marker)
    assert info is not None
    assert info.pid == os.getpid()
    assert info.token
    release(held)
    assert not marker.exists()


def test_release_is_idempotent_and_accepts_none(tmp_path: Path) -> None:
    held = acquire(tmp_path)
    release(held)
    release(held)
    release(None)
    assert held.released


def test_second_acquire_times_out_while_first_is_held(tmp_path: Path) -> None:
    with acquire(tmp_path):
        started = time.monotonic()
        with pytest.raises(LockTimeout) as excinfo:
            ProcessLock.acquire(tmp_path, timeout=0.2, poll_interval=0.05)
        assert time.monotonic() - started >= 0.2
        assert excinfo.value.holder_pid == os.getpid()
    # free again once released
    release(acquire(tmp_path, timeout=0))


def test_second_acquire_succeeds_when_first_releases_in_time(tmp_path: Path) -> None:
    first = acquire(tmp_path)
    sleeps: list[float] = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        first.release()

    second = ProcessLock.acquire(tmp_path, timeout=5, poll_interval=0.01, sleep=sleep)
    assert sleeps == [0.01]
    second.release()


def test_stale_marker_from_dead_process_is_recovered(tmp_path: Path) -> None:
    _write_marker(tmp_path, json.dumps({"pid": DEAD_PID, "created_at": "x", "token": "old"}))
    held = ProcessLock.acquire(tmp_path, timeout=0)
    info = read_lock_info(tmp_path / LOCK_FILE_NAME)
    assert info is not None and info.pid == os.getpid()
    held.release()


def test_fresh_corrupt_marker_is_respected(tmp_path: Path) -> None:
    _write_marker(tmp_path, "{half-written")
    with pytest.raises(LockTimeout):
        ProcessLock.acquire(tmp_path, timeout=0)
    assert (tmp_path / LOCK_FILE_NAME).read_text(encoding="utf-8") == "{half-written"


def test_old_corrupt_marker_is_removed(tmp_path: Path) -> None:
    marker = _write_marker(tmp_path, "not json")
    old = time.time() - 60
    os.utime(marker, (old, old))
    held = ProcessLock.acquire(tmp_path, timeout=0)
    assert read_lock_info(marker) == held.info
    held.release()


def test_release_leaves_marker_taken_over_by_another_run(tmp_path: Path) -> None:
    held = acquire(tmp_path)
    marker = tmp_path / LOCK_FILE_NAME
    marker.write_text(
        json.dumps({"pid": os.getpid(), "created_at": "later", "token": "someone-else"}),
        encoding="utf-8",
    )
    held.release()
    assert marker.exists()


def test_liveness_probe(monkeypatch: pytest.MonkeyPatch) -> None:
    assert lock_module.is_process_alive(os.getpid())
    assert not lock_module.is_process_alive(0)
    monkeypatch.setattr(lock_module.psutil, "pid_exists", lambda pid: False)
    assert not lock_module.is_process_alive(os.getpid())


def test_marker_released_before_reread_is_retried_without_removal(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_create = lock_module._try_create
    attempts: list[int] = []
    removals: list[object] = []

    def create(path: Path, info: lock_module.LockInfo) -> bool:
        attempts.append(info.pid)
        # First attempt loses to a holder that is gone again by the re-read.
        return len(attempts) > 1 and real_create(path, info)

    monkeypatch.setattr(lock_module, "_try_create", create)
    monkeypatch.setattr(lock_module, "_remove_if_unchanged", lambda path, expected: removals.append(expected))
    sleeps: list[float] = []

    held = ProcessLock.acquire(tmp_path, timeout=0, sleep=sleeps.append)

    assert len(attempts) == 2
    assert removals == []
    assert sleeps == []
    held.release()


def test_missing_marker_is_not_treated_as_corrupt(tmp_path: Path) -> None:
    marker = tmp_path / LOCK_FILE_NAME
    assert lock_module._read_marker(marker) == (False, None)
    _write_marker(tmp_path, "{half-written")
    assert lock_module._read_marker(marker) == (True, None)
    lock_module._remove_if_unchanged(tmp_path / "absent.json", None)
    assert not (tmp_path / "absent.json").exists()
