from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from issuesync.config import ConfigError, SyncConfig
from issuesync.errors import RemoteError
from issuesync.runtime import (
    EXIT_FATAL,
    EXIT_OK,
    config_path_for,
    execute_command,
    prepare_config,
)


def _args(**kwargs) -> argparse.Namespace:
    defaults = {"cmd": "push", "root": ".", "config": None, "repo": None}
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def test_config_path_defaults_under_sync_dir(tmp_path: Path):
    assert config_path_for(_args(root=str(tmp_path))) == tmp_path / ".issues" / ".sync" / "config.yaml"
    assert config_path_for(_args(config="custom.yaml")) == Path("custom.yaml")


def test_prepare_config_skips_missing_file_for_local_commands(tmp_path: Path):
    for command in ("init", "new"):
        assert prepare_config(_args(cmd=command, root=str(tmp_path))) is None


def test_prepare_config_requires_file_for_push(tmp_path: Path):
    with pytest.raises(ConfigError):
        prepare_config(_args(root=str(tmp_path)))


def test_prepare_config_applies_repo_override(tmp_path: Path):
    seen: list[Path] = []

    def loader(path: Path) -> SyncConfig:
        seen.append(path)
        return SyncConfig(owner="acme", repo="widgets")

    cfg = prepare_config(_args(root=str(tmp_path), repo="octo/other"), loader=loader)

    assert cfg is not None
    assert cfg.full_repo == "octo/other"
    assert seen == [tmp_path / ".issues" / ".sync" / "config.yaml"]


def test_execute_command_maps_expected_failures(capsys):
    def boom() -> int:
        raise RemoteError("API rate limit exceeded")

    assert execute_command(boom, _args(), None, "push") == EXIT_FATAL
    assert "rate limit" in capsys.readouterr().err


def test_execute_command_returns_handler_code():
    assert execute_command(lambda: None, _args(), None, "new") == EXIT_OK
    assert execute_command(lambda: 2, _args(), None, "push") == 2


def test_execute_command_shows_scope_hint(capsys):
    def denied() -> int:
        raise RemoteError("forbidden", insufficient_scope=True)

    execute_command(denied, _args(), None, "push")

    assert "gh auth refresh -s project" in capsys.readouterr().err


def test_unexpected_errors_propagate():
    def broken() -> int:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        execute_command(broken, _args(), None, "push")
