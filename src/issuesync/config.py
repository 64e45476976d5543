from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import IssueSyncError
from .lock import DEFAULT_TIMEOUT, POLL_INTERVAL

CONFIG_FILE_NAME = "config.yaml"
DEFAULT_TRUNCATE_BODY_DIFF = 120


class ConfigError(IssueSyncError, RuntimeError):
    pass


@dataclass
class SyncConfig:
    owner: str | None = None
    repo: str | None = None
    lock_timeout_seconds: float = DEFAULT_TIMEOUT
    lock_poll_interval_seconds: float = POLL_INTERVAL
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # Environment authentication configuration
    env_auth_load_dotenv: bool = True
    env_auth_dotenv_path: str | None = None
    truncate_body_diff: int = DEFAULT_TRUNCATE_BODY_DIFF
    source_file: Path | None = None

    @property
    def full_repo(self) -> str | None:
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return None

    def set_repository(self, value: str) -> None:
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ConfigError(f"Repository must look like owner/repo, got {value!r}")
        self.owner, self.repo = owner, name


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith("$"):
        return os.getenv(value[1:], value)  # Fallback to original if not found
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return cast(dict[str, Any], value)


def _number(value: Any, key: str, kind: type[int] | type[float]) -> Any:
    try:
        result = kind(_resolve_env_var(value))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Config value {key} must be numeric, got {value!r}") from exc
    if result < 0:
        raise ConfigError(f"Config value {key} must not be negative")
    return result


def load_config(path: str | Path) -> SyncConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        raw_any: Any = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid configuration in {p}: {exc}") from exc
    if not isinstance(raw_any, dict):
        raise ConfigError(f"Configuration in {p} must be a mapping")
    raw = cast(dict[str, Any], raw_any)
    repository = _section(raw, "repository")
    lock = _section(raw, "lock")
    logging_config = _section(raw, "logging")
    env_auth = _section(raw, "environment")
    behavior = _section(raw, "behavior")

    owner = _resolve_env_var(repository.get("owner"))
    repo = _resolve_env_var(repository.get("repo"))
    return SyncConfig(
        owner=str(owner) if owner else None,
        repo=str(repo) if repo else None,
        lock_timeout_seconds=_number(
            lock.get("timeout_seconds", DEFAULT_TIMEOUT), "lock.timeout_seconds", float
        ),
        lock_poll_interval_seconds=_number(
            lock.get("poll_interval_seconds", POLL_INTERVAL), "lock.poll_interval_seconds", float
        ),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "INFO")),
        env_auth_load_dotenv=bool(env_auth.get("load_dotenv", True)),
        env_auth_dotenv_path=_resolve_env_var(env_auth.get("dotenv_path")),
        truncate_body_diff=_number(
            behavior.get("truncate_body_diff", DEFAULT_TRUNCATE_BODY_DIFF),
            "behavior.truncate_body_diff",
            int,
        ),
        source_file=p,
    )


def dump_config(cfg: SyncConfig) -> str:
    data: dict[str, Any] = {
        "repository": {"owner": cfg.owner, "repo": cfg.repo},
        "lock": {
            "timeout_seconds": cfg.lock_timeout_seconds,
            "poll_interval_seconds": cfg.lock_poll_interval_seconds,
        },
        "logging": {"json_enabled": cfg.logging_json_enabled, "level": cfg.logging_level},
        "environment": {"load_dotenv": cfg.env_auth_load_dotenv},
        "behavior": {"truncate_body_diff": cfg.truncate_body_diff},
    }
    if cfg.env_auth_dotenv_path:
        data["environment"]["dotenv_path"] = cfg.env_auth_dotenv_path
    return yaml.safe_dump(data, sort_keys=False)


__all__ = ["CONFIG_FILE_NAME", "ConfigError", "SyncConfig", "dump_config", "load_config"]
