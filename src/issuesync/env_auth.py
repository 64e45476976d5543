"""Environment-based authentication for issuesync.

Tokens come from environment variables, optionally seeded from a ``.env``
file.  When a token is present the HTTPS transport is used; otherwise calls
go through the authenticated ``gh`` CLI.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

REST_DISABLED_VAR = "ISSUESYNC_REST_DISABLED"


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    token_vars: tuple[str, ...] = field(
        default=("ISSUESYNC_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN")
    )
    base_dir: Path | None = None


class EnvironmentAuthManager:
    """Resolves credentials through environment variables and .env files."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self._dotenv_loaded = False
        if config.load_dotenv:
            self._load_dotenv()

    @property
    def dotenv_loaded(self) -> bool:
        return self._dotenv_loaded

    def _load_dotenv(self) -> None:
        base = self.config.base_dir or Path.cwd()
        if self.config.dotenv_path:
            candidates = [base / self.config.dotenv_path]
        else:
            candidates = [base / ".env", base / ".env.local"]
        for env_path in candidates:
            if env_path.is_file():
                # Existing environment wins over file contents.
                load_dotenv(str(env_path), override=False)
                self._dotenv_loaded = True
                self.logger.debug(f"Loaded environment variables from {env_path}")
                return

    def get_github_token(self) -> str | None:
        """Get GitHub token from environment variables."""
        for var in self.config.token_vars:
            token = os.getenv(var)
            if token:
                self.logger.debug(f"Found GitHub token in {var}")
                return token
        return None

    def rest_enabled(self) -> bool:
        return os.getenv(REST_DISABLED_VAR) != "1" and self.get_github_token() is not None

    def get_authentication_recommendations(self) -> list[str]:
        """Setup hints shown when no credentials are found."""
        if self.get_github_token():
            return []
        return [
            "Install GitHub CLI and run 'gh auth login'",
            "Or set GITHUB_TOKEN environment variable",
            "Or create .env file with GITHUB_TOKEN=your_token",
        ]


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    """Factory function to create environment authentication manager."""
    if config is None:
        config = EnvAuthConfig()
    return EnvironmentAuthManager(config)


__all__ = [
    "EnvAuthConfig",
    "EnvironmentAuthManager",
    "REST_DISABLED_VAR",
    "create_env_auth_manager",
]
