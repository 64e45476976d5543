from pathlib import Path

import pytest

from issuesync.env_auth import (
    REST_DISABLED_VAR,
    EnvAuthConfig,
    EnvironmentAuthManager,
    create_env_auth_manager,
)

TOKEN_VARS = ("ISSUESYNC_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN")


@pytest.fixture(autouse=True)
def _no_tokens(monkeypatch):
    # setenv first so values loaded from .env files are undone afterwards
    for var in (*TOKEN_VARS, REST_DISABLED_VAR):
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


def test_env_auth_config_defaults():
    config = EnvAuthConfig()

    assert config.load_dotenv is True
    assert config.dotenv_path is None
    assert config.token_vars == TOKEN_VARS


def test_no_token(monkeypatch):
    manager = EnvironmentAuthManager(EnvAuthConfig(load_dotenv=False))

    assert manager.get_github_token() is None
    assert not manager.rest_enabled()
    assert any("gh auth login" in hint for hint in manager.get_authentication_recommendations())


def test_token_precedence(monkeypatch):
    monkeypatch.setenv("GH_TOKEN", "from-gh")
    monkeypatch.setenv("GITHUB_TOKEN", "from-github")
    manager = EnvironmentAuthManager(EnvAuthConfig(load_dotenv=False))

    assert manager.get_github_token() == "from-github"
    monkeypatch.setenv("ISSUESYNC_GITHUB_TOKEN", "dedicated")
    assert manager.get_github_token() == "dedicated"
    assert manager.get_authentication_recommendations() == []


def test_rest_can_be_disabled(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "tkn")
    manager = EnvironmentAuthManager(EnvAuthConfig(load_dotenv=False))
    assert manager.rest_enabled()

    monkeypatch.setenv(REST_DISABLED_VAR, "1")
    assert not manager.rest_enabled()


def test_dotenv_file_is_loaded_from_base_dir(tmp_path: Path, monkeypatch):
    (tmp_path / ".env").write_text("GH_TOKEN=from-dotenv\n", encoding="utf-8")

    manager = create_env_auth_manager(EnvAuthConfig(base_dir=tmp_path))

    assert manager.dotenv_loaded
    assert manager.get_github_token() == "from-dotenv"


def test_existing_environment_wins_over_dotenv(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("GH_TOKEN", "from-shell")
    (tmp_path / "custom.env").write_text("GH_TOKEN=from-dotenv\n", encoding="utf-8")

    manager = create_env_auth_manager(EnvAuthConfig(base_dir=tmp_path, dotenv_path="custom.env"))

    assert manager.dotenv_loaded
    assert manager.get_github_token() == "from-shell"


def test_missing_dotenv_is_ignored(tmp_path: Path):
    manager = create_env_auth_manager(EnvAuthConfig(base_dir=tmp_path))

    assert not manager.dotenv_loaded
