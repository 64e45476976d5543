"""issuesync - keep a directory of markdown issues in sync with GitHub.

High-level public API::

    from issuesync import LocalStore, PushOptions, Reconciler, build_client
    from issuesync.env_auth import create_env_auth_manager

    store = LocalStore(".")
    client = build_client("owner/repo", create_env_auth_manager())
    result = Reconciler(store, client).push([], PushOptions(dry_run=True))
    print(result.planned)

The CLI (``issuesync push``) is a thin layer over the same calls.
"""

from __future__ import annotations

from .config import ConfigError, SyncConfig, load_config
from .errors import (
    ConflictError,
    IssueSyncError,
    LockTimeout,
    MappingError,
    ParseError,
    RemoteError,
)
from .github_issues import IssuesClient, build_client
from .models import Issue, IssueFile
from .orchestrator import PushOptions, PushResult, PushState, Reconciler, push
from .store import LocalStore

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ConflictError",
    "Issue",
    "IssueFile",
    "IssueSyncError",
    "IssuesClient",
    "LocalStore",
    "LockTimeout",
    "MappingError",
    "ParseError",
    "PushOptions",
    "PushResult",
    "PushState",
    "Reconciler",
    "RemoteError",
    "SyncConfig",
    "__version__",
    "build_client",
    "load_config",
    "push",
]
