"""Error taxonomy & redaction.

Every failure the sync engine raises on purpose derives from
``IssueSyncError`` so the CLI can tell expected failures (exit code 1 with a
short message) from programming errors (traceback).

Public API:
- IssueSyncError and its subclasses
- classify_error(exc) -> ErrorInfo
- redact(text) -> str

Per-record failures (conflicts, remote errors on a single issue) are not
raised through the orchestrator; they are collected on the push result.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"gho_[A-Za-z0-9]{20,40}"),  # OAuth tokens issued to gh
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"(?i)(authorization:\s*(?:bearer|token)\s+)\S+"),
]

_REDACTION_PLACEHOLDER = "<redacted>"

INSUFFICIENT_SCOPE_HINT = "missing 'project' scope - run 'gh auth refresh -s project'"
_SCOPE_MARKERS = (
    "insufficient_scopes",
    "has not been granted the required scopes",
    "missing required scopes",
    "requires the following scopes",
)


class IssueSyncError(Exception):
    """Base class for expected sync failures."""


class LockTimeout(IssueSyncError, TimeoutError):
    """Another run held the store lock for longer than the timeout."""

    def __init__(self, path: str, timeout: float, holder_pid: int | None = None):
        detail = f" (held by pid {holder_pid})" if holder_pid else ""
        super().__init__(f"timed out after {timeout:g}s waiting for lock {path}{detail}")
        self.path = path
        self.timeout = timeout
        self.holder_pid = holder_pid


class ParseError(IssueSyncError, ValueError):
    """A local issue file could not be parsed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path
        self.reason = message


class ConflictError(IssueSyncError):
    """Local and remote edited the same fields differently."""

    def __init__(self, number: str, fields: list[str]):
        super().__init__(f"#{number} conflicts on {', '.join(fields)}")
        self.number = number
        self.fields = fields


class RemoteError(IssueSyncError):
    """The GitHub API (via gh or HTTPS) rejected a request."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        insufficient_scope: bool = False,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.insufficient_scope = insufficient_scope
        self.response_text = response_text


class MappingError(IssueSyncError):
    """A provisional to permanent identifier rewrite could not be persisted."""


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace token-like substrings with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def mentions_insufficient_scope(text: str | None) -> bool:
    low = (text or "").lower()
    return any(marker in low for marker in _SCOPE_MARKERS)


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Typed errors map directly; anything else falls back to keyword sniffing
    of the message (rate limits, network trouble, YAML problems).
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, LockTimeout):
        return ErrorInfo("lock", redact(msg), name, transient=True, details={"path": exc.path})
    if isinstance(exc, ParseError):
        return ErrorInfo("parse", redact(msg), name, details={"path": exc.path})
    if isinstance(exc, ConflictError):
        return ErrorInfo("conflict", redact(msg), name, details={"fields": exc.fields})
    if isinstance(exc, MappingError):
        return ErrorInfo("mapping", redact(msg), name)
    if isinstance(exc, RemoteError) and exc.insufficient_scope:
        return ErrorInfo("github.insufficient_scope", redact(msg), name, details={"hint": INSUFFICIENT_SCOPE_HINT})

    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if any(k in low for k in ("yaml", "scannererror", "parsererror")):
        return ErrorInfo("parse", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "ConflictError",
    "ErrorInfo",
    "INSUFFICIENT_SCOPE_HINT",
    "IssueSyncError",
    "LockTimeout",
    "MappingError",
    "ParseError",
    "RemoteError",
    "classify_error",
    "mentions_insufficient_scope",
    "redact",
]
