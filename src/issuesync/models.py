"""In-memory issue records plus normalization and equality rules.

Cross-issue references (``parent``, ``blocked_by``, ``blocks``) are kept as
plain identifier strings, never object references, so renumbering an issue
is a string rewrite over the record set.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

PROVISIONAL_PREFIX = "T"

STATE_OPEN = "open"
STATE_CLOSED = "closed"

SCALAR_FIELDS: tuple[str, ...] = ("title", "body", "milestone", "issue_type")
SET_FIELDS: tuple[str, ...] = ("labels", "assignees", "projects", "blocked_by", "blocks")
COMPARED_FIELDS: tuple[str, ...] = (
    "number",
    "title",
    "body",
    "labels",
    "assignees",
    "milestone",
    "state",
    "state_reason",
    "issue_type",
    "projects",
    "parent",
    "blocked_by",
    "blocks",
    "synced_at",
)
# Fields GitHub does not report authoritatively for every token.
CONFLICT_EXEMPT_FIELDS: frozenset[str] = frozenset({"blocks", "projects"})


def is_provisional(identifier: str | None) -> bool:
    return bool(identifier) and str(identifier).startswith(PROVISIONAL_PREFIX)


def normalize_body(body: str | None) -> str:
    """CRLF to LF, no leading blank lines, exactly one trailing newline."""
    if not body:
        return ""
    text = body.replace("\r\n", "\n").replace("\r", "\n").lstrip("\n")
    text = text.rstrip("\n")
    return text + "\n" if text else ""


def normalize_set(values: Iterable[Any] | None) -> list[str]:
    if not values:
        return []
    cleaned = {str(v).strip() for v in values if v is not None}
    cleaned.discard("")
    return sorted(cleaned)


def normalize_state_reason(reason: str | None) -> str | None:
    if not reason:
        return None
    value = str(reason).strip().lower().replace("_", " ")
    return value or None


def _normalize_ref(ref: Any) -> str | None:
    if ref is None:
        return None
    value = str(ref).strip()
    return value or None


@dataclass
class Issue:
    number: str
    title: str = ""
    body: str = ""
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    milestone: str = ""
    state: str = STATE_OPEN
    state_reason: str | None = None
    issue_type: str = ""
    projects: list[str] = field(default_factory=list)
    parent: str | None = None
    blocked_by: list[str] = field(default_factory=list)
    blocks: list[str] = field(default_factory=list)
    synced_at: datetime | None = None

    @property
    def is_provisional(self) -> bool:
        return is_provisional(self.number)

    @property
    def is_closed(self) -> bool:
        return self.state == STATE_CLOSED

    def copy(self, **changes: Any) -> Issue:
        clone = dataclasses.replace(self, **changes)
        for name in SET_FIELDS:
            if name not in changes:
                setattr(clone, name, list(getattr(self, name)))
        return clone

    def references(self) -> list[str]:
        refs = list(self.blocked_by) + list(self.blocks)
        if self.parent:
            refs.insert(0, self.parent)
        return refs


def normalize(issue: Issue) -> Issue:
    """Return a canonical copy of ``issue``; the input is not modified."""
    state = (issue.state or STATE_OPEN).strip().lower()
    return Issue(
        number=str(issue.number).strip(),
        title=(issue.title or "").strip(),
        body=normalize_body(issue.body),
        labels=normalize_set(issue.labels),
        assignees=normalize_set(issue.assignees),
        milestone=(issue.milestone or "").strip(),
        state=state if state in (STATE_OPEN, STATE_CLOSED) else STATE_OPEN,
        state_reason=normalize_state_reason(issue.state_reason),
        issue_type=(issue.issue_type or "").strip(),
        projects=normalize_set(issue.projects),
        parent=_normalize_ref(issue.parent),
        blocked_by=normalize_set(issue.blocked_by),
        blocks=normalize_set(issue.blocks),
        synced_at=issue.synced_at,
    )


def field_value(issue: Issue, name: str) -> Any:
    """Comparable value of one field of an already normalized issue."""
    if name == "state_reason" and issue.state != STATE_CLOSED:
        # GitHub reports "reopened" on open issues; only closed reasons matter.
        return None
    value = getattr(issue, name)
    if isinstance(value, list):
        return tuple(value)
    return value


def issues_equal(a: Issue, b: Issue, ignoring: Iterable[str] = ("synced_at",)) -> bool:
    skip = set(ignoring)
    na, nb = normalize(a), normalize(b)
    return all(
        field_value(na, name) == field_value(nb, name)
        for name in COMPARED_FIELDS
        if name not in skip
    )


def utc_now() -> datetime:
    """Second-resolution UTC timestamp used for ``synced_at`` stamps."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def equal_ignoring_synced_at(a: Issue, b: Issue) -> bool:
    return issues_equal(a, b, ignoring=("synced_at",))


def equal_for_conflict_check(a: Issue, b: Issue) -> bool:
    return issues_equal(a, b, ignoring=("synced_at", *sorted(CONFLICT_EXEMPT_FIELDS)))


@dataclass
class IssueFile:
    """An issue together with the file it was loaded from."""

    path: Path
    issue: Issue

    @property
    def number(self) -> str:
        return self.issue.number

    @property
    def state(self) -> str:
        return self.issue.state


__all__ = [
    "COMPARED_FIELDS",
    "CONFLICT_EXEMPT_FIELDS",
    "Issue",
    "IssueFile",
    "PROVISIONAL_PREFIX",
    "SCALAR_FIELDS",
    "SET_FIELDS",
    "STATE_CLOSED",
    "STATE_OPEN",
    "equal_for_conflict_check",
    "equal_ignoring_synced_at",
    "field_value",
    "is_provisional",
    "issues_equal",
    "normalize",
    "normalize_body",
    "normalize_set",
    "normalize_state_reason",
    "utc_now",
]
