from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Any

from .models import (
    CONFLICT_EXEMPT_FIELDS,
    SET_FIELDS,
    STATE_CLOSED,
    STATE_OPEN,
    Issue,
    field_value,
    normalize,
)

MAX_BODY_DIFF_LINES = 120

MERGE_FIELDS: tuple[str, ...] = (
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
)
# Edits GitHub accepts in one updateIssue mutation.
BATCHABLE_FIELDS = frozenset({"title", "body", "milestone", "labels", "assignees"})
RELATIONSHIP_FIELDS = frozenset({"parent", "blocked_by", "blocks"})

TRANSITION_CLOSE = "close"
TRANSITION_REOPEN = "reopen"


@dataclass
class IssueChange:
    """Field-level difference between a baseline issue and a candidate."""

    number: str
    scalars: dict[str, Any] = field(default_factory=dict)
    added: dict[str, list[str]] = field(default_factory=dict)
    removed: dict[str, list[str]] = field(default_factory=dict)
    state: str | None = None
    state_reason: str | None = None
    reason_changed: bool = False
    transition: str | None = None

    def changed_fields(self) -> list[str]:
        names = set(self.scalars) | set(self.added) | set(self.removed)
        if self.state is not None:
            names.add("state")
        if self.reason_changed:
            names.add("state_reason")
        return [name for name in MERGE_FIELDS if name in names]

    def is_empty(self) -> bool:
        return not self.changed_fields()

    def touches(self, *names: str) -> bool:
        changed = set(self.changed_fields())
        return any(name in changed for name in names)

    @property
    def has_field_edits(self) -> bool:
        return self.touches(*BATCHABLE_FIELDS)

    @property
    def has_relationship_changes(self) -> bool:
        return self.touches(*RELATIONSHIP_FIELDS)

    @property
    def needs_close(self) -> bool:
        if self.transition == TRANSITION_CLOSE:
            return True
        # Already closed upstream but with a different reason.
        return self.transition is None and self.reason_changed and self.state_reason is not None

    def set_delta(self, name: str) -> tuple[list[str], list[str]]:
        return list(self.added.get(name, [])), list(self.removed.get(name, []))


def compute_changes(base: Issue, candidate: Issue) -> IssueChange:
    """Pure structural diff; a field changes iff its normalized value differs."""
    b, c = normalize(base), normalize(candidate)
    change = IssueChange(number=c.number)
    for name in ("title", "body", "milestone", "issue_type", "parent"):
        if field_value(b, name) != field_value(c, name):
            change.scalars[name] = getattr(c, name)
    for name in SET_FIELDS:
        before, after = set(getattr(b, name)), set(getattr(c, name))
        if before != after:
            if after - before:
                change.added[name] = sorted(after - before)
            if before - after:
                change.removed[name] = sorted(before - after)
    if b.state != c.state:
        change.state = c.state
    if field_value(b, "state_reason") != field_value(c, "state_reason"):
        change.reason_changed = True
        change.state_reason = c.state_reason
    return change


def diff_issue(baseline: Issue, local: Issue) -> IssueChange:
    """``compute_changes`` plus close/reopen classification of state edits."""
    change = compute_changes(baseline, local)
    if change.state == STATE_CLOSED:
        change.transition = TRANSITION_CLOSE
        change.state_reason = normalize(local).state_reason
    elif change.state == STATE_OPEN:
        change.transition = TRANSITION_REOPEN
    return change


@dataclass
class MergeResult:
    merged: Issue
    conflicts: list[str]
    local_changes: IssueChange

    @property
    def ok(self) -> bool:
        return not self.conflicts


def three_way_merge(base: Issue, local: Issue, remote: Issue) -> MergeResult:
    """Merge ``local`` and ``remote`` edits field by field against ``base``.

    ``local_changes`` is what must be sent to GitHub to make the remote
    copy equal the merged result.
    """
    b, lo, re_ = normalize(base), normalize(local), normalize(remote)
    merged = lo.copy()
    conflicts: list[str] = []
    for name in MERGE_FIELDS:
        base_val = field_value(b, name)
        local_val = field_value(lo, name)
        remote_val = field_value(re_, name)
        local_moved = local_val != base_val
        remote_moved = remote_val != base_val
        if local_moved and remote_moved and local_val != remote_val:
            if name not in CONFLICT_EXEMPT_FIELDS:
                conflicts.append(name)
            source = lo
        elif remote_moved and not local_moved:
            source = re_
        elif local_moved:
            source = lo
        else:
            source = b
        value = getattr(source, name)
        setattr(merged, name, list(value) if isinstance(value, list) else value)
    merged = normalize(merged)
    return MergeResult(merged=merged, conflicts=conflicts, local_changes=diff_issue(re_, merged))


def describe_change(
    baseline: Issue, candidate: Issue, max_body_lines: int = MAX_BODY_DIFF_LINES
) -> dict[str, Any]:
    """Human-oriented summary of what changes between two issues."""
    b, c = normalize(baseline), normalize(candidate)
    change = diff_issue(b, c)
    d: dict[str, Any] = {}
    for name in change.changed_fields():
        if name == "body":
            old_body = b.body.splitlines()
            new_body = c.body.splitlines()
            diff_lines = list(difflib.unified_diff(old_body, new_body, lineterm="", n=3))
            if len(diff_lines) > max_body_lines:
                diff_lines = diff_lines[:max_body_lines] + ["... (truncated)"]
            d["body_changed"] = True
            d["body_diff"] = diff_lines
        elif name in SET_FIELDS:
            added, removed = change.set_delta(name)
            d[f"{name}_added"] = added
            d[f"{name}_removed"] = removed
        else:
            d[f"{name}_from"] = getattr(b, name)
            d[f"{name}_to"] = getattr(c, name)
    if change.transition:
        d["transition"] = change.transition
    return d


__all__ = [
    "BATCHABLE_FIELDS",
    "IssueChange",
    "MAX_BODY_DIFF_LINES",
    "MERGE_FIELDS",
    "MergeResult",
    "RELATIONSHIP_FIELDS",
    "TRANSITION_CLOSE",
    "TRANSITION_REOPEN",
    "compute_changes",
    "describe_change",
    "diff_issue",
    "three_way_merge",
]
