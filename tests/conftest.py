"""Pytest configuration for issuesync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install, and provides an in-memory stand-in for
the GitHub client so no test touches the network or the `gh` CLI.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

py_path = os.environ.get("PYTHONPATH", "")
parts = [p for p in py_path.split(os.pathsep) if p]
if str(SRC) not in parts:
    parts.insert(0, str(SRC))
    os.environ["PYTHONPATH"] = os.pathsep.join(parts)

import issuesync.logging as sync_logging  # noqa: E402
from issuesync.diffing import IssueChange  # noqa: E402
from issuesync.errors import RemoteError  # noqa: E402
from issuesync.github_issues import (  # noqa: E402
    BatchEditResult,
    RemoteIssueType,
    RemoteLabel,
    RemoteMilestone,
    RemoteProject,
)
from issuesync.models import Issue, is_provisional, normalize  # noqa: E402

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeIssuesClient:
    """In-memory GitHub double mirroring the IssuesClient surface."""

    def __init__(
        self,
        issues: Iterable[Issue] = (),
        *,
        labels: Sequence[str] = (),
        milestones: Sequence[str] = (),
        issue_types: Sequence[str] = (),
        projects: Sequence[str] = (),
        next_number: int = 100,
    ) -> None:
        self.remote: dict[str, Issue] = {i.number: normalize(i) for i in issues}
        self.labels = [RemoteLabel(name=n, node_id=f"L_{n}") for n in labels]
        self.milestones = [
            RemoteMilestone(title=t, number=idx + 1, node_id=f"M_{idx}")
            for idx, t in enumerate(milestones)
        ]
        self.issue_types = [RemoteIssueType(id=f"IT_{n}", name=n) for n in issue_types]
        self.projects = [RemoteProject(id=f"P_{t}", title=t) for t in projects]
        self.next_number = next_number
        self.can_read_projects = True
        self.calls: list[tuple[str, object]] = []
        self.comments: list[tuple[str, str]] = []
        # (operation, number) -> error raised when that call happens
        self.failures: dict[tuple[str, str], RemoteError] = {}

    def _maybe_fail(self, operation: str, number: str = "") -> None:
        error = self.failures.get((operation, number)) or self.failures.get((operation, "*"))
        if error is not None:
            raise error

    # --- reads ------------------------------------------------------------
    def list_labels(self) -> list[RemoteLabel]:
        self.calls.append(("list_labels", None))
        self._maybe_fail("list_labels")
        return list(self.labels)

    def list_milestones(self) -> list[RemoteMilestone]:
        self.calls.append(("list_milestones", None))
        self._maybe_fail("list_milestones")
        return list(self.milestones)

    def list_issue_types(self) -> list[RemoteIssueType]:
        self.calls.append(("list_issue_types", None))
        self._maybe_fail("list_issue_types")
        return list(self.issue_types)

    def list_projects(self) -> list[RemoteProject]:
        self.calls.append(("list_projects", None))
        self._maybe_fail("list_projects")
        return list(self.projects)

    def get_issues_batch(self, numbers: Sequence[str]) -> dict[str, Issue]:
        self.calls.append(("get_issues_batch", list(numbers)))
        self._maybe_fail("get_issues_batch")
        out: dict[str, Issue] = {}
        for number in numbers:
            if number in self.remote:
                issue = self.remote[number].copy()
                if not self.can_read_projects:
                    issue.projects = []
                out[number] = issue
        return out

    # --- writes -----------------------------------------------------------
    def create_issue(self, issue: Issue) -> str:
        self.calls.append(("create_issue", issue.title))
        self._maybe_fail("create_issue", issue.number)
        number = str(self.next_number)
        self.next_number += 1
        self.remote[number] = normalize(
            Issue(
                number=number,
                title=issue.title,
                body=issue.body,
                labels=list(issue.labels),
                assignees=list(issue.assignees),
                milestone=issue.milestone,
            )
        )
        return number

    def close_issue(self, number: str, reason: str | None = None) -> None:
        self.calls.append(("close_issue", (number, reason)))
        self._maybe_fail("close_issue", number)
        self.remote[number] = self.remote[number].copy(state="closed", state_reason=reason)

    def reopen_issue(self, number: str) -> None:
        self.calls.append(("reopen_issue", number))
        self._maybe_fail("reopen_issue", number)
        self.remote[number] = self.remote[number].copy(state="open", state_reason=None)

    def batch_edit_issues(self, edits: Sequence[tuple[Issue, IssueChange]]) -> BatchEditResult:
        self.calls.append(("batch_edit_issues", [i.number for i, _ in edits]))
        self._maybe_fail("batch_edit_issues")
        result = BatchEditResult()
        for issue, change in edits:
            error = self.failures.get(("edit", issue.number))
            if error is not None:
                result.errors[issue.number] = str(error)
                continue
            changes = {
                name: getattr(issue, name)
                for name in ("title", "body", "milestone", "labels", "assignees")
                if change.touches(name)
            }
            self.remote[issue.number] = self.remote[issue.number].copy(**changes)
            result.edited.append(issue.number)
        return result

    def create_label(self, name: str, color: str, description: str = "") -> RemoteLabel:
        self.calls.append(("create_label", name))
        self._maybe_fail("create_label", name)
        label = RemoteLabel(name=name, color=color, description=description, node_id=f"L_{name}")
        self.labels.append(label)
        return label

    def create_milestone(self, title: str) -> RemoteMilestone:
        self.calls.append(("create_milestone", title))
        self._maybe_fail("create_milestone", title)
        milestone = RemoteMilestone(title=title, number=len(self.milestones) + 1)
        self.milestones.append(milestone)
        return milestone

    def set_issue_type(self, number: str, issue_type_id: str | None) -> None:
        self.calls.append(("set_issue_type", (number, issue_type_id)))
        self._maybe_fail("set_issue_type", number)
        name = next((t.name for t in self.issue_types if t.id == issue_type_id), "")
        self.remote[number] = self.remote[number].copy(issue_type=name)

    def sync_relationships(self, issue: Issue) -> None:
        self.calls.append(("sync_relationships", issue.number))
        self._maybe_fail("sync_relationships", issue.number)
        parent = issue.parent if issue.parent and not is_provisional(issue.parent) else None
        self.remote[issue.number] = self.remote[issue.number].copy(
            parent=parent,
            blocked_by=[r for r in issue.blocked_by if not is_provisional(r)],
            blocks=[r for r in issue.blocks if not is_provisional(r)],
        )

    def sync_projects(
        self, number: str, wanted: Iterable[str], known: Mapping[str, RemoteProject]
    ) -> None:
        titles = [known[w.lower()].title for w in wanted]
        self.calls.append(("sync_projects", (number, titles)))
        self._maybe_fail("sync_projects", number)
        self.remote[number] = self.remote[number].copy(projects=titles)

    def create_comment(self, number: str, body: str) -> None:
        self.calls.append(("create_comment", number))
        self._maybe_fail("create_comment", number)
        self.comments.append((number, body))

    def called(self, operation: str) -> list[object]:
        return [arg for op, arg in self.calls if op == operation]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_client():
    return FakeIssuesClient


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch):
    # Each test gets a logger bound to its own captured stdout.
    monkeypatch.setattr(sync_logging, "_GLOBAL", None)
