"""Label, milestone, issue type and project vocabularies.

The four vocabularies are cached as JSON under ``.issues/.sync`` and passed
around as one explicit :class:`Vocabularies` value.  Before any issue is
written, labels and milestones referenced locally but unknown to GitHub are
created; issue types and projects cannot be created and only produce
warnings.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from .errors import RemoteError
from .github_issues import (
    IssuesClient,
    RemoteIssueType,
    RemoteLabel,
    RemoteMilestone,
    RemoteProject,
)
from .logging import get_logger
from .models import Issue, utc_now
from .store import LocalStore

LABELS = "labels"
MILESTONES = "milestones"
ISSUE_TYPES = "issue_types"
PROJECTS = "projects"
CACHE_NAMES: tuple[str, ...] = (LABELS, MILESTONES, ISSUE_TYPES, PROJECTS)

LABEL_PALETTE: tuple[str, ...] = (
    "b60205",
    "d93f0b",
    "fbca04",
    "0e8a16",
    "006b75",
    "1d76db",
    "0052cc",
    "5319e7",
    "e99695",
    "f9d0c4",
    "fef2c0",
    "c2e0c6",
    "bfdadc",
    "c5def5",
    "bfd4f2",
    "d4c5f9",
)


@dataclass
class Vocabularies:
    labels: list[RemoteLabel] = field(default_factory=list)
    milestones: list[RemoteMilestone] = field(default_factory=list)
    issue_types: list[RemoteIssueType] = field(default_factory=list)
    projects: list[RemoteProject] = field(default_factory=list)
    synced_at: dict[str, str] = field(default_factory=dict)
    fetched: set[str] = field(default_factory=set)
    dirty: set[str] = field(default_factory=set)

    def has_label(self, name: str) -> bool:
        return name.lower() in {label.name.lower() for label in self.labels}

    def has_milestone(self, title: str) -> bool:
        return title.lower() in {m.title.lower() for m in self.milestones}

    def issue_type_id(self, name: str) -> str | None:
        for entry in self.issue_types:
            if entry.name.lower() == name.lower():
                return entry.id
        return None

    def project_index(self) -> dict[str, RemoteProject]:
        return {p.title.lower(): p for p in self.projects}


@dataclass
class VocabularyPlan:
    labels: list[str] = field(default_factory=list)
    milestones: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.labels and not self.milestones


_DECODERS: dict[str, Callable[[dict[str, Any]], Any]] = {
    LABELS: lambda d: RemoteLabel(
        name=str(d["name"]),
        color=str(d.get("color") or ""),
        description=str(d.get("description") or ""),
        node_id=str(d.get("node_id") or ""),
    ),
    MILESTONES: lambda d: RemoteMilestone(
        title=str(d["title"]),
        number=d.get("number") if isinstance(d.get("number"), int) else None,
        state=str(d.get("state") or "open"),
        description=str(d.get("description") or ""),
        due_on=d.get("due_on"),
        node_id=str(d.get("node_id") or ""),
    ),
    ISSUE_TYPES: lambda d: RemoteIssueType(
        id=str(d["id"]), name=str(d["name"]), description=str(d.get("description") or "")
    ),
    PROJECTS: lambda d: RemoteProject(id=str(d["id"]), title=str(d["title"])),
}


def _decode_cache(name: str, document: dict[str, Any] | None) -> list[Any] | None:
    if document is None:
        return None
    entries = document.get(name)
    if not isinstance(entries, list):
        return None
    try:
        return [_DECODERS[name](entry) for entry in entries if isinstance(entry, dict)]
    except (KeyError, TypeError):
        return None


def _fetch(client: IssuesClient, name: str) -> list[Any]:
    if name == LABELS:
        return client.list_labels()
    if name == MILESTONES:
        return client.list_milestones()
    if name == ISSUE_TYPES:
        return client.list_issue_types()
    return client.list_projects()


def refresh(
    vocab: Vocabularies,
    client: IssuesClient,
    name: str,
    clock: Callable[[], datetime] = utc_now,
) -> None:
    setattr(vocab, name, _fetch(client, name))
    vocab.synced_at[name] = clock().isoformat()
    vocab.fetched.add(name)
    vocab.dirty.add(name)


def load_vocabularies(
    store: LocalStore, client: IssuesClient, clock: Callable[[], datetime] = utc_now
) -> Vocabularies:
    """Read cached vocabularies, fetching any that are missing or corrupt.

    Label and milestone fetch failures propagate; issue type and project
    lookups degrade to an empty vocabulary with a warning.
    """
    logger = get_logger()
    vocab = Vocabularies()
    for name in CACHE_NAMES:
        document = store.load_cache(name)
        cached = _decode_cache(name, document)
        if cached is not None:
            setattr(vocab, name, cached)
            vocab.synced_at[name] = str((document or {}).get("synced_at") or "")
            continue
        if name in (LABELS, MILESTONES):
            refresh(vocab, client, name, clock)
            continue
        try:
            refresh(vocab, client, name, clock)
        except RemoteError as exc:
            logger.warning(f"could not load {name}; skipping", error=str(exc))
    return vocab


def _dedupe_casefold(values: Iterable[str]) -> list[str]:
    seen: dict[str, str] = {}
    for value in values:
        if value and value.lower() not in seen:
            seen[value.lower()] = value
    return sorted(seen.values(), key=str.lower)


def plan_vocabulary(vocab: Vocabularies, issues: Sequence[Issue]) -> VocabularyPlan:
    return VocabularyPlan(
        labels=_dedupe_casefold(
            label for issue in issues for label in issue.labels if not vocab.has_label(label)
        ),
        milestones=_dedupe_casefold(
            issue.milestone
            for issue in issues
            if issue.milestone and not vocab.has_milestone(issue.milestone)
        ),
    )


def reconcile_vocabularies(
    vocab: Vocabularies,
    issues: Sequence[Issue],
    client: IssuesClient,
    *,
    dry_run: bool = False,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> tuple[Vocabularies, VocabularyPlan]:
    """Create labels and milestones that ``issues`` reference but GitHub lacks.

    Caches read from disk may be stale, so a non-empty plan triggers one
    refresh of that vocabulary before anything is created.  A creation
    failure propagates: no issue may reference a missing label.
    """
    logger = get_logger()
    plan = plan_vocabulary(vocab, issues)
    if plan.labels and LABELS not in vocab.fetched:
        refresh(vocab, client, LABELS, clock)
    if plan.milestones and MILESTONES not in vocab.fetched:
        refresh(vocab, client, MILESTONES, clock)
    plan = plan_vocabulary(vocab, issues)
    if dry_run or plan.is_empty():
        return vocab, plan
    chooser = rng or random.SystemRandom()
    for name in plan.labels:
        label = client.create_label(name, chooser.choice(LABEL_PALETTE))
        vocab.labels.append(label)
        vocab.dirty.add(LABELS)
        logger.log_operation("label_created", label=name)
    for title in plan.milestones:
        milestone = client.create_milestone(title)
        vocab.milestones.append(milestone)
        vocab.dirty.add(MILESTONES)
        logger.log_operation("milestone_created", milestone=title)
    return vocab, plan


def save_vocabularies(
    store: LocalStore, vocab: Vocabularies, clock: Callable[[], datetime] = utc_now
) -> None:
    for name in sorted(vocab.dirty):
        store.save_cache(
            name,
            {
                "synced_at": vocab.synced_at.get(name) or clock().isoformat(),
                name: [asdict(entry) for entry in getattr(vocab, name)],
            },
        )
    vocab.dirty.clear()


__all__ = [
    "CACHE_NAMES",
    "LABEL_PALETTE",
    "VocabularyPlan",
    "Vocabularies",
    "load_vocabularies",
    "plan_vocabulary",
    "reconcile_vocabularies",
    "refresh",
    "save_vocabularies",
]
