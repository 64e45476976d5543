"""Push orchestration: local issue files -> GitHub.

One push runs under the store lock and walks these states::

    START -> LOCK_ACQUIRED -> CACHES_RECONCILED -> RECORDS_CREATED
          -> REFERENCES_REMAPPED -> CONFLICTS_DETECTED -> REMOTE_MUTATED
          -> SNAPSHOTS_PERSISTED -> DONE

``FAILED`` is reachable from every state; the lock is released on every
exit path.  Problems confined to one issue (conflict, rejected mutation,
failed snapshot write) are collected on :class:`PushResult`; lock timeouts,
vocabulary failures and identifier remapping failures abort the run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .diffing import (
    MAX_BODY_DIFF_LINES,
    TRANSITION_REOPEN,
    IssueChange,
    describe_change,
    diff_issue,
    three_way_merge,
)
from .errors import ConflictError, MappingError, RemoteError
from .github_issues import IssuesClient
from .identifiers import apply_mapping, materialize, referenced_identifiers
from .lock import DEFAULT_TIMEOUT, POLL_INTERVAL, ProcessLock
from .logging import get_logger
from .models import (
    Issue,
    IssueFile,
    equal_for_conflict_check,
    equal_ignoring_synced_at,
    is_provisional,
    utc_now,
)
from .store import LocalStore
from .vocabulary import Vocabularies, load_vocabularies, reconcile_vocabularies, save_vocabularies


class PushState(str, Enum):
    START = "start"
    LOCK_ACQUIRED = "lock_acquired"
    CACHES_RECONCILED = "caches_reconciled"
    RECORDS_CREATED = "records_created"
    REFERENCES_REMAPPED = "references_remapped"
    CONFLICTS_DETECTED = "conflicts_detected"
    REMOTE_MUTATED = "remote_mutated"
    SNAPSHOTS_PERSISTED = "snapshots_persisted"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PushOptions:
    force: bool = False
    skip_pending_comments: bool = False
    dry_run: bool = False
    lock_timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = POLL_INTERVAL
    truncate_body_diff: int = MAX_BODY_DIFF_LINES


@dataclass
class PushResult:
    dry_run: bool = False
    state: PushState = PushState.START
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    conflicts: dict[str, list[str]] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    mapping: dict[str, str] = field(default_factory=dict)
    comments_posted: list[str] = field(default_factory=list)
    planned: list[str] = field(default_factory=list)
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    skipped_files: dict[str, str] = field(default_factory=dict)
    unmatched: list[str] = field(default_factory=list)
    vocabularies: Vocabularies | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return not self.conflicts and not self.failed

    def conflict_errors(self) -> list[ConflictError]:
        return [ConflictError(number, fields) for number, fields in self.conflicts.items()]

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "state": self.state.value,
            "created": list(self.created),
            "updated": list(self.updated),
            "unchanged": list(self.unchanged),
            "conflicts": {k: list(v) for k, v in self.conflicts.items()},
            "failed": dict(self.failed),
            "mapping": dict(self.mapping),
            "comments_posted": list(self.comments_posted),
            "planned": list(self.planned),
            "changes": dict(self.changes),
            "warnings": list(self.warnings),
            "skipped_files": dict(self.skipped_files),
            "unmatched": list(self.unmatched),
        }


@dataclass
class _Work:
    file: IssueFile
    target: Issue
    change: IssueChange


class Reconciler:
    """Pushes local issue files to GitHub.

    Vocabulary state is explicit: pass ``vocabularies`` in to reuse it and
    read ``self.vocabularies`` (or ``PushResult.vocabularies``) afterwards.
    """

    def __init__(
        self,
        store: LocalStore,
        client: IssuesClient,
        *,
        vocabularies: Vocabularies | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.client = client
        self.vocabularies = vocabularies
        self._clock = clock
        self._logger = get_logger()

    def push(self, selection: Sequence[str] = (), options: PushOptions | None = None) -> PushResult:
        options = options or PushOptions()
        result = PushResult(dry_run=options.dry_run)
        lock = ProcessLock.acquire(self.store.sync_dir, options.lock_timeout, options.poll_interval)
        result.state = PushState.LOCK_ACQUIRED
        try:
            with self._logger.timed_operation("push", dry_run=options.dry_run):
                self._run(list(selection), options, result)
            result.state = PushState.DONE
        except BaseException:
            result.state = PushState.FAILED
            raise
        finally:
            lock.release()
        return result

    # --- phases -----------------------------------------------------------
    def _run(self, selection: list[str], options: PushOptions, result: PushResult) -> None:
        files, errors = self.store.load_issues()
        for err in errors:
            result.skipped_files[str(err.path)] = err.reason
            self._logger.warning("skipping unparseable issue file", path=err.path, error=err.reason)

        mapping = self.store.load_mapping()
        recorded = dict(mapping)
        files = self._recover_mapping(files, mapping, result, options.dry_run)
        selection = [recorded.get(s.lstrip("#"), s) for s in selection]
        selected, result.unmatched = self.store.select(files, selection)
        for entry in result.unmatched:
            result.warnings.append(f"no local issue matches {entry!r}")

        vocab = self._reconcile_vocabularies([f.issue for f in selected], options, result)
        result.state = PushState.CACHES_RECONCILED

        selected_numbers = [f.number for f in selected]
        files, created = self._create_new(files, selected, mapping, options, result)
        result.state = PushState.RECORDS_CREATED
        selected_numbers = [mapping.get(n, n) for n in selected_numbers]
        by_number = {f.number: f for f in files}
        if not options.dry_run:
            for number in created:
                self._sync_extras(by_number[number].issue, None, vocab, result, created=True)
        result.state = PushState.REFERENCES_REMAPPED

        # Issues created in this run are not diffed again; references that
        # later creates rewrote into them go out on the next push.
        candidates = [
            by_number[n]
            for n in selected_numbers
            if n in by_number
            and not is_provisional(n)
            and n not in created
            and n not in result.failed
        ]
        work, refreshed = self._detect_conflicts(candidates, options, result)
        result.unchanged = [n for n in result.unchanged if n not in created]
        result.state = PushState.CONFLICTS_DETECTED

        if not options.dry_run:
            self._mutate(work, vocab, result)
            result.state = PushState.REMOTE_MUTATED
            self._persist(work, refreshed, result)
            result.state = PushState.SNAPSHOTS_PERSISTED

        if not options.skip_pending_comments:
            self._post_comments(
                set(selected_numbers) if selection else None, mapping, set(created), options, result
            )

    def _recover_mapping(
        self,
        files: list[IssueFile],
        mapping: dict[str, str],
        result: PushResult,
        dry_run: bool,
    ) -> list[IssueFile]:
        """Re-apply recorded mappings still in use, then drop the spent ones.

        An entry stays recorded while a pending comment is queued against its
        provisional id; every other entry is spent once no file mentions it.
        """
        if not mapping:
            return files
        in_use = referenced_identifiers((f.issue for f in files), mapping)
        stale = {p: n for p, n in mapping.items() if p in in_use}
        if stale:
            self._logger.warning("re-applying recorded identifier mapping", count=len(stale))
            result.mapping.update(stale)
            if dry_run:
                return [IssueFile(path=f.path, issue=apply_mapping(f.issue, stale)) for f in files]
            for provisional, number in stale.items():
                files = self._materialize(files, provisional, number)
        if dry_run:
            return files
        queued = {c.number for c in self.store.pending_comments()}
        spent = [p for p in mapping if p not in queued]
        if spent:
            for provisional in spent:
                del mapping[provisional]
            try:
                self.store.save_mapping(mapping)
            except OSError as exc:
                raise MappingError(f"could not prune identifier mapping: {exc}") from exc
            self._logger.debug("identifier mapping pruned", removed=len(spent), kept=len(mapping))
        return files

    def _reconcile_vocabularies(
        self, issues: Sequence[Issue], options: PushOptions, result: PushResult
    ) -> Vocabularies:
        vocab = self.vocabularies or load_vocabularies(self.store, self.client, self._clock)
        vocab, plan = reconcile_vocabularies(
            vocab, issues, self.client, dry_run=options.dry_run, clock=self._clock
        )
        result.planned.extend(f"Would create label {name}" for name in plan.labels)
        result.planned.extend(f"Would create milestone {title}" for title in plan.milestones)
        if not options.dry_run:
            save_vocabularies(self.store, vocab, self._clock)
        self.vocabularies = vocab
        result.vocabularies = vocab
        return vocab

    def _create_new(
        self,
        files: list[IssueFile],
        selected: Sequence[IssueFile],
        mapping: dict[str, str],
        options: PushOptions,
        result: PushResult,
    ) -> tuple[list[IssueFile], list[str]]:
        created: list[str] = []
        for pending in [f for f in selected if f.issue.is_provisional]:
            provisional = pending.number
            result.planned.append(f"Would create issue {pending.issue.title}")
            if options.dry_run:
                created.append(provisional)
                continue
            current = next((f for f in files if f.number == provisional), pending)
            try:
                number = self.client.create_issue(current.issue)
            except RemoteError as exc:
                result.failed[provisional] = str(exc)
                self._logger.log_error("issue create failed", error=str(exc), issue_number=provisional)
                continue
            mapping[provisional] = number
            result.mapping[provisional] = number
            try:
                self.store.save_mapping(mapping)
            except OSError as exc:
                raise MappingError(f"could not record mapping {provisional} -> {number}: {exc}") from exc
            files = self._materialize(files, provisional, number)
            record = next(f for f in files if f.number == number)
            snapshot = record.issue.copy(synced_at=self._clock())
            try:
                written = self.store.write_issue(record, snapshot)
                files = [written if f is record else f for f in files]
                self.store.write_original(snapshot)
            except OSError as exc:
                self._fail(result, number, f"snapshot: {exc}")
            created.append(number)
            result.created.append(number)
            self._logger.log_issue_action("create", number, provisional=provisional)
        return files, created

    def _materialize(self, files: list[IssueFile], provisional: str, number: str) -> list[IssueFile]:
        issues = [f.issue for f in files]
        updated, changed = materialize(provisional, number, issues)
        pairs = [(f, new) for f, new, old in zip(files, updated, issues) if new is not old]
        try:
            written = iter(self.store.write_issues(pairs))
        except OSError as exc:
            raise MappingError(f"could not rewrite references {provisional} -> {number}: {exc}") from exc
        self._logger.debug("references rewritten", provisional=provisional, number=number, changed=changed)
        return [next(written) if new is not old else f for f, new, old in zip(files, updated, issues)]

    def _detect_conflicts(
        self, candidates: Sequence[IssueFile], options: PushOptions, result: PushResult
    ) -> tuple[list[_Work], list[tuple[IssueFile, Issue]]]:
        pending: list[tuple[IssueFile, Issue | None]] = []
        for f in candidates:
            original = self.store.read_original(f.number)
            if original is not None and equal_ignoring_synced_at(f.issue, original):
                result.unchanged.append(f.number)
                continue
            pending.append((f, original))
        if not pending:
            return [], []
        try:
            remote = self.client.get_issues_batch([f.number for f, _ in pending])
        except RemoteError as exc:
            self._logger.log_error("batch fetch failed", error=str(exc))
            for f, _ in pending:
                result.failed[f.number] = f"fetch failed: {exc}"
            return [], []

        work: list[_Work] = []
        refreshed: list[tuple[IssueFile, Issue]] = []
        for f, original in pending:
            number = f.number
            remote_issue = remote.get(number)
            if remote_issue is None:
                result.failed[number] = "issue not found on GitHub"
                continue
            if not self.client.can_read_projects:
                remote_issue = remote_issue.copy(projects=list((original or f.issue).projects))
            if options.force or original is None or equal_for_conflict_check(original, remote_issue):
                merged = f.issue
                change = diff_issue(remote_issue, merged)
            else:
                merge = three_way_merge(original, f.issue, remote_issue)
                if not merge.ok:
                    result.conflicts[number] = merge.conflicts
                    self._logger.warning(
                        "conflict; skipping issue", issue_number=number, fields=merge.conflicts
                    )
                    continue
                merged, change = merge.merged, merge.local_changes
            if change.is_empty():
                refreshed.append((f, merged))
                result.unchanged.append(number)
                continue
            result.planned.append(f"Would push issue #{number}")
            result.changes[number] = describe_change(remote_issue, merged, options.truncate_body_diff)
            work.append(_Work(file=f, target=merged, change=change))
        return work, refreshed

    def _mutate(self, work: Sequence[_Work], vocab: Vocabularies, result: PushResult) -> None:
        for w in work:
            number = w.target.number
            try:
                if w.change.needs_close:
                    self.client.close_issue(number, w.target.state_reason)
                elif w.change.transition == TRANSITION_REOPEN:
                    self.client.reopen_issue(number)
            except RemoteError as exc:
                self._fail(result, number, exc)

        edits = [
            (w.target, w.change)
            for w in work
            if w.target.number not in result.failed and w.change.has_field_edits
        ]
        if edits:
            try:
                batch = self.client.batch_edit_issues(edits)
                for number, message in batch.errors.items():
                    self._fail(result, number, message)
            except RemoteError as exc:
                for issue, _ in edits:
                    self._fail(result, issue.number, exc)

        for w in work:
            if w.target.number in result.failed:
                continue
            try:
                self._sync_extras(w.target, w.change, vocab, result)
            except RemoteError as exc:
                self._fail(result, w.target.number, exc)

    def _sync_extras(
        self,
        issue: Issue,
        change: IssueChange | None,
        vocab: Vocabularies,
        result: PushResult,
        *,
        created: bool = False,
    ) -> None:
        """Issue type, relationships and projects; none of these batch."""
        number = issue.number
        try:
            if created or (change is not None and change.touches("issue_type")):
                type_id = vocab.issue_type_id(issue.issue_type) if issue.issue_type else None
                if issue.issue_type and type_id is None:
                    result.warnings.append(f"#{number}: unknown issue type {issue.issue_type!r}")
                elif type_id is not None or not created:
                    self.client.set_issue_type(number, type_id)
            if created or (change is not None and change.has_relationship_changes):
                if issue.references() or not created:
                    self.client.sync_relationships(issue)
            if created or (change is not None and change.touches("projects")):
                index = vocab.project_index()
                unknown = [p for p in issue.projects if p.lower() not in index]
                for title in unknown:
                    result.warnings.append(f"#{number}: unknown project {title!r}")
                wanted = [p for p in issue.projects if p.lower() in index]
                if wanted or not created:
                    self.client.sync_projects(number, wanted, index)
        except RemoteError as exc:
            if not created:
                raise
            result.warnings.append(f"#{number}: {exc}")
            self._logger.warning("post-create sync failed", issue_number=number, error=str(exc))

    def _persist(
        self, work: Sequence[_Work], refreshed: Sequence[tuple[IssueFile, Issue]], result: PushResult
    ) -> None:
        now = self._clock()
        for w in work:
            number = w.target.number
            if number in result.failed:
                continue
            if not self._write_snapshot(w.file, w.target.copy(synced_at=now), result):
                continue
            result.updated.append(number)
            self._logger.log_issue_action("update", number, fields=w.change.changed_fields())
        for f, merged in refreshed:
            self._write_snapshot(f, merged.copy(synced_at=now), result)

    def _write_snapshot(self, file: IssueFile, snapshot: Issue, result: PushResult) -> bool:
        try:
            self.store.write_issue(file, snapshot)
            self.store.write_original(snapshot)
        except OSError as exc:
            self._fail(result, snapshot.number, f"snapshot: {exc}")
            return False
        return True

    def _post_comments(
        self,
        selected: set[str] | None,
        mapping: dict[str, str],
        created: set[str],
        options: PushOptions,
        result: PushResult,
    ) -> None:
        for comment in self.store.pending_comments():
            number = mapping.get(comment.number, comment.number)
            if is_provisional(number) and number not in created:
                self._logger.debug("comment waits for issue creation", issue_number=number)
                continue
            if number in result.conflicts:
                continue
            if selected is not None and number not in selected:
                continue
            result.planned.append(f"Would post comment to #{comment.number}")
            if options.dry_run:
                continue
            try:
                self.client.create_comment(number, comment.body)
            except RemoteError as exc:
                self._fail(result, number, f"comment: {exc}")
                continue
            result.comments_posted.append(number)
            try:
                self.store.delete_comment(comment)
            except OSError as exc:
                self._fail(result, number, f"comment posted but still queued: {exc}")

    def _fail(self, result: PushResult, number: str, error: object) -> None:
        message = str(error)
        result.failed.setdefault(number, message)
        self._logger.log_error("issue push failed", error=message, issue_number=number)


def push(
    store: LocalStore,
    client: IssuesClient,
    selection: Iterable[str] = (),
    options: PushOptions | None = None,
    *,
    vocabularies: Vocabularies | None = None,
) -> PushResult:
    """Convenience wrapper around :meth:`Reconciler.push`."""
    reconciler = Reconciler(store, client, vocabularies=vocabularies)
    return reconciler.push(list(selection), options)


__all__ = ["PushOptions", "PushResult", "PushState", "Reconciler", "push"]
