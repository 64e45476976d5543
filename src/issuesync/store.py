"""Local issue store: ``.issues/{open,closed}`` plus the hidden ``.sync`` area.

Every disk write of the sync engine goes through :class:`LocalStore`; files
are written to a temporary sibling and moved into place.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ParseError
from .identifiers import new_identifier
from .models import STATE_CLOSED, Issue, IssueFile, is_provisional, normalize
from .parser import file_name, number_from_path, parse, parse_file, render

logger = logging.getLogger(__name__)

ISSUES_DIR = ".issues"
OPEN_DIR = "open"
CLOSED_DIR = "closed"
SYNC_DIR = ".sync"
ORIGINALS_DIR = "originals"
COMMENTS_DIR = "comments"
MAPPING_FILE = "mapping.json"


@dataclass
class PendingComment:
    path: Path
    number: str
    body: str


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)


def _write_json(path: Path, payload: Any) -> None:
    _atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=True) + "\n")


def _read_json(path: Path) -> Any | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return None


class LocalStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.base = self.root / ISSUES_DIR

    # ---- layout -------------------------------------------------------
    @property
    def open_dir(self) -> Path:
        return self.base / OPEN_DIR

    @property
    def closed_dir(self) -> Path:
        return self.base / CLOSED_DIR

    @property
    def sync_dir(self) -> Path:
        return self.base / SYNC_DIR

    @property
    def originals_dir(self) -> Path:
        return self.sync_dir / ORIGINALS_DIR

    @property
    def comments_dir(self) -> Path:
        return self.sync_dir / COMMENTS_DIR

    @property
    def mapping_path(self) -> Path:
        return self.sync_dir / MAPPING_FILE

    def config_path(self, name: str = "config.yaml") -> Path:
        return self.sync_dir / name

    def exists(self) -> bool:
        return self.base.is_dir()

    def ensure_layout(self) -> None:
        for directory in (self.open_dir, self.closed_dir, self.originals_dir, self.comments_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def issue_path(self, issue: Issue) -> Path:
        directory = self.closed_dir if issue.state == STATE_CLOSED else self.open_dir
        return directory / file_name(issue)

    # ---- issues -------------------------------------------------------
    def issue_paths(self) -> list[Path]:
        paths: list[Path] = []
        for directory in (self.open_dir, self.closed_dir):
            if directory.is_dir():
                paths.extend(p for p in directory.glob("*.md") if not p.name.startswith("."))
        return sorted(paths)

    def load_issues(self) -> tuple[list[IssueFile], list[ParseError]]:
        """Parse every issue file; unparseable files are returned, not raised."""
        files: list[IssueFile] = []
        errors: list[ParseError] = []
        for path in self.issue_paths():
            try:
                files.append(IssueFile(path=path, issue=parse_file(path)))
            except ParseError as exc:
                errors.append(exc)
        return files, errors

    def select(
        self, files: Sequence[IssueFile], selection: Iterable[str]
    ) -> tuple[list[IssueFile], list[str]]:
        """Filter ``files`` by numbers (``42``, ``#42``, ``T…``) or paths.

        Returns the matching files in store order plus unmatched entries.
        An empty selection selects everything.
        """
        wanted = [s.strip() for s in selection if s and s.strip()]
        if not wanted:
            return list(files), []
        chosen: set[int] = set()
        unmatched: list[str] = []
        for entry in wanted:
            hits = [idx for idx, f in enumerate(files) if self._matches(f, entry)]
            if hits:
                chosen.update(hits)
            else:
                unmatched.append(entry)
        return [f for idx, f in enumerate(files) if idx in chosen], unmatched

    def _matches(self, file: IssueFile, entry: str) -> bool:
        number = entry[1:] if entry.startswith("#") else entry
        if file.number == number:
            return True
        candidate = Path(entry)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        try:
            return candidate.resolve() == file.path.resolve()
        except OSError:
            return False

    def write_issue(self, file: IssueFile | None, issue: Issue) -> IssueFile:
        """Write ``issue`` to its canonical path, removing the old file if moved."""
        target = self.issue_path(issue)
        _atomic_write_text(target, render(issue))
        if file is not None and file.path != target and file.path.exists():
            file.path.unlink()
        return IssueFile(path=target, issue=normalize(issue))

    def write_issues(self, updates: Sequence[tuple[IssueFile, Issue]]) -> list[IssueFile]:
        """Write several issues all-or-nothing.

        Every file is staged first; if any staging write fails the staged
        files are removed and the error propagates with nothing replaced.
        """
        staged: list[tuple[Path, Path, IssueFile]] = []
        try:
            for file, issue in updates:
                target = self.issue_path(issue)
                target.parent.mkdir(parents=True, exist_ok=True)
                tmp = target.with_name(f".{target.name}.staged")
                tmp.write_text(render(issue), encoding="utf-8")
                staged.append((tmp, target, file))
        except OSError:
            for tmp, _, _ in staged:
                tmp.unlink(missing_ok=True)
            raise
        written: list[IssueFile] = []
        for (tmp, target, file), (_, issue) in zip(staged, updates):
            tmp.replace(target)
            if file.path != target and file.path.exists():
                file.path.unlink()
            written.append(IssueFile(path=target, issue=normalize(issue)))
        return written

    def create_issue(
        self,
        title: str,
        *,
        body: str = "",
        labels: Sequence[str] = (),
        assignees: Sequence[str] = (),
        milestone: str = "",
    ) -> IssueFile:
        files, _ = self.load_issues()
        identifier = new_identifier(f.number for f in files)
        issue = normalize(
            Issue(
                number=identifier,
                title=title,
                body=body,
                labels=list(labels),
                assignees=list(assignees),
                milestone=milestone,
            )
        )
        return self.write_issue(None, issue)

    # ---- originals ----------------------------------------------------
    def original_path(self, number: str) -> Path:
        return self.originals_dir / f"{number}.md"

    def read_original(self, number: str) -> Issue | None:
        """Last synced snapshot; a corrupt snapshot reads as absent."""
        path = self.original_path(number)
        if not path.exists():
            return None
        try:
            return parse(path.read_text(encoding="utf-8"), number_hint=number)
        except (ParseError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring corrupt original %s: %s", path, exc)
            return None

    def write_original(self, issue: Issue) -> None:
        _atomic_write_text(self.original_path(issue.number), render(issue))

    def orphaned_originals(self) -> list[Path]:
        if not self.originals_dir.is_dir():
            return []
        live = {number_from_path(p) for p in self.issue_paths()}
        return sorted(
            p
            for p in self.originals_dir.glob("*.md")
            if p.stem not in live and not is_provisional(p.stem)
        )

    # ---- identifier mapping -------------------------------------------
    def load_mapping(self) -> dict[str, str]:
        raw = _read_json(self.mapping_path)
        if not isinstance(raw, dict):
            return {}
        entries = raw.get("mapping", raw)
        if not isinstance(entries, dict):
            return {}
        return {str(k): str(v) for k, v in entries.items() if is_provisional(str(k))}

    def save_mapping(self, mapping: Mapping[str, str]) -> None:
        _write_json(self.mapping_path, {"mapping": dict(mapping)})

    # ---- pending comments ---------------------------------------------
    def pending_comments(self) -> list[PendingComment]:
        if not self.comments_dir.is_dir():
            return []
        comments: list[PendingComment] = []
        for path in sorted(self.comments_dir.glob("*.md")):
            number = number_from_path(path)
            if not number:
                continue
            body = path.read_text(encoding="utf-8")
            if body.strip():
                comments.append(PendingComment(path=path, number=number, body=body))
        return comments

    def add_comment(self, number: str, body: str) -> PendingComment:
        path = self.comments_dir / f"{number}-{secrets.token_hex(4)}.md"
        _atomic_write_text(path, body)
        return PendingComment(path=path, number=number, body=body)

    def delete_comment(self, comment: PendingComment) -> None:
        comment.path.unlink(missing_ok=True)

    # ---- vocabulary caches --------------------------------------------
    def cache_path(self, name: str) -> Path:
        return self.sync_dir / f"{name}.json"

    def load_cache(self, name: str) -> dict[str, Any] | None:
        raw = _read_json(self.cache_path(name))
        return raw if isinstance(raw, dict) else None

    def save_cache(self, name: str, payload: dict[str, Any]) -> None:
        _write_json(self.cache_path(name), payload)


__all__ = ["ISSUES_DIR", "LocalStore", "PendingComment"]
