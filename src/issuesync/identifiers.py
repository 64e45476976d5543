"""Provisional identifiers and their materialization into GitHub numbers.

Issues created offline get a ``T`` + 8 hex digit identifier.  Once GitHub
accepts the issue, every use of the provisional id across the local record
set is rewritten: the issue's own number, ``parent``, ``blocked_by``,
``blocks`` and ``#T…`` tokens inside titles and bodies.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Iterable, Mapping, Sequence

from .errors import MappingError
from .models import PROVISIONAL_PREFIX, Issue, normalize

LOCAL_ID_BYTES = 4
REFERENCE_MARKER = "#"
_MAX_ATTEMPTS = 32


def new_identifier(existing: Iterable[str] | None = None) -> str:
    """Return a fresh provisional id not present in ``existing``."""
    taken = set(existing or ())
    for _ in range(_MAX_ATTEMPTS):
        candidate = PROVISIONAL_PREFIX + secrets.token_hex(LOCAL_ID_BYTES)
        if candidate not in taken:
            return candidate
    raise MappingError(f"could not allocate a unique identifier after {_MAX_ATTEMPTS} attempts")


def _token_pattern(identifiers: Iterable[str]) -> re.Pattern[str]:
    # Longest first so alternation prefers T10 over T1.
    ordered = sorted(set(identifiers), key=len, reverse=True)
    alternation = "|".join(re.escape(i) for i in ordered)
    return re.compile(rf"{re.escape(REFERENCE_MARKER)}({alternation})(?![0-9A-Za-z_])")


def rewrite_references(text: str, mapping: Mapping[str, str]) -> str:
    """Rewrite ``#<old>`` tokens in ``text``; ``#T1`` never matches inside ``#T10``."""
    if not text or not mapping:
        return text
    pattern = _token_pattern(mapping)
    return pattern.sub(lambda m: REFERENCE_MARKER + mapping[m.group(1)], text)


def _remap(ref: str | None, mapping: Mapping[str, str]) -> str | None:
    if ref is None:
        return None
    return mapping.get(ref, ref)


def apply_mapping(issue: Issue, mapping: Mapping[str, str]) -> Issue:
    """Return a copy of ``issue`` with every mapped identifier replaced."""
    if not mapping:
        return issue.copy()
    return normalize(
        issue.copy(
            number=mapping.get(issue.number, issue.number),
            title=rewrite_references(issue.title, mapping),
            body=rewrite_references(issue.body, mapping),
            parent=_remap(issue.parent, mapping),
            blocked_by=[mapping.get(r, r) for r in issue.blocked_by],
            blocks=[mapping.get(r, r) for r in issue.blocks],
        )
    )


def mentions(issue: Issue, identifiers: Iterable[str]) -> bool:
    """True when ``issue`` still uses any of ``identifiers``."""
    ids = set(identifiers)
    if not ids:
        return False
    if issue.number in ids or (issue.parent in ids):
        return True
    if ids.intersection(issue.blocked_by) or ids.intersection(issue.blocks):
        return True
    pattern = _token_pattern(ids)
    return bool(pattern.search(issue.title) or pattern.search(issue.body))


def referenced_identifiers(records: Iterable[Issue], identifiers: Iterable[str]) -> set[str]:
    """Which of ``identifiers`` are still used anywhere in ``records`` (one pass)."""
    ids = set(identifiers)
    found: set[str] = set()
    if not ids:
        return found
    pattern = _token_pattern(ids)
    for record in records:
        refs = [record.number, record.parent, *record.blocked_by, *record.blocks]
        found.update(ref for ref in refs if ref is not None and ref in ids)
        found.update(pattern.findall(record.title))
        found.update(pattern.findall(record.body))
        if found == ids:
            break
    return found


def materialize(
    provisional_id: str, permanent_id: str, records: Sequence[Issue]
) -> tuple[list[Issue], int]:
    """Rewrite ``provisional_id`` to ``permanent_id`` across ``records``.

    Pure: returns new records (same order) and how many of them changed.
    Persisting the result all-or-nothing is the store's job.
    """
    if not provisional_id.startswith(PROVISIONAL_PREFIX):
        raise MappingError(f"{provisional_id!r} is not a provisional identifier")
    if not permanent_id or permanent_id.startswith(PROVISIONAL_PREFIX):
        raise MappingError(f"{permanent_id!r} is not a permanent identifier")
    mapping = {provisional_id: permanent_id}
    updated: list[Issue] = []
    changed = 0
    for record in records:
        if mentions(record, mapping):
            updated.append(apply_mapping(record, mapping))
            changed += 1
        else:
            updated.append(record)
    return updated, changed


__all__ = [
    "LOCAL_ID_BYTES",
    "REFERENCE_MARKER",
    "apply_mapping",
    "materialize",
    "mentions",
    "new_identifier",
    "referenced_identifiers",
    "rewrite_references",
]
