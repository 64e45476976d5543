from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypedDict, cast

import yaml

from .errors import ParseError
from .models import Issue, is_provisional, normalize, normalize_body

FRONT_MATTER_DELIMITER = '---'
BOM = '\ufeff'
SLUG_FALLBACK = 'issue'

_slug_strip_re = re.compile(r'[^a-z0-9]+')
_file_number_re = re.compile(r'^([^-]+)-')


class _FrontMatter(TypedDict, total=False):
    number: int | str
    title: str
    labels: list[str]
    assignees: list[str]
    milestone: str
    state: str
    state_reason: str
    issue_type: str
    projects: list[str]
    parent: int | str
    blocked_by: list[int | str]
    blocks: list[int | str]
    synced_at: str | datetime


def slugify(title: str) -> str:
    slug = _slug_strip_re.sub('-', (title or '').strip().lower()).strip('-')
    return slug or SLUG_FALLBACK


def file_name(issue: Issue) -> str:
    return f'{issue.number}-{slugify(issue.title)}.md'


def number_from_path(path: Path) -> str | None:
    match = _file_number_re.match(path.name)
    if match:
        return match.group(1)
    stem = path.stem
    return stem or None


def split_front_matter(text: str) -> tuple[str, str]:
    """Return ``(yaml_text, body)``; raises ParseError when delimiters are missing."""
    if text.startswith(BOM):
        text = text[len(BOM):]
    text = text.replace('\r\n', '\n')
    lines = text.split('\n')
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        raise ParseError('missing front matter')
    for idx in range(1, len(lines)):
        if lines[idx].strip() == FRONT_MATTER_DELIMITER:
            return '\n'.join(lines[1:idx]), '\n'.join(lines[idx + 1:])
    raise ParseError('unterminated front matter')


def _as_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    raise ParseError(f'{key} must be a list')


def _as_ref(value: Any) -> str | None:
    if value is None or value == '':
        return None
    if isinstance(value, (str, int)):
        return str(value)
    raise ParseError('parent must be a number or identifier')


def _as_timestamp(value: Any) -> datetime | None:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError as exc:
        raise ParseError(f'invalid synced_at: {value!r}') from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse(text: str, number_hint: str | None = None) -> Issue:
    front, body = split_front_matter(text)
    try:
        loaded_any = yaml.safe_load(front) or {}
    except yaml.YAMLError as exc:
        raise ParseError(f'invalid YAML front matter: {exc}') from exc
    if not isinstance(loaded_any, dict):
        raise ParseError('front matter must be a mapping')
    data = cast(_FrontMatter, loaded_any)
    number_any = data.get('number')
    number = str(number_any).strip() if number_any not in (None, '') else (number_hint or '')
    if not number:
        raise ParseError('missing issue number')
    title_any = data.get('title', '')
    issue = Issue(
        number=number,
        title=str(title_any or ''),
        body=body,
        labels=_as_list(data.get('labels'), 'labels'),
        assignees=_as_list(data.get('assignees'), 'assignees'),
        milestone=str(data.get('milestone') or ''),
        state=str(data.get('state') or 'open'),
        state_reason=cast(Any, data.get('state_reason')),
        issue_type=str(data.get('issue_type') or ''),
        projects=_as_list(data.get('projects'), 'projects'),
        parent=_as_ref(data.get('parent')),
        blocked_by=_as_list(data.get('blocked_by'), 'blocked_by'),
        blocks=_as_list(data.get('blocks'), 'blocks'),
        synced_at=_as_timestamp(data.get('synced_at')),
    )
    return normalize(issue)


def parse_file(path: Path) -> Issue:
    try:
        text = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f'unreadable: {exc}', path=str(path)) from exc
    try:
        return parse(text, number_hint=number_from_path(path))
    except ParseError as exc:
        raise ParseError(exc.reason, path=str(path)) from exc


def _render_ref(ref: str) -> int | str:
    if not is_provisional(ref) and ref.isdigit():
        return int(ref)
    return ref


def render(issue: Issue) -> str:
    """Serialize ``issue`` as markdown with YAML front matter."""
    canon = normalize(issue)
    data: dict[str, Any] = {'number': _render_ref(canon.number), 'title': canon.title}
    if canon.labels:
        data['labels'] = canon.labels
    if canon.assignees:
        data['assignees'] = canon.assignees
    if canon.milestone:
        data['milestone'] = canon.milestone
    data['state'] = canon.state
    if canon.state_reason:
        data['state_reason'] = canon.state_reason
    if canon.issue_type:
        data['issue_type'] = canon.issue_type
    if canon.projects:
        data['projects'] = canon.projects
    if canon.parent:
        data['parent'] = _render_ref(canon.parent)
    if canon.blocked_by:
        data['blocked_by'] = [_render_ref(r) for r in canon.blocked_by]
    if canon.blocks:
        data['blocks'] = [_render_ref(r) for r in canon.blocks]
    if canon.synced_at:
        data['synced_at'] = canon.synced_at.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')
    front = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    head = f'{FRONT_MATTER_DELIMITER}\n{front}{FRONT_MATTER_DELIMITER}\n'
    body = normalize_body(canon.body)
    return f'{head}\n{body}' if body else head


__all__ = [
    'ParseError',
    'file_name',
    'number_from_path',
    'parse',
    'parse_file',
    'render',
    'slugify',
    'split_front_matter',
]
