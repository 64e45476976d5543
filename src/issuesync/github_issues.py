"""GitHub issue operations used by the sync engine.

Encapsulates every GitHub interaction behind :class:`IssuesClient` so the
orchestrator never builds queries itself.  The client sits on a transport
(``gh`` CLI or HTTPS) exposing two calls:

 - ``request(method, path, body=None, paginate=False)`` for REST
 - ``graphql(query, variables)`` returning the raw payload (``data`` and
   ``errors``)

Batched reads and writes use aliased GraphQL documents; each alias is
decoded independently so one bad issue does not poison the batch.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .diffing import IssueChange
from .env_auth import EnvironmentAuthManager
from .errors import INSUFFICIENT_SCOPE_HINT, RemoteError, mentions_insufficient_scope
from .github_cli import GhCliTransport
from .github_rest import GitHubRestTransport
from .logging import get_logger
from .models import Issue, is_provisional, normalize, normalize_state_reason

BATCH_SIZE = 50
_MUTATION_ALIAS = re.compile(r"^m\d+$")


class Transport(Protocol):
    def request(
        self, method: str, path: str, body: Any | None = None, *, paginate: bool = False
    ) -> Any: ...

    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...


@dataclass
class RemoteLabel:
    name: str
    color: str = ""
    description: str = ""
    node_id: str = ""


@dataclass
class RemoteMilestone:
    title: str
    number: int | None = None
    state: str = "open"
    description: str = ""
    due_on: str | None = None
    node_id: str = ""


@dataclass
class RemoteIssueType:
    id: str
    name: str
    description: str = ""


@dataclass
class RemoteProject:
    id: str
    title: str


@dataclass
class BatchEditResult:
    edited: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


_ISSUE_FIELDS = """
fragment IssueFields on Issue {
  id number title body state stateReason
  labels(first: 100) { nodes { name } }
  assignees(first: 100) { nodes { login } }
  milestone { title }
  issueType { name }
  %(projects)s
  parent { number }
  blockedBy(first: 100) { nodes { number } }
  blocking(first: 100) { nodes { number } }
}
"""
_PROJECT_ITEMS = "projectItems(first: 50) { nodes { project { title } } }"


def _nodes(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict) and isinstance(value.get("nodes"), list):
        return [n for n in value["nodes"] if isinstance(n, dict)]
    return []


def _error_alias(error: Mapping[str, Any]) -> str | None:
    path = error.get("path")
    if isinstance(path, list) and path and isinstance(path[0], str):
        if _MUTATION_ALIAS.match(path[0]):
            return path[0]
    return None


def _errors_text(errors: Sequence[Mapping[str, Any]]) -> str:
    return "; ".join(str(e.get("message") or e) for e in errors)


def _is_scope_error(errors: Sequence[Mapping[str, Any]]) -> bool:
    return any(
        e.get("type") == "INSUFFICIENT_SCOPES" or mentions_insufficient_scope(str(e.get("message")))
        for e in errors
    )


def decode_issue(node: Mapping[str, Any], *, include_projects: bool = True) -> Issue:
    """Decode one aliased ``IssueFields`` node into an :class:`Issue`."""
    milestone = node.get("milestone") if isinstance(node.get("milestone"), dict) else {}
    issue_type = node.get("issueType") if isinstance(node.get("issueType"), dict) else {}
    parent = node.get("parent") if isinstance(node.get("parent"), dict) else None
    projects: list[str] = []
    if include_projects:
        for item in _nodes(node.get("projectItems")):
            project = item.get("project")
            if isinstance(project, dict) and project.get("title"):
                projects.append(str(project["title"]))
    return normalize(
        Issue(
            number=str(node.get("number")),
            title=str(node.get("title") or ""),
            body=str(node.get("body") or ""),
            labels=[str(n.get("name")) for n in _nodes(node.get("labels"))],
            assignees=[str(n.get("login")) for n in _nodes(node.get("assignees"))],
            milestone=str((milestone or {}).get("title") or ""),
            state=str(node.get("state") or "OPEN").lower(),
            state_reason=normalize_state_reason(node.get("stateReason")),
            issue_type=str((issue_type or {}).get("name") or ""),
            projects=projects,
            parent=str(parent["number"]) if parent and parent.get("number") else None,
            blocked_by=[str(n.get("number")) for n in _nodes(node.get("blockedBy"))],
            blocks=[str(n.get("number")) for n in _nodes(node.get("blocking"))],
        )
    )


class IssuesClient:
    """GitHub issue operations scoped to one ``owner/repo``.

    Methods raise :class:`RemoteError` on failure; batch calls report
    per-issue failures in their result instead.
    """

    def __init__(self, transport: Transport, repo: str):
        owner, sep, name = repo.partition("/")
        if not sep or not owner or not name:
            raise ValueError(f"repository must look like owner/repo, got {repo!r}")
        self.transport = transport
        self.repo = repo
        self.owner = owner
        self.name = name
        self.can_read_projects = True
        self._node_ids: dict[str, str] = {}
        self._milestones: list[RemoteMilestone] | None = None
        self._labels: list[RemoteLabel] | None = None
        self._logger = get_logger()

    # --- internal helpers -------------------------------------------------
    def _graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = self.transport.graphql(query, variables or {})
        errors = payload.get("errors") or []
        if errors:
            raise RemoteError(
                f"GraphQL request failed: {_errors_text(errors)}",
                insufficient_scope=_is_scope_error(errors),
            )
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    def _repo_vars(self) -> dict[str, Any]:
        return {"owner": self.owner, "name": self.name}

    @staticmethod
    def _check_number(number: str) -> int:
        if is_provisional(number) or not str(number).isdigit():
            raise RemoteError(f"{number!r} is not a GitHub issue number")
        return int(number)

    def _issue_node_ids(self, numbers: Iterable[str]) -> dict[str, str]:
        """Resolve issue numbers to GraphQL node ids; unknown numbers are omitted."""
        numbers = list(numbers)
        missing = [n for n in dict.fromkeys(numbers) if n not in self._node_ids]
        for start in range(0, len(missing), BATCH_SIZE):
            chunk = missing[start:start + BATCH_SIZE]
            aliases = " ".join(
                f"i{idx}: issue(number: {self._check_number(n)}) {{ id }}"
                for idx, n in enumerate(chunk)
            )
            query = (
                "query($owner: String!, $name: String!) {"
                f" repository(owner: $owner, name: $name) {{ {aliases} }} }}"
            )
            payload = self.transport.graphql(query, self._repo_vars())
            repository = (payload.get("data") or {}).get("repository") or {}
            for idx, number in enumerate(chunk):
                node = repository.get(f"i{idx}")
                if isinstance(node, dict) and node.get("id"):
                    self._node_ids[number] = str(node["id"])
        return {n: self._node_ids[n] for n in numbers if n in self._node_ids}

    def _issue_node_id(self, number: str) -> str:
        ids = self._issue_node_ids([number])
        if number not in ids:
            raise RemoteError(f"issue #{number} not found in {self.repo}", status=404)
        return ids[number]

    def _user_ids(self, logins: Iterable[str]) -> dict[str, str]:
        wanted = sorted({login for login in logins if login})
        if not wanted:
            return {}
        decls = " ".join(f"$u{idx}: String!" for idx in range(len(wanted)))
        aliases = " ".join(f"u{idx}: user(login: $u{idx}) {{ id }}" for idx in range(len(wanted)))
        payload = self.transport.graphql(
            f"query({decls}) {{ {aliases} }}",
            {f"u{idx}": login for idx, login in enumerate(wanted)},
        )
        data = payload.get("data") or {}
        out: dict[str, str] = {}
        for idx, login in enumerate(wanted):
            node = data.get(f"u{idx}")
            if isinstance(node, dict) and node.get("id"):
                out[login.lower()] = str(node["id"])
        return out

    # --- reads ------------------------------------------------------------
    def get_issues_batch(self, numbers: Sequence[str]) -> dict[str, Issue]:
        """Fetch issues by number; numbers missing on GitHub are absent from the result."""
        wanted = list(dict.fromkeys(numbers))
        result: dict[str, Issue] = {}
        for start in range(0, len(wanted), BATCH_SIZE):
            chunk = wanted[start:start + BATCH_SIZE]
            result.update(self._fetch_chunk(chunk))
        return result

    def _fetch_chunk(self, chunk: Sequence[str]) -> dict[str, Issue]:
        aliases = {f"issue{idx}": number for idx, number in enumerate(chunk)}
        body = " ".join(
            f"{alias}: issue(number: {self._check_number(number)}) {{ ...IssueFields }}"
            for alias, number in aliases.items()
        )
        include_projects = self.can_read_projects
        payload = self._fetch_payload(body, include_projects)
        errors = [e for e in payload.get("errors") or [] if e.get("type") != "NOT_FOUND"]
        if errors and include_projects and _is_scope_error(errors):
            self._logger.warning("project membership unreadable; " + INSUFFICIENT_SCOPE_HINT)
            self.can_read_projects = False
            include_projects = False
            payload = self._fetch_payload(body, include_projects)
            errors = [e for e in payload.get("errors") or [] if e.get("type") != "NOT_FOUND"]
        if errors:
            raise RemoteError(
                f"batch fetch failed: {_errors_text(errors)}",
                insufficient_scope=_is_scope_error(errors),
            )
        repository = (payload.get("data") or {}).get("repository") or {}
        issues: dict[str, Issue] = {}
        for alias, number in aliases.items():
            node = repository.get(alias)
            if isinstance(node, dict):
                if node.get("id"):
                    self._node_ids[number] = str(node["id"])
                issues[number] = decode_issue(node, include_projects=include_projects)
        return issues

    def _fetch_payload(self, body: str, include_projects: bool) -> dict[str, Any]:
        fragment = _ISSUE_FIELDS % {"projects": _PROJECT_ITEMS if include_projects else ""}
        query = (
            "query($owner: String!, $name: String!) {"
            f" repository(owner: $owner, name: $name) {{ {body} }} }}\n{fragment}"
        )
        return self.transport.graphql(query, self._repo_vars())

    def list_labels(self) -> list[RemoteLabel]:
        data = self.transport.request("GET", f"/repos/{self.repo}/labels", paginate=True) or []
        self._labels = [
            RemoteLabel(
                name=str(entry.get("name")),
                color=str(entry.get("color") or ""),
                description=str(entry.get("description") or ""),
                node_id=str(entry.get("node_id") or ""),
            )
            for entry in data
            if isinstance(entry, dict) and entry.get("name")
        ]
        return list(self._labels)

    def list_milestones(self) -> list[RemoteMilestone]:
        data = (
            self.transport.request(
                "GET", f"/repos/{self.repo}/milestones?state=all", paginate=True
            )
            or []
        )
        self._milestones = [
            RemoteMilestone(
                title=str(entry.get("title")),
                number=entry.get("number") if isinstance(entry.get("number"), int) else None,
                state=str(entry.get("state") or "open"),
                description=str(entry.get("description") or ""),
                due_on=entry.get("due_on"),
                node_id=str(entry.get("node_id") or ""),
            )
            for entry in data
            if isinstance(entry, dict) and entry.get("title")
        ]
        return list(self._milestones)

    def list_issue_types(self) -> list[RemoteIssueType]:
        """Issue types of the owning organization; empty when unsupported."""
        query = (
            "query($owner: String!, $name: String!) { repository(owner: $owner, name: $name) {"
            " issueTypes(first: 50) { nodes { id name description } } } }"
        )
        payload = self.transport.graphql(query, self._repo_vars())
        repository = (payload.get("data") or {}).get("repository") or {}
        if payload.get("errors") and not repository.get("issueTypes"):
            self._logger.debug("issue types unavailable", error=_errors_text(payload["errors"]))
            return []
        return [
            RemoteIssueType(
                id=str(n.get("id")),
                name=str(n.get("name")),
                description=str(n.get("description") or ""),
            )
            for n in _nodes(repository.get("issueTypes"))
            if n.get("id") and n.get("name")
        ]

    def list_projects(self) -> list[RemoteProject]:
        """Projects V2 of the repository owner; empty without ``project`` scope."""
        query = (
            "query($owner: String!) { repositoryOwner(login: $owner) {"
            " ... on Organization { projectsV2(first: 100) { nodes { id title } } }"
            " ... on User { projectsV2(first: 100) { nodes { id title } } } } }"
        )
        payload = self.transport.graphql(query, {"owner": self.owner})
        errors = payload.get("errors") or []
        if errors:
            if _is_scope_error(errors):
                self.can_read_projects = False
                self._logger.warning("cannot list projects; " + INSUFFICIENT_SCOPE_HINT)
                return []
            raise RemoteError(f"listing projects failed: {_errors_text(errors)}")
        owner = (payload.get("data") or {}).get("repositoryOwner") or {}
        return [
            RemoteProject(id=str(n.get("id")), title=str(n.get("title")))
            for n in _nodes(owner.get("projectsV2"))
            if n.get("id") and n.get("title")
        ]

    # --- writes -----------------------------------------------------------
    def _milestone_for(self, title: str) -> RemoteMilestone | None:
        if not title:
            return None
        if self._milestones is None:
            self.list_milestones()
        for entry in self._milestones or []:
            if entry.title.lower() == title.lower():
                return entry
        return None

    def _label_ids(self) -> dict[str, str]:
        if self._labels is None:
            self.list_labels()
        return {label.name.lower(): label.node_id for label in self._labels or [] if label.node_id}

    def create_issue(self, issue: Issue) -> str:
        """Create ``issue`` on GitHub and return its permanent number."""
        payload: dict[str, Any] = {"title": issue.title, "body": issue.body}
        if issue.labels:
            payload["labels"] = list(issue.labels)
        if issue.assignees:
            payload["assignees"] = list(issue.assignees)
        milestone = self._milestone_for(issue.milestone)
        if milestone is not None and milestone.number is not None:
            payload["milestone"] = milestone.number
        data = self.transport.request("POST", f"/repos/{self.repo}/issues", payload)
        number = data.get("number") if isinstance(data, dict) else None
        if not isinstance(number, int):
            raise RemoteError(f"create issue {issue.title!r} returned no number")
        if isinstance(data, dict) and data.get("node_id"):
            self._node_ids[str(number)] = str(data["node_id"])
        return str(number)

    def close_issue(self, number: str, reason: str | None = None) -> None:
        payload: dict[str, Any] = {"state": "closed"}
        if reason:
            payload["state_reason"] = reason.strip().lower().replace(" ", "_")
        self.transport.request(
            "PATCH", f"/repos/{self.repo}/issues/{self._check_number(number)}", payload
        )

    def reopen_issue(self, number: str) -> None:
        self.transport.request(
            "PATCH", f"/repos/{self.repo}/issues/{self._check_number(number)}", {"state": "open"}
        )

    def batch_edit_issues(self, edits: Sequence[tuple[Issue, IssueChange]]) -> BatchEditResult:
        """Apply plain field edits in one aliased ``updateIssue`` mutation.

        ``edits`` pairs the desired issue with its change set; only fields in
        the change set are sent, with label/assignee sets sent in full.
        """
        result = BatchEditResult()
        if not edits:
            return result
        node_ids = self._issue_node_ids(issue.number for issue, _ in edits)
        label_ids = self._label_ids() if any(c.touches("labels") for _, c in edits) else {}
        user_ids = self._user_ids(
            login for issue, c in edits if c.touches("assignees") for login in issue.assignees
        )
        inputs: dict[str, dict[str, Any]] = {}
        alias_numbers: dict[str, str] = {}
        for idx, (issue, change) in enumerate(edits):
            try:
                item = self._edit_input(issue, change, node_ids, label_ids, user_ids)
            except RemoteError as exc:
                result.errors[issue.number] = str(exc)
                continue
            alias = f"m{idx}"
            inputs[alias] = item
            alias_numbers[alias] = issue.number
        if not inputs:
            return result
        decls = ", ".join(f"$in{alias[1:]}: UpdateIssueInput!" for alias in inputs)
        mutations = " ".join(
            f"{alias}: updateIssue(input: $in{alias[1:]}) {{ issue {{ number }} }}"
            for alias in inputs
        )
        variables = {f"in{alias[1:]}": value for alias, value in inputs.items()}
        payload = self.transport.graphql(f"mutation({decls}) {{ {mutations} }}", variables)
        errors = payload.get("errors") or []
        unassigned: list[str] = []
        for error in errors:
            alias = _error_alias(error)
            if alias in alias_numbers:
                result.errors[alias_numbers[alias]] = str(error.get("message") or error)
            else:
                unassigned.append(str(error.get("message") or error))
        data = payload.get("data") or {}
        for alias, number in alias_numbers.items():
            if number in result.errors:
                continue
            if unassigned and not data.get(alias):
                result.errors[number] = "; ".join(unassigned)
            else:
                result.edited.append(number)
        return result

    def _edit_input(
        self,
        issue: Issue,
        change: IssueChange,
        node_ids: Mapping[str, str],
        label_ids: Mapping[str, str],
        user_ids: Mapping[str, str],
    ) -> dict[str, Any]:
        if issue.number not in node_ids:
            raise RemoteError(f"issue #{issue.number} not found in {self.repo}", status=404)
        item: dict[str, Any] = {"id": node_ids[issue.number]}
        if change.touches("title"):
            item["title"] = issue.title
        if change.touches("body"):
            item["body"] = issue.body
        if change.touches("milestone"):
            if issue.milestone:
                milestone = self._milestone_for(issue.milestone)
                if milestone is None or not milestone.node_id:
                    raise RemoteError(f"unknown milestone {issue.milestone!r}")
                item["milestoneId"] = milestone.node_id
            else:
                item["milestoneId"] = None
        if change.touches("labels"):
            unknown = [name for name in issue.labels if name.lower() not in label_ids]
            if unknown:
                raise RemoteError(f"unknown labels: {', '.join(unknown)}")
            item["labelIds"] = [label_ids[name.lower()] for name in issue.labels]
        if change.touches("assignees"):
            unknown = [login for login in issue.assignees if login.lower() not in user_ids]
            if unknown:
                raise RemoteError(f"unknown assignees: {', '.join(unknown)}")
            item["assigneeIds"] = [user_ids[login.lower()] for login in issue.assignees]
        return item

    def create_label(self, name: str, color: str, description: str = "") -> RemoteLabel:
        data = self.transport.request(
            "POST",
            f"/repos/{self.repo}/labels",
            {"name": name, "color": color, "description": description},
        )
        label = RemoteLabel(
            name=name,
            color=color,
            description=description,
            node_id=str((data or {}).get("node_id") or "") if isinstance(data, dict) else "",
        )
        if self._labels is not None:
            self._labels.append(label)
        return label

    def create_milestone(self, title: str) -> RemoteMilestone:
        data = self.transport.request(
            "POST", f"/repos/{self.repo}/milestones", {"title": title, "state": "open"}
        )
        entry = data if isinstance(data, dict) else {}
        milestone = RemoteMilestone(
            title=title,
            number=entry.get("number") if isinstance(entry.get("number"), int) else None,
            node_id=str(entry.get("node_id") or ""),
        )
        if self._milestones is not None:
            self._milestones.append(milestone)
        return milestone

    def set_issue_type(self, number: str, issue_type_id: str | None) -> None:
        self._graphql(
            "mutation($issue: ID!, $type: ID) {"
            " updateIssueIssueType(input: {issueId: $issue, issueTypeId: $type})"
            " { issue { number } } }",
            {"issue": self._issue_node_id(number), "type": issue_type_id},
        )

    def sync_projects(
        self, number: str, wanted: Iterable[str], known: Mapping[str, RemoteProject]
    ) -> None:
        """Make the issue's Projects V2 membership match ``wanted`` titles.

        ``known`` maps lower-cased project titles to projects; titles not in
        it are skipped by the caller.
        """
        issue_id = self._issue_node_id(number)
        try:
            data = self._graphql(
                "query($id: ID!) { node(id: $id) { ... on Issue {"
                " projectItems(first: 50) { nodes { id project { id title } } } } } }",
                {"id": issue_id},
            )
        except RemoteError as exc:
            raise self._scope_error(exc) from exc
        current: dict[str, tuple[str, str]] = {}
        for item in _nodes((data.get("node") or {}).get("projectItems")):
            project = item.get("project") or {}
            if project.get("title"):
                current[str(project["title"]).lower()] = (str(project.get("id")), str(item.get("id")))
        target = {title.lower() for title in wanted}
        try:
            for key in sorted(target - set(current)):
                project_id = known[key].id
                self._graphql(
                    "mutation($project: ID!, $content: ID!) {"
                    " addProjectV2ItemById(input: {projectId: $project, contentId: $content})"
                    " { item { id } } }",
                    {"project": project_id, "content": issue_id},
                )
            for key in sorted(set(current) - target):
                project_id, item_id = current[key]
                self._graphql(
                    "mutation($project: ID!, $item: ID!) {"
                    " deleteProjectV2Item(input: {projectId: $project, itemId: $item})"
                    " { deletedItemId } }",
                    {"project": project_id, "item": item_id},
                )
        except RemoteError as exc:
            raise self._scope_error(exc) from exc

    @staticmethod
    def _scope_error(exc: RemoteError) -> RemoteError:
        if exc.insufficient_scope:
            return RemoteError(INSUFFICIENT_SCOPE_HINT, insufficient_scope=True)
        return exc

    def sync_relationships(self, issue: Issue) -> None:
        """Mirror ``parent``, ``blocked_by`` and ``blocks`` of ``issue`` on GitHub.

        Provisional references are skipped; they resolve on a later push once
        the referenced issue exists.
        """
        number = issue.number
        data = self._graphql(
            "query($owner: String!, $name: String!, $number: Int!) {"
            " repository(owner: $owner, name: $name) { issue(number: $number) {"
            " id parent { id number } blockedBy(first: 100) { nodes { number } } } } }",
            {**self._repo_vars(), "number": self._check_number(number)},
        )
        node = (data.get("repository") or {}).get("issue")
        if not isinstance(node, dict):
            raise RemoteError(f"issue #{number} not found in {self.repo}", status=404)
        issue_id = str(node["id"])
        self._node_ids[number] = issue_id
        current_parent = node.get("parent") or {}
        current_parent_number = str(current_parent.get("number")) if current_parent else None
        current_blockers = {str(n.get("number")) for n in _nodes(node.get("blockedBy"))}

        wanted_parent = issue.parent if issue.parent and not is_provisional(issue.parent) else None
        if issue.parent and wanted_parent is None:
            self._logger.debug("skipping provisional parent", issue_number=number)
        if wanted_parent != current_parent_number:
            if wanted_parent:
                self._graphql(
                    "mutation($parent: ID!, $child: ID!) { addSubIssue(input:"
                    " {issueId: $parent, subIssueId: $child, replaceParent: true})"
                    " { issue { number } } }",
                    {"parent": self._issue_node_id(wanted_parent), "child": issue_id},
                )
            elif current_parent.get("id"):
                self._graphql(
                    "mutation($parent: ID!, $child: ID!) { removeSubIssue(input:"
                    " {issueId: $parent, subIssueId: $child}) { issue { number } } }",
                    {"parent": str(current_parent["id"]), "child": issue_id},
                )

        wanted_blockers = {ref for ref in issue.blocked_by if not is_provisional(ref)}
        for ref in sorted(wanted_blockers - current_blockers):
            self._blocked_by("addBlockedBy", issue_id, self._issue_node_id(ref))
        for ref in sorted(current_blockers - wanted_blockers):
            self._blocked_by("removeBlockedBy", issue_id, self._issue_node_id(ref))
        # "X blocks Y" is stored on GitHub as "Y blocked by X".
        for ref in issue.blocks:
            if is_provisional(ref):
                continue
            self._blocked_by("addBlockedBy", self._issue_node_id(ref), issue_id, tolerate_existing=True)

    def _blocked_by(
        self, mutation: str, issue_id: str, blocker_id: str, *, tolerate_existing: bool = False
    ) -> None:
        try:
            self._graphql(
                f"mutation($issue: ID!, $blocker: ID!) {{ {mutation}(input:"
                " {issueId: $issue, blockingIssueId: $blocker}) { issue { number } } }",
                {"issue": issue_id, "blocker": blocker_id},
            )
        except RemoteError as exc:
            if tolerate_existing and "already" in str(exc).lower():
                return
            raise

    def create_comment(self, number: str, body: str) -> None:
        self.transport.request(
            "POST",
            f"/repos/{self.repo}/issues/{self._check_number(number)}/comments",
            {"body": body},
        )


def build_transport(auth: EnvironmentAuthManager) -> Transport:
    """HTTPS transport when a token is exported (and REST is enabled), else ``gh``."""
    token = auth.get_github_token()
    if token and auth.rest_enabled():
        return GitHubRestTransport(token=token)
    return GhCliTransport()


def build_client(repo: str, auth: EnvironmentAuthManager) -> IssuesClient:
    return IssuesClient(build_transport(auth), repo)


__all__ = [
    "BATCH_SIZE",
    "BatchEditResult",
    "IssuesClient",
    "RemoteIssueType",
    "RemoteLabel",
    "RemoteMilestone",
    "RemoteProject",
    "Transport",
    "build_client",
    "build_transport",
    "decode_issue",
]
