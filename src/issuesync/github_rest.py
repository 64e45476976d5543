from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import RemoteError, mentions_insufficient_scope

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"
USER_AGENT = "issuesync-rest/0.1.0"
HTTP_ERROR_STATUS = 400
REQUEST_TIMEOUT = 30


class GitHubAPIError(RemoteError):
    """Raised when the GitHub REST/GraphQL API returns an error status."""


def _looks_like_scope_error(status: int, text: str) -> bool:
    return status in (401, 403) and (mentions_insufficient_scope(text) or "scope" in text.lower())


@dataclass
class GitHubRestTransport:
    """Token-authenticated HTTPS transport for REST and GraphQL calls.

    Requests are sent once; failures raise :class:`GitHubAPIError`.
    """

    token: str
    base_url: str = DEFAULT_API_URL
    graphql_url: str = DEFAULT_GRAPHQL_URL
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> requests.Response:
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._session.headers,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise GitHubAPIError(f"GitHub API {method} {url} failed: {exc}") from exc
        if response.status_code >= HTTP_ERROR_STATUS:
            text = response.text or ""
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code}: {text[:200]}",
                status=response.status_code,
                insufficient_scope=_looks_like_scope_error(response.status_code, text),
                response_text=text,
            )
        return response

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubAPIError(
                "GitHub API returned a non-JSON body", status=response.status_code
            ) from exc

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def request(
        self, method: str, path: str, body: Any | None = None, *, paginate: bool = False
    ) -> Any:
        url = self._url(path)
        if not paginate:
            return self._decode(self._send(method, url, json_body=body))
        params: dict[str, Any] = {"per_page": 100, "page": 1}
        results: list[Any] = []
        while True:
            data = self._decode(self._send(method, url, params=params))
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < params["per_page"]:
                break
            params["page"] += 1
        return results

    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a GraphQL document; the payload is returned with any ``errors``."""
        payload = {"query": query, "variables": variables or {}}
        data = self._decode(self._send("POST", self.graphql_url, json_body=payload))
        if not isinstance(data, dict):
            raise GitHubAPIError("GraphQL response was not an object")
        return data


__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_GRAPHQL_URL",
    "GitHubAPIError",
    "GitHubRestTransport",
]
