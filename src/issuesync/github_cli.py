"""Transport that talks to GitHub through the authenticated ``gh`` CLI.

``gh api`` handles hosts, tokens and enterprise configuration, so this is
the default transport when no token is exported in the environment.
Request bodies are piped on stdin (``--input -``) to keep issue text out of
the process argument list.
"""

from __future__ import annotations

import json
import re
import shutil
import subprocess  # nosec B404 - subprocess is required for GitHub CLI invocation
from collections.abc import Callable
from typing import Any

from .errors import RemoteError, mentions_insufficient_scope
from .logging import get_logger

_STATUS_PATTERN = re.compile(r"HTTP (\d{3})")

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class GhCliTransport:
    def __init__(self, gh_path: str | None = None, runner: Runner | None = None):
        self._gh = gh_path or shutil.which("gh") or "gh"
        self._runner: Runner = runner or subprocess.run

    def _run(self, args: list[str], stdin: str | None) -> subprocess.CompletedProcess[str]:
        cmd = [self._gh, *args]
        get_logger().debug("gh invocation", command=" ".join(cmd[:4]))
        try:
            return self._runner(  # nosec B603 - command uses controlled arguments
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise RemoteError(
                "GitHub CLI 'gh' not found; install it or export GITHUB_TOKEN"
            ) from exc

    @staticmethod
    def _failure(proc: subprocess.CompletedProcess[str], what: str) -> RemoteError:
        detail = (proc.stderr or "").strip() or (proc.stdout or "").strip()
        match = _STATUS_PATTERN.search(detail)
        return RemoteError(
            f"gh api {what} failed: {detail[:300]}",
            status=int(match.group(1)) if match else None,
            insufficient_scope=mentions_insufficient_scope(detail),
            response_text=detail,
        )

    def request(
        self, method: str, path: str, body: Any | None = None, *, paginate: bool = False
    ) -> Any:
        args = ["api", path.lstrip("/"), "--method", method.upper()]
        if paginate:
            args.extend(["--paginate", "--slurp"])
        if body is not None:
            args.extend(["--input", "-"])
        proc = self._run(args, json.dumps(body) if body is not None else None)
        if proc.returncode != 0:
            raise self._failure(proc, f"{method.upper()} {path}")
        out = (proc.stdout or "").strip()
        if not out:
            return None
        try:
            data = json.loads(out)
        except ValueError as exc:
            raise RemoteError(f"gh api {path} returned non-JSON output") from exc
        if paginate and isinstance(data, list) and all(isinstance(page, list) for page in data):
            return [item for page in data for item in page]
        return data

    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = json.dumps({"query": query, "variables": variables or {}})
        proc = self._run(["api", "graphql", "--input", "-"], payload)
        out = (proc.stdout or "").strip()
        # gh exits non-zero when the response carries errors but still prints it.
        if out:
            try:
                data = json.loads(out)
            except ValueError:
                data = None
            if isinstance(data, dict) and ("data" in data or "errors" in data):
                return data
        if proc.returncode != 0:
            raise self._failure(proc, "graphql")
        raise RemoteError("gh api graphql returned no usable response")


__all__ = ["GhCliTransport"]
