"""issuesync CLI.

Subcommands:
  init     -> create the ``.issues`` layout and ``.sync/config.yaml``
  new      -> write a new local issue under a provisional identifier
  comment  -> queue a comment to post on the next push
  push     -> push local issue files to GitHub (summary or JSON)
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from .config import ConfigError, SyncConfig, dump_config
from .env_auth import EnvAuthConfig, create_env_auth_manager
from .errors import IssueSyncError
from .github_issues import build_client
from .logging import configure_logging
from .orchestrator import PushOptions, PushResult, Reconciler
from .runtime import (
    EXIT_FATAL,
    EXIT_INCOMPLETE,
    EXIT_OK,
    config_path_for,
    execute_command,
    prepare_config,
    report_failure,
)
from .store import LocalStore

REPO_HELP = "Override target repository (owner/repo)"
QUIET_VAR = "ISSUESYNC_QUIET"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="issuesync", description="Sync local markdown issues with GitHub"
    )
    p.add_argument("--root", default=".", help="Directory containing .issues (default: cwd)")
    p.add_argument("--config", help="Config file (default: .issues/.sync/config.yaml)")
    p.add_argument(
        "--quiet",
        action="store_true",
        help=f"Suppress informational output (env: {QUIET_VAR}=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pi = sub.add_parser("init", help="Create the .issues layout and configuration")
    pi.add_argument("--repo", help="Target repository (owner/repo)")
    pi.add_argument("--force", action="store_true", help="Overwrite an existing config")

    pn = sub.add_parser("new", help="Create a local issue with a provisional identifier")
    pn.add_argument("title")
    pn.add_argument("--label", action="append", default=[], dest="labels")
    pn.add_argument("--assignee", action="append", default=[], dest="assignees")
    pn.add_argument("--milestone", default="")
    pn.add_argument("--body", default="")

    pc = sub.add_parser("comment", help="Queue a comment for the next push")
    pc.add_argument("number", help="Issue number or provisional identifier")
    pc.add_argument("body")

    pp = sub.add_parser("push", help="Push local issues to GitHub")
    pp.add_argument("selection", nargs="*", help="Issue numbers or file paths (default: all)")
    pp.add_argument("--repo", help=REPO_HELP)
    pp.add_argument("--force", action="store_true", help="Overwrite remote changes on conflict")
    pp.add_argument("--no-comments", action="store_true", help="Do not post pending comments")
    pp.add_argument("--dry-run", action="store_true", help="Report intended actions only")
    pp.add_argument("--json", action="store_true", help="Print the push result as JSON")
    return p


def _is_quiet(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "quiet", False) or os.environ.get(QUIET_VAR) == "1")


def _configure_logging(args: argparse.Namespace, cfg: SyncConfig | None) -> None:
    level = cfg.logging_level if cfg is not None else "INFO"
    if _is_quiet(args):
        level = "WARNING"
    configure_logging(
        json_logging=bool(cfg and cfg.logging_json_enabled),
        level=level,
        stream=sys.stderr if getattr(args, "json", False) else None,
    )


def _require_cfg(cfg: SyncConfig | None) -> SyncConfig:
    if cfg is None:  # pragma: no cover - prepare_config loads it for push
        raise ConfigError("Configuration not loaded")
    return cfg


def _cmd_init(cfg: SyncConfig | None, args: argparse.Namespace) -> int:
    from .ux import print_info, print_success  # noqa: PLC0415

    store = LocalStore(args.root)
    store.ensure_layout()
    path = config_path_for(args)
    if path.exists() and not args.force:
        if args.repo:
            raise ConfigError(f"{path} already exists; use --force to overwrite")
        print_info(f"Already initialized: {path}")
        return EXIT_OK
    if not args.repo:
        raise ConfigError("init requires --repo owner/repo")
    new_cfg = SyncConfig()
    new_cfg.set_repository(args.repo)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_config(new_cfg), encoding="utf-8")
    if _is_quiet(args):
        print(f"[init] {path}")
    else:
        print_success(f"Initialized {store.base} for {new_cfg.full_repo}")
    return EXIT_OK


def _cmd_new(cfg: SyncConfig | None, args: argparse.Namespace) -> int:
    from .ux import print_success  # noqa: PLC0415

    store = LocalStore(args.root)
    created = store.create_issue(
        args.title,
        body=args.body,
        labels=args.labels,
        assignees=args.assignees,
        milestone=args.milestone,
    )
    if _is_quiet(args):
        print(created.path)
    else:
        print_success(f"Created {created.number}: {created.path}")
    return EXIT_OK


def _cmd_comment(cfg: SyncConfig | None, args: argparse.Namespace) -> int:
    store = LocalStore(args.root)
    comment = store.add_comment(args.number.lstrip("#"), args.body)
    print(comment.path)
    return EXIT_OK


def _print_push_result(result: PushResult, args: argparse.Namespace, store: LocalStore) -> None:
    from .ux import (  # noqa: PLC0415
        print_info,
        print_issue_problems,
        print_lines,
        print_operation_status,
        print_summary_box,
        print_warning,
    )

    totals = {
        "created": len(result.created),
        "updated": len(result.updated),
        "unchanged": len(result.unchanged),
        "conflicts": len(result.conflicts),
        "failed": len(result.failed),
        "comments": len(result.comments_posted),
    }
    if _is_quiet(args):
        print("[push] totals", json.dumps(totals))
        return
    for path, reason in result.skipped_files.items():
        print_warning(f"Skipped {path}: {reason}")
    for message in result.warnings:
        print_warning(message)
    for orphan in store.orphaned_originals():
        print_warning(f"Original without issue file: {orphan.name}")
    if result.dry_run:
        print_info("Dry run: nothing was changed")
        print_lines(result.planned)
    elif not result.planned and result.ok:
        print_info(f"Nothing to push: {len(result.unchanged)} issues up to date")
    else:
        print_summary_box(
            "Push Summary",
            [
                ("Created", totals["created"]),
                ("Updated", totals["updated"]),
                ("Unchanged", totals["unchanged"]),
                ("Comments posted", totals["comments"]),
                ("Conflicts", totals["conflicts"]),
                ("Failed", totals["failed"]),
            ],
        )
    for provisional, number in result.mapping.items():
        print(f"  {provisional} -> #{number}")
    conflicts = result.conflict_errors()
    if conflicts:
        print_warning("Conflicts (edit locally or rerun with --force):")
        print_lines(str(exc) for exc in conflicts)
    print_issue_problems("Failed:", result.failed)
    print_operation_status("push", "success" if result.ok else "failed")


def _cmd_push(cfg: SyncConfig | None, args: argparse.Namespace) -> int:
    cfg = _require_cfg(cfg)
    if not cfg.full_repo:
        raise ConfigError("No repository configured; run 'issuesync init --repo owner/repo'")
    root = Path(args.root)
    store = LocalStore(root)
    auth = create_env_auth_manager(
        EnvAuthConfig(
            load_dotenv=cfg.env_auth_load_dotenv,
            dotenv_path=cfg.env_auth_dotenv_path,
            base_dir=root,
        )
    )
    client = build_client(cfg.full_repo, auth)
    options = PushOptions(
        force=args.force,
        skip_pending_comments=args.no_comments,
        dry_run=args.dry_run,
        lock_timeout=cfg.lock_timeout_seconds,
        poll_interval=cfg.lock_poll_interval_seconds,
        truncate_body_diff=cfg.truncate_body_diff,
    )
    result = Reconciler(store, client).push(args.selection, options)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_push_result(result, args, store)
    return EXIT_OK if result.ok else EXIT_INCOMPLETE


def _build_handlers(args: argparse.Namespace, cfg: SyncConfig | None) -> dict[str, Any]:
    return {
        "init": lambda: _cmd_init(cfg, args),
        "new": lambda: _cmd_new(cfg, args),
        "comment": lambda: _cmd_comment(cfg, args),
        "push": lambda: _cmd_push(cfg, args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "quiet", False) and os.environ.get(QUIET_VAR) == "1":
        args.quiet = True
    try:
        cfg = prepare_config(args)
    except IssueSyncError as exc:
        report_failure(exc, args.cmd)
        return EXIT_FATAL
    _configure_logging(args, cfg)
    handlers = _build_handlers(args, cfg)
    handler = handlers.get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return EXIT_FATAL
    return execute_command(handler, args, cfg, args.cmd)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
