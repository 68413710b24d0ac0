"""Command-line entrypoint for procon.

Subcommands
- ``init``: create ``projects/``, ``artifacts/`` and an empty state file under the root.
- ``plan [PROJECT...]``: show the change classification and the actions an apply would run.
- ``apply [--dry-run] [PROJECT...]``: run the reconciliation loop and print the report.
- ``clean [PROJECT...]``: remove artifact directories of declared projects.
- ``run PROJECT``: run an applied project's start commands in the foreground. Generated
  units use this as their ``ExecStart``.
- ``serve``: run the HTTP API.

Exit codes: 0 on success, 1 when a project failed or state could not be written, 2 on
configuration errors.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from procon.config.loader import ConfigurationError
from procon.core.instance_manager import InstanceManager, ProjectNotFoundError
from procon.core.report import render_actions, render_apply, render_changes
from procon.db.store import StateStoreError
from procon.settings import RuntimeSettings

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="procon", description="Reconcile locally hosted projects")
    parser.add_argument("--root", type=Path, default=None, help="Working root (default: $PROCON_ROOT or cwd)")
    parser.add_argument("--log-level", default="WARNING", choices=LOG_LEVELS, help="Logging verbosity")
    parser.add_argument(
        "--safe-mode",
        action="store_true",
        help="Treat every service-manager call as a successful no-op",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the working tree layout")

    plan = sub.add_parser("plan", help="Show what apply would do")
    plan.add_argument("projects", nargs="*", help="Restrict to these project names")

    apply = sub.add_parser("apply", help="Run the reconciliation loop")
    apply.add_argument("projects", nargs="*", help="Restrict to these project names")
    apply.add_argument("--dry-run", action="store_true", help="Report actions without running them")

    clean = sub.add_parser("clean", help="Remove project artifact directories")
    clean.add_argument("projects", nargs="*", help="Restrict to these project names")

    run = sub.add_parser("run", help="Run one project's start commands in the foreground")
    run.add_argument("project", help="Project name")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def resolve_settings(args: argparse.Namespace) -> RuntimeSettings:
    settings = RuntimeSettings.from_env()
    overrides: dict[str, object] = {}
    if args.root is not None:
        overrides["root"] = args.root
    if args.safe_mode:
        overrides["safe_mode"] = True
    if getattr(args, "dry_run", False):
        overrides["dry_run"] = True
    return replace(settings, **overrides).normalized()


def _print_lines(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


def _run_command(args: argparse.Namespace, manager: InstanceManager) -> int:
    match args.command:
        case "init":
            instance = asyncio.run(manager.init())
            print(f"Initialized {instance.root}")
            return 0
        case "plan":
            planned = asyncio.run(manager.plan(args.projects))
            _print_lines(render_changes(planned.changes, planned.phases))
            _print_lines(render_actions(planned.actions, would_run=True))
            return 0
        case "apply":
            result = asyncio.run(manager.apply(args.projects))
            _print_lines(render_apply(result.report))
            return 0 if result.report.ok else 1
        case "clean":
            for path in manager.clean(args.projects):
                print(f"Removed {path}")
            return 0
        case "run":
            return asyncio.run(manager.run_project(args.project))
        case "serve":
            from procon.api.app import serve

            serve(manager.settings, host=args.host, port=args.port)
            return 0
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = resolve_settings(args)
    except ValueError as exc:
        logging.error("Invalid settings: %s", exc)
        return 2

    manager = InstanceManager(settings)
    try:
        return _run_command(args, manager)
    except ConfigurationError as exc:
        logging.error("Configuration error in %s: %s", exc.path, exc.message)
        return 2
    except (StateStoreError, ProjectNotFoundError) as exc:
        logging.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
