"""RepoDB CLI entry points.
This module exposes read, lock, and change-plan commands for containers.
It maps argparse commands onto SDK calls and prints results as JSON.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
from typing import Any, Sequence

from cli.apply_command import add_apply_command, run_apply_command
from cli.lock_command import (
    add_lock_status_command,
    add_unlock_command,
    run_lock_status_command,
    run_unlock_command,
)
from cli.output import emit_result
from core.config import RepoDBConfig
from core.types import SearchOptions
from store.containers import BUILTIN_CONTAINERS
from store.repodb_sdk import RepoDBClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="repodb", description="RepoDB container CLI")
    parser.add_argument("--base-branch", help="Override REPODB_BASE_BRANCH for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_list_command(subparsers)
    _add_find_command(subparsers)
    _add_search_command(subparsers)
    add_lock_status_command(subparsers)
    add_unlock_command(subparsers)
    add_apply_command(subparsers)
    _add_branch_status_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the RepoDB CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    client = _build_client(args.base_branch)
    if args.command == "list":
        return _run_list_command(client, args)
    if args.command == "find":
        return _run_find_command(client, args)
    if args.command == "search":
        return _run_search_command(client, args)
    if args.command == "lock-status":
        return run_lock_status_command(client, args)
    if args.command == "unlock":
        return run_unlock_command(client, args)
    if args.command == "apply":
        return run_apply_command(client, args)
    if args.command == "branch-status":
        return _run_branch_status_command(client, args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(base_branch: str | None) -> RepoDBClient:
    """Build SDK client with optional base-branch override."""
    config = RepoDBConfig.from_env()
    if base_branch:
        config = replace(config, base_branch=base_branch)
    return RepoDBClient(config)


def _add_container_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("container", choices=sorted(BUILTIN_CONTAINERS), help="Container name")


def _add_list_command(subparsers: Any) -> None:
    parser = subparsers.add_parser("list", help="Print every object in a container")
    _add_container_argument(parser)


def _add_find_command(subparsers: Any) -> None:
    parser = subparsers.add_parser("find", help="Find objects by name or attribute")
    _add_container_argument(parser)
    parser.add_argument("value", help="Value to match; names match case-insensitively")
    parser.add_argument("--attribute", default="name", help="Attribute to match")


def _add_search_command(subparsers: Any) -> None:
    parser = subparsers.add_parser("search", help="Filter, sort, and limit objects")
    _add_container_argument(parser)
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="FIELD=VALUE",
        help="Field constraint; VALUE is parsed as JSON when possible",
    )
    parser.add_argument("--sort", help="Field to sort by")
    parser.add_argument("--descending", action="store_true", help="Reverse sort order")
    parser.add_argument("--limit", type=int, default=0, help="Maximum results, 0 for all")


def _add_branch_status_command(subparsers: Any) -> None:
    parser = subparsers.add_parser("branch-status", help="Print the head commit of a branch")
    parser.add_argument("--branch", help="Branch to inspect; defaults to the base branch")
    parser.add_argument(
        "--since", metavar="COMMIT", help="Report whether the head moved past COMMIT"
    )


def _run_list_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    result = client.repository(args.container).get_all()
    return emit_result(result)


def _run_find_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    repository = client.repository(args.container)
    value = args.value if args.attribute == "name" else _parse_value(args.value)
    return emit_result(repository.find_by_attribute(args.attribute, value))


def _run_branch_status_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    if args.since is not None:
        return emit_result(client.check_for_updates(args.since, args.branch))
    return emit_result(client.branch_status(args.branch))


def _run_search_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    """Handle search command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    filters = dict(_parse_filter(raw_filter) for raw_filter in args.filter)
    options = SearchOptions(sort=args.sort, descending=args.descending, limit=args.limit)
    return emit_result(client.repository(args.container).search(filters, options))


def _parse_filter(raw_filter: str) -> tuple[str, Any]:
    field_name, separator, raw_value = raw_filter.partition("=")
    if not separator or not field_name:
        raise SystemExit(f"Invalid --filter '{raw_filter}'. Use FIELD=VALUE.")
    if field_name == "name":
        return field_name, raw_value
    return field_name, _parse_value(raw_value)


def _parse_value(raw_value: str) -> Any:
    try:
        return json.loads(raw_value)
    except json.JSONDecodeError:
        return raw_value
