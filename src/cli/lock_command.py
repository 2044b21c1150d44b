"""Lock inspection and recovery CLI commands.

This module registers the lock-status and unlock subcommands. Unlock is
operator recovery after a failed merge or unlock left a sentinel behind.
"""

from __future__ import annotations

import argparse
from typing import Any

from cli.output import emit_result
from store.containers import BUILTIN_CONTAINERS
from store.repodb_sdk import RepoDBClient


def add_lock_status_command(subparsers: Any) -> None:
    """Register lock-status subcommand."""
    parser = subparsers.add_parser("lock-status", help="Report whether a container is locked")
    parser.add_argument("container", choices=sorted(BUILTIN_CONTAINERS), help="Container name")


def add_unlock_command(subparsers: Any) -> None:
    """Register unlock subcommand."""
    parser = subparsers.add_parser(
        "unlock",
        help="Delete this process's lock file on the base branch",
    )
    parser.add_argument("container", choices=sorted(BUILTIN_CONTAINERS), help="Container name")


def run_lock_status_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    """Handle lock-status command; the payload is true when locked."""
    return emit_result(client.repository(args.container).check_for_lock())


def run_unlock_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    """Handle unlock command invocation."""
    return emit_result(client.unlock(args.container))
