"""Change-plan CLI command wiring.

This module registers the apply subcommand and delegates execution to the
shared change-plan engine used by CLI and SDK entry points.
"""

from __future__ import annotations

import argparse
from typing import Any

from cli.output import emit_result
from store.repodb_sdk import RepoDBClient


def add_apply_command(subparsers: Any) -> None:
    """Register apply subcommand."""
    parser = subparsers.add_parser(
        "apply",
        help="Apply a declarative YAML change plan",
    )
    parser.add_argument("plan_file", help="Path to YAML change plan file")


def run_apply_command(client: RepoDBClient, args: argparse.Namespace) -> int:
    """Handle apply command invocation."""
    return emit_result(client.apply_change_plan(args.plan_file))
