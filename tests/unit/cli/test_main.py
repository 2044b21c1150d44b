"""Unit tests for CLI command handling."""

from __future__ import annotations

import json

import pytest

import cli.main as cli_main
from cli.main import main
from core.config import RepoDBConfig
from store.repodb_sdk import RepoDBClient
from tests.fake_remote_store import FakeRemoteStore
from tests.fixture_paths import change_plan_path


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> FakeRemoteStore:
    remote = FakeRemoteStore()
    remote.seed_objects(
        "Companies",
        [{"name": "Acme", "region": "AMER"}, {"name": "Globex", "region": "EMEA"}],
    )
    remote.seed_objects("Interactions", [{"name": "Doc1"}])
    monkeypatch.setattr(
        cli_main,
        "_build_client",
        lambda base_branch: RepoDBClient(RepoDBConfig.from_env(), remote=remote),
    )
    return remote


def test_cli_list_prints_snapshot(store: FakeRemoteStore, capsys) -> None:
    """CLI list should print the container's objects as JSON."""
    exit_code = main(["list", "Companies"])
    output = json.loads(capsys.readouterr().out)

    assert exit_code == 0 and len(output["payload"]["objects"]) == 2


def test_cli_find_missing_name_exits_nonzero(store: FakeRemoteStore, capsys) -> None:
    """CLI find should report 404 and exit 1 when nothing matches."""
    exit_code = main(["find", "Companies", "Initech"])
    output = json.loads(capsys.readouterr().out)

    assert exit_code == 1 and output["status"]["code"] == 404


def test_cli_search_applies_filters(store: FakeRemoteStore, capsys) -> None:
    """CLI search should parse FIELD=VALUE filters."""
    main(["search", "Companies", "--filter", "region=EMEA"])
    output = json.loads(capsys.readouterr().out)

    assert [record["name"] for record in output["payload"]] == ["Globex"]


def test_cli_lock_status_reports_lock(store: FakeRemoteStore, capsys) -> None:
    """CLI lock-status should print true for a locked container."""
    store.seed_file("Companies/repodb.lock", b"")

    main(["lock-status", "Companies"])
    output = json.loads(capsys.readouterr().out)

    assert output["payload"] is True


def test_cli_unlock_removes_lock(store: FakeRemoteStore, capsys) -> None:
    """CLI unlock should delete this process's sentinel."""
    store.seed_file("Companies/repodb.lock", b"")

    exit_code = main(["unlock", "Companies"])

    assert exit_code == 0 and not store.has_file("Companies/repodb.lock")


def test_cli_apply_runs_change_plan(store: FakeRemoteStore, capsys) -> None:
    """CLI apply should execute every plan step."""
    store.seed_objects("Companies", [])

    exit_code = main(["apply", change_plan_path("valid.yaml")])
    output = json.loads(capsys.readouterr().out)

    assert exit_code == 0 and len(output["payload"]) == 4


def test_cli_apply_abort_reports_recovery(store: FakeRemoteStore, capsys) -> None:
    """Aborted plans should print recovery details and exit 1."""
    store.seed_file("Companies/other.lock", b"")

    exit_code = main(["apply", change_plan_path("valid.yaml")])
    output = json.loads(capsys.readouterr().out)

    assert exit_code == 1 and output["status"]["code"] == 423 and "recovery" in output


def test_cli_branch_status_reports_update_check(store: FakeRemoteStore, capsys) -> None:
    """CLI branch-status --since should say whether the base branch moved."""
    main(["branch-status"])
    head = json.loads(capsys.readouterr().out)["payload"]["commit"]["commit_hash"]

    main(["branch-status", "--since", head])
    output = json.loads(capsys.readouterr().out)

    assert output["payload"]["update_needed"] is False and output["payload"]["branch"] == "main"
