"""Unit tests for change-plan execution."""

from __future__ import annotations

from core.change_plan import parse_change_plan
from core.errors import TransactionAbortError
from pipeline.change_plan_execution import execute_change_plan, execute_change_plan_file
from pipeline.transaction_executor import TransactionExecutor
from store.dependency_cache import DependencyCache
from store.entity_repositories import CompanyRepository, InteractionRepository, StudyRepository
from store.lock_coordinator import LockCoordinator
from store.object_repository import ObjectRepository
from tests.fake_remote_store import FakeRemoteStore
from tests.fixture_paths import change_plan_path


def _setup(store: FakeRemoteStore) -> tuple[dict[str, ObjectRepository], TransactionExecutor]:
    cache = DependencyCache()
    locks = LockCoordinator(store, "main", "repodb")
    executor = TransactionExecutor()
    repositories: dict[str, ObjectRepository] = {
        repository.container: repository
        for repository in (
            CompanyRepository(store, cache, locks, executor),
            InteractionRepository(store, cache, locks, executor),
            StudyRepository(store, cache, locks, executor),
        )
    }
    return repositories, executor


def test_plan_file_applies_every_step() -> None:
    """A valid plan should create, update, link, and delete in order."""
    store = FakeRemoteStore()
    store.seed_objects("Companies", [])
    store.seed_objects("Interactions", [{"name": "Doc1"}])
    repositories, executor = _setup(store)

    result = execute_change_plan_file(
        repositories, executor, change_plan_path("valid.yaml")
    )
    acme = store.objects("Companies")[0]

    assert (
        len(result.unwrap()) == 4
        and acme["status"] == "Active"
        and acme["linked_interactions"] == {}
        and store.objects("Interactions") == []
    )


def test_plan_stops_at_first_failing_step() -> None:
    """A failing step should abort the plan and keep earlier steps applied."""
    store = FakeRemoteStore()
    store.seed_objects("Companies", [])
    repositories, executor = _setup(store)
    plan = parse_change_plan(
        {
            "version": 1,
            "defaults": {"container": "Companies"},
            "steps": [
                {"command": "create", "records": [{"name": "Acme"}]},
                {"command": "update", "name": "Nobody", "key": "status", "value": "Active"},
                {"command": "create", "records": [{"name": "Globex"}]},
            ],
        }
    )

    result = execute_change_plan(repositories, executor, plan)

    assert (
        isinstance(result.error, TransactionAbortError)
        and result.error.completed_steps == 1
        and [record["name"] for record in store.objects("Companies")] == ["Acme"]
    )
