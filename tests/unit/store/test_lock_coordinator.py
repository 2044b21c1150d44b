"""Unit tests for sentinel-file container locks."""

from __future__ import annotations

from core.errors import LockConflictError, NotFoundError
from store.lock_coordinator import LockCoordinator
from tests.fake_remote_store import FakeRemoteStore


def _coordinator(store: FakeRemoteStore, process: str = "repodb") -> LockCoordinator:
    return LockCoordinator(store, "main", process)


def test_unlocked_container_reports_404() -> None:
    """A container without sentinels should be reported unlocked."""
    result = _coordinator(FakeRemoteStore()).is_locked("Companies")

    assert result.ok and result.payload is False and result.status.code == 404


def test_acquire_writes_empty_sentinel() -> None:
    """Acquire should create a zero-length lock file on the base ref."""
    store = FakeRemoteStore()

    handle = _coordinator(store).acquire("Companies").unwrap()

    assert handle.path == "Companies/repodb.lock" and store.branches["main"][handle.path] == b""


def test_acquire_conflicts_when_locked() -> None:
    """A second acquire should fail with a lock conflict naming the container."""
    store = FakeRemoteStore()
    coordinator = _coordinator(store)
    coordinator.acquire("Companies")

    result = coordinator.acquire("Companies")

    assert isinstance(result.error, LockConflictError) and result.error.container == "Companies"


def test_foreign_process_sentinel_blocks_acquire() -> None:
    """Any sentinel in the directory should block, whatever its process name."""
    store = FakeRemoteStore()
    _coordinator(store, "other-worker").acquire("Companies")

    result = _coordinator(store).acquire("Companies")

    assert result.status.code == 423


def test_exclusive_create_collapses_check_and_write() -> None:
    """An already-exists answer from the store should become a lock conflict."""
    store = FakeRemoteStore()
    coordinator = _coordinator(store)
    store.seed_file("Companies/repodb.lock", b"")
    store.fail_on("list_directory", NotFoundError("raced"))

    result = coordinator.acquire("Companies")

    assert isinstance(result.error, LockConflictError)


def test_release_deletes_sentinel() -> None:
    """Release should remove the sentinel using the acquire-time hash."""
    store = FakeRemoteStore()
    coordinator = _coordinator(store)
    handle = coordinator.acquire("Companies").unwrap()

    coordinator.release("Companies", handle.lock_hash, "main")

    assert coordinator.is_locked("Companies").payload is False


def test_release_without_sentinel_is_not_found() -> None:
    """Releasing an absent lock should fail with 404."""
    result = _coordinator(FakeRemoteStore()).release("Companies", "abc", "main")

    assert isinstance(result.error, NotFoundError)


def test_force_release_recovers_stale_lock() -> None:
    """Force release should delete a sentinel without the original hash."""
    store = FakeRemoteStore()
    coordinator = _coordinator(store)
    coordinator.acquire("Studies")

    result = coordinator.force_release("Studies")

    assert result.ok and not store.has_file("Studies/repodb.lock")
