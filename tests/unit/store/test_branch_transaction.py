"""Unit tests for the catch/stage/release branch protocol."""

from __future__ import annotations

from core.errors import LockConflictError, MergeConflictError, ReleaseError, RemoteCallError
from core.types import TransactionState
from store.branch_transaction import BranchTransaction
from store.lock_coordinator import LockCoordinator
from tests.fake_remote_store import FakeRemoteStore


def _transaction(store: FakeRemoteStore) -> BranchTransaction:
    return BranchTransaction(store, LockCoordinator(store, "main", "repodb"))


def test_catch_locks_branches_and_reads() -> None:
    """Catch should return each container's objects and blob hash."""
    store = FakeRemoteStore()
    object_hash = store.seed_objects("Companies", [{"name": "Acme"}])
    transaction = _transaction(store)

    metadata = transaction.catch(["Companies"]).unwrap()
    state = metadata.container("Companies")

    assert (state.objects, state.object_hash, transaction.state) == (
        [{"name": "Acme"}],
        object_hash,
        TransactionState.BRANCHED,
    )


def test_catch_treats_missing_blob_as_empty() -> None:
    """A container without a blob should be caught as empty."""
    metadata = _transaction(FakeRemoteStore()).catch(["Studies"]).unwrap()

    assert metadata.container("Studies").objects == [] and metadata.container("Studies").object_hash is None


def test_catch_aborts_when_any_container_locked() -> None:
    """Catch should acquire nothing when one container is already locked."""
    store = FakeRemoteStore()
    _transaction(store).catch(["Interactions"])
    transaction = _transaction(store)

    result = transaction.catch(["Companies", "Interactions"])

    assert (
        isinstance(result.error, LockConflictError)
        and not store.has_file("Companies/repodb.lock")
        and transaction.state == TransactionState.ABORTED
    )


def test_catch_releases_locks_when_branch_creation_fails() -> None:
    """Locks taken earlier in catch should be released on a later failure."""
    store = FakeRemoteStore()
    store.fail_on("create_branch")
    transaction = _transaction(store)

    result = transaction.catch(["Companies", "Interactions"])

    assert (
        not result.ok
        and not store.has_file("Companies/repodb.lock")
        and not store.has_file("Interactions/repodb.lock")
    )


def test_catch_reports_locks_it_could_not_release() -> None:
    """Cleanup failures should surface as a release error listing the locks."""
    store = FakeRemoteStore()
    store.fail_on("create_branch")
    store.fail_on("delete_file", path="Companies/repodb.lock")
    transaction = _transaction(store)

    result = transaction.catch(["Companies"])

    assert isinstance(result.error, ReleaseError) and result.error.locked_containers == ("Companies",)


def test_catch_rejects_empty_names() -> None:
    """Catch should validate its container list."""
    result = _transaction(FakeRemoteStore()).catch([])

    assert result.status.code == 400


def test_write_and_release_merge_into_base() -> None:
    """Released writes should appear on the base ref with locks removed."""
    store = FakeRemoteStore()
    store.seed_objects("Companies", [{"name": "Acme"}])
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies"]).unwrap()
    metadata.container("Companies").objects.append({"name": "Globex"})

    transaction.write(metadata, "Companies")
    released = transaction.release(metadata)

    assert (
        released.ok
        and [record["name"] for record in store.objects("Companies")] == ["Acme", "Globex"]
        and not store.has_file("Companies/repodb.lock")
        and transaction.state == TransactionState.RELEASED
    )


def test_release_unlocks_working_branch_too() -> None:
    """Release should delete the sentinel on the branch and the base ref."""
    store = FakeRemoteStore()
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies"]).unwrap()
    transaction.write(metadata, "Companies")

    transaction.release(metadata)

    assert not store.has_file("Companies/repodb.lock", metadata.branch.name)


def test_merge_failure_keeps_locks_and_names_branch() -> None:
    """A merge failure should stop before unlocking and report the branch."""
    store = FakeRemoteStore()
    store.fail_on("create_and_merge_change", MergeConflictError("conflict"))
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies", "Studies"]).unwrap()
    transaction.write(metadata, "Companies")

    result = transaction.release(metadata)

    assert (
        isinstance(result.error, ReleaseError)
        and result.error.branch_name == metadata.branch.name
        and result.error.locked_containers == ("Companies", "Studies")
        and store.has_file("Companies/repodb.lock")
        and transaction.state == TransactionState.FAILED_MERGE
    )


def test_unlock_failure_after_merge_is_failed_merge() -> None:
    """An unlock failure after merging should list the containers still locked."""
    store = FakeRemoteStore()
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies"]).unwrap()
    transaction.write(metadata, "Companies")
    store.fail_on("delete_file", RemoteCallError("unlock failed"), path="Companies/repodb.lock", times=2)

    result = transaction.release(metadata)

    assert transaction.state == TransactionState.FAILED_MERGE and result.error.locked_containers == (
        "Companies",
    )


def test_write_detects_concurrent_blob_change() -> None:
    """A write should fail when the branch blob changed since catch."""
    store = FakeRemoteStore()
    store.seed_objects("Companies", [{"name": "Acme"}])
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies"]).unwrap()
    store.seed_objects("Companies", [{"name": "Other"}], ref=metadata.branch.name)

    result = transaction.write(metadata, "Companies")

    assert not result.ok and result.status.code == 502


def test_abort_unlocks_without_merging() -> None:
    """Abort should drop base-ref locks and leave the base blob untouched."""
    store = FakeRemoteStore()
    store.seed_objects("Companies", [{"name": "Acme"}])
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies"]).unwrap()
    metadata.container("Companies").objects.clear()
    transaction.write(metadata, "Companies")

    transaction.abort(metadata)

    assert (
        store.objects("Companies") == [{"name": "Acme"}]
        and not store.has_file("Companies/repodb.lock")
        and transaction.state == TransactionState.ABORTED
    )


def test_transaction_cannot_be_reused() -> None:
    """A finished transaction should refuse a second catch."""
    store = FakeRemoteStore()
    transaction = _transaction(store)
    metadata = transaction.catch(["Companies"]).unwrap()
    transaction.write(metadata, "Companies")
    transaction.release(metadata)

    assert transaction.catch(["Companies"]).status.code == 400


def test_disjoint_transactions_do_not_block() -> None:
    """Locks on A and B should block B but never a disjoint C."""
    store = FakeRemoteStore()
    first = _transaction(store)
    first.catch(["A", "B"]).unwrap()

    disjoint = _transaction(store).catch(["C"])
    overlapping = _transaction(store).catch(["B"])

    assert disjoint.ok and isinstance(overlapping.error, LockConflictError)


def test_describe_reports_recovery_context() -> None:
    """Describe should expose branch, state, and held locks."""
    store = FakeRemoteStore()
    transaction = _transaction(store)
    metadata = transaction.catch(["Studies"]).unwrap()

    assert transaction.describe() == {
        "branch_name": metadata.branch.name,
        "state": "branched",
        "locked_containers": ("Studies",),
    }
