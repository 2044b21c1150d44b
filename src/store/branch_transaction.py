"""Branch transactions over locked containers.

A branch transaction locks every container it touches, stages writes on
an isolated branch, and merges that branch back into the base ref before
unlocking. This gives coarse-grained mutual exclusion and all-or-nothing
visibility of multi-container writes on the base ref. It is not a
rollback mechanism: a failure after merge leaves merged data in place.

State machine::

    IDLE -> LOCK_CHECK -> LOCKED -> BRANCHED -> STAGED -> MERGING -> RELEASED
                      \\-> ABORTED (failure before merge)
                                                 MERGING -> FAILED_MERGE
"""

from __future__ import annotations

from typing import Sequence

from core.constants import DEFAULT_MERGE_TITLE
from core.errors import (
    LockConflictError,
    NotFoundError,
    ReleaseError,
    RepoDBError,
    ValidationError,
)
from core.logging_config import get_logger
from core.results import Result
from core.types import (
    BranchRef,
    ContainerState,
    LockHandle,
    RepoMetadata,
    TransactionState,
    container_object_path,
)
from store.lock_coordinator import LockCoordinator
from store.record_payload import decode_objects, encode_objects
from store.remote_client import RemoteStoreClient

_LOGGER = get_logger(__name__)

_STAGING_STATES = (TransactionState.BRANCHED, TransactionState.STAGED)


class BranchTransaction:
    """One-shot catch/stage/release protocol over a set of containers."""

    def __init__(
        self,
        client: RemoteStoreClient,
        locks: LockCoordinator,
        merge_title: str = DEFAULT_MERGE_TITLE,
    ) -> None:
        self._client = client
        self._locks = locks
        self._merge_title = merge_title
        self._state = TransactionState.IDLE
        self._handles: dict[str, LockHandle] = {}
        self._branch: BranchRef | None = None

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def locked_containers(self) -> tuple[str, ...]:
        """Containers whose base-ref sentinel this transaction still holds."""
        return tuple(sorted(self._handles))

    def describe(self) -> dict[str, object]:
        """Return recovery context for error reports and logs."""
        return {
            "branch_name": self._branch.name if self._branch else None,
            "state": self._state.value,
            "locked_containers": self.locked_containers,
        }

    def catch(self, container_names: Sequence[str]) -> Result[RepoMetadata]:
        """Lock containers, branch from the base ref, and read their objects.

        If any container is already locked nothing is acquired. If a
        later step fails, locks acquired by this call are released again
        and the transaction ends ABORTED.

        Args:
            container_names: Containers the transaction will touch.

        Returns:
            Result with the transaction's repo metadata.
        """
        validation_error = self._validate_catch(container_names)
        if validation_error is not None:
            return Result.failure(validation_error)
        names = list(dict.fromkeys(container_names))
        self._state = TransactionState.LOCK_CHECK
        for name in names:
            lock_state = self._locks.is_locked(name)
            if not lock_state.ok:
                return self._abort_catch(lock_state.error, lock_state.status.message)
            if lock_state.payload:
                return self._abort_catch(
                    LockConflictError(name),
                    f"The container [{name}] is locked; cannot perform creates, "
                    "updates or deletes on objects.",
                )
        for name in names:
            acquired = self._locks.acquire(name)
            if not acquired.ok or acquired.payload is None:
                return self._abort_catch(acquired.error, acquired.status.message)
            self._handles[name] = acquired.payload
        self._state = TransactionState.LOCKED
        try:
            self._branch = self._client.create_branch(self._locks.base_ref)
        except RepoDBError as error:
            return self._abort_catch(error, f"Unable to create new branch: {error}")
        self._state = TransactionState.BRANCHED
        _LOGGER.info("branch_created", branch_name=self._branch.name, containers=names)
        metadata = RepoMetadata(containers={}, branch=self._branch)
        for name in names:
            try:
                metadata.containers[name] = self._read_container(name, self._branch.name)
            except RepoDBError as error:
                return self._abort_catch(
                    error, f"Unable to read the source objects [{container_object_path(name)}]: {error}"
                )
        return Result.success(f"{len(names)} containers are ready for use.", metadata)

    def write(self, metadata: RepoMetadata, container: str) -> Result[str]:
        """Write a container's in-memory objects to the working branch.

        Args:
            metadata: Metadata returned by ``catch``.
            container: Container to write.

        Returns:
            Result with the new blob hash.
        """
        if self._state not in _STAGING_STATES or metadata.branch is None:
            return Result.failure(
                ValidationError(f"Cannot write [{container}] in transaction state {self._state.value}.")
            )
        if container not in metadata.containers:
            return Result.failure(
                ValidationError(f"Container [{container}] was not caught by this transaction.")
            )
        container_state = metadata.containers[container]
        try:
            new_hash = self._client.put_file(
                container_object_path(container),
                encode_objects(container_state.objects),
                metadata.branch.name,
                f"Updating [{container}] objects",
                expected_hash=container_state.object_hash,
            )
        except RepoDBError as error:
            return Result.failure(error, f"Failed to write [{container}] objects: {error}")
        container_state.object_hash = new_hash
        container_state.dirty = True
        self._state = TransactionState.STAGED
        _LOGGER.info(
            "container_written",
            container=container,
            branch_name=metadata.branch.name,
            object_hash=new_hash,
            object_count=len(container_state.objects),
        )
        return Result.success(f"Wrote [{len(container_state.objects)}] objects to [{container}]", new_hash)

    def release(self, metadata: RepoMetadata) -> Result[None]:
        """Merge the working branch and unlock every caught container.

        The sentinel is deleted on the working branch and on the base ref.
        A merge failure stops before any unlock; the error names the
        branch so an operator can merge or unlock manually.

        Args:
            metadata: Metadata returned by ``catch``.

        Returns:
            Success, or a ``ReleaseError`` failure.
        """
        if self._state not in _STAGING_STATES or metadata.branch is None:
            return Result.failure(
                ValidationError(f"Cannot release a transaction in state {self._state.value}.")
            )
        branch_name = metadata.branch.name
        self._state = TransactionState.MERGING
        try:
            self._client.create_and_merge_change(branch_name, self._locks.base_ref, self._merge_title)
        except RepoDBError as error:
            return self._fail_merge(
                f"Unable to merge branch [{branch_name}] into [{self._locks.base_ref}]: {error}. "
                f"Containers {list(self.locked_containers)} remain locked; merge or unlock manually.",
                error,
            )
        _LOGGER.info("branch_merged", branch_name=branch_name, base_ref=self._locks.base_ref)
        for name in list(self._handles):
            handle = self._handles[name]
            for ref in (branch_name, self._locks.base_ref):
                unlocked = self._locks.release(name, handle.lock_hash, ref)
                if not unlocked.ok:
                    return self._fail_merge(
                        f"Unable to unlock the container [{name}] on [{ref}]; objects may have been "
                        f"written, check branch [{branch_name}] and the lock files of "
                        f"{list(self.locked_containers)}.",
                        unlocked.error,
                    )
            del self._handles[name]
        self._state = TransactionState.RELEASED
        return Result.success(f"Released [{len(metadata.containers)}] containers.")

    def abort(self, metadata: RepoMetadata | None = None) -> Result[None]:
        """Unlock caught containers without merging the working branch.

        Staged writes stay on the unmerged branch for inspection; nothing
        reaches the base ref. Only valid before merging starts.

        Args:
            metadata: Optional metadata, used for logging only.
        """
        if self._state.terminal or self._state == TransactionState.MERGING:
            return Result.failure(
                ValidationError(f"Cannot abort a transaction in state {self._state.value}.")
            )
        failures = self._release_base_locks()
        self._state = TransactionState.ABORTED
        branch_name = self._branch.name if self._branch else None
        _LOGGER.warning(
            "branch_transaction_aborted",
            branch_name=branch_name,
            containers=sorted(metadata.containers) if metadata else None,
            still_locked=self.locked_containers,
        )
        if failures:
            return Result.failure(
                ReleaseError(
                    f"Aborted transaction could not unlock {list(self.locked_containers)}; "
                    "remove the lock files manually.",
                    branch_name,
                    self.locked_containers,
                    failures[0],
                )
            )
        return Result.success("Aborted transaction and released its locks.")

    def _validate_catch(self, container_names: Sequence[str]) -> RepoDBError | None:
        if self._state != TransactionState.IDLE:
            return ValidationError(
                f"Branch transaction already used (state {self._state.value}); create a new one."
            )
        if isinstance(container_names, str) or len(container_names) == 0:
            return ValidationError(
                "Invalid parameter: [container_names] must contain at least one container."
            )
        for name in container_names:
            if not isinstance(name, str) or not name.strip():
                return ValidationError("Invalid parameter: container names must be non-empty strings.")
        return None

    def _read_container(self, name: str, ref: str) -> ContainerState:
        path = container_object_path(name)
        try:
            object_hash = self._client.get_file_hash(path, ref)
        except NotFoundError:
            return ContainerState(name=name, lock_hash=self._handles[name].lock_hash)
        objects = decode_objects(self._client.get_file_content(path, ref), path)
        return ContainerState(
            name=name,
            objects=objects,
            object_hash=object_hash,
            lock_hash=self._handles[name].lock_hash,
        )

    def _abort_catch(self, error: RepoDBError | None, message: str) -> Result[RepoMetadata]:
        failures = self._release_base_locks()
        self._state = TransactionState.ABORTED
        cause = error or RepoDBError(message)
        if failures:
            return Result.failure(
                ReleaseError(
                    f"{message} Cleanup could not unlock {list(self.locked_containers)}; "
                    "remove the lock files manually.",
                    self._branch.name if self._branch else None,
                    self.locked_containers,
                    cause,
                )
            )
        return Result.failure(cause, message)

    def _release_base_locks(self) -> list[RepoDBError]:
        failures: list[RepoDBError] = []
        for name in list(self._handles):
            handle = self._handles[name]
            unlocked = self._locks.release(name, handle.lock_hash, handle.ref)
            if unlocked.ok:
                del self._handles[name]
            elif unlocked.error is not None:
                failures.append(unlocked.error)
        return failures

    def _fail_merge(self, message: str, cause: RepoDBError | None) -> Result[None]:
        self._state = TransactionState.FAILED_MERGE
        branch_name = self._branch.name if self._branch else None
        _LOGGER.error(
            "branch_release_failed",
            branch_name=branch_name,
            locked_containers=self.locked_containers,
            detail=message,
        )
        return Result.failure(ReleaseError(message, branch_name, self.locked_containers, cause))
