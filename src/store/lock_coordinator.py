"""Container lock coordination over sentinel files.

A container is locked while a zero-length ``<container>/<process>.lock``
file exists in the remote store. This is convention-based mutual
exclusion between cooperating processes, not a distributed lock service.
"""

from __future__ import annotations

from core.constants import LOCK_FILE_SUFFIX
from core.errors import (
    AlreadyExistsError,
    LockConflictError,
    NotFoundError,
    RepoDBError,
)
from core.logging_config import get_logger
from core.results import Result
from core.types import LockHandle
from store.remote_client import RemoteStoreClient

_LOGGER = get_logger(__name__)


class LockCoordinator:
    """Acquire, inspect, and release per-container sentinel locks."""

    def __init__(self, client: RemoteStoreClient, base_ref: str, process_name: str) -> None:
        """Create a coordinator bound to one base ref.

        Args:
            client: Remote store client.
            base_ref: Ref holding committed state; locks are taken here.
            process_name: Stem of this process's sentinel file name.
        """
        self._client = client
        self._base_ref = base_ref
        self._process_name = process_name
        if not client.supports_exclusive_create:
            _LOGGER.warning("lock_check_race", base_ref=base_ref, process_name=process_name)

    @property
    def base_ref(self) -> str:
        return self._base_ref

    def lock_path(self, container: str) -> str:
        """Return this process's sentinel path for a container."""
        return f"{container}/{self._process_name}{LOCK_FILE_SUFFIX}"

    def is_locked(self, container: str, ref: str | None = None) -> Result[bool]:
        """Check whether any sentinel exists in a container directory.

        Args:
            container: Container name.
            ref: Ref to inspect; defaults to the base ref.

        Returns:
            Result whose payload is the lock state. Status code is 200
            when locked and 404 when not, as callers key off both.
        """
        target_ref = ref or self._base_ref
        try:
            sentinels = self._sentinels(container, target_ref)
        except RepoDBError as error:
            return Result.failure(
                error, f"Failed to check if container {container} is locked: {error}"
            )
        if sentinels:
            return Result.success(
                f"Container {container} is locked by {', '.join(sentinels)}", True, 200
            )
        return Result.success(f"Container {container} is not locked", False, 404)

    def acquire(self, container: str) -> Result[LockHandle]:
        """Write this process's sentinel for a container on the base ref.

        Any sentinel in the directory is a conflict. When the client
        supports exclusive creation the write of this process's sentinel
        is atomic create-if-absent. Otherwise check and write are separate
        calls and two callers can both pass the check before either writes.

        Args:
            container: Container name.

        Returns:
            Result with the lock handle, or a ``LockConflictError`` failure.
        """
        path = self.lock_path(container)
        try:
            if self._sentinels(container, self._base_ref):
                return Result.failure(LockConflictError(container))
            lock_hash = self._client.put_file(
                path,
                b"",
                self._base_ref,
                f"Locking container [{container}]",
                create_only=True,
            )
        except AlreadyExistsError:
            return Result.failure(LockConflictError(container))
        except RepoDBError as error:
            return Result.failure(error, f"Unable to lock the container {container}: {error}")
        handle = LockHandle(container=container, path=path, lock_hash=lock_hash, ref=self._base_ref)
        _LOGGER.info("lock_acquired", container=container, path=path, lock_hash=lock_hash)
        return Result.success(f"Locked the container {container}", handle)

    def release(self, container: str, lock_hash: str, ref: str) -> Result[None]:
        """Delete this process's sentinel on a ref using the acquire-time hash.

        Args:
            container: Container name.
            lock_hash: Sentinel hash recorded at acquire time.
            ref: Branch to delete the sentinel on.

        Returns:
            Success, or a failure naming the container.
        """
        path = self.lock_path(container)
        try:
            if path not in self._sentinels(container, ref):
                raise NotFoundError(
                    f"Unable to unlock the container {container} on {ref}: lock file not found."
                )
            self._client.delete_file(path, ref, f"Unlocking container [{container}]", lock_hash)
        except RepoDBError as error:
            return Result.failure(error, f"Error unlocking container {container} on {ref}: {error}")
        _LOGGER.info("lock_released", container=container, ref=ref)
        return Result.success(f"Unlocked the container {container} on {ref}")

    def force_release(self, container: str, ref: str | None = None) -> Result[None]:
        """Delete this process's sentinel without the acquire-time hash.

        Operator recovery after a failed merge or unlock.

        Args:
            container: Container name.
            ref: Ref to unlock; defaults to the base ref.
        """
        target_ref = ref or self._base_ref
        try:
            lock_hash = self._client.get_file_hash(self.lock_path(container), target_ref)
        except RepoDBError as error:
            return Result.failure(error, f"No lock to release on {container} at {target_ref}: {error}")
        _LOGGER.warning("lock_force_released", container=container, ref=target_ref)
        return self.release(container, lock_hash, target_ref)

    def _sentinels(self, container: str, ref: str) -> list[str]:
        try:
            paths = self._client.list_directory(container, ref)
        except NotFoundError:
            return []
        return sorted(path for path in paths if path.endswith(LOCK_FILE_SUFFIX))
