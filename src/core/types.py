"""Shared typed models.

This module defines the data models passed between the lock, branch,
pipeline, cache, and repository layers to keep interfaces explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from core.constants import DEFAULT_CACHE_TTL_SECONDS, OBJECT_FILE_SUFFIX

ObjectRecord = dict[str, Any]


def container_object_path(container: str) -> str:
    """Return the path of a container's JSON array blob."""
    return f"{container}/{container}{OBJECT_FILE_SUFFIX}"


@dataclass(frozen=True)
class ContainerSpec:
    """Static description of one container type.

    Attributes:
        name: Container name, also its directory in the store.
        whitelist: Fields ordinary callers may modify.
        link_fields: Maps another container name to the field on this
            container's records that holds cross-references to it.
        default_delete_targets: Containers unlinked when a record is deleted.
        attachment_field: Record field naming a content file removed on delete.
        allowed_values: Enumerated values accepted for specific fields.
        cache_ttl_seconds: TTL for cached reads of this container.
    """

    name: str
    whitelist: frozenset[str] = frozenset()
    link_fields: Mapping[str, str] = field(default_factory=dict)
    default_delete_targets: tuple[str, ...] = ()
    attachment_field: str | None = None
    allowed_values: Mapping[str, tuple[object, ...]] = field(default_factory=dict)
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS

    @property
    def object_path(self) -> str:
        """Path of the container's JSON array blob."""
        return container_object_path(self.name)


@dataclass(frozen=True)
class BranchRef:
    """Working branch created for a transaction.

    Attributes:
        name: Branch name.
        head_hash: Commit hash the branch was created at.
    """

    name: str
    head_hash: str


@dataclass(frozen=True)
class LockHandle:
    """Outstanding sentinel lock on a container.

    Attributes:
        container: Locked container name.
        path: Sentinel file path.
        lock_hash: Content hash of the sentinel, needed to delete it.
        ref: Ref the sentinel was written on.
    """

    container: str
    path: str
    lock_hash: str
    ref: str


@dataclass
class ContainerState:
    """Mutable per-transaction view of one container.

    Attributes:
        name: Container name.
        objects: Current object array; callers mutate it in memory.
        object_hash: Blob hash of the container file on the working branch.
        lock_hash: Hash of this transaction's sentinel file.
        dirty: Whether objects were written to the working branch.
    """

    name: str
    objects: list[ObjectRecord] = field(default_factory=list)
    object_hash: str | None = None
    lock_hash: str | None = None
    dirty: bool = False


@dataclass
class RepoMetadata:
    """Ephemeral context of one branch transaction."""

    containers: dict[str, ContainerState]
    branch: BranchRef | None = None

    def container(self, name: str) -> ContainerState:
        return self.containers[name]


@dataclass(frozen=True)
class ContainerSnapshot:
    """Committed container content at the base ref.

    Attributes:
        objects: Object array.
        object_hash: Blob hash the objects were read from.
    """

    objects: tuple[ObjectRecord, ...]
    object_hash: str


class TransactionState(str, Enum):
    """Lifecycle of a branch transaction."""

    IDLE = "idle"
    LOCK_CHECK = "lock_check"
    LOCKED = "locked"
    BRANCHED = "branched"
    STAGED = "staged"
    MERGING = "merging"
    RELEASED = "released"
    ABORTED = "aborted"
    FAILED_MERGE = "failed_merge"

    @property
    def terminal(self) -> bool:
        return self in (
            TransactionState.RELEASED,
            TransactionState.ABORTED,
            TransactionState.FAILED_MERGE,
        )


@dataclass(frozen=True)
class SearchOptions:
    """Search result shaping options.

    Attributes:
        sort: Optional field to sort by.
        descending: Reverse the sort order.
        limit: Maximum result count; 0 means unlimited.
    """

    sort: str | None = None
    descending: bool = False
    limit: int = 0


@dataclass(frozen=True)
class RecordUpdate:
    """One field change inside a batch update.

    Attributes:
        name: Target record name.
        key: Field to change.
        value: New value.
        system: Bypass the container whitelist.
    """

    name: str
    key: str
    value: Any
    system: bool = False


@dataclass(frozen=True)
class DeleteSource:
    """Containers touched by a delete.

    Attributes:
        from_container: Container holding the record to delete.
        to_containers: Linked containers whose cross-references are stripped.
    """

    from_container: str
    to_containers: tuple[str, ...]


@dataclass(frozen=True)
class CommitInfo:
    """Latest commit on a branch.

    Attributes:
        commit_hash: Commit hash at the branch head.
        message: Commit message.
        author: Author name, when the store reports one.
        timestamp: Committer timestamp, when the store reports one.
    """

    commit_hash: str
    message: str = ""
    author: str | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class BranchStatus:
    """Head commit of a branch as seen by a freshness check."""

    branch: str
    commit: CommitInfo


@dataclass(frozen=True)
class UpdateCheck:
    """Whether a branch moved past a commit the caller already knows.

    Attributes:
        update_needed: True when the head differs from the known commit.
        last_known_hash: Commit hash supplied by the caller.
        current_hash: Current head commit hash.
        branch: Branch that was checked.
    """

    update_needed: bool
    last_known_hash: str
    current_hash: str
    branch: str
