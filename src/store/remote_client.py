"""Remote store client contract.

This module declares the file-level primitives the storage core needs
from the backing repository host. Implementations raise RepoDB errors:
``NotFoundError`` for missing paths, ``RemoteCallError`` for transport
failures, ``AlreadyExistsError`` for create-only writes over an existing
path, and ``MergeConflictError`` when a branch cannot be merged.
"""

from __future__ import annotations

from typing import Protocol

from core.types import BranchRef, CommitInfo


class RemoteStoreClient(Protocol):
    """Primitives of a version-controlled remote store."""

    supports_exclusive_create: bool

    def get_file_hash(self, path: str, ref: str) -> str:
        """Return the content hash of a file at a ref."""
        ...

    def get_file_content(self, path: str, ref: str) -> bytes:
        """Return raw file content at a ref."""
        ...

    def list_directory(self, path: str, ref: str) -> list[str]:
        """Return the file paths directly under a directory at a ref."""
        ...

    def put_file(
        self,
        path: str,
        content: bytes,
        branch: str,
        message: str,
        expected_hash: str | None = None,
        create_only: bool = False,
    ) -> str:
        """Write a file on a branch and return its new content hash.

        ``expected_hash`` must match the current content hash when the
        file exists. With ``create_only`` the write fails with
        ``AlreadyExistsError`` if the file already exists.
        """
        ...

    def delete_file(self, path: str, branch: str, message: str, expected_hash: str) -> None:
        """Delete a file on a branch, conditional on its content hash."""
        ...

    def create_branch(self, from_ref: str) -> BranchRef:
        """Create a new branch at the head of ``from_ref``."""
        ...

    def create_and_merge_change(self, branch: str, base_ref: str, title: str) -> None:
        """Open a change request from ``branch`` into ``base_ref`` and merge it."""
        ...

    def get_branch_head(self, branch: str) -> CommitInfo:
        """Return the latest commit on a branch (``NotFoundError`` if none)."""
        ...
