"""RepoDB exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each error carries an HTTP-like status code used by the result contract.
"""

from __future__ import annotations

from typing import Sequence


class RepoDBError(Exception):
    """Base exception for all RepoDB failures."""

    status_code = 500


class RepoDBConfigError(RepoDBError):
    """Raised for invalid runtime configuration."""


class ValidationError(RepoDBError):
    """Raised for bad caller input before any remote side effect."""

    status_code = 400


class FieldAuthorizationError(ValidationError):
    """Raised when a non-system caller modifies a non-whitelisted field."""

    status_code = 403


class NotFoundError(RepoDBError):
    """Raised for a missing record, file, branch, or lock."""

    status_code = 404


class LockConflictError(RepoDBError):
    """Raised when a container is already locked by another transaction."""

    status_code = 423

    def __init__(self, container: str, message: str | None = None) -> None:
        self.container = container
        super().__init__(
            message
            or (
                f"Container [{container}] is locked and cannot accept creates, updates, "
                "or deletes. Retry after the running transaction releases it."
            )
        )


class RemoteCallError(RepoDBError):
    """Raised for transport or remote API failures."""

    status_code = 502

    def __init__(self, message: str, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class AlreadyExistsError(RepoDBError):
    """Raised when a create-only write targets an existing path."""

    status_code = 409


class DeprecatedOperationError(RepoDBError):
    """Raised by operations kept only to report their removal."""

    status_code = 410


class MergeConflictError(RemoteCallError):
    """Raised when a working branch cannot be merged into its base."""

    status_code = 409


class TransactionAbortError(RepoDBError):
    """Raised when a pipeline step fails after earlier steps completed.

    Completed steps are never undone. The fields describe enough state
    for an operator to unlock containers or clean up branches manually.
    """

    def __init__(
        self,
        message: str,
        transaction_id: str,
        failed_step: str,
        step_index: int,
        completed_steps: int,
        cause: RepoDBError | None = None,
        branch_name: str | None = None,
        locked_containers: Sequence[str] = (),
    ) -> None:
        self.transaction_id = transaction_id
        self.failed_step = failed_step
        self.step_index = step_index
        self.completed_steps = completed_steps
        self.cause = cause
        self.branch_name = branch_name
        self.locked_containers = tuple(locked_containers)
        if cause is not None:
            self.status_code = cause.status_code
        super().__init__(message)


class ReleaseError(RepoDBError):
    """Raised when merge or unlock fails; manual intervention is required."""

    status_code = 503

    def __init__(
        self,
        message: str,
        branch_name: str | None,
        locked_containers: Sequence[str],
        cause: RepoDBError | None = None,
    ) -> None:
        self.branch_name = branch_name
        self.locked_containers = tuple(locked_containers)
        self.cause = cause
        super().__init__(message)


class ChangePlanError(ValidationError):
    """Raised for invalid change plan files."""
