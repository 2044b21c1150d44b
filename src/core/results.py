"""Uniform operation result contract.

Every public operation of the lock, branch, pipeline, and repository
layers returns a ``Result``. It unpacks as ``(ok, status, payload)`` so
steps can be composed interchangeably inside the transaction executor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterator, TypeVar

from core.errors import RepoDBError

PayloadT = TypeVar("PayloadT")


@dataclass(frozen=True)
class ResultStatus:
    """Status block of an operation result.

    Attributes:
        code: HTTP-like status code.
        message: Human readable outcome description.
    """

    code: int
    message: str


@dataclass(frozen=True)
class Result(Generic[PayloadT]):
    """Three-part operation result with the originating error attached.

    Attributes:
        ok: Whether the operation succeeded.
        status: Status code and message.
        payload: Success payload, or None on failure.
        error: Domain error on failure, else None.
    """

    ok: bool
    status: ResultStatus
    payload: PayloadT | None = None
    error: RepoDBError | None = None

    @classmethod
    def success(cls, message: str, payload: Any = None, code: int = 200) -> "Result[Any]":
        return cls(ok=True, status=ResultStatus(code=code, message=message), payload=payload)

    @classmethod
    def failure(cls, error: RepoDBError, message: str | None = None) -> "Result[Any]":
        """Build a failed result from a domain error.

        Args:
            error: Error describing the failure.
            message: Optional message overriding ``str(error)``.

        Returns:
            Failed result carrying the error's status code.
        """
        return cls(
            ok=False,
            status=ResultStatus(code=error.status_code, message=message or str(error)),
            payload=None,
            error=error,
        )

    def unwrap(self) -> PayloadT:
        """Return the payload or raise the carried error."""
        if self.ok:
            return self.payload  # type: ignore[return-value]
        if self.error is not None:
            raise self.error
        raise RepoDBError(self.status.message)

    def __iter__(self) -> Iterator[Any]:
        return iter((self.ok, self.status, self.payload))
