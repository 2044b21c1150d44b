"""JSON rendering of operation results for CLI commands."""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
import json
from typing import Any

from core.errors import ReleaseError, TransactionAbortError
from core.results import Result


def emit_result(result: Result[Any]) -> int:
    """Print a result as JSON and return the matching exit code."""
    print(json.dumps(result_to_dict(result), indent=2, ensure_ascii=False, default=str))
    return 0 if result.ok else 1


def result_to_dict(result: Result[Any]) -> dict[str, Any]:
    """Convert a result to a JSON-ready mapping.

    Abort and release failures include the branch and the containers
    still locked so an operator can recover manually.
    """
    rendered: dict[str, Any] = {
        "ok": result.ok,
        "status": {"code": result.status.code, "message": result.status.message},
        "payload": _to_jsonable(result.payload),
    }
    error = result.error
    if isinstance(error, TransactionAbortError) and isinstance(error.cause, ReleaseError):
        error = error.cause
    if isinstance(error, (TransactionAbortError, ReleaseError)):
        rendered["recovery"] = {
            "branch_name": error.branch_name,
            "locked_containers": list(error.locked_containers),
        }
    return rendered


def _to_jsonable(payload: Any) -> Any:
    if is_dataclass(payload) and not isinstance(payload, type):
        return asdict(payload)
    return payload
