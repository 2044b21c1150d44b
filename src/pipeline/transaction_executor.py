"""Sequential step pipeline with abort-on-first-failure semantics.

Steps run in declared order and each receives the previous step's
success payload. The first failed result or raised ``RepoDBError`` stops
the run; later steps are never invoked and completed steps are not
undone. The abort report names the failing step and how far the run got
so an operator can finish or clean up by hand. Any other exception is
logged with the same progress fields and propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any, Callable, Mapping, Sequence

from core.errors import RepoDBError, TransactionAbortError, ValidationError
from core.logging_config import get_logger
from core.results import Result

_LOGGER = get_logger(__name__)

StepFunction = Callable[[Any], Result[Any]]


@dataclass(frozen=True)
class TransactionStep:
    """One named pipeline step.

    Attributes:
        name: Step name used in logs and abort reports.
        run: Callable receiving the prior step's payload.
    """

    name: str
    run: StepFunction


class TransactionExecutor:
    """Run ordered steps and report the first failure."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._run_stack: list[str] = []

    @property
    def depth(self) -> int:
        """Number of runs currently in progress on this executor."""
        return len(self._run_stack)

    def execute(
        self,
        steps: Sequence[TransactionStep],
        name: str,
        *,
        initial: Any = None,
        abort_details: Callable[[], Mapping[str, Any]] | None = None,
    ) -> Result[Any]:
        """Run steps in order, threading each success payload forward.

        Args:
            steps: Steps to run.
            name: Run name, used as the transaction id prefix.
            initial: Payload passed to the first step.
            abort_details: Callable returning ``branch_name`` and
                ``locked_containers`` at abort time.

        Returns:
            The last step's result on success, or a failure carrying a
            ``TransactionAbortError``.
        """
        if len(steps) == 0:
            return Result.failure(
                ValidationError(f"Transaction [{name}] has no steps; provide at least one.")
            )
        parent_id = self._run_stack[-1] if self._run_stack else None
        transaction_id = f"{name}-{int(self._clock() * 1000)}-{len(self._run_stack)}"
        self._run_stack.append(transaction_id)
        try:
            return self._run_steps(steps, transaction_id, parent_id, initial, abort_details)
        finally:
            self._run_stack.pop()

    def _run_steps(
        self,
        steps: Sequence[TransactionStep],
        transaction_id: str,
        parent_id: str | None,
        initial: Any,
        abort_details: Callable[[], Mapping[str, Any]] | None,
    ) -> Result[Any]:
        payload = initial
        result: Result[Any] = Result.success("No steps ran.", initial)
        for index, step in enumerate(steps):
            try:
                result = step.run(payload)
            except RepoDBError as error:
                result = Result.failure(error)
            except Exception:
                _LOGGER.exception(
                    "transaction_step_crashed",
                    transaction_id=transaction_id,
                    parent_transaction_id=parent_id,
                    failed_step=step.name,
                    completed_steps=[completed.name for completed in steps[:index]],
                )
                raise
            if not result.ok:
                return self._abort(steps, index, result, transaction_id, parent_id, abort_details)
            payload = result.payload
            _LOGGER.debug(
                "transaction_step_completed",
                transaction_id=transaction_id,
                step=step.name,
                step_index=index,
            )
        _LOGGER.info(
            "transaction_completed",
            transaction_id=transaction_id,
            parent_transaction_id=parent_id,
            step_count=len(steps),
        )
        return result

    def _abort(
        self,
        steps: Sequence[TransactionStep],
        index: int,
        result: Result[Any],
        transaction_id: str,
        parent_id: str | None,
        abort_details: Callable[[], Mapping[str, Any]] | None,
    ) -> Result[Any]:
        details = dict(abort_details()) if abort_details is not None else {}
        failed_step = steps[index].name
        completed = [step.name for step in steps[:index]]
        cause = result.error or RepoDBError(result.status.message)
        error = TransactionAbortError(
            f"Transaction [{transaction_id}] aborted at step [{failed_step}] "
            f"after {index} completed steps: {result.status.message}",
            transaction_id=transaction_id,
            failed_step=failed_step,
            step_index=index,
            completed_steps=index,
            cause=cause,
            branch_name=details.get("branch_name"),
            locked_containers=details.get("locked_containers") or (),
        )
        _LOGGER.error(
            "transaction_aborted",
            transaction_id=transaction_id,
            parent_transaction_id=parent_id,
            failed_step=failed_step,
            step_index=index,
            completed_steps=completed,
            status_code=result.status.code,
            detail=result.status.message,
            branch_name=error.branch_name,
            locked_containers=error.locked_containers,
        )
        return Result.failure(error)
