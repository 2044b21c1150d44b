"""Shared change-plan execution engine for CLI and SDK workflows.

This module maps validated change-plan steps to repository operations
and runs them as one aborting pipeline. Each plan step is its own branch
transaction; a failure stops the plan and earlier steps stay applied.
"""

from __future__ import annotations

from typing import Any, Mapping

from core.change_plan import ChangePlan, ChangePlanStep, load_change_plan
from core.errors import ChangePlanError
from core.results import Result
from core.types import DeleteSource
from pipeline.transaction_executor import StepFunction, TransactionExecutor, TransactionStep
from store.object_repository import ObjectRepository


def execute_change_plan_file(
    repositories: Mapping[str, ObjectRepository],
    executor: TransactionExecutor,
    plan_file: str,
) -> Result[list[str]]:
    """Load and execute a change-plan file."""
    plan = load_change_plan(plan_file)
    return execute_change_plan(repositories, executor, plan)


def execute_change_plan(
    repositories: Mapping[str, ObjectRepository],
    executor: TransactionExecutor,
    plan: ChangePlan,
) -> Result[list[str]]:
    """Run every plan step in order and collect their status messages.

    Args:
        repositories: Repositories keyed by container name.
        executor: Executor shared with the repositories.
        plan: Validated change plan.

    Returns:
        Result with one message per applied step, or the abort failure.

    Raises:
        ChangePlanError: If a step names an unknown container.
    """
    for step in plan.steps:
        if step.container not in repositories:
            raise ChangePlanError(
                f"Change plan references unknown container '{step.container}'. "
                f"Use one of: {', '.join(sorted(repositories))}."
            )
    messages: list[str] = []
    pipeline_steps = [
        TransactionStep(
            name=f"{step.command}-{step.container}-{index + 1}",
            run=_step_runner(repositories[step.container], step, messages),
        )
        for index, step in enumerate(plan.steps)
    ]
    result = executor.execute(pipeline_steps, "change-plan")
    if not result.ok:
        return result
    return Result.success(f"Applied {len(messages)} change plan steps", messages)


def _step_runner(
    repository: ObjectRepository,
    step: ChangePlanStep,
    messages: list[str],
) -> StepFunction:
    def run(_: Any) -> Result[Any]:
        result = _run_step(repository, step)
        if result.ok:
            messages.append(result.status.message)
        return result

    return run


def _run_step(repository: ObjectRepository, step: ChangePlanStep) -> Result[Any]:
    args = step.args
    if step.command == "create":
        return repository.create_many([dict(record) for record in args["records"]])  # type: ignore[union-attr]
    if step.command == "update":
        return repository.update_one(
            str(args["name"]),
            str(args["key"]),
            args["value"],
            system=bool(args.get("system", False)),
        )
    if step.command == "delete":
        source = None
        if "unlink" in args:
            source = DeleteSource(
                from_container=step.container,
                to_containers=tuple(args["unlink"]),  # type: ignore[arg-type]
            )
        return repository.delete_one(str(args["name"]), source)
    if step.command == "link":
        return repository.link(
            str(args["name"]),
            str(args["target"]),
            list(args["targets"]),  # type: ignore[call-overload]
        )
    raise ChangePlanError(f"Unsupported change plan command '{step.command}'.")
