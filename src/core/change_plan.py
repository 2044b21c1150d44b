"""Typed change-plan parsing for declarative container writes.

This module loads and validates YAML change plans used by the CLI and
SDK. A plan is an ordered list of create, update, delete, and link
commands that run as one aborting pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping, Sequence, cast

import yaml

from core.constants import CHANGE_PLAN_VERSION
from core.errors import ChangePlanError

ChangePlanCommand = Literal["create", "update", "delete", "link"]
SUPPORTED_CHANGE_PLAN_COMMANDS: tuple[ChangePlanCommand, ...] = (
    "create",
    "update",
    "delete",
    "link",
)
_REQUIRED_ARGS: Mapping[str, tuple[str, ...]] = {
    "create": ("records",),
    "update": ("name", "key", "value"),
    "delete": ("name",),
    "link": ("name", "target", "targets"),
}
_OPTIONAL_ARGS: Mapping[str, tuple[str, ...]] = {
    "create": (),
    "update": ("system",),
    "delete": ("unlink",),
    "link": (),
}


@dataclass(frozen=True)
class ChangePlanDefaults:
    """Default values applied to change-plan steps."""

    container: str | None = None


@dataclass(frozen=True)
class ChangePlanStep:
    """One write command from a change-plan file."""

    command: ChangePlanCommand
    container: str
    args: Mapping[str, object]


@dataclass(frozen=True)
class ChangePlan:
    """Validated change-plan root object."""

    version: int
    defaults: ChangePlanDefaults
    steps: tuple[ChangePlanStep, ...]


def load_change_plan(plan_path: str) -> ChangePlan:
    """Load and validate a YAML change plan from disk.

    Args:
        plan_path: File path to the YAML change plan.

    Returns:
        Fully validated change plan.

    Raises:
        ChangePlanError: If the file is invalid or schema checks fail.
    """
    payload = _load_yaml_payload(plan_path)
    return parse_change_plan(payload)


def parse_change_plan(payload: object) -> ChangePlan:
    """Validate an already parsed change-plan payload."""
    root_mapping = _expect_mapping(payload, "change plan root")
    _validate_keys(root_mapping, {"version", "defaults", "steps"}, "change plan root")
    version = _parse_version(root_mapping)
    defaults = _parse_defaults(root_mapping)
    steps = _parse_steps(root_mapping, defaults)
    return ChangePlan(version=version, defaults=defaults, steps=steps)


def _load_yaml_payload(plan_path: str) -> object:
    plan_file = Path(plan_path).expanduser().resolve()
    if not plan_file.exists():
        raise ChangePlanError(
            f"Change plan file does not exist at {plan_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(plan_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise ChangePlanError(
            f"Failed to read change plan at {plan_file}: {error}. Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise ChangePlanError(
            f"Failed to parse YAML change plan at {plan_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise ChangePlanError(
            f"Change plan at {plan_file} is empty. Define 'version' and 'steps'."
        )
    return payload


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise ChangePlanError(
                    f"Invalid {context}: expected string keys, got {type(key).__name__}."
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise ChangePlanError(
        f"Invalid {context}: expected object mapping, got {type(value).__name__}."
    )


def _expect_sequence(value: object, context: str) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise ChangePlanError(f"Invalid {context}: expected list, got {type(value).__name__}.")


def _parse_version(root_mapping: Mapping[str, object]) -> int:
    raw_version = root_mapping.get("version")
    if not isinstance(raw_version, int) or isinstance(raw_version, bool):
        raise ChangePlanError(
            f"Change plan field 'version' must be an integer. Set version: {CHANGE_PLAN_VERSION}."
        )
    if raw_version != CHANGE_PLAN_VERSION:
        raise ChangePlanError(
            f"Unsupported change plan version {raw_version}. Use version: {CHANGE_PLAN_VERSION}."
        )
    return raw_version


def _parse_defaults(root_mapping: Mapping[str, object]) -> ChangePlanDefaults:
    raw_defaults = root_mapping.get("defaults")
    if raw_defaults is None:
        return ChangePlanDefaults()
    defaults_mapping = _expect_mapping(raw_defaults, "change plan defaults")
    _validate_keys(defaults_mapping, {"container"}, "change plan defaults")
    return ChangePlanDefaults(container=_optional_string(defaults_mapping, "container"))


def _parse_steps(
    root_mapping: Mapping[str, object],
    defaults: ChangePlanDefaults,
) -> tuple[ChangePlanStep, ...]:
    raw_steps = root_mapping.get("steps")
    if raw_steps is None:
        raise ChangePlanError(
            "Change plan missing required field 'steps'. Add a non-empty list of commands."
        )
    step_rows = _expect_sequence(raw_steps, "change plan steps")
    if len(step_rows) == 0:
        raise ChangePlanError("Change plan field 'steps' must include at least one step.")
    return tuple(
        _parse_step(step_value, index, defaults) for index, step_value in enumerate(step_rows)
    )


def _parse_step(
    step_value: object,
    step_index: int,
    defaults: ChangePlanDefaults,
) -> ChangePlanStep:
    context = f"change plan step #{step_index + 1}"
    step_mapping = _expect_mapping(step_value, context)
    raw_command = step_mapping.get("command")
    if not isinstance(raw_command, str):
        raise ChangePlanError(f"Invalid {context}: field 'command' must be a string.")
    command = _parse_command(raw_command, context)
    container = _optional_string(step_mapping, "container") or defaults.container
    if container is None:
        raise ChangePlanError(
            f"Invalid {context}: set 'container' on the step or in 'defaults'."
        )
    args = {
        key: value for key, value in step_mapping.items() if key not in {"command", "container"}
    }
    required = _REQUIRED_ARGS[command]
    _validate_keys(args, set(required) | set(_OPTIONAL_ARGS[command]), context)
    missing = [name for name in required if name not in args]
    if missing:
        raise ChangePlanError(
            f"Invalid {context}: command '{command}' requires {', '.join(missing)}."
        )
    _validate_step_args(command, args, context)
    return ChangePlanStep(command=command, container=container, args=args)


def _parse_command(raw_command: str, context: str) -> ChangePlanCommand:
    if raw_command in SUPPORTED_CHANGE_PLAN_COMMANDS:
        return cast(ChangePlanCommand, raw_command)
    supported_rows = ", ".join(SUPPORTED_CHANGE_PLAN_COMMANDS)
    raise ChangePlanError(
        f"Unsupported command '{raw_command}' in {context}. Use one of: {supported_rows}."
    )


def _validate_step_args(command: str, args: Mapping[str, object], context: str) -> None:
    if command == "create":
        records = _expect_sequence(args["records"], f"{context} records")
        for record in records:
            _expect_mapping(record, f"{context} record")
    if command in ("update", "delete", "link"):
        if not isinstance(args["name"], str) or not args["name"].strip():
            raise ChangePlanError(f"Invalid {context}: field 'name' must be a non-empty string.")
    if command == "update":
        if not isinstance(args["key"], str):
            raise ChangePlanError(f"Invalid {context}: field 'key' must be a string.")
        if not isinstance(args.get("system", False), bool):
            raise ChangePlanError(f"Invalid {context}: field 'system' must be a boolean.")
    if command == "delete" and "unlink" in args:
        _expect_string_list(args["unlink"], f"{context} unlink")
    if command == "link":
        if not isinstance(args["target"], str):
            raise ChangePlanError(f"Invalid {context}: field 'target' must be a string.")
        _expect_string_list(args["targets"], f"{context} targets")


def _expect_string_list(value: object, context: str) -> None:
    for item in _expect_sequence(value, context):
        if not isinstance(item, str):
            raise ChangePlanError(f"Invalid {context}: expected a list of strings.")


def _optional_string(mapping: Mapping[str, object], field_name: str) -> str | None:
    raw_value = mapping.get(field_name)
    if raw_value is None:
        return None
    if isinstance(raw_value, str):
        normalized_value = raw_value.strip()
        return normalized_value if normalized_value else None
    raise ChangePlanError(f"Change plan field '{field_name}' must be a string when provided.")


def _validate_keys(mapping: Mapping[str, object], allowed_keys: set[str], context: str) -> None:
    unknown_keys = sorted(set(mapping) - allowed_keys)
    if unknown_keys:
        raise ChangePlanError(f"Invalid {context}: unknown fields {', '.join(unknown_keys)}.")
