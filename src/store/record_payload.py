"""Shared JSON serialization for container object arrays.

This module centralizes container blob encoding and decoding.
It is reused by branch transactions and cached repository reads.
"""

from __future__ import annotations

import json
from typing import Any

from core.errors import RemoteCallError, ValidationError
from core.types import ObjectRecord


def encode_objects(objects: list[ObjectRecord]) -> bytes:
    """Serialize a container object array into blob content.

    Args:
        objects: Records to serialize.

    Returns:
        UTF-8 JSON bytes.

    Raises:
        ValidationError: If a record holds a value JSON cannot represent.
    """
    try:
        content = json.dumps(objects, indent=2, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as error:
        raise ValidationError(f"Container objects are not JSON serializable: {error}.") from error
    return content.encode("utf-8")


def ensure_encodable(value: Any, label: str) -> None:
    """Fail when a value cannot be stored in a container blob.

    Raises:
        ValidationError: Naming ``label`` and the offending type.
    """
    try:
        json.dumps(value, allow_nan=False)
    except (TypeError, ValueError) as error:
        raise ValidationError(
            f"{label} cannot be stored: {error}. Convert it to JSON types "
            "(str, number, bool, null, list, object) first."
        ) from error


def decode_objects(content: bytes, path: str) -> list[ObjectRecord]:
    """Deserialize blob content into a container object array.

    Args:
        content: Raw blob bytes.
        path: Blob path, for error messages.

    Returns:
        Parsed records; an empty blob yields an empty list.

    Raises:
        RemoteCallError: If the blob is not a JSON array of objects.
    """
    if not content.strip():
        return []
    try:
        payload = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise RemoteCallError(
            f"Unable to parse [{path}] as JSON: {error}. "
            "Repair the container file on the base branch."
        ) from error
    return _expect_object_array(payload, path)


def _expect_object_array(payload: Any, path: str) -> list[ObjectRecord]:
    if not isinstance(payload, list):
        raise RemoteCallError(
            f"Invalid container file [{path}]: expected JSON array at top level."
        )
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise RemoteCallError(
                f"Invalid container file [{path}]: item #{index + 1} is not a JSON object."
            )
    return payload
