"""Unit tests for container blob encoding."""

from __future__ import annotations

from datetime import datetime

import pytest

from core.errors import RemoteCallError, ValidationError
from store.record_payload import decode_objects, encode_objects, ensure_encodable


def test_empty_blob_decodes_to_empty_list() -> None:
    """An empty blob should be an empty container."""
    assert decode_objects(b"", "Companies/Companies.json") == []


def test_encode_keeps_non_ascii_text() -> None:
    """Encoded blobs should keep UTF-8 text readable."""
    content = encode_objects([{"name": "Zürich AG"}])

    assert "Zürich AG".encode("utf-8") in content


def test_decode_rejects_non_array_payload() -> None:
    """A top-level object should be rejected."""
    with pytest.raises(RemoteCallError):
        decode_objects(b'{"name": "Acme"}', "Companies/Companies.json")


def test_decode_rejects_invalid_json() -> None:
    """Malformed JSON should raise a remote call error."""
    with pytest.raises(RemoteCallError):
        decode_objects(b"[{", "Companies/Companies.json")


def test_encode_rejects_values_json_cannot_store() -> None:
    """Non-JSON values should fail validation instead of escaping as TypeError."""
    with pytest.raises(ValidationError):
        encode_objects([{"name": "Acme", "founded": datetime(2020, 1, 1)}])


def test_ensure_encodable_rejects_nan() -> None:
    """NaN has no JSON representation, so it is rejected up front."""
    with pytest.raises(ValidationError, match="latitude"):
        ensure_encodable(float("nan"), "Field [latitude]")
