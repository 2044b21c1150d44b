"""Unit tests for the GitHub REST remote store."""

from __future__ import annotations

import base64
import json
from typing import Any

import pytest
import requests

from core.errors import AlreadyExistsError, MergeConflictError, NotFoundError, RemoteCallError
from store.github_remote import GitHubRemoteStore


class _Response:
    def __init__(self, status_code: int, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.text = self.content.decode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class _Session:
    def __init__(self, responses: list[Any]) -> None:
        self.headers: dict[str, str] = {}
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self._responses = responses

    def request(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.requests.append((method, url, kwargs))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _store(*responses: Any) -> tuple[GitHubRemoteStore, _Session]:
    session = _Session(list(responses))
    store = GitHubRemoteStore("token", "Acme", "Acme_discovery", session=session)  # type: ignore[arg-type]
    return store, session


def test_session_carries_auth_and_api_version() -> None:
    """The session should send the token and API version headers."""
    _, session = _store()

    assert session.headers["Authorization"] == "Bearer token" and "X-GitHub-Api-Version" in session.headers


def test_get_file_content_decodes_base64() -> None:
    """File content should be decoded from the contents API payload."""
    encoded = base64.b64encode(b'[{"name": "Acme"}]').decode("ascii")
    store, session = _store(_Response(200, {"sha": "h1", "content": encoded, "size": 18}))

    content = store.get_file_content("Companies/Companies.json", "main")

    assert content == b'[{"name": "Acme"}]' and session.requests[0][2]["params"] == {"ref": "main"}


def test_large_file_content_falls_back_to_blob() -> None:
    """Files without inline content should be fetched from the blob API."""
    encoded = base64.b64encode(b"[]").decode("ascii")
    store, session = _store(
        _Response(200, {"sha": "h1", "content": "", "size": 2_000_000}),
        _Response(200, {"content": encoded}),
    )

    store.get_file_content("Companies/Companies.json", "main")

    assert session.requests[1][1].endswith("/git/blobs/h1")


def test_missing_file_raises_not_found() -> None:
    """A 404 should become NotFoundError."""
    store, _ = _store(_Response(404, {"message": "Not Found"}))

    with pytest.raises(NotFoundError):
        store.get_file_hash("Companies/Companies.json", "main")


def test_list_directory_returns_file_paths() -> None:
    """Directory listings should return file paths only."""
    store, _ = _store(
        _Response(
            200,
            [
                {"path": "Companies/Companies.json", "type": "file"},
                {"path": "Companies/repodb.lock", "type": "file"},
                {"path": "Companies/archive", "type": "dir"},
            ],
        )
    )

    assert store.list_directory("Companies", "main") == [
        "Companies/Companies.json",
        "Companies/repodb.lock",
    ]


def test_create_only_put_maps_422_to_already_exists() -> None:
    """A create-only write over an existing file should raise AlreadyExistsError."""
    store, session = _store(_Response(422, {"message": "sha wasn't supplied"}))

    with pytest.raises(AlreadyExistsError):
        store.put_file("Companies/repodb.lock", b"", "main", "Locking", create_only=True)

    assert "sha" not in session.requests[0][2]["json"]


def test_put_file_sends_expected_hash() -> None:
    """Conditional writes should send the expected blob hash."""
    store, session = _store(_Response(200, {"content": {"sha": "h2"}}))

    new_hash = store.put_file("Companies/Companies.json", b"[]", "b1", "Update", expected_hash="h1")

    assert new_hash == "h2" and session.requests[0][2]["json"]["sha"] == "h1"


def test_put_file_hash_conflict_is_remote_error() -> None:
    """A 409 on write should be reported as a hash mismatch."""
    store, _ = _store(_Response(409, {"message": "does not match"}))

    with pytest.raises(RemoteCallError):
        store.put_file("Companies/Companies.json", b"[]", "b1", "Update", expected_hash="old")


def test_create_branch_uses_base_head() -> None:
    """Branches should be created at the base ref's head commit."""
    store, session = _store(_Response(200, {"object": {"sha": "c0"}}), _Response(201, {"ref": "x"}))

    branch = store.create_branch("main")

    assert branch.head_hash == "c0" and session.requests[1][2]["json"]["sha"] == "c0"


def test_unmergeable_pull_request_raises_merge_conflict() -> None:
    """A 405 from the merge endpoint should become MergeConflictError."""
    store, _ = _store(_Response(201, {"number": 7}), _Response(405, {"message": "not mergeable"}))

    with pytest.raises(MergeConflictError):
        store.create_and_merge_change("b1", "main", "Performed CRUD operation on objects.")


def test_transport_failure_is_transient() -> None:
    """Network exceptions should become transient remote errors."""
    store, _ = _store(requests.ConnectionError("reset"))

    with pytest.raises(RemoteCallError) as error_info:
        store.get_file_hash("Companies/Companies.json", "main")

    assert error_info.value.transient


def test_server_error_is_transient() -> None:
    """5xx responses should be flagged transient."""
    store, _ = _store(_Response(503, {"message": "unavailable"}))

    with pytest.raises(RemoteCallError) as error_info:
        store.list_directory("Companies", "main")

    assert error_info.value.transient


def test_get_branch_head_reads_latest_commit() -> None:
    """Branch head should come from the newest entry of the commits API."""
    commit = {
        "sha": "c0ffee",
        "commit": {
            "message": "Performed CRUD operation on objects.",
            "author": {"name": "repodb"},
            "committer": {"date": "2026-01-01T00:00:00Z"},
        },
    }
    store, session = _store(_Response(200, [commit]))

    head = store.get_branch_head("main")

    assert (
        (head.commit_hash, head.author, head.timestamp) == ("c0ffee", "repodb", "2026-01-01T00:00:00Z")
        and session.requests[0][2]["params"] == {"sha": "main", "per_page": 1}
    )


def test_get_branch_head_without_commits_is_not_found() -> None:
    """An empty commit list should raise NotFoundError."""
    store, _ = _store(_Response(200, []))

    with pytest.raises(NotFoundError):
        store.get_branch_head("main")
