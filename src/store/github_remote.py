"""GitHub REST implementation of the remote store client.

This module maps the store primitives onto the contents, git refs, and
pulls APIs of one repository. HTTP failures are translated into RepoDB
errors; nothing is retried here.
"""

from __future__ import annotations

import base64
import time
from typing import Any, Mapping
from urllib.parse import quote

import requests

from core.config import RepoDBConfig
from core.constants import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT_SECONDS, GITHUB_API_VERSION
from core.errors import (
    AlreadyExistsError,
    MergeConflictError,
    NotFoundError,
    RemoteCallError,
)
from core.logging_config import get_logger
from core.types import BranchRef, CommitInfo

_LOGGER = get_logger(__name__)


class GitHubRemoteStore:
    """Remote store backed by one GitHub repository."""

    supports_exclusive_create = True

    def __init__(
        self,
        token: str,
        org_name: str,
        repo_name: str,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._repo_url = f"{api_url.rstrip('/')}/repos/{org_name}/{repo_name}"
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            }
        )

    @classmethod
    def from_config(cls, config: RepoDBConfig) -> "GitHubRemoteStore":
        """Build a store from validated runtime config.

        Raises:
            RepoDBConfigError: If token or repository are not configured.
        """
        token, org_name, repo_name = config.require_remote()
        return cls(
            token,
            org_name,
            repo_name,
            api_url=config.api_url,
            timeout_seconds=config.request_timeout_seconds,
        )

    def get_file_hash(self, path: str, ref: str) -> str:
        return str(self._file_entry(path, ref)["sha"])

    def get_file_content(self, path: str, ref: str) -> bytes:
        entry = self._file_entry(path, ref)
        encoded = entry.get("content") or ""
        if not encoded and entry.get("size", 0):
            # The contents API omits content above 1 MB; the blob API does not.
            blob = self._request("GET", f"git/blobs/{entry['sha']}", context=f"blob of {path}")
            encoded = blob.get("content") or ""
        return base64.b64decode(encoded)

    def list_directory(self, path: str, ref: str) -> list[str]:
        payload = self._request(
            "GET", _contents_endpoint(path), params={"ref": ref}, context=f"directory {path}"
        )
        if isinstance(payload, Mapping):
            return [str(payload["path"])]
        return [str(entry["path"]) for entry in payload if entry.get("type") == "file"]

    def put_file(
        self,
        path: str,
        content: bytes,
        branch: str,
        message: str,
        expected_hash: str | None = None,
        create_only: bool = False,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if expected_hash is not None and not create_only:
            body["sha"] = expected_hash
        response = self._send("PUT", _contents_endpoint(path), json=body)
        if response.status_code == 422 and create_only:
            raise AlreadyExistsError(f"File [{path}] already exists on [{branch}].")
        if response.status_code in (409, 422):
            raise RemoteCallError(
                f"Content hash mismatch writing [{path}] on [{branch}]; "
                "the file changed since it was read. Re-read and retry the operation."
            )
        payload = _json_or_raise(response, f"write of {path}")
        return str(payload["content"]["sha"])

    def delete_file(self, path: str, branch: str, message: str, expected_hash: str) -> None:
        body = {"message": message, "sha": expected_hash, "branch": branch}
        response = self._send("DELETE", _contents_endpoint(path), json=body)
        if response.status_code == 409:
            raise RemoteCallError(
                f"Content hash mismatch deleting [{path}] on [{branch}]; "
                "re-read the file hash and retry."
            )
        _json_or_raise(response, f"delete of {path}")

    def create_branch(self, from_ref: str) -> BranchRef:
        head = self._request("GET", f"git/ref/heads/{from_ref}", context=f"ref {from_ref}")
        head_hash = str(head["object"]["sha"])
        branch_name = str(int(time.time() * 1000))
        self._request(
            "POST",
            "git/refs",
            json={"ref": f"refs/heads/{branch_name}", "sha": head_hash},
            context=f"branch {branch_name}",
        )
        return BranchRef(name=branch_name, head_hash=head_hash)

    def get_branch_head(self, branch: str) -> CommitInfo:
        commits = self._request(
            "GET",
            "commits",
            params={"sha": branch, "per_page": 1},
            context=f"commits of {branch}",
        )
        if not commits:
            raise NotFoundError(f"No commits found on branch [{branch}].")
        latest = commits[0]
        details = latest.get("commit") or {}
        author = details.get("author") or {}
        committer = details.get("committer") or {}
        return CommitInfo(
            commit_hash=str(latest["sha"]),
            message=str(details.get("message") or ""),
            author=author.get("name"),
            timestamp=committer.get("date"),
        )

    def create_and_merge_change(self, branch: str, base_ref: str, title: str) -> None:
        response = self._send(
            "POST",
            "pulls",
            json={"title": title, "head": branch, "base": base_ref, "body": title},
        )
        if response.status_code == 422:
            raise MergeConflictError(
                f"Unable to open a pull request from [{branch}] into [{base_ref}]: "
                f"{_error_message(response)}"
            )
        pull = _json_or_raise(response, f"pull request for {branch}")
        merge = self._send(
            "PUT", f"pulls/{pull['number']}/merge", json={"commit_title": title}
        )
        if merge.status_code in (405, 409):
            raise MergeConflictError(
                f"Pull request #{pull['number']} from [{branch}] could not be merged: "
                f"{_error_message(merge)}"
            )
        _json_or_raise(merge, f"merge of pull request #{pull['number']}")
        _LOGGER.info("change_merged", branch_name=branch, base_ref=base_ref, pull_number=pull["number"])

    def _file_entry(self, path: str, ref: str) -> Mapping[str, Any]:
        payload = self._request(
            "GET", _contents_endpoint(path), params={"ref": ref}, context=f"file {path}"
        )
        if not isinstance(payload, Mapping):
            raise RemoteCallError(f"Expected [{path}] to be a file, found a directory.")
        return payload

    def _request(self, method: str, endpoint: str, context: str, **kwargs: Any) -> Any:
        return _json_or_raise(self._send(method, endpoint, **kwargs), context)

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> requests.Response:
        url = f"{self._repo_url}/{endpoint}"
        try:
            return self._session.request(method, url, timeout=self._timeout_seconds, **kwargs)
        except requests.RequestException as error:
            raise RemoteCallError(
                f"{method} {url} failed: {error}. Check network access and retry.",
                transient=True,
            ) from error


def _contents_endpoint(path: str) -> str:
    return f"contents/{quote(path, safe='/')}"


def _json_or_raise(response: requests.Response, context: str) -> Any:
    if response.status_code == 404:
        raise NotFoundError(f"Remote {context} not found.")
    if response.status_code in (401, 403):
        raise RemoteCallError(
            f"Access denied for {context} (HTTP {response.status_code}). "
            "Check REPODB_GITHUB_TOKEN permissions."
        )
    if response.status_code >= 400:
        raise RemoteCallError(
            f"Remote {context} failed with HTTP {response.status_code}: {_error_message(response)}",
            transient=response.status_code >= 500,
        )
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as error:
        raise RemoteCallError(f"Remote {context} returned invalid JSON: {error}") from error


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, Mapping) and payload.get("message"):
        return str(payload["message"])
    return response.text[:500]
