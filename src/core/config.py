"""Runtime configuration model for RepoDB.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
import re
from typing import Mapping

from core.constants import (
    DEFAULT_API_URL,
    DEFAULT_BASE_BRANCH,
    DEFAULT_PROCESS_NAME,
    DEFAULT_REPO_SUFFIX,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from core.errors import RepoDBConfigError

_PROCESS_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
_CONTAINER_TTL_PATTERN = re.compile(r"^REPODB_CACHE_TTL_([A-Z0-9]+)_SECONDS$")


@dataclass(frozen=True)
class RepoDBConfig:
    """Validated runtime configuration.

    Attributes:
        github_token: Token used to authenticate remote store calls.
        org_name: Owner of the backing repository.
        repo_name: Backing repository name.
        base_branch: Ref that holds committed container state.
        process_name: Stem of the sentinel lock file name.
        api_url: Base URL of the remote REST API.
        cache_ttl_seconds: Cache TTL applied to every container, or None to
            keep each container's own default.
        request_timeout_seconds: Timeout for each remote HTTP call.
        container_cache_ttls: Per-container TTLs keyed by upper-case
            container name, applied after ``cache_ttl_seconds``.
    """

    github_token: str | None
    org_name: str | None
    repo_name: str | None
    base_branch: str
    process_name: str
    api_url: str
    cache_ttl_seconds: float | None
    request_timeout_seconds: float
    container_cache_ttls: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "RepoDBConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            RepoDBConfigError: If environment values are invalid.
        """
        org_name = _optional_env("REPODB_ORG")
        repo_name = _optional_env("REPODB_REPO")
        if repo_name is None and org_name is not None:
            repo_name = f"{org_name}{DEFAULT_REPO_SUFFIX}"
        process_name = os.getenv("REPODB_PROCESS_NAME", DEFAULT_PROCESS_NAME)
        return cls(
            github_token=_optional_env("REPODB_GITHUB_TOKEN"),
            org_name=org_name,
            repo_name=repo_name,
            base_branch=os.getenv("REPODB_BASE_BRANCH", DEFAULT_BASE_BRANCH),
            process_name=_parse_process_name(process_name),
            api_url=os.getenv("REPODB_API_URL", DEFAULT_API_URL).rstrip("/"),
            cache_ttl_seconds=_optional_positive_float("REPODB_CACHE_TTL_SECONDS"),
            request_timeout_seconds=_parse_positive_float(
                "REPODB_REQUEST_TIMEOUT_SECONDS",
                os.getenv(
                    "REPODB_REQUEST_TIMEOUT_SECONDS", str(DEFAULT_REQUEST_TIMEOUT_SECONDS)
                ),
            ),
            container_cache_ttls=_container_cache_ttls(),
        )

    def require_remote(self) -> tuple[str, str, str]:
        """Return token, org, and repo, failing when any is missing.

        Raises:
            RepoDBConfigError: If remote credentials are not configured.
        """
        if not self.github_token or not self.org_name or not self.repo_name:
            raise RepoDBConfigError(
                "Remote store is not configured. "
                "Set REPODB_GITHUB_TOKEN and REPODB_ORG (and optionally REPODB_REPO)."
            )
        return self.github_token, self.org_name, self.repo_name


def _optional_env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized_value = raw_value.strip()
    return normalized_value or None


def _parse_process_name(raw_value: str) -> str:
    """Validate the process name used for lock file paths.

    Raises:
        RepoDBConfigError: If value is not a safe file stem.
    """
    if not _PROCESS_NAME_PATTERN.match(raw_value):
        raise RepoDBConfigError(
            "Invalid REPODB_PROCESS_NAME value: "
            f"expected letters, digits, '.', '_' or '-', got '{raw_value}'."
        )
    return raw_value


def _parse_positive_float(variable: str, raw_value: str) -> float:
    """Parse a positive numeric environment value.

    Args:
        variable: Environment variable name, for error messages.
        raw_value: Raw string from environment.

    Returns:
        Parsed float value.

    Raises:
        RepoDBConfigError: If value is not a positive number.
    """
    try:
        parsed_value = float(raw_value)
    except ValueError as error:
        raise RepoDBConfigError(
            f"Invalid {variable} value: "
            f"expected number, got '{raw_value}'. "
            f"Set {variable} to a positive numeric value."
        ) from error
    if parsed_value <= 0:
        raise RepoDBConfigError(
            f"Invalid {variable} value: expected a positive number, got '{raw_value}'."
        )
    return parsed_value


def _optional_positive_float(variable: str) -> float | None:
    raw_value = _optional_env(variable)
    if raw_value is None:
        return None
    return _parse_positive_float(variable, raw_value)


def _container_cache_ttls() -> dict[str, float]:
    """Collect ``REPODB_CACHE_TTL_<CONTAINER>_SECONDS`` overrides.

    Raises:
        RepoDBConfigError: If any override is not a positive number.
    """
    overrides: dict[str, float] = {}
    for variable in sorted(os.environ):
        match = _CONTAINER_TTL_PATTERN.match(variable)
        if match is None:
            continue
        overrides[match.group(1)] = _parse_positive_float(variable, os.environ[variable])
    return overrides
