"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import RepoDBConfig
from core.errors import RepoDBConfigError


def test_from_env_defaults_repo_name_from_org(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should derive the discovery repo name from the org."""
    monkeypatch.setenv("REPODB_ORG", "Acme")
    monkeypatch.delenv("REPODB_REPO", raising=False)

    config = RepoDBConfig.from_env()

    assert config.repo_name == "Acme_discovery"


def test_from_env_reads_base_branch_and_process(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should honor base branch and process name overrides."""
    monkeypatch.setenv("REPODB_BASE_BRANCH", "trunk")
    monkeypatch.setenv("REPODB_PROCESS_NAME", "ingest-worker")

    config = RepoDBConfig.from_env()

    assert (config.base_branch, config.process_name) == ("trunk", "ingest-worker")


def test_from_env_raises_for_invalid_ttl(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for a non-numeric cache TTL."""
    monkeypatch.setenv("REPODB_CACHE_TTL_SECONDS", "soon")

    with pytest.raises(RepoDBConfigError):
        RepoDBConfig.from_env()


def test_from_env_raises_for_non_positive_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject a zero request timeout."""
    monkeypatch.setenv("REPODB_REQUEST_TIMEOUT_SECONDS", "0")

    with pytest.raises(RepoDBConfigError):
        RepoDBConfig.from_env()


def test_from_env_rejects_unsafe_process_name(monkeypatch: pytest.MonkeyPatch) -> None:
    """Process names become file stems, so path separators are rejected."""
    monkeypatch.setenv("REPODB_PROCESS_NAME", "../escape")

    with pytest.raises(RepoDBConfigError):
        RepoDBConfig.from_env()


def test_require_remote_fails_without_token(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remote access should require a token."""
    monkeypatch.delenv("REPODB_GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("REPODB_ORG", "Acme")

    with pytest.raises(RepoDBConfigError):
        RepoDBConfig.from_env().require_remote()


def test_from_env_leaves_global_ttl_unset_by_default() -> None:
    config = RepoDBConfig.from_env()

    assert config.cache_ttl_seconds is None and config.container_cache_ttls == {}


def test_from_env_reads_per_container_ttls(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPODB_CACHE_TTL_SECONDS", "120")
    monkeypatch.setenv("REPODB_CACHE_TTL_STUDIES_SECONDS", "30")

    config = RepoDBConfig.from_env()

    assert config.cache_ttl_seconds == 120.0 and config.container_cache_ttls == {"STUDIES": 30.0}


def test_from_env_raises_for_invalid_container_ttl(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPODB_CACHE_TTL_COMPANIES_SECONDS", "-5")

    with pytest.raises(RepoDBConfigError, match="REPODB_CACHE_TTL_COMPANIES_SECONDS"):
        RepoDBConfig.from_env()
