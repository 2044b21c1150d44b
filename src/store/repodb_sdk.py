"""Python SDK for container operations.

This module wires one process-wide dependency cache, lock coordinator,
and step executor into the entity repositories so every repository
shares cache invalidation and transaction tracking.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping

from core.config import RepoDBConfig
from core.errors import RepoDBConfigError
from core.results import Result
from core.types import BranchStatus, ContainerSpec, UpdateCheck
from pipeline.change_plan_execution import execute_change_plan_file
from pipeline.transaction_executor import TransactionExecutor
from store.containers import BUILTIN_CONTAINERS, resolve_container
from store.dependency_cache import DependencyCache
from store.entity_repositories import CompanyRepository, InteractionRepository, StudyRepository
from store.github_remote import GitHubRemoteStore
from store.lock_coordinator import LockCoordinator
from store.object_repository import ObjectRepository
from store.remote_client import RemoteStoreClient

_ENTITY_REPOSITORIES = (CompanyRepository, InteractionRepository, StudyRepository)


class RepoDBClient:
    """Primary SDK entry point for container reads and writes."""

    def __init__(
        self,
        config: RepoDBConfig | None = None,
        remote: RemoteStoreClient | None = None,
        cache: DependencyCache | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            remote: Remote store; a GitHub store is built from config
                when omitted.
            cache: Dependency cache; one is created when omitted.
        """
        self._config = config or RepoDBConfig.from_env()
        self._remote = remote or GitHubRemoteStore.from_config(self._config)
        self._cache = cache or DependencyCache()
        self._executor = TransactionExecutor()
        self._locks = LockCoordinator(
            self._remote, self._config.base_branch, self._config.process_name
        )
        registry = _registry_with_ttl(
            self._config.cache_ttl_seconds, self._config.container_cache_ttls
        )
        self._repositories: dict[str, ObjectRepository] = {
            repository_type.container_spec.name: repository_type(
                self._remote, self._cache, self._locks, self._executor, registry
            )
            for repository_type in _ENTITY_REPOSITORIES
        }

    @property
    def cache(self) -> DependencyCache:
        return self._cache

    @property
    def locks(self) -> LockCoordinator:
        return self._locks

    @property
    def companies(self) -> CompanyRepository:
        return self._repositories["Companies"]  # type: ignore[return-value]

    @property
    def interactions(self) -> InteractionRepository:
        return self._repositories["Interactions"]  # type: ignore[return-value]

    @property
    def studies(self) -> StudyRepository:
        return self._repositories["Studies"]  # type: ignore[return-value]

    @property
    def repositories(self) -> Mapping[str, ObjectRepository]:
        return dict(self._repositories)

    def repository(self, container: str) -> ObjectRepository:
        """Get a repository handle by container name.

        Raises:
            ValidationError: If the container is unknown.
        """
        spec = resolve_container(container, BUILTIN_CONTAINERS)
        return self._repositories[spec.name]

    def apply_change_plan(self, plan_file: str) -> Result[list[str]]:
        """Execute a YAML change plan through the shared execution engine.

        Args:
            plan_file: Path to YAML change plan.

        Returns:
            Result with one message per applied step.
        """
        return execute_change_plan_file(self._repositories, self._executor, plan_file)

    def unlock(self, container: str) -> Result[None]:
        """Force-release this process's lock on a container's base ref."""
        spec = resolve_container(container, BUILTIN_CONTAINERS)
        return self._locks.force_release(spec.name)

    def branch_status(self, branch: str | None = None) -> Result[BranchStatus]:
        """Return the cached head commit of a branch, the base ref by default."""
        return self.companies.get_branch_status(branch)

    def check_for_updates(
        self,
        last_known_hash: str,
        branch: str | None = None,
    ) -> Result[UpdateCheck]:
        """Report whether a branch moved past a commit the caller has seen."""
        return self.companies.check_for_updates(last_known_hash, branch)


def _registry_with_ttl(
    ttl_seconds: float | None,
    container_ttls: Mapping[str, float],
) -> dict[str, ContainerSpec]:
    """Apply configured TTLs over each container's own default.

    Raises:
        RepoDBConfigError: If an override names an unknown container.
    """
    by_key = {name.upper(): name for name in BUILTIN_CONTAINERS}
    unknown = sorted(set(container_ttls) - set(by_key))
    if unknown:
        raise RepoDBConfigError(
            f"Unknown container in cache TTL override: {', '.join(unknown)}. "
            f"Use one of: {', '.join(sorted(by_key))}."
        )
    registry: dict[str, ContainerSpec] = {}
    for name, spec in BUILTIN_CONTAINERS.items():
        ttl = container_ttls.get(name.upper(), ttl_seconds)
        registry[name] = spec if ttl is None else replace(spec, cache_ttl_seconds=ttl)
    return registry
