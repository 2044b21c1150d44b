"""Repositories for the built-in container types."""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping

from core.errors import NotFoundError, ValidationError
from core.results import Result
from core.types import ContainerSpec, ObjectRecord
from pipeline.transaction_executor import TransactionExecutor
from store.containers import COMPANIES, INTERACTIONS, STUDIES
from store.dependency_cache import DependencyCache
from store.lock_coordinator import LockCoordinator
from store.object_repository import ObjectRepository, utc_timestamp
from store.record_query import text_search
from store.remote_client import RemoteStoreClient

INTERACTION_TEXT_FIELDS = ("name", "abstract", "description", "summary")
STUDY_MEMBER_CONTAINERS = ("Companies", "Interactions")


class _EntityRepository(ObjectRepository):
    container_spec: ContainerSpec

    def __init__(
        self,
        client: RemoteStoreClient,
        cache: DependencyCache,
        locks: LockCoordinator,
        executor: TransactionExecutor | None = None,
        registry: Mapping[str, ContainerSpec] | None = None,
        clock: Callable[[], str] = utc_timestamp,
    ) -> None:
        spec = (registry or {}).get(self.container_spec.name, self.container_spec)
        super().__init__(spec, client, cache, locks, executor, registry, clock)


class CompanyRepository(_EntityRepository):
    """Companies; deletes unlink Interactions by default."""

    container_spec = COMPANIES


class InteractionRepository(_EntityRepository):
    """Interactions; deletes remove the attachment file and unlink Companies."""

    container_spec = INTERACTIONS

    def find_by_hash(self, file_hash: str) -> Result[list[ObjectRecord]]:
        """Find interactions by the content hash of their attachment."""
        return self.find_by_attribute("file_hash", file_hash)

    def find_by_text(self, text: str) -> Result[list[ObjectRecord]]:
        """Find interactions whose name, abstract, description, or summary contains text.

        Args:
            text: Case-insensitive search text.

        Returns:
            Result with matching interactions, or a 404 failure.
        """
        if not isinstance(text, str) or not text.strip():
            return Result.failure(ValidationError("Search text must be a non-empty string."))
        snapshot = self.get_all()
        if not snapshot.ok or snapshot.payload is None:
            return snapshot
        matches = text_search(snapshot.payload.objects, text, INTERACTION_TEXT_FIELDS)
        if not matches:
            return Result.failure(NotFoundError(f'No interactions found containing text: "{text}".'))
        return Result.success(
            f'Found {len(matches)} interactions containing text: "{text}"', matches
        )


class StudyRepository(_EntityRepository):
    """Studies; deletes unlink Companies and Interactions by default."""

    container_spec = STUDIES

    def find_by_status(self, status: str) -> Result[list[ObjectRecord]]:
        """Find studies in a workflow status such as ``Active``."""
        if not isinstance(status, str) or not status.strip():
            return Result.failure(
                ValidationError("Invalid parameter: [status] must be a non-empty string.")
            )
        return self.find_by_attribute("status", status)

    def find_by_access(self, is_public: bool) -> Result[list[ObjectRecord]]:
        """Find public or private studies."""
        if not isinstance(is_public, bool):
            return Result.failure(
                ValidationError("Invalid parameter: [is_public] must be a boolean.")
            )
        return self.find_by_attribute("public", is_public)

    def find_by_group(self, group: str) -> Result[list[ObjectRecord]]:
        """Find studies whose ``groups`` include a group name.

        Args:
            group: Group name, matched exactly.

        Returns:
            Result with matching studies, or a 404 failure.
        """
        if not isinstance(group, str) or not group.strip():
            return Result.failure(
                ValidationError("Invalid parameter: [group] must be a non-empty string.")
            )

        def produce() -> Result[list[ObjectRecord]]:
            snapshot = self.get_all()
            if not snapshot.ok or snapshot.payload is None:
                return snapshot
            matches = [
                record
                for record in snapshot.payload.objects
                if _in_group(record.get("groups"), group)
            ]
            if not matches:
                return Result.failure(NotFoundError(f"No studies found in group [{group}]."))
            return Result.success(f"Found {len(matches)} studies in group [{group}]", matches)

        return self._cached_query(f"{self.container}:by_group:{json.dumps(group)}", produce)

    def add_to_study(
        self,
        study_name: str,
        entity_type: str,
        entity_name: str,
    ) -> Result[ObjectRecord]:
        """Link one company or interaction to a study on both sides.

        Args:
            study_name: Study to extend.
            entity_type: ``Companies`` or ``Interactions``.
            entity_name: Record to add.

        Returns:
            Result with the updated study.
        """
        if entity_type not in STUDY_MEMBER_CONTAINERS:
            return Result.failure(
                ValidationError(
                    f"Invalid entity type: [{entity_type}]. "
                    f"Must be one of {', '.join(STUDY_MEMBER_CONTAINERS)}."
                )
            )
        if not isinstance(entity_name, str) or not entity_name.strip():
            return Result.failure(
                ValidationError("Invalid parameter: [entity_name] must be a non-empty string.")
            )
        return self.link(study_name, entity_type, [entity_name])


def _in_group(groups: Any, group: str) -> bool:
    if isinstance(groups, str):
        return groups == group
    return isinstance(groups, (list, tuple)) and group in groups
