"""CRUD and query facade over one container type.

Reads go through the process dependency cache and are keyed so that
every derived query depends on its container key. Writes run as a
transaction pipeline of catch, apply, write, and release steps on a
branch transaction; the touched container keys are invalidated once the
branch has been merged.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from datetime import datetime, timezone
import json
from typing import Any, Callable, Mapping, Sequence

from core.constants import (
    BRANCH_STATUS_TTL_SECONDS,
    CREATION_DATE_FIELD,
    MODIFICATION_DATE_FIELD,
    NAME_FIELD,
)
from core.errors import (
    AlreadyExistsError,
    DeprecatedOperationError,
    FieldAuthorizationError,
    NotFoundError,
    RepoDBError,
    ValidationError,
)
from core.logging_config import get_logger
from core.results import Result
from core.types import (
    BranchStatus,
    ContainerSnapshot,
    ContainerSpec,
    DeleteSource,
    ObjectRecord,
    RecordUpdate,
    RepoMetadata,
    SearchOptions,
    TransactionState,
    UpdateCheck,
)
from pipeline.transaction_executor import TransactionExecutor, TransactionStep
from store.branch_transaction import BranchTransaction
from store.containers import BUILTIN_CONTAINERS, resolve_container
from store.dependency_cache import DependencyCache
from store.lock_coordinator import LockCoordinator
from store.record_payload import decode_objects, ensure_encodable
from store.record_query import filter_records, match_attribute, sort_records
from store.remote_client import RemoteStoreClient

_LOGGER = get_logger(__name__)

_ABORTABLE_STATES = (
    TransactionState.LOCK_CHECK,
    TransactionState.LOCKED,
    TransactionState.BRANCHED,
    TransactionState.STAGED,
)
_MERGED_STATES = (TransactionState.RELEASED, TransactionState.FAILED_MERGE)


def container_cache_key(container: str) -> str:
    """Return the root cache key of a container's full read."""
    return f"container:{container}"


def branch_status_cache_key(branch: str) -> str:
    """Return the cache key of a branch head lookup."""
    return f"branch_status:{branch}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class _Mutation:
    """In-memory change applied to caught containers."""

    changed: tuple[str, ...]
    message: str
    payload: Any = None


MutationFunction = Callable[[RepoMetadata], _Mutation]


class ObjectRepository:
    """Cache-backed reads and transactional writes for one container."""

    def __init__(
        self,
        spec: ContainerSpec,
        client: RemoteStoreClient,
        cache: DependencyCache,
        locks: LockCoordinator,
        executor: TransactionExecutor | None = None,
        registry: Mapping[str, ContainerSpec] | None = None,
        clock: Callable[[], str] = utc_timestamp,
    ) -> None:
        """Create a repository bound to one container type.

        Args:
            spec: Container type served by this repository.
            client: Remote store client.
            cache: Process-wide dependency cache.
            locks: Lock coordinator bound to the base ref.
            executor: Step executor; a private one is created when omitted.
            registry: Known container specs, used for cross-references.
            clock: Returns the ISO timestamp stamped on modified records.
        """
        self._spec = spec
        self._client = client
        self._cache = cache
        self._locks = locks
        self._executor = executor or TransactionExecutor()
        self._registry = dict(registry if registry is not None else BUILTIN_CONTAINERS)
        self._registry.setdefault(spec.name, spec)
        self._clock = clock

    @property
    def spec(self) -> ContainerSpec:
        return self._spec

    @property
    def container(self) -> str:
        return self._spec.name

    def get_all(self) -> Result[ContainerSnapshot]:
        """Return the container's committed objects from the base ref.

        Records are copies; editing them never touches the cached state.
        """
        return _detached(
            self._cache.get_or_fetch(
                container_cache_key(self.container),
                self._read_snapshot,
                self._spec.cache_ttl_seconds,
            )
        )

    def find_by_name(self, name: str) -> Result[list[ObjectRecord]]:
        """Find records by name, ignoring case."""
        return self.find_by_attribute(NAME_FIELD, name)

    def find_by_id(self, object_id: Any) -> Result[list[ObjectRecord]]:
        """Report that id lookups were removed; records are keyed by name."""
        return Result.failure(
            DeprecatedOperationError(
                f"find_by_id({object_id!r}) was removed: records have no stable id. "
                "Use find_by_name or find_by_attribute instead."
            )
        )

    def get_branch_status(self, branch: str | None = None) -> Result[BranchStatus]:
        """Return the head commit of a branch, cached for a short TTL.

        Args:
            branch: Branch to inspect; defaults to the base ref.

        Returns:
            Result with the branch head, or the remote failure.
        """
        target = branch or self._locks.base_ref
        if not _is_text(target):
            return Result.failure(
                ValidationError("Invalid parameter: [branch] must be a non-empty string.")
            )

        def produce() -> Result[BranchStatus]:
            try:
                commit = self._client.get_branch_head(target)
            except RepoDBError as error:
                return Result.failure(error, f"Failed to get branch status of [{target}]: {error}")
            return Result.success(
                f"Retrieved latest commit for branch [{target}]",
                BranchStatus(branch=target, commit=commit),
            )

        return self._cache.get_or_fetch(
            branch_status_cache_key(target), produce, BRANCH_STATUS_TTL_SECONDS
        )

    def check_for_updates(
        self,
        last_known_hash: str,
        branch: str | None = None,
    ) -> Result[UpdateCheck]:
        """Report whether a branch head moved past a known commit.

        Args:
            last_known_hash: Commit hash the caller last synchronized to.
            branch: Branch to inspect; defaults to the base ref.
        """
        if not _is_text(last_known_hash):
            return Result.failure(
                ValidationError("Missing required parameter: [last_known_hash].")
            )
        status = self.get_branch_status(branch)
        if not status.ok or status.payload is None:
            return status
        current_hash = status.payload.commit.commit_hash
        update_needed = current_hash != last_known_hash
        message = (
            f"Branch [{status.payload.branch}] has been updated since commit {last_known_hash[:7]}"
            if update_needed
            else f"Branch [{status.payload.branch}] is up to date"
        )
        return Result.success(
            message,
            UpdateCheck(
                update_needed=update_needed,
                last_known_hash=last_known_hash,
                current_hash=current_hash,
                branch=status.payload.branch,
            ),
        )

    def find_by_attribute(self, attribute: str, value: Any) -> Result[list[ObjectRecord]]:
        """Find records whose attribute equals value.

        Args:
            attribute: Field to compare; ``name`` compares case-insensitively.
            value: Expected value.

        Returns:
            Result with the matching records, or a 404 failure.
        """
        if not isinstance(attribute, str) or not attribute.strip():
            return Result.failure(
                ValidationError("Invalid parameter: [attribute] must be a non-empty string.")
            )
        if attribute == NAME_FIELD and isinstance(value, str):
            value_key = _stable_json(value.lower())
        else:
            value_key = _stable_json(value)
        cache_key = f"{self.container}:by_attribute:{attribute}:{value_key}"

        def produce() -> Result[list[ObjectRecord]]:
            snapshot = self.get_all()
            if not snapshot.ok or snapshot.payload is None:
                return snapshot
            if len(snapshot.payload.objects) == 0:
                return Result.failure(NotFoundError(f"No {self.container} found."))
            matches = match_attribute(snapshot.payload.objects, attribute, value)
            if not matches:
                return Result.failure(
                    NotFoundError(f"No {self.container} found where {attribute} = {value}.")
                )
            return Result.success(
                f"Found {len(matches)} objects where {attribute} = {value}", matches
            )

        return self._cached_query(cache_key, produce)

    def search(
        self,
        filters: Mapping[str, Any] | None = None,
        options: SearchOptions | None = None,
    ) -> Result[list[ObjectRecord]]:
        """Filter, sort, and truncate the container's records.

        Args:
            filters: Field constraints; ``name`` is a case-insensitive substring.
            options: Sort field, direction, and result limit.

        Returns:
            Result with matching records; an empty container is a 404.
        """
        search_filters = dict(filters or {})
        search_options = options or SearchOptions()
        if search_options.limit < 0:
            return Result.failure(ValidationError("Search limit must be zero or positive."))
        cache_key = (
            f"{self.container}:search:{_stable_json(search_filters)}:"
            f"{_stable_json([search_options.sort, search_options.descending, search_options.limit])}"
        )

        def produce() -> Result[list[ObjectRecord]]:
            snapshot = self.get_all()
            if not snapshot.ok or snapshot.payload is None:
                return snapshot
            if len(snapshot.payload.objects) == 0:
                return Result.failure(NotFoundError(f"No {self.container} found."))
            matches = sort_records(
                filter_records(snapshot.payload.objects, search_filters), search_options
            )
            return Result.success(f"Found {len(matches)} {self.container}", matches)

        return self._cached_query(cache_key, produce)

    def check_for_lock(self) -> Result[bool]:
        """Report whether the container is currently locked."""
        return self._locks.is_locked(self.container)

    def create_many(self, records: Sequence[ObjectRecord]) -> Result[list[ObjectRecord]]:
        """Append new records in one branch transaction.

        Args:
            records: Records with unique, non-empty names.

        Returns:
            Result with the stored records, stamped with creation and
            modification dates.
        """
        validation_error = self._validate_new_records(records)
        if validation_error is not None:
            return Result.failure(validation_error)

        def mutate(metadata: RepoMetadata) -> _Mutation:
            objects = metadata.container(self.container).objects
            existing_names = {_folded_name(record) for record in objects}
            timestamp = self._clock()
            created: list[ObjectRecord] = []
            for record in records:
                if _folded_name(record) in existing_names:
                    raise AlreadyExistsError(
                        f"Object [{record[NAME_FIELD]}] already exists in [{self.container}]; "
                        "use an update instead."
                    )
                stored = dict(record)
                stored.setdefault(CREATION_DATE_FIELD, timestamp)
                stored[MODIFICATION_DATE_FIELD] = timestamp
                objects.append(stored)
                created.append(stored)
            return _Mutation(
                changed=(self.container,),
                message=f"Created [{len(created)}] {self.container}",
                payload=created,
            )

        result = self._run_write("create", (self.container,), mutate)
        if result.ok:
            _LOGGER.info("objects_created", container=self.container, count=len(records))
        return result

    def update_one(
        self,
        name: str,
        key: str,
        value: Any,
        system: bool = False,
    ) -> Result[ObjectRecord]:
        """Change one field of one record.

        Args:
            name: Record name.
            key: Field to change.
            value: New value.
            system: Bypass the container whitelist.

        Returns:
            Result with the updated record. A non-whitelisted key for a
            non-system caller fails with 403 before any remote call.
        """
        if not _is_text(name) or not _is_text(key):
            return Result.failure(
                ValidationError("Invalid parameter: [name] and [key] must be non-empty strings.")
            )
        if not system and key not in self._spec.whitelist:
            return Result.failure(
                FieldAuthorizationError(
                    f"Field [{key}] is not modifiable on [{self.container}]. "
                    f"Allowed fields: {', '.join(sorted(self._spec.whitelist))}."
                )
            )
        value_error = self._validate_value(key, value)
        if value_error is not None:
            return Result.failure(value_error)

        def mutate(metadata: RepoMetadata) -> _Mutation:
            record = self._require_record(metadata, self.container, name)
            record[key] = value
            record[MODIFICATION_DATE_FIELD] = self._clock()
            return _Mutation(
                changed=(self.container,),
                message=f"Updated [{key}] on [{name}] in [{self.container}]",
                payload=record,
            )

        result = self._run_write("update", (self.container,), mutate)
        if result.ok:
            _LOGGER.info("objects_updated", container=self.container, count=1, system=system)
        return result

    def batch_update(self, updates: Sequence[RecordUpdate]) -> Result[int]:
        """Apply many field changes in one branch transaction.

        Changes to non-whitelisted fields by non-system callers are
        skipped. A change with a blank name or key, or one naming a missing
        record, fails the whole batch.

        Returns:
            Result with the number of applied changes.
        """
        if isinstance(updates, (str, bytes)) or len(updates) == 0:
            return Result.failure(
                ValidationError("Invalid parameter: [updates] must be a non-empty list.")
            )
        applicable: list[RecordUpdate] = []
        for index, update in enumerate(updates):
            if not _is_text(update.name) or not _is_text(update.key):
                return Result.failure(
                    ValidationError(
                        f"Invalid update #{index + 1}: [name] and [key] must be "
                        "non-empty strings."
                    )
                )
            if not update.system and update.key not in self._spec.whitelist:
                _LOGGER.warning(
                    "update_skipped",
                    container=self.container,
                    name=update.name,
                    key=update.key,
                )
                continue
            value_error = self._validate_value(update.key, update.value)
            if value_error is not None:
                return Result.failure(value_error)
            applicable.append(update)
        if not applicable:
            return Result.success(f"No applicable updates for [{self.container}]", 0)

        def mutate(metadata: RepoMetadata) -> _Mutation:
            timestamp = self._clock()
            for update in applicable:
                record = self._require_record(metadata, self.container, update.name, exact=True)
                record[update.key] = update.value
                record[MODIFICATION_DATE_FIELD] = timestamp
            return _Mutation(
                changed=(self.container,),
                message=f"Updated [{len(applicable)}] objects in [{self.container}]",
                payload=len(applicable),
            )

        result = self._run_write("batch-update", (self.container,), mutate)
        if result.ok:
            _LOGGER.info("objects_updated", container=self.container, count=len(applicable))
        return result

    def delete_one(self, name: str, source: DeleteSource | None = None) -> Result[ObjectRecord]:
        """Delete one record and strip it from linked containers.

        Args:
            name: Record name.
            source: Source container and linked containers; defaults to
                this container and its default delete targets.

        Returns:
            Result with the removed record.
        """
        delete_source = source or DeleteSource(
            from_container=self.container, to_containers=self._spec.default_delete_targets
        )
        if not _is_text(name):
            return Result.failure(
                ValidationError("Invalid parameter: [name] must be a non-empty string.")
            )
        try:
            link_targets = self._resolve_delete_targets(delete_source)
        except ValidationError as error:
            return Result.failure(error)
        from_spec = resolve_container(delete_source.from_container, self._registry)

        def mutate(metadata: RepoMetadata) -> _Mutation:
            objects = metadata.container(from_spec.name).objects
            record = self._require_record(metadata, from_spec.name, name, exact=True)
            if from_spec.attachment_field:
                self._delete_attachment(record.get(from_spec.attachment_field), metadata)
            objects.remove(record)
            changed = [from_spec.name]
            timestamp = self._clock()
            for target, link_field in link_targets:
                if _strip_references(metadata.container(target).objects, link_field, name, timestamp):
                    changed.append(target)
            return _Mutation(
                changed=tuple(changed),
                message=f"Deleted [{name}] from [{from_spec.name}]",
                payload=record,
            )

        containers = (delete_source.from_container, *[target for target, _ in link_targets])
        result = self._run_write("delete", containers, mutate)
        if result.ok:
            _LOGGER.info(
                "object_deleted",
                container=delete_source.from_container,
                name=name,
                unlinked=[target for target, _ in link_targets],
            )
        return result

    def link(
        self,
        name: str,
        target_container: str,
        target_names: Sequence[str],
    ) -> Result[ObjectRecord]:
        """Record cross-references on both sides in one transaction.

        Args:
            name: Record in this container.
            target_container: Container of the linked records.
            target_names: Names of the linked records.

        Returns:
            Result with this container's updated record.
        """
        if not _is_text(name) or isinstance(target_names, str) or len(target_names) == 0:
            return Result.failure(
                ValidationError(
                    "Invalid parameter: [name] must be a non-empty string and "
                    "[target_names] a non-empty list."
                )
            )
        try:
            target_spec = resolve_container(target_container, self._registry)
            source_field = _link_field(self._spec, target_spec.name)
            target_field = _link_field(target_spec, self.container)
        except ValidationError as error:
            return Result.failure(error)
        if target_spec.name == self.container:
            return Result.failure(ValidationError("Cannot link a container to itself."))

        def mutate(metadata: RepoMetadata) -> _Mutation:
            timestamp = self._clock()
            record = self._require_record(metadata, self.container, name)
            references = _reference_map(record, source_field)
            for target_name in target_names:
                target = self._require_record(metadata, target_spec.name, target_name)
                references[target[NAME_FIELD]] = {"link_date": timestamp}
                _reference_map(target, target_field)[record[NAME_FIELD]] = {"link_date": timestamp}
                target[MODIFICATION_DATE_FIELD] = timestamp
            record[MODIFICATION_DATE_FIELD] = timestamp
            return _Mutation(
                changed=(self.container, target_spec.name),
                message=f"Linked [{name}] to {len(target_names)} {target_spec.name}",
                payload=record,
            )

        result = self._run_write("link", (self.container, target_spec.name), mutate)
        if result.ok:
            _LOGGER.info(
                "objects_linked",
                container=self.container,
                name=name,
                target_container=target_spec.name,
                count=len(target_names),
            )
        return result

    def _read_snapshot(self) -> Result[ContainerSnapshot]:
        path = self._spec.object_path
        base_ref = self._locks.base_ref
        try:
            object_hash = self._client.get_file_hash(path, base_ref)
            objects = decode_objects(self._client.get_file_content(path, base_ref), path)
        except RepoDBError as error:
            return Result.failure(error, f"Failed to retrieve {self.container}: {error}")
        return Result.success(
            f"Read {len(objects)} {self.container}",
            ContainerSnapshot(objects=tuple(objects), object_hash=object_hash),
        )

    def _cached_query(
        self,
        cache_key: str,
        produce: Callable[[], Result[Any]],
    ) -> Result[Any]:
        """Cache a query derived from the container read and return copies."""
        return _detached(
            self._cache.get_or_fetch(
                cache_key,
                produce,
                self._spec.cache_ttl_seconds,
                depends_on=(container_cache_key(self.container),),
            )
        )

    def _run_write(
        self,
        operation: str,
        containers: Sequence[str],
        mutate: MutationFunction,
    ) -> Result[Any]:
        transaction = BranchTransaction(self._client, self._locks)
        outcome: dict[str, _Mutation] = {}

        def catch(_: Any) -> Result[RepoMetadata]:
            return transaction.catch(containers)

        def apply(metadata: RepoMetadata) -> Result[RepoMetadata]:
            mutation = mutate(metadata)
            outcome["mutation"] = mutation
            return Result.success(mutation.message, metadata)

        def write(metadata: RepoMetadata) -> Result[RepoMetadata]:
            for container in outcome["mutation"].changed:
                written = transaction.write(metadata, container)
                if not written.ok:
                    return written
            return Result.success("Wrote changed containers.", metadata)

        steps = [
            TransactionStep("catch", _abort_on_failure(transaction, catch)),
            TransactionStep("apply", _abort_on_failure(transaction, apply)),
            TransactionStep("write", _abort_on_failure(transaction, write)),
            TransactionStep("release", transaction.release),
        ]
        result = self._executor.execute(
            steps,
            f"{operation}-{self.container}",
            abort_details=transaction.describe,
        )
        if transaction.state in _MERGED_STATES:
            for container in dict.fromkeys(containers):
                self._cache.invalidate(container_cache_key(container))
            self._cache.invalidate(branch_status_cache_key(self._locks.base_ref))
        if not result.ok:
            return result
        mutation = outcome["mutation"]
        return Result.success(mutation.message, mutation.payload)

    def _require_record(
        self,
        metadata: RepoMetadata,
        container: str,
        name: str,
        exact: bool = False,
    ) -> ObjectRecord:
        objects = metadata.container(container).objects
        for record in objects:
            record_name = record.get(NAME_FIELD)
            if record_name == name:
                return record
        if not exact:
            matches = match_attribute(objects, NAME_FIELD, name)
            if matches:
                return matches[0]
        raise NotFoundError(f"Object with name [{name}] not found in [{container}].")

    def _delete_attachment(self, attachment: Any, metadata: RepoMetadata) -> None:
        if not _is_text(attachment) or metadata.branch is None:
            return
        branch_name = metadata.branch.name
        file_hash = self._client.get_file_hash(attachment, branch_name)
        self._client.delete_file(attachment, branch_name, f"Deleting attachment [{attachment}]", file_hash)
        _LOGGER.info("attachment_deleted", container=self.container, path=attachment)

    def _resolve_delete_targets(self, source: DeleteSource) -> list[tuple[str, str]]:
        resolve_container(source.from_container, self._registry)
        targets: list[tuple[str, str]] = []
        for target in dict.fromkeys(source.to_containers):
            if target == source.from_container:
                raise ValidationError(
                    f"Invalid delete source: [{target}] appears as both source and target."
                )
            target_spec = resolve_container(target, self._registry)
            targets.append((target_spec.name, _link_field(target_spec, source.from_container)))
        return targets

    def _validate_new_records(self, records: Sequence[ObjectRecord]) -> RepoDBError | None:
        if isinstance(records, (str, bytes, Mapping)) or len(records) == 0:
            return ValidationError("Invalid parameter: [records] must be a non-empty list.")
        seen: set[str] = set()
        for index, record in enumerate(records):
            if not isinstance(record, Mapping) or not _is_text(record.get(NAME_FIELD)):
                return ValidationError(
                    f"Record #{index + 1} must be an object with a non-empty string 'name'."
                )
            folded = _folded_name(record)
            if folded in seen:
                return ValidationError(f"Duplicate record name [{record[NAME_FIELD]}] in request.")
            seen.add(folded)
            if not all(isinstance(field_name, str) for field_name in record):
                return ValidationError(f"Record #{index + 1} must use string field names.")
            for field_name, value in record.items():
                value_error = self._validate_value(field_name, value)
                if value_error is not None:
                    return value_error
        return None

    def _validate_value(self, key: str, value: Any) -> ValidationError | None:
        try:
            ensure_encodable(value, f"Field [{key}] of [{self.container}]")
        except ValidationError as error:
            return error
        allowed = self._spec.allowed_values.get(key)
        if allowed is None or value in allowed:
            return None
        return ValidationError(
            f"Field [{key}] of [{self.container}] must be one of: "
            f"{', '.join(str(item) for item in allowed)}; got '{value}'."
        )


def _abort_on_failure(
    transaction: BranchTransaction,
    step: Callable[[Any], Result[Any]],
) -> Callable[[Any], Result[Any]]:
    """Wrap a pre-merge step so any failure unlocks the caught containers.

    Unexpected exceptions are re-raised after the locks are released.
    """

    def run(metadata: Any) -> Result[Any]:
        try:
            result = step(metadata)
        except RepoDBError as error:
            result = Result.failure(error)
        except Exception:
            _abort_transaction(transaction, metadata)
            raise
        if not result.ok:
            _abort_transaction(transaction, metadata)
        return result

    return run


def _abort_transaction(transaction: BranchTransaction, metadata: RepoMetadata | None) -> None:
    if transaction.state not in _ABORTABLE_STATES:
        return
    aborted = transaction.abort(metadata)
    if not aborted.ok and aborted.error is not None:
        _LOGGER.error(
            "transaction_cleanup_failed",
            detail=aborted.status.message,
            locked_containers=transaction.locked_containers,
        )


def _detached(result: Result[Any]) -> Result[Any]:
    if not result.ok or result.payload is None:
        return result
    return replace(result, payload=copy.deepcopy(result.payload))


def _strip_references(
    objects: list[ObjectRecord],
    link_field: str,
    name: str,
    timestamp: str,
) -> bool:
    changed = False
    for record in objects:
        references = record.get(link_field)
        if isinstance(references, dict) and name in references:
            del references[name]
            record[MODIFICATION_DATE_FIELD] = timestamp
            changed = True
    return changed


def _reference_map(record: ObjectRecord, field_name: str) -> dict[str, Any]:
    references = record.get(field_name)
    if not isinstance(references, dict):
        references = {}
        record[field_name] = references
    return references


def _link_field(spec: ContainerSpec, other_container: str) -> str:
    field_name = spec.link_fields.get(other_container)
    if field_name is None:
        raise ValidationError(
            f"Container [{spec.name}] has no cross-reference field for [{other_container}]."
        )
    return field_name


def _folded_name(record: Mapping[str, Any]) -> str:
    return str(record.get(NAME_FIELD, "")).casefold()


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _stable_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)
