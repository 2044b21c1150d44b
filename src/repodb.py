"""Public SDK surface for RepoDB.

This module provides a stable import path for library users.
It re-exports the primary client, repositories, and typed models.
"""

from __future__ import annotations

from core.config import RepoDBConfig
from core.results import Result, ResultStatus
from core.types import (
    BranchStatus,
    CommitInfo,
    ContainerSnapshot,
    DeleteSource,
    RecordUpdate,
    SearchOptions,
    UpdateCheck,
)
from pipeline.transaction_executor import TransactionExecutor, TransactionStep
from store.dependency_cache import DependencyCache
from store.entity_repositories import CompanyRepository, InteractionRepository, StudyRepository
from store.github_remote import GitHubRemoteStore
from store.object_repository import ObjectRepository
from store.repodb_sdk import RepoDBClient

__all__ = [
    "BranchStatus",
    "CommitInfo",
    "CompanyRepository",
    "ContainerSnapshot",
    "DeleteSource",
    "DependencyCache",
    "GitHubRemoteStore",
    "InteractionRepository",
    "ObjectRepository",
    "RecordUpdate",
    "RepoDBClient",
    "RepoDBConfig",
    "Result",
    "ResultStatus",
    "SearchOptions",
    "StudyRepository",
    "TransactionExecutor",
    "TransactionStep",
    "UpdateCheck",
]
