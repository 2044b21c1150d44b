"""Core constants used across RepoDB modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_BASE_BRANCH = "main"
DEFAULT_PROCESS_NAME = "repodb"
DEFAULT_REPO_SUFFIX = "_discovery"
DEFAULT_CACHE_TTL_SECONDS = 300.0
BRANCH_STATUS_TTL_SECONDS = 60.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
GITHUB_API_VERSION = "2022-11-28"
LOCK_FILE_SUFFIX = ".lock"
OBJECT_FILE_SUFFIX = ".json"
DEFAULT_MERGE_TITLE = "Performed CRUD operation on objects."
MODIFICATION_DATE_FIELD = "modification_date"
CREATION_DATE_FIELD = "creation_date"
NAME_FIELD = "name"
SYSTEM_FIELDS = ("name", "creation_date", "modification_date")
CHANGE_PLAN_VERSION = 1
