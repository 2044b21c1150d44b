"""Container type registry.

This module declares the built-in container types, their field
whitelists, cross-reference fields, and enumerated field values.
"""

from __future__ import annotations

from typing import Mapping

from core.errors import ValidationError
from core.types import ContainerSpec

COMPANIES = ContainerSpec(
    name="Companies",
    whitelist=frozenset(
        {
            "description",
            "company_type",
            "url",
            "role",
            "wikipedia_url",
            "status",
            "logo_url",
            "region",
            "country",
            "city",
            "state_province",
            "zip_postal",
            "street_address",
            "latitude",
            "longitude",
            "phone",
            "google_maps_url",
            "google_news_url",
            "google_finance_url",
            "google_patents_url",
            "cik",
            "stock_symbol",
            "stock_exchange",
            "recent_10k_url",
            "recent_10q_url",
            "firmographic_url",
            "filings_url",
            "owner_transactions",
            "industry",
            "industry_code",
            "industry_group_code",
            "industry_group_description",
            "major_group_code",
            "major_group_description",
        }
    ),
    link_fields={"Interactions": "linked_interactions", "Studies": "linked_studies"},
    default_delete_targets=("Interactions",),
    allowed_values={
        "company_type": ("Public", "Private", "Non-profit", "Government", "Educational"),
        "status": ("Active", "Inactive", "Acquired", "Merged", "Bankrupt"),
    },
)

INTERACTIONS = ContainerSpec(
    name="Interactions",
    whitelist=frozenset(
        {
            "status",
            "content_type",
            "file_size",
            "reading_time",
            "word_count",
            "page_count",
            "description",
            "abstract",
            "region",
            "country",
            "city",
            "state_province",
            "zip_postal",
            "street_address",
            "latitude",
            "longitude",
            "public",
            "groups",
        }
    ),
    link_fields={"Companies": "linked_companies", "Studies": "linked_studies"},
    default_delete_targets=("Companies",),
    attachment_field="url",
    allowed_values={
        "content_type": ("PDF", "DOC", "DOCX", "TXT", "HTML", "PPT", "PPTX", "XLS", "XLSX", "CSV"),
        "status": ("Draft", "Published", "Archived"),
    },
)

STUDIES = ContainerSpec(
    name="Studies",
    whitelist=frozenset({"description", "status", "public", "groups"}),
    link_fields={"Companies": "linked_companies", "Interactions": "linked_interactions"},
    default_delete_targets=("Companies", "Interactions"),
    allowed_values={"status": ("Active", "Completed", "Cancelled")},
)

BUILTIN_CONTAINERS: Mapping[str, ContainerSpec] = {
    spec.name: spec for spec in (COMPANIES, INTERACTIONS, STUDIES)
}


def resolve_container(name: str, registry: Mapping[str, ContainerSpec] | None = None) -> ContainerSpec:
    """Look up a container spec by name.

    Raises:
        ValidationError: If the container is unknown.
    """
    specs = registry if registry is not None else BUILTIN_CONTAINERS
    spec = specs.get(name)
    if spec is None:
        raise ValidationError(
            f"Unknown container '{name}'. Use one of: {', '.join(sorted(specs))}."
        )
    return spec
