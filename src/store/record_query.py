"""Object record filtering and sorting helpers.

This module applies attribute filters and search ordering to container
object arrays. It keeps query logic reusable across repository reads.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from core.constants import NAME_FIELD
from core.types import ObjectRecord, SearchOptions


def match_attribute(
    records: Iterable[ObjectRecord],
    attribute: str,
    value: Any,
) -> list[ObjectRecord]:
    """Return records whose attribute equals value.

    The ``name`` attribute compares case-insensitively.

    Args:
        records: Records to scan.
        attribute: Field to compare.
        value: Expected value.

    Returns:
        Matching records in stored order.
    """
    if attribute == NAME_FIELD and isinstance(value, str):
        expected_name = value.lower()
        return [
            record
            for record in records
            if isinstance(record.get(NAME_FIELD), str)
            and record[NAME_FIELD].lower() == expected_name
        ]
    return [record for record in records if attribute in record and record[attribute] == value]


def filter_records(
    records: Iterable[ObjectRecord],
    filters: Mapping[str, Any],
) -> list[ObjectRecord]:
    """Filter records by every field constraint.

    A string ``name`` filter is a case-insensitive substring match.
    Every other filter is strict equality.

    Args:
        records: Input records.
        filters: Field constraints.

    Returns:
        Filtered records list.
    """
    filtered: list[ObjectRecord] = []
    for record in records:
        if all(_matches(record, field, value) for field, value in filters.items()):
            filtered.append(record)
    return filtered


def sort_records(records: list[ObjectRecord], options: SearchOptions) -> list[ObjectRecord]:
    """Sort and truncate records per search options.

    Strings sort case-folded, numbers numerically. Records missing the
    sort field, or holding an empty value, always sort last.
    """
    ordered = list(records)
    if options.sort:
        present = [record for record in ordered if _has_sort_value(record, options.sort)]
        missing = [record for record in ordered if not _has_sort_value(record, options.sort)]
        present.sort(key=lambda record: _sort_key(record[options.sort]), reverse=options.descending)
        ordered = present + missing
    if options.limit > 0:
        ordered = ordered[: options.limit]
    return ordered


def text_search(
    records: Iterable[ObjectRecord],
    text: str,
    fields: Iterable[str],
) -> list[ObjectRecord]:
    """Return records where any listed string field contains text."""
    needle = text.lower()
    field_names = tuple(fields)
    return [
        record
        for record in records
        if any(
            isinstance(record.get(field), str) and needle in record[field].lower()
            for field in field_names
        )
    ]


def _matches(record: ObjectRecord, field: str, value: Any) -> bool:
    if field == NAME_FIELD and isinstance(value, str):
        name = record.get(NAME_FIELD)
        return isinstance(name, str) and value.lower() in name.lower()
    return field in record and record[field] == value


def _has_sort_value(record: ObjectRecord, field: str) -> bool:
    value = record.get(field)
    return value is not None and value != ""


def _sort_key(value: Any) -> tuple[int, Any]:
    # Mixed-type columns group numbers before strings before anything else.
    if isinstance(value, bool):
        return (2, str(value))
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (1, value.casefold())
    return (2, str(value))
