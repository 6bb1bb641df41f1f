"""Allowlist validation of raw query filters."""

from collections.abc import Mapping
from typing import Any

from ragcore.exceptions import ValidationError
from ragcore.vectorstore.models import QueryFilter

QUERY_FILTER_ALLOWLIST: frozenset[str] = frozenset({"document_ids", "metadata"})


def validate_query_filter(raw: Any) -> QueryFilter:
    """Validate a raw filter mapping and convert it to a QueryFilter.

    Every check runs before any key is used to build a store query.

    Args:
        raw: Filter as received from the caller.

    Returns:
        The validated filter.

    Raises:
        ValidationError: If the filter is not a mapping, holds a key outside
            the allowlist, or a value has the wrong type.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(
            "Filter must be a plain object",
            details={"received": type(raw).__name__},
        )

    allowed = ", ".join(sorted(QUERY_FILTER_ALLOWLIST))
    invalid = [key for key in raw if key not in QUERY_FILTER_ALLOWLIST]
    if invalid:
        names = ", ".join(f'"{key}"' for key in invalid)
        raise ValidationError(
            f"Invalid filter field: {names}. Allowed fields: {allowed}",
            details={"invalid_fields": [str(key) for key in invalid]},
        )

    document_ids = raw.get("document_ids")
    if "document_ids" in raw:
        if not isinstance(document_ids, list):
            raise ValidationError(
                "Filter field document_ids must be a list of strings",
                details={"field": "document_ids", "received": type(document_ids).__name__},
            )
        for position, value in enumerate(document_ids):
            if not isinstance(value, str):
                raise ValidationError(
                    f"Filter field document_ids[{position}] must be a string",
                    details={"field": "document_ids", "position": position},
                )

    metadata = raw.get("metadata")
    if "metadata" in raw and not isinstance(metadata, Mapping):
        raise ValidationError(
            "Filter field metadata must be a plain object",
            details={"field": "metadata", "received": type(metadata).__name__},
        )

    return QueryFilter(
        document_ids=list(document_ids) if document_ids is not None else None,
        metadata=dict(metadata) if metadata is not None else None,
    )
