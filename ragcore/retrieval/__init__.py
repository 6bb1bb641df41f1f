"""Retrieval module."""

from ragcore.retrieval.context import assemble_context
from ragcore.retrieval.filters import QUERY_FILTER_ALLOWLIST, validate_query_filter
from ragcore.retrieval.models import (
    QueryFilter,
    QueryMetadata,
    QueryRequest,
    QueryResult,
    ScoredChunk,
    TargetModel,
)
from ragcore.retrieval.pipeline import RetrievalPipeline

__all__ = [
    "QUERY_FILTER_ALLOWLIST",
    "QueryFilter",
    "QueryMetadata",
    "QueryRequest",
    "QueryResult",
    "RetrievalPipeline",
    "ScoredChunk",
    "TargetModel",
    "assemble_context",
    "validate_query_filter",
]
