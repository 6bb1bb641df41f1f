"""Observability module for metrics and monitoring."""

from ragcore.observability.metrics import (
    get_metrics,
    track_embedding_request,
    track_ingestion,
    track_retrieval_request,
    track_vectorstore_operation,
)

__all__ = [
    "get_metrics",
    "track_embedding_request",
    "track_ingestion",
    "track_retrieval_request",
    "track_vectorstore_operation",
]
