"""Vector store module."""

from ragcore.vectorstore.factory import create_vector_store
from ragcore.vectorstore.models import (
    QueryFilter,
    SearchParams,
    SearchResult,
    VectorRecord,
    Visibility,
)
from ragcore.vectorstore.pgvector import PgVectorStore
from ragcore.vectorstore.service import QdrantVectorStore, VectorStore

__all__ = [
    "PgVectorStore",
    "QdrantVectorStore",
    "QueryFilter",
    "SearchParams",
    "SearchResult",
    "VectorRecord",
    "VectorStore",
    "Visibility",
    "create_vector_store",
]
