"""Embedding provider module."""

from ragcore.embeddings.models import EmbeddingResult
from ragcore.embeddings.service import (
    BgeM3EmbeddingProvider,
    CohereEmbeddingProvider,
    EmbeddingProvider,
    HTTPEmbeddingProvider,
    create_embedding_provider,
)

__all__ = [
    "BgeM3EmbeddingProvider",
    "CohereEmbeddingProvider",
    "EmbeddingProvider",
    "EmbeddingResult",
    "HTTPEmbeddingProvider",
    "create_embedding_provider",
]
