"""Pytest configuration and shared fixtures."""

import math
import re
import zlib
from collections.abc import AsyncGenerator

import pytest
from qdrant_client import AsyncQdrantClient

from ragcore.config import QdrantSettings
from ragcore.embeddings.models import EmbeddingResult
from ragcore.embeddings.service import EmbeddingProvider
from ragcore.vectorstore.service import QdrantVectorStore

TEST_COLLECTION = "test_chunks"
TEST_DIMENSIONS = 64

_WORD_PATTERN = re.compile(r"[a-z0-9]+")


class BagOfWordsEmbeddingProvider(EmbeddingProvider):
    """Deterministic embedding provider for tests.

    Hashes each word into a fixed-size vector and normalizes it, so texts
    sharing words have high cosine similarity.
    """

    name = "bag-of-words"

    def __init__(self, dimensions: int = TEST_DIMENSIONS, batch_size: int = 8) -> None:
        self._dimensions = dimensions
        self._batch_size = batch_size
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self._dimensions
        for word in _WORD_PATTERN.findall(text.lower()):
            vector[zlib.crc32(word.encode()) % self._dimensions] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    async def batch_embed(self, texts: list[str]) -> EmbeddingResult:
        self.calls.append(list(texts))
        return EmbeddingResult(
            embeddings=[self.vectorize(text) for text in texts],
            model="bag-of-words",
            tokens_used=sum(len(text.split()) for text in texts),
            dimensions=self._dimensions,
        )

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def embedding_provider() -> BagOfWordsEmbeddingProvider:
    """Deterministic bag-of-words embedding provider."""
    return BagOfWordsEmbeddingProvider()


@pytest.fixture
async def qdrant_store() -> AsyncGenerator[QdrantVectorStore, None]:
    """Qdrant store backed by an in-memory client with a ready collection.

    Yields:
        QdrantVectorStore with ``TEST_COLLECTION`` created.
    """
    client = AsyncQdrantClient(location=":memory:")
    store = QdrantVectorStore(settings=QdrantSettings(), client=client)
    await store.ensure_collection(TEST_COLLECTION, TEST_DIMENSIONS)
    yield store
    await client.close()
