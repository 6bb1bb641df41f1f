"""Embedding provider interface and implementations."""

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ragcore.config import (
    BgeM3Settings,
    CohereSettings,
    EmbeddingProviderType,
    EmbeddingSettings,
    get_settings,
)
from ragcore.embeddings.models import EmbeddingResult
from ragcore.exceptions import ConfigurationError, EmbeddingError, ErrorCode
from ragcore.logging_config import get_logger
from ragcore.observability.metrics import track_embedding_request

logger = get_logger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    Defines the interface for generating text embeddings. Providers are
    responsible for splitting large inputs into batches they can send and
    for returning vectors in input order.
    """

    name: str = "embedding"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the embedding dimensions."""
        ...

    @property
    @abstractmethod
    def batch_size(self) -> int:
        """Get the maximum number of texts per provider request."""
        ...

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate an embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            EmbeddingResult holding exactly one vector.

        Raises:
            EmbeddingError: If embedding fails.
        """
        return await self.batch_embed([text])

    @abstractmethod
    async def batch_embed(self, texts: list[str]) -> EmbeddingResult:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed.

        Returns:
            EmbeddingResult with one vector per text, in input order.

        Raises:
            EmbeddingError: If any batch fails. No partial result is returned.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the provider is reachable."""
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class HTTPEmbeddingProvider(EmbeddingProvider):
    """Base class for providers reached over HTTP.

    Handles client lifecycle, sub-batching, response validation and
    metrics. Subclasses only build and parse a single batch request.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding provider.

        Args:
            base_url: Provider base URL.
            timeout: Request timeout in seconds.
            client: HTTP client. Creates new one if not provided.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name reported in results."""
        ...

    @abstractmethod
    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        texts: list[str],
    ) -> tuple[list[list[float]], int]:
        """Embed one provider-sized batch.

        Returns:
            Tuple of (vectors, tokens used).
        """
        ...

    async def batch_embed(self, texts: list[str]) -> EmbeddingResult:
        """Generate embeddings for multiple texts in provider-sized batches."""
        if not texts:
            return EmbeddingResult(
                embeddings=[],
                model=self.model_name,
                tokens_used=0,
                dimensions=self.dimensions,
            )

        client = await self._get_client()
        start_time = time.perf_counter()

        embeddings: list[list[float]] = []
        tokens_used = 0

        try:
            for i in range(0, len(texts), self.batch_size):
                batch = texts[i : i + self.batch_size]
                vectors, tokens = await self._embed_batch_request(client, batch)
                self._validate_batch(batch, vectors)
                embeddings.extend(vectors)
                tokens_used += tokens
        except EmbeddingError:
            track_embedding_request(
                self.name, time.perf_counter() - start_time, len(texts), success=False
            )
            raise

        track_embedding_request(self.name, time.perf_counter() - start_time, len(texts))

        return EmbeddingResult(
            embeddings=embeddings,
            model=self.model_name,
            tokens_used=tokens_used,
            dimensions=self.dimensions,
        )

    def _validate_batch(self, texts: list[str], vectors: list[list[float]]) -> None:
        """Reject short batches and vectors of the wrong length."""
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} texts",
                code=ErrorCode.EMBEDDING_INCOMPLETE,
                details={
                    "provider": self.name,
                    "expected": len(texts),
                    "received": len(vectors),
                },
            )

        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"Expected {self.dimensions} dimensions, got {len(vector)}",
                    code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                    details={
                        "provider": self.name,
                        "expected": self.dimensions,
                        "received": len(vector),
                    },
                )

    async def _post_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON payload and return the decoded JSON object.

        Raises:
            EmbeddingError: On transport failure, non-2xx status or a
                body that is not a JSON object.
        """
        try:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"provider": self.name, "status": e.response.status_code},
            )
            raise EmbeddingError(
                f"Embedding service returned {e.response.status_code}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name, "status_code": e.response.status_code},
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"Embedding request error: {e}",
                extra={"provider": self.name},
            )
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name},
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name, "error": str(e)},
            ) from e

        if not isinstance(data, dict):
            raise EmbeddingError(
                "Invalid response from embedding service: expected a JSON object",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name},
            )
        return data


class CohereEmbeddingProvider(HTTPEmbeddingProvider):
    """Embedding provider for the hosted Cohere v2 embed API."""

    name = "cohere"

    # Cohere rejects requests with more texts than this
    MAX_BATCH_SIZE = 96

    def __init__(
        self,
        settings: CohereSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Cohere provider.

        Args:
            settings: Cohere configuration.
            client: HTTP client. Creates new one if not provided.
        """
        super().__init__(settings.base_url, settings.timeout, client)
        self._settings = settings

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        return self._settings.dimensions

    @property
    def batch_size(self) -> int:
        """Get the Cohere batch limit."""
        return self.MAX_BATCH_SIZE

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        texts: list[str],
    ) -> tuple[list[list[float]], int]:
        """Embed one batch via ``POST /embed``."""
        payload = {
            "texts": texts,
            "model": self._settings.model,
            "input_type": "search_document",
            "embedding_types": ["float"],
            "output_dimension": self._settings.dimensions,
        }
        headers = {
            "Authorization": f"Bearer {self._settings.api_key.get_secret_value()}",
        }

        data = await self._post_json(
            client, f"{self._base_url}/embed", payload, headers=headers
        )

        try:
            vectors = data["embeddings"]["float"]
            billed_units = (data.get("meta") or {}).get("billed_units") or {}
            tokens = int(billed_units.get("input_tokens", 0))
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name, "error": str(e)},
            ) from e

        if not isinstance(vectors, list):
            raise EmbeddingError(
                "Invalid response from embedding service: embeddings.float is not a list",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name},
            )
        return vectors, tokens

    async def health_check(self) -> bool:
        """Embed a probe text to verify the API key and endpoint."""
        try:
            await self.embed("health check")
            return True
        except EmbeddingError as e:
            logger.warning(f"Cohere health check failed: {e.message}")
            return False


class BgeM3EmbeddingProvider(HTTPEmbeddingProvider):
    """Embedding provider for a self-hosted BGE-M3 model server.

    The server exposes ``POST /embed`` taking ``{texts, dimensions}`` and
    returning ``{embeddings, tokens_used}``, plus ``GET /health``.
    """

    name = "bge-m3"

    def __init__(
        self,
        settings: BgeM3Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the BGE-M3 provider.

        Args:
            settings: Model server configuration.
            client: HTTP client. Creates new one if not provided.
        """
        super().__init__(settings.base_url, settings.timeout, client)
        self._settings = settings

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return "BAAI/bge-m3"

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        return self._settings.dimensions

    @property
    def batch_size(self) -> int:
        """Get the configured batch size."""
        return self._settings.batch_size

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        texts: list[str],
    ) -> tuple[list[list[float]], int]:
        """Embed one batch via ``POST /embed``."""
        payload = {"texts": texts, "dimensions": self._settings.dimensions}
        data = await self._post_json(client, f"{self._base_url}/embed", payload)

        vectors = data.get("embeddings")
        if not isinstance(vectors, list):
            raise EmbeddingError(
                "Invalid response from embedding service: missing embeddings",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name},
            )

        try:
            tokens = int(data.get("tokens_used") or 0)
        except (TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"provider": self.name, "error": str(e)},
            ) from e

        return vectors, tokens

    async def health_check(self) -> bool:
        """Check the model server's health endpoint."""
        client = await self._get_client()
        try:
            response = await client.get(f"{self._base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"BGE-M3 health check failed: {e}")
            return False


def create_embedding_provider(
    settings: EmbeddingSettings | None = None,
    client: httpx.AsyncClient | None = None,
) -> EmbeddingProvider:
    """Create the embedding provider selected by the provider tag.

    Args:
        settings: Embedding configuration. Uses defaults if not provided.
        client: Optional shared HTTP client.

    Returns:
        Configured embedding provider.

    Raises:
        ConfigurationError: If the tag is unknown or its config block is missing.
    """
    settings = settings or get_settings().embedding

    if settings.provider == EmbeddingProviderType.COHERE:
        if settings.cohere is None:
            raise ConfigurationError(
                "Cohere config is required when provider is 'cohere'",
                details={"provider": settings.provider.value},
            )
        return CohereEmbeddingProvider(settings.cohere, client=client)

    if settings.provider == EmbeddingProviderType.BGE_M3:
        if settings.bge_m3 is None:
            raise ConfigurationError(
                "BGE-M3 config is required when provider is 'bge-m3'",
                details={"provider": settings.provider.value},
            )
        return BgeM3EmbeddingProvider(settings.bge_m3, client=client)

    raise ConfigurationError(
        f"Unknown embedding provider: {settings.provider}",
        details={"provider": str(settings.provider)},
    )
