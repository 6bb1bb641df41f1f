"""Tests for embedding providers."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ragcore.config import (
    BgeM3Settings,
    CohereSettings,
    EmbeddingProviderType,
    EmbeddingSettings,
)
from ragcore.embeddings.models import EmbeddingResult
from ragcore.embeddings.service import (
    BgeM3EmbeddingProvider,
    CohereEmbeddingProvider,
    create_embedding_provider,
)
from ragcore.exceptions import ConfigurationError, EmbeddingError, ErrorCode


def _json_response(payload: object) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


def _status_error_response(status_code: int) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.raise_for_status.side_effect = httpx.HTTPStatusError(
        "Server error",
        request=MagicMock(),
        response=response,
    )
    return response


class TestEmbeddingResult:
    """Tests for EmbeddingResult model."""

    def test_valid_result(self) -> None:
        """Valid embedding result is created."""
        result = EmbeddingResult(
            embeddings=[[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]],
            model="test-model",
            tokens_used=7,
            dimensions=3,
        )
        assert len(result.embeddings) == 2
        assert result.tokens_used == 7

    def test_dimensions_mismatch(self) -> None:
        """Mismatched dimensions raise error."""
        with pytest.raises(ValueError, match="dimensions"):
            EmbeddingResult(
                embeddings=[[0.1, 0.2, 0.3]],
                model="test-model",
                dimensions=5,
            )


class TestBgeM3EmbeddingProvider:
    """Tests for BgeM3EmbeddingProvider."""

    def _create_provider(
        self,
        mock_client: AsyncMock,
        batch_size: int = 32,
    ) -> BgeM3EmbeddingProvider:
        settings = BgeM3Settings(
            base_url="http://bge:8000/",
            dimensions=2,
            batch_size=batch_size,
        )
        return BgeM3EmbeddingProvider(settings, client=mock_client)

    def test_properties(self) -> None:
        """Dimensions and batch size come from config."""
        provider = self._create_provider(AsyncMock(spec=httpx.AsyncClient), batch_size=16)
        assert provider.name == "bge-m3"
        assert provider.dimensions == 2
        assert provider.batch_size == 16

    @pytest.mark.asyncio
    async def test_embed_single(self) -> None:
        """Single text embedding posts texts and dimensions."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _json_response(
            {"embeddings": [[0.1, 0.2]], "tokens_used": 3}
        )

        provider = self._create_provider(mock_client)
        result = await provider.embed("test text")

        assert result.embeddings == [[0.1, 0.2]]
        assert result.tokens_used == 3
        assert result.dimensions == 2

        url = mock_client.post.call_args.args[0]
        assert url == "http://bge:8000/embed"
        assert mock_client.post.call_args.kwargs["json"] == {
            "texts": ["test text"],
            "dimensions": 2,
        }

    @pytest.mark.asyncio
    async def test_batch_chunking_preserves_order(self) -> None:
        """Large inputs are sent in batches and concatenated in order."""
        responses = [
            _json_response({"embeddings": [[1.0, 0.0], [2.0, 0.0]], "tokens_used": 2}),
            _json_response({"embeddings": [[3.0, 0.0], [4.0, 0.0]], "tokens_used": 2}),
            _json_response({"embeddings": [[5.0, 0.0]], "tokens_used": 1}),
        ]
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.side_effect = responses

        provider = self._create_provider(mock_client, batch_size=2)
        result = await provider.batch_embed(["t1", "t2", "t3", "t4", "t5"])

        assert [v[0] for v in result.embeddings] == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert result.tokens_used == 5
        assert mock_client.post.call_count == 3
        sent = [call.kwargs["json"]["texts"] for call in mock_client.post.call_args_list]
        assert sent == [["t1", "t2"], ["t3", "t4"], ["t5"]]

    @pytest.mark.asyncio
    async def test_embed_empty_list(self) -> None:
        """Empty list returns an empty result without a request."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        provider = self._create_provider(mock_client)

        result = await provider.batch_embed([])

        assert result.embeddings == []
        mock_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self) -> None:
        """HTTP errors raise EmbeddingError with the status code."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _status_error_response(503)

        provider = self._create_provider(mock_client)

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("test")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Connection errors raise EmbeddingError without a status."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.side_effect = httpx.ConnectError("Connection failed")

        provider = self._create_provider(mock_client)

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("test")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_short_batch_fails(self) -> None:
        """Fewer vectors than texts is an error, not a partial result."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _json_response({"embeddings": [[0.1, 0.2]]})

        provider = self._create_provider(mock_client)

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.batch_embed(["a", "b"])
        assert exc_info.value.code == ErrorCode.EMBEDDING_INCOMPLETE

    @pytest.mark.asyncio
    async def test_wrong_dimensions_fail(self) -> None:
        """Vectors of the wrong length are rejected."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _json_response({"embeddings": [[0.1, 0.2, 0.3]]})

        provider = self._create_provider(mock_client)

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("a")
        assert exc_info.value.code == ErrorCode.EMBEDDING_DIMENSION_MISMATCH

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        """A body without embeddings is rejected."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _json_response({"vectors": []})

        provider = self._create_provider(mock_client)

        with pytest.raises(EmbeddingError):
            await provider.embed("a")

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        """Health check reports the health endpoint status."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.get.return_value = MagicMock(status_code=200)

        provider = self._create_provider(mock_client)

        assert await provider.health_check() is True
        mock_client.get.assert_called_once_with("http://bge:8000/health")

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self) -> None:
        """Unreachable servers are unhealthy."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.get.side_effect = httpx.ConnectError("refused")

        provider = self._create_provider(mock_client)

        assert await provider.health_check() is False

    @pytest.mark.asyncio
    async def test_close_owned_client(self) -> None:
        """Provider closes a client it owns."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        provider = self._create_provider(mock_client)
        provider._owns_client = True

        await provider.close()

        mock_client.aclose.assert_called_once()


class TestCohereEmbeddingProvider:
    """Tests for CohereEmbeddingProvider."""

    def _create_provider(self, mock_client: AsyncMock) -> CohereEmbeddingProvider:
        settings = CohereSettings(api_key="co-secret", dimensions=2)
        return CohereEmbeddingProvider(settings, client=mock_client)

    def test_batch_size_is_cohere_limit(self) -> None:
        """Batches are capped at 96 texts."""
        provider = self._create_provider(AsyncMock(spec=httpx.AsyncClient))
        assert provider.batch_size == 96
        assert provider.model_name == "embed-v4.0"

    @pytest.mark.asyncio
    async def test_embed_request_shape(self) -> None:
        """Requests use bearer auth and the v2 embed payload."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _json_response(
            {
                "embeddings": {"float": [[0.5, 0.5]]},
                "meta": {"billed_units": {"input_tokens": 4}},
            }
        )

        provider = self._create_provider(mock_client)
        result = await provider.embed("hello")

        assert result.embeddings == [[0.5, 0.5]]
        assert result.tokens_used == 4

        call = mock_client.post.call_args
        assert call.args[0] == "https://api.cohere.com/v2/embed"
        assert call.kwargs["headers"] == {"Authorization": "Bearer co-secret"}
        assert call.kwargs["json"] == {
            "texts": ["hello"],
            "model": "embed-v4.0",
            "input_type": "search_document",
            "embedding_types": ["float"],
            "output_dimension": 2,
        }

    @pytest.mark.asyncio
    async def test_splits_into_batches_of_96(self) -> None:
        """200 texts take three requests."""

        def make_response(*_args: object, **kwargs: object) -> MagicMock:
            count = len(kwargs["json"]["texts"])  # type: ignore[index]
            return _json_response({"embeddings": {"float": [[0.0, 1.0]] * count}})

        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.side_effect = make_response

        provider = self._create_provider(mock_client)
        result = await provider.batch_embed([f"t{i}" for i in range(200)])

        assert len(result.embeddings) == 200
        assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_client_error(self) -> None:
        """A 401 surfaces as EmbeddingError with status 401."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = _status_error_response(401)

        provider = self._create_provider(mock_client)

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("hello")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_health_check_failure(self) -> None:
        """A failing probe embed reports unhealthy."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.side_effect = httpx.ConnectError("refused")

        provider = self._create_provider(mock_client)

        assert await provider.health_check() is False


class TestCreateEmbeddingProvider:
    """Tests for the provider factory."""

    def test_creates_bge_m3(self) -> None:
        """The bge-m3 tag builds the BGE-M3 provider."""
        settings = EmbeddingSettings(
            provider=EmbeddingProviderType.BGE_M3,
            bge_m3=BgeM3Settings(base_url="http://bge:8000"),
        )
        assert isinstance(create_embedding_provider(settings), BgeM3EmbeddingProvider)

    def test_creates_cohere(self) -> None:
        """The cohere tag builds the Cohere provider."""
        settings = EmbeddingSettings(
            provider=EmbeddingProviderType.COHERE,
            cohere=CohereSettings(api_key="co-secret"),
        )
        assert isinstance(create_embedding_provider(settings), CohereEmbeddingProvider)

    def test_missing_cohere_block(self) -> None:
        """The cohere tag without its block fails."""
        settings = EmbeddingSettings(provider=EmbeddingProviderType.COHERE)
        with pytest.raises(ConfigurationError, match="Cohere config is required"):
            create_embedding_provider(settings)

    def test_missing_bge_m3_block(self) -> None:
        """The bge-m3 tag without its block fails."""
        settings = EmbeddingSettings(provider=EmbeddingProviderType.BGE_M3)
        with pytest.raises(ConfigurationError, match="BGE-M3 config is required"):
            create_embedding_provider(settings)

    def test_unknown_provider(self) -> None:
        """Unknown tags fail."""
        settings = EmbeddingSettings.model_construct(provider="openai")
        with pytest.raises(ConfigurationError, match="Unknown embedding provider"):
            create_embedding_provider(settings)
