"""Tests for retry with backoff and circuit breaking."""

import asyncio
from functools import partial
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ragcore.config import CircuitBreakerSettings, RetrySettings
from ragcore.embeddings.models import EmbeddingResult
from ragcore.exceptions import (
    ConfigurationError,
    EmbeddingError,
    ErrorCode,
    IsolationViolationError,
    VectorStoreError,
)
from ragcore.resilience import (
    CircuitBreakerEmbeddingProvider,
    CircuitState,
    RetryingEmbeddingProvider,
    is_retryable,
    wait_jittered_exponential,
    with_retry,
)

FAST = {"base_delay": 0.0, "max_delay": 0.0}


class TestIsRetryable:
    """Tests for is_retryable."""

    def test_server_errors_retried(self) -> None:
        """5xx transport errors are retried."""
        assert is_retryable(EmbeddingError("down", status_code=503)) is True

    def test_client_errors_not_retried(self) -> None:
        """4xx transport errors are never retried, even if listed."""
        error = EmbeddingError("bad key", status_code=401)
        assert is_retryable(error) is False
        assert is_retryable(error, retryable_codes=[401]) is False

    def test_connection_errors_retried(self) -> None:
        """Transport errors without a status are retried."""
        assert is_retryable(VectorStoreError("timeout")) is True
        assert is_retryable(httpx.ConnectError("refused")) is True
        assert is_retryable(TimeoutError()) is True

    def test_non_transport_errors_not_retried(self) -> None:
        """Configuration and isolation errors fail fast."""
        assert is_retryable(ConfigurationError("missing")) is False
        assert is_retryable(IsolationViolationError("no tenant")) is False
        assert is_retryable(ValueError("bug")) is False

    def test_allowlist_by_code(self) -> None:
        """With an allowlist only listed codes are retried."""
        error = VectorStoreError("down", status_code=503)
        assert is_retryable(error, retryable_codes=[ErrorCode.VECTOR_STORE_ERROR]) is True
        assert is_retryable(error, retryable_codes=["RAG-4000"]) is True
        assert is_retryable(error, retryable_codes=[503]) is True
        assert is_retryable(error, retryable_codes=[ErrorCode.EMBEDDING_SERVICE_ERROR]) is False

    def test_allowlist_excludes_plain_errors(self) -> None:
        """Plain connection errors are not retried under an allowlist."""
        assert is_retryable(httpx.ConnectError("refused"), retryable_codes=[503]) is False

    def test_open_circuit_not_retried(self) -> None:
        """Rejections from an open circuit fail fast."""
        error = EmbeddingError("open", code=ErrorCode.EMBEDDING_CIRCUIT_OPEN)
        assert is_retryable(error) is False
        assert is_retryable(error, retryable_codes=[ErrorCode.EMBEDDING_CIRCUIT_OPEN]) is False


class TestWaitJitteredExponential:
    """Tests for the backoff delay."""

    @pytest.mark.parametrize(("attempt", "ceiling"), [(1, 1.0), (2, 2.0), (3, 4.0), (6, 10.0)])
    def test_delay_bounds(self, attempt: int, ceiling: float) -> None:
        """Delay is between half and all of the capped exponential."""
        wait = wait_jittered_exponential(base_delay=1.0, max_delay=10.0)
        state = MagicMock(attempt_number=attempt)

        for _ in range(20):
            delay = wait(state)
            assert ceiling * 0.5 <= delay <= ceiling


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        """Transient failures are retried until success."""
        fn = AsyncMock(
            side_effect=[
                EmbeddingError("down", status_code=503),
                EmbeddingError("down", status_code=503),
                "ok",
            ]
        )

        assert await with_retry(fn, max_retries=3, **FAST) == "ok"
        assert fn.call_count == 3

    @pytest.mark.asyncio
    async def test_lambda_returning_coroutine(self) -> None:
        """A plain callable returning a coroutine is awaited and retried."""
        calls = []

        async def flaky(value: str) -> str:
            calls.append(value)
            if len(calls) == 1:
                raise EmbeddingError("down", status_code=503)
            return value

        assert await with_retry(lambda: flaky("ok"), max_retries=2, **FAST) == "ok"
        assert calls == ["ok", "ok"]

    @pytest.mark.asyncio
    async def test_partial_returning_coroutine(self) -> None:
        """A functools.partial over a coroutine function is retried."""
        calls = []

        async def flaky(value: str) -> str:
            calls.append(value)
            if len(calls) < 3:
                raise VectorStoreError("timeout")
            return value

        assert await with_retry(partial(flaky, "ok"), max_retries=3, **FAST) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        """The last error is raised after all attempts."""
        fn = AsyncMock(side_effect=VectorStoreError("down", status_code=502))

        with pytest.raises(VectorStoreError):
            await with_retry(fn, max_retries=2, **FAST)

        assert fn.call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raised_immediately(self) -> None:
        """Client errors are not retried."""
        fn = AsyncMock(side_effect=EmbeddingError("bad key", status_code=401))

        with pytest.raises(EmbeddingError):
            await with_retry(fn, max_retries=3, **FAST)

        assert fn.call_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self) -> None:
        """max_retries=0 makes a single attempt."""
        fn = AsyncMock(side_effect=EmbeddingError("down", status_code=503))

        with pytest.raises(EmbeddingError):
            await with_retry(fn, max_retries=0, **FAST)

        assert fn.call_count == 1


class TestRetryingEmbeddingProvider:
    """Tests for RetryingEmbeddingProvider."""

    def _create_inner(self) -> AsyncMock:
        inner = AsyncMock()
        inner.name = "inner"
        inner.dimensions = 3
        inner.batch_size = 16
        return inner

    @pytest.mark.asyncio
    async def test_retries_batch_embed(self) -> None:
        """Batch embedding is retried on transient failures."""
        inner = self._create_inner()
        expected = EmbeddingResult(embeddings=[[0.1, 0.2, 0.3]], model="m", dimensions=3)
        inner.batch_embed = AsyncMock(
            side_effect=[EmbeddingError("down", status_code=503), expected]
        )
        provider = RetryingEmbeddingProvider(
            inner, RetrySettings(max_retries=2, base_delay=0.001, max_delay=0.001)
        )

        result = await provider.embed("text")

        assert result == expected
        assert inner.batch_embed.call_count == 2
        inner.batch_embed.assert_called_with(["text"])

    def test_delegates_properties(self) -> None:
        """Name, dimensions and batch size come from the wrapped provider."""
        provider = RetryingEmbeddingProvider(self._create_inner())
        assert provider.name == "inner"
        assert provider.dimensions == 3
        assert provider.batch_size == 16

    @pytest.mark.asyncio
    async def test_close_delegates(self) -> None:
        """Closing closes the wrapped provider."""
        inner = self._create_inner()
        await RetryingEmbeddingProvider(inner).close()
        inner.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_retries_real_coroutine_method(self) -> None:
        """A provider with a plain async batch_embed returns a result, not a coroutine."""
        expected = EmbeddingResult(embeddings=[[0.1, 0.2, 0.3]], model="m", dimensions=3)
        calls = []

        class FlakyProvider:
            name = "flaky"
            dimensions = 3
            batch_size = 16

            async def batch_embed(self, texts: list[str]) -> EmbeddingResult:
                calls.append(texts)
                if len(calls) == 1:
                    raise EmbeddingError("down", status_code=502)
                return expected

        provider = RetryingEmbeddingProvider(
            FlakyProvider(), RetrySettings(max_retries=1, base_delay=0.001, max_delay=0.001)
        )

        result = await provider.batch_embed(["text"])

        assert isinstance(result, EmbeddingResult)
        assert result.embeddings == [[0.1, 0.2, 0.3]]
        assert len(calls) == 2


class TestCircuitBreakerEmbeddingProvider:
    """Tests for CircuitBreakerEmbeddingProvider."""

    def _create_inner(self) -> AsyncMock:
        inner = AsyncMock()
        inner.name = "inner"
        inner.dimensions = 3
        inner.batch_size = 16
        return inner

    def _result(self) -> EmbeddingResult:
        return EmbeddingResult(embeddings=[[0.1, 0.2, 0.3]], model="m", dimensions=3)

    async def _trip(self, provider: CircuitBreakerEmbeddingProvider, failures: int) -> None:
        for _ in range(failures):
            with pytest.raises(EmbeddingError) as exc_info:
                await provider.batch_embed(["text"])
            assert exc_info.value.code == ErrorCode.EMBEDDING_SERVICE_ERROR

    @pytest.mark.asyncio
    async def test_closed_passes_through(self) -> None:
        """A closed circuit delegates to the wrapped provider."""
        inner = self._create_inner()
        inner.batch_embed = AsyncMock(return_value=self._result())
        provider = CircuitBreakerEmbeddingProvider(inner)

        result = await provider.batch_embed(["text"])

        assert result == self._result()
        assert provider.state == CircuitState.CLOSED
        inner.batch_embed.assert_called_once_with(["text"])

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self) -> None:
        """Consecutive failures open the circuit and later calls are rejected."""
        inner = self._create_inner()
        inner.batch_embed = AsyncMock(side_effect=EmbeddingError("down", status_code=503))
        provider = CircuitBreakerEmbeddingProvider(
            inner, CircuitBreakerSettings(failure_threshold=2, recovery_timeout=60.0)
        )

        await self._trip(provider, 2)
        assert provider.state == CircuitState.OPEN

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.batch_embed(["text"])

        assert exc_info.value.code == ErrorCode.EMBEDDING_CIRCUIT_OPEN
        assert exc_info.value.details["provider"] == "inner"
        assert inner.batch_embed.call_count == 2

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self) -> None:
        """Failures must be consecutive to open the circuit."""
        inner = self._create_inner()
        inner.batch_embed = AsyncMock(
            side_effect=[
                EmbeddingError("down", status_code=503),
                self._result(),
                EmbeddingError("down", status_code=503),
            ]
        )
        provider = CircuitBreakerEmbeddingProvider(
            inner, CircuitBreakerSettings(failure_threshold=2, recovery_timeout=60.0)
        )

        await self._trip(provider, 1)
        await provider.batch_embed(["text"])
        await self._trip(provider, 1)

        assert provider.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self) -> None:
        """After the recovery timeout one test call closes the circuit."""
        inner = self._create_inner()
        inner.batch_embed = AsyncMock(
            side_effect=[EmbeddingError("down", status_code=503), self._result()]
        )
        provider = CircuitBreakerEmbeddingProvider(
            inner, CircuitBreakerSettings(failure_threshold=1, recovery_timeout=0.05)
        )

        await self._trip(provider, 1)
        assert provider.state == CircuitState.OPEN

        await asyncio.sleep(0.1)
        assert provider.state == CircuitState.HALF_OPEN

        result = await provider.batch_embed(["text"])

        assert result == self._result()
        assert provider.state == CircuitState.CLOSED
        assert inner.batch_embed.call_count == 2

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self) -> None:
        """A failed test call opens the circuit again."""
        inner = self._create_inner()
        inner.batch_embed = AsyncMock(side_effect=EmbeddingError("down", status_code=503))
        provider = CircuitBreakerEmbeddingProvider(
            inner, CircuitBreakerSettings(failure_threshold=1, recovery_timeout=0.05)
        )

        await self._trip(provider, 1)
        await asyncio.sleep(0.1)
        await self._trip(provider, 1)

        assert provider.state == CircuitState.OPEN
        with pytest.raises(EmbeddingError) as exc_info:
            await provider.batch_embed(["text"])
        assert exc_info.value.code == ErrorCode.EMBEDDING_CIRCUIT_OPEN
        assert inner.batch_embed.call_count == 2

    @pytest.mark.asyncio
    async def test_retry_stops_at_open_circuit(self) -> None:
        """Retrying around an open circuit does not keep calling the provider."""
        inner = self._create_inner()
        inner.batch_embed = AsyncMock(side_effect=EmbeddingError("down", status_code=503))
        provider = RetryingEmbeddingProvider(
            CircuitBreakerEmbeddingProvider(
                inner, CircuitBreakerSettings(failure_threshold=2, recovery_timeout=60.0)
            ),
            RetrySettings(max_retries=5, base_delay=0.001, max_delay=0.001),
        )

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.batch_embed(["text"])

        assert exc_info.value.code == ErrorCode.EMBEDDING_CIRCUIT_OPEN
        assert inner.batch_embed.call_count == 2

    def test_delegates_properties(self) -> None:
        """Name, dimensions and batch size come from the wrapped provider."""
        provider = CircuitBreakerEmbeddingProvider(self._create_inner())
        assert provider.name == "inner"
        assert provider.dimensions == 3
        assert provider.batch_size == 16
        assert provider.state == CircuitState.CLOSED
