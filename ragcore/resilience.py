"""Retry with backoff and circuit breaking around provider and store calls.

The ingestion and retrieval pipelines never retry on their own; callers opt
in by wrapping calls with ``with_retry`` or by wrapping an embedding
provider in ``RetryingEmbeddingProvider`` and ``CircuitBreakerEmbeddingProvider``.
"""

import logging
import random
from collections.abc import Awaitable, Callable, Collection
from enum import Enum
from typing import TypeVar

import httpx
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from ragcore.config import CircuitBreakerSettings, RetrySettings
from ragcore.embeddings.models import EmbeddingResult
from ragcore.embeddings.service import EmbeddingProvider
from ragcore.exceptions import EmbeddingError, ErrorCode, RAGCoreError, TransportError
from ragcore.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RetryableCode = ErrorCode | str | int


class wait_jittered_exponential(wait_base):
    """Wait ``min(max_delay, base_delay * 2**n) * U(0.5, 1.0)`` before retry n.

    ``n`` counts retries from zero, so the first retry waits up to
    ``base_delay``.
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float = 10.0) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        exponent = retry_state.attempt_number - 1
        delay = min(self.max_delay, self.base_delay * 2**exponent)
        return delay * random.uniform(0.5, 1.0)


def is_retryable(
    error: BaseException,
    retryable_codes: Collection[RetryableCode] | None = None,
) -> bool:
    """Decide whether a failed call should be retried.

    4xx transport errors and open-circuit rejections are never retried. Without an allowlist, 5xx and
    transport-level errors are retried. With an allowlist, only transport
    errors whose error code, code value or HTTP status is listed are
    retried. Other ragcore errors (configuration, validation, isolation)
    are never retried.

    Args:
        error: The exception raised by the call.
        retryable_codes: Optional allowlist of codes.

    Returns:
        True if the call should be attempted again.
    """
    if isinstance(error, TransportError):
        if error.code == ErrorCode.EMBEDDING_CIRCUIT_OPEN:
            return False
        if error.status_code is not None and 400 <= error.status_code < 500:
            return False
        if retryable_codes is not None:
            return (
                error.code in retryable_codes
                or error.code.value in retryable_codes
                or (error.status_code is not None and error.status_code in retryable_codes)
            )
        return True

    if isinstance(error, RAGCoreError):
        return False

    if isinstance(error, (httpx.TransportError, TimeoutError, OSError)):
        return retryable_codes is None

    return False


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retryable_codes: Collection[RetryableCode] | None = None,
) -> T:
    """Call an async function, retrying retryable failures.

    Args:
        fn: Zero-argument callable returning an awaitable.
        max_retries: Retries after the first attempt.
        base_delay: Delay scale of the first retry in seconds.
        max_delay: Upper bound of a single delay in seconds.
        retryable_codes: Optional allowlist, see ``is_retryable``.

    Returns:
        The function's result.

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable exception.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_jittered_exponential(base_delay, max_delay),
        retry=retry_if_exception(lambda e: is_retryable(e, retryable_codes)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await fn()
    raise AssertionError("unreachable")


class RetryingEmbeddingProvider(EmbeddingProvider):
    """Embedding provider that retries another provider's calls."""

    def __init__(
        self,
        inner: EmbeddingProvider,
        settings: RetrySettings | None = None,
        retryable_codes: Collection[RetryableCode] | None = None,
    ) -> None:
        """Wrap a provider.

        Args:
            inner: Provider to delegate to.
            settings: Backoff policy. Uses defaults if not provided.
            retryable_codes: Optional allowlist, see ``is_retryable``.
        """
        self._inner = inner
        self._settings = settings or RetrySettings()
        self._retryable_codes = retryable_codes
        self.name = inner.name

    @property
    def dimensions(self) -> int:
        """Get the wrapped provider's dimensions."""
        return self._inner.dimensions

    @property
    def batch_size(self) -> int:
        """Get the wrapped provider's batch size."""
        return self._inner.batch_size

    async def batch_embed(self, texts: list[str]) -> EmbeddingResult:
        """Embed texts, retrying retryable failures."""
        return await with_retry(
            lambda: self._inner.batch_embed(texts),
            max_retries=self._settings.max_retries,
            base_delay=self._settings.base_delay,
            max_delay=self._settings.max_delay,
            retryable_codes=self._retryable_codes,
        )

    async def health_check(self) -> bool:
        """Delegate to the wrapped provider."""
        return await self._inner.health_check()

    async def close(self) -> None:
        """Close the wrapped provider."""
        await self._inner.close()


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerEmbeddingProvider(EmbeddingProvider):
    """Embedding provider that stops calling a failing provider for a while.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls are rejected with ``EMBEDDING_CIRCUIT_OPEN`` without reaching the
    wrapped provider. Once ``recovery_timeout`` has elapsed the circuit is
    half-open: the next call goes through, closing the circuit on success
    and opening it again on failure.
    """

    def __init__(
        self,
        inner: EmbeddingProvider,
        settings: CircuitBreakerSettings | None = None,
    ) -> None:
        """Wrap a provider.

        Args:
            inner: Provider to delegate to.
            settings: Breaker thresholds. Uses defaults if not provided.
        """
        self._inner = inner
        self._settings = settings or CircuitBreakerSettings()
        self.name = inner.name
        self._breaker = CircuitBreaker(
            failure_threshold=self._settings.failure_threshold,
            recovery_timeout=self._settings.recovery_timeout,
            name=f"embedding:{inner.name}",
        )

        @self._breaker
        async def _guarded_batch_embed(texts: list[str]) -> EmbeddingResult:
            return await self._inner.batch_embed(texts)

        self._guarded_batch_embed = _guarded_batch_embed
        self._last_state = CircuitState.CLOSED

    @property
    def state(self) -> CircuitState:
        """Get the current circuit state."""
        return CircuitState(self._breaker.state)

    @property
    def dimensions(self) -> int:
        """Get the wrapped provider's dimensions."""
        return self._inner.dimensions

    @property
    def batch_size(self) -> int:
        """Get the wrapped provider's batch size."""
        return self._inner.batch_size

    async def batch_embed(self, texts: list[str]) -> EmbeddingResult:
        """Embed texts unless the circuit is open.

        Raises:
            EmbeddingError: With ``EMBEDDING_CIRCUIT_OPEN`` while the circuit
                is open, otherwise whatever the wrapped provider raised.
        """
        self._log_transition()
        try:
            return await self._guarded_batch_embed(texts)
        except CircuitBreakerError as e:
            raise EmbeddingError(
                f"Circuit open for embedding provider {self.name}",
                code=ErrorCode.EMBEDDING_CIRCUIT_OPEN,
                details={
                    "provider": self.name,
                    "retry_after": max(0.0, float(self._breaker.open_remaining)),
                },
            ) from e
        finally:
            self._log_transition()

    def _log_transition(self) -> None:
        state = self.state
        if state == self._last_state:
            return
        if state == CircuitState.OPEN:
            logger.warning(f"Circuit OPENED for {self.name}, calls are short-circuited")
        elif state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit HALF-OPEN for {self.name}, next call is a test")
        else:
            logger.info(f"Circuit CLOSED for {self.name}")
        self._last_state = state

    async def health_check(self) -> bool:
        """Delegate to the wrapped provider."""
        return await self._inner.health_check()

    async def close(self) -> None:
        """Close the wrapped provider."""
        await self._inner.close()
