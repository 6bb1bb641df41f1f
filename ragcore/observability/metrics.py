"""Prometheus metrics for the ingestion and retrieval core.

Provides metrics instrumentation for:
- Embedding request latency and batch sizes
- Vector store operation latency
- Ingestion throughput (documents, chunks)
- Retrieval metrics (latency, chunks, scores)
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["provider", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["provider", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["provider"],
    buckets=[1, 5, 10, 25, 50, 96, 250, 500],
)

# Vector Store Metrics
VECTORSTORE_OPERATION_DURATION = Histogram(
    "vectorstore_operation_duration_seconds",
    "Vector store operation duration",
    ["backend", "operation", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

# Ingestion Metrics
INGESTION_DOCUMENTS_TOTAL = Counter(
    "ingestion_documents_total",
    "Documents processed by the ingestion pipeline",
    ["status"],
)

INGESTION_CHUNKS = Histogram(
    "ingestion_chunks_per_document",
    "Chunks produced per ingested document",
    buckets=[0, 1, 5, 10, 25, 50, 100, 250, 1000],
)

# Retrieval Metrics
RETRIEVAL_DURATION = Histogram(
    "retrieval_duration_seconds",
    "Retrieval pipeline duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

RETRIEVAL_CHUNKS_RETURNED = Histogram(
    "retrieval_chunks_returned",
    "Number of chunks returned per retrieval",
    buckets=[0, 1, 2, 3, 5, 10, 20, 50],
)

RETRIEVAL_TOP_SCORE = Histogram(
    "retrieval_top_score",
    "Top retrieval score per query",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    provider: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        provider: Embedding provider name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(provider=provider, status=status).observe(
        duration
    )
    EMBEDDING_REQUEST_TOTAL.labels(provider=provider, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(provider=provider).observe(batch_size)


def track_vectorstore_operation(
    backend: str,
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a vector store call.

    Args:
        backend: Store backend name (qdrant, pgvector).
        operation: Operation name (upsert, search, ...).
        duration: Call duration in seconds.
        success: Whether the call succeeded.
    """
    status = "success" if success else "error"
    VECTORSTORE_OPERATION_DURATION.labels(
        backend=backend, operation=operation, status=status
    ).observe(duration)


def track_ingestion(chunk_count: int, success: bool = True) -> None:
    """Track one ingestion pipeline run.

    Args:
        chunk_count: Chunks stored for the document.
        success: Whether the run succeeded.
    """
    status = "success" if success else "error"
    INGESTION_DOCUMENTS_TOTAL.labels(status=status).inc()
    if success:
        INGESTION_CHUNKS.observe(chunk_count)


def track_retrieval_request(
    duration: float,
    chunks_returned: int,
    top_score: float,
) -> None:
    """Track retrieval request metrics.

    Args:
        duration: Pipeline duration in seconds.
        chunks_returned: Number of chunks returned.
        top_score: Highest relevance score.
    """
    RETRIEVAL_DURATION.observe(duration)
    RETRIEVAL_CHUNKS_RETURNED.observe(chunks_returned)
    if top_score > 0:
        RETRIEVAL_TOP_SCORE.observe(top_score)
