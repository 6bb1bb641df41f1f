"""Retrieval pipeline: query text in, scored chunks and context out."""

import time

from ragcore.embeddings.service import EmbeddingProvider
from ragcore.exceptions import ErrorCode, RetrievalError
from ragcore.logging_config import get_logger
from ragcore.observability.metrics import track_retrieval_request
from ragcore.retrieval.context import assemble_context
from ragcore.retrieval.filters import validate_query_filter
from ragcore.retrieval.models import (
    QueryMetadata,
    QueryRequest,
    QueryResult,
    ScoredChunk,
)
from ragcore.vectorstore.models import SearchParams, SearchResult
from ragcore.vectorstore.service import VectorStore

logger = get_logger(__name__)


class RetrievalPipeline:
    """Embed a query, search one collection and assemble the context.

    Tenant and project scope always come from the request, never from the
    filter. Errors from the provider and the store propagate unchanged.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        collection: str,
    ) -> None:
        """Initialize the retrieval pipeline.

        Args:
            embedding_provider: Provider used to embed the query.
            vector_store: Store to search.
            collection: Name of the collection to search.
        """
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._collection = collection

    async def retrieve(self, request: QueryRequest) -> QueryResult:
        """Run a retrieval request.

        Args:
            request: Query, scope and formatting options.

        Returns:
            Scored chunks, assembled context and execution details.

        Raises:
            ValidationError: If the filter is malformed.
            IsolationViolationError: If tenant or project is empty.
            RetrievalError: If the provider returns no vector for the query.
        """
        start_time = time.perf_counter()

        query_filter = None
        if request.filter is not None:
            query_filter = validate_query_filter(request.filter)

        embedding = await self._embedding_provider.embed(request.query)
        if not embedding.embeddings or not embedding.embeddings[0]:
            raise RetrievalError(
                "Embedding provider returned no vector for the query",
                code=ErrorCode.QUERY_EMBEDDING_MISSING,
                details={"model": embedding.model},
            )

        results = await self._vector_store.search(
            self._collection,
            SearchParams(
                tenant_id=request.tenant_id,
                project_id=request.project_id,
                vector=embedding.embeddings[0],
                top_k=request.top_k,
                score_threshold=request.score_threshold,
                filter=query_filter,
            ),
        )

        chunks = [_to_scored_chunk(result, request.include_metadata) for result in results]
        context = assemble_context(chunks, request.target_model)

        duration = time.perf_counter() - start_time
        top_score = chunks[0].score if chunks else 0.0
        track_retrieval_request(duration, len(chunks), top_score)

        logger.info(
            f"Retrieved {len(chunks)} chunks",
            extra={
                "tenant_id": request.tenant_id,
                "project_id": request.project_id,
                "top_score": top_score,
                "latency_ms": round(duration * 1000, 2),
            },
        )

        return QueryResult(
            chunks=chunks,
            context=context,
            metadata=QueryMetadata(
                total_chunks_searched=len(results),
                retrieval_time_ms=duration * 1000,
                cache_hit=False,
                tokens_used=embedding.tokens_used,
            ),
        )


def _to_scored_chunk(result: SearchResult, include_metadata: bool) -> ScoredChunk:
    payload = result.payload
    return ScoredChunk(
        chunk_id=str(payload.get("chunk_id", result.id)),
        document_id=str(payload.get("document_id", "")),
        content=str(payload.get("content", "")),
        score=result.score,
        metadata=dict(payload) if include_metadata else {},
    )
