"""Ingestion pipeline: parse, chunk, embed and store hidden vectors.

Vectors are written with ``Visibility.HIDDEN``. Making them searchable is
left to the caller, which flips visibility once its own transaction for
the document has committed. A crash in between leaves hidden vectors that
a retry of the same document overwrites, because record IDs are derived
from the document and chunk position.
"""

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from ragcore.documents.chunker import Chunk, Chunker, ChunkerConfig
from ragcore.documents.parser import DocumentParser
from ragcore.embeddings.models import EmbeddingResult
from ragcore.embeddings.service import EmbeddingProvider
from ragcore.exceptions import (
    EmbeddingError,
    ErrorCode,
    IsolationViolationError,
    ValidationError,
)
from ragcore.ingestion.models import IngestionHooks, IngestionInput, IngestionResult
from ragcore.logging_config import get_logger
from ragcore.observability.metrics import track_ingestion
from ragcore.vectorstore.models import VectorRecord, Visibility
from ragcore.vectorstore.service import VectorStore

logger = get_logger(__name__)

# Fixed namespace so record IDs are stable across processes
RECORD_NAMESPACE = uuid.UUID("6f1c1e0a-3b7d-5d2e-9a41-2f8e5c7b9d10")


def record_id(tenant_id: str, project_id: str, document_id: str, index: int) -> str:
    """Derive the vector record ID of a chunk."""
    return str(
        uuid.uuid5(RECORD_NAMESPACE, f"{tenant_id}/{project_id}/{document_id}/{index}")
    )


def chunk_id(tenant_id: str, project_id: str, document_id: str, index: int) -> str:
    """Derive the chunk ID of a chunk."""
    return str(
        uuid.uuid5(
            RECORD_NAMESPACE, f"chunk:{tenant_id}/{project_id}/{document_id}/{index}"
        )
    )


class IngestionPipeline:
    """Orchestrates ingestion of one document at a time.

    Any step's failure aborts the run and propagates unchanged; the
    pipeline never retries.
    """

    def __init__(
        self,
        parser: DocumentParser,
        chunker: Chunker,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        collection: str,
        chunking: ChunkerConfig | None = None,
        hooks: IngestionHooks | None = None,
    ) -> None:
        """Initialize the ingestion pipeline.

        Args:
            parser: Parser for raw document content.
            chunker: Chunker for the project's configured strategy.
            embedding_provider: Provider for chunk embeddings.
            vector_store: Store receiving the hidden records.
            collection: Target collection name.
            chunking: Token budget. Uses defaults if not provided.
            hooks: Optional phase observers.
        """
        self._parser = parser
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._collection = collection
        self._chunking = chunking or ChunkerConfig()
        self._hooks = hooks or IngestionHooks()

    async def ingest(self, document: IngestionInput) -> IngestionResult:
        """Ingest one document.

        Args:
            document: Raw document with its tenant and project scope.

        Returns:
            Chunk count, tokens used and vector dimensions.

        Raises:
            IsolationViolationError: If tenant or project is empty.
            ValidationError: If the document ID is empty.
            DocumentError: If parsing fails.
            EmbeddingError: If embedding fails.
            VectorStoreError: If the upsert fails.
        """
        if not document.tenant_id.strip() or not document.project_id.strip():
            raise IsolationViolationError(
                "tenant_id and project_id are required for ingestion",
                details={"document_id": document.document_id},
            )
        if not document.document_id.strip():
            raise ValidationError("document_id is required for ingestion")

        try:
            result = await self._run(document)
        except Exception:
            track_ingestion(0, success=False)
            logger.error(
                "Ingestion failed",
                extra={
                    "tenant_id": document.tenant_id,
                    "project_id": document.project_id,
                    "document_id": document.document_id,
                },
            )
            raise

        track_ingestion(result.chunk_count)
        logger.info(
            f"Ingested document with {result.chunk_count} chunks",
            extra={
                "tenant_id": document.tenant_id,
                "project_id": document.project_id,
                "document_id": document.document_id,
                "tokens_used": result.tokens_used,
            },
        )
        return result

    async def _run(self, document: IngestionInput) -> IngestionResult:
        # Phase 1: Parse
        parsed = await self._parser.parse(document.content, document.mime_type)
        await _notify(self._hooks.on_parsed, parsed)

        # Phase 2: Chunk
        chunks = self._chunker.chunk(parsed.text, self._chunking)
        await _notify(self._hooks.on_chunked, chunks)

        if not chunks:
            return IngestionResult(
                document_id=document.document_id,
                chunk_count=0,
                tokens_used=0,
                embedding_dimensions=self._embedding_provider.dimensions,
            )

        # Phase 3: Embed
        embedding = await self._embedding_provider.batch_embed(
            [chunk.content for chunk in chunks]
        )
        if len(embedding.embeddings) != len(chunks):
            raise EmbeddingError(
                f"Provider returned {len(embedding.embeddings)} embeddings for {len(chunks)} chunks",
                code=ErrorCode.EMBEDDING_INCOMPLETE,
                details={"document_id": document.document_id},
            )
        await _notify(self._hooks.on_embedded, embedding)

        # Phase 4: Store hidden
        records = build_records(document, chunks, embedding)
        await self._vector_store.upsert(self._collection, records)

        # Drop chunks left over from a previous version with more chunks
        pruned = await self._vector_store.delete_by_filter(
            self._collection,
            document.tenant_id,
            document_id=document.document_id,
            project_id=document.project_id,
            min_index=len(chunks),
        )
        if pruned:
            logger.info(
                f"Pruned {pruned} stale chunks",
                extra={"document_id": document.document_id},
            )
        await _notify(self._hooks.on_stored, records)

        return IngestionResult(
            document_id=document.document_id,
            chunk_count=len(chunks),
            tokens_used=embedding.tokens_used,
            embedding_dimensions=embedding.dimensions,
        )


def build_records(
    document: IngestionInput,
    chunks: list[Chunk],
    embedding: EmbeddingResult,
) -> list[VectorRecord]:
    """Build one hidden vector record per chunk."""
    records = []
    for chunk, vector in zip(chunks, embedding.embeddings, strict=True):
        payload: dict[str, Any] = {
            "content": chunk.content,
            "index": chunk.index,
            "token_count": chunk.token_count,
            **chunk.metadata.model_dump(exclude_none=True),
        }
        records.append(
            VectorRecord(
                id=record_id(
                    document.tenant_id, document.project_id, document.document_id, chunk.index
                ),
                tenant_id=document.tenant_id,
                project_id=document.project_id,
                document_id=document.document_id,
                chunk_id=chunk_id(
                    document.tenant_id, document.project_id, document.document_id, chunk.index
                ),
                vector=vector,
                payload=payload,
                visibility=Visibility.HIDDEN,
            )
        )
    return records


async def _notify(hook: Callable[[Any], Awaitable[None]] | None, value: Any) -> None:
    if hook is not None:
        await hook(value)
