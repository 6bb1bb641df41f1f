"""Ingestion data models."""

from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from ragcore.documents.chunker import Chunk
from ragcore.documents.models import ParsedDocument
from ragcore.embeddings.models import EmbeddingResult
from ragcore.vectorstore.models import VectorRecord


class IngestionInput(BaseModel):
    """A raw document to ingest.

    Attributes:
        document_id: Document identifier owned by the caller.
        tenant_id: Owning tenant.
        project_id: Owning project.
        content: Raw bytes or already-decoded text.
        mime_type: MIME type used to select parsing behaviour.
    """

    document_id: str = Field(description="Document identifier")
    tenant_id: str = Field(description="Owning tenant")
    project_id: str = Field(description="Owning project")
    content: bytes | str = Field(description="Raw document content")
    mime_type: str = Field(default="text/plain", description="Content MIME type")


class IngestionResult(BaseModel):
    """Outcome of ingesting one document.

    Attributes:
        document_id: Document identifier.
        chunk_count: Chunks stored (hidden) for the document.
        tokens_used: Tokens consumed by the embedding provider.
        embedding_dimensions: Dimensions of the stored vectors.
    """

    document_id: str = Field(description="Document identifier")
    chunk_count: int = Field(ge=0, description="Chunks stored")
    tokens_used: int = Field(ge=0, description="Embedding tokens consumed")
    embedding_dimensions: int = Field(ge=0, description="Vector dimensions")


class IngestionHooks(BaseModel):
    """Optional async observers of each ingestion phase.

    Each hook receives that phase's output. Hooks cannot change the flow;
    an exception raised by a hook aborts the run like any other failure.
    """

    on_parsed: Callable[[ParsedDocument], Awaitable[None]] | None = None
    on_chunked: Callable[[list[Chunk]], Awaitable[None]] | None = None
    on_embedded: Callable[[EmbeddingResult], Awaitable[None]] | None = None
    on_stored: Callable[[list[VectorRecord]], Awaitable[None]] | None = None
