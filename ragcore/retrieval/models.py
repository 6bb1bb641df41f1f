"""Retrieval data models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ragcore.vectorstore.models import QueryFilter


class TargetModel(str, Enum):
    """Model family the assembled context is formatted for."""

    CLAUDE = "claude"
    GPT = "gpt"
    GEMINI = "gemini"
    GENERIC = "generic"


class QueryRequest(BaseModel):
    """A retrieval request.

    Attributes:
        tenant_id: Tenant scope for the search.
        project_id: Project scope for the search.
        query: Natural-language query text.
        top_k: Maximum number of chunks to return.
        score_threshold: Minimum similarity score.
        filter: Raw filter mapping. Validated before use.
        target_model: Context format. Unknown values use the plain format.
        include_metadata: Return the stored payload with each chunk.
    """

    tenant_id: str = Field(description="Tenant scope")
    project_id: str = Field(description="Project scope")
    query: str = Field(min_length=1, description="Query text")
    top_k: int = Field(default=10, ge=1, le=100, description="Number of chunks")
    score_threshold: float | None = Field(
        default=None,
        description="Minimum similarity score",
    )
    filter: Any = Field(default=None, description="Raw query filter")
    target_model: str = Field(
        default=TargetModel.GENERIC.value,
        description="Context format target",
    )
    include_metadata: bool = Field(
        default=False,
        description="Include stored payload in results",
    )


class ScoredChunk(BaseModel):
    """A retrieved chunk with its relevance score.

    Attributes:
        chunk_id: Chunk identifier.
        document_id: Source document identifier.
        content: Chunk text.
        score: Similarity score (higher is more relevant).
        rerank_score: Score from a reranker, if one ran.
        metadata: Stored payload, when requested.
    """

    chunk_id: str = Field(description="Chunk identifier")
    document_id: str = Field(description="Source document identifier")
    content: str = Field(description="Chunk text")
    score: float = Field(description="Similarity score")
    rerank_score: float | None = Field(default=None, description="Rerank score")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Stored payload",
    )


class QueryMetadata(BaseModel):
    """Execution details of a retrieval request."""

    total_chunks_searched: int = Field(ge=0, description="Results from the store")
    retrieval_time_ms: float = Field(ge=0, description="Pipeline latency in ms")
    cache_hit: bool = Field(default=False, description="Served from cache")
    tokens_used: int = Field(default=0, ge=0, description="Query embedding tokens")


class QueryResult(BaseModel):
    """Result of a retrieval request.

    Attributes:
        chunks: Chunks ordered by descending score.
        context: Context string formatted for the target model.
        metadata: Execution details.
    """

    chunks: list[ScoredChunk] = Field(default_factory=list, description="Chunks")
    context: str = Field(default="", description="Assembled context")
    metadata: QueryMetadata = Field(description="Execution details")


__all__ = [
    "QueryFilter",
    "QueryMetadata",
    "QueryRequest",
    "QueryResult",
    "ScoredChunk",
    "TargetModel",
]
