"""Vector store data models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Visibility(str, Enum):
    """Visibility state of a stored vector.

    Records are written ``HIDDEN`` by ingestion and made ``VISIBLE`` by the
    caller once its relational transaction commits. ``DELETED`` records are
    removed from the store.
    """

    HIDDEN = "hidden"
    VISIBLE = "visible"
    DELETED = "deleted"


class QueryFilter(BaseModel):
    """Validated query filter.

    Only built by the filter validator; raw filters never reach a store.

    Attributes:
        document_ids: Restrict results to these documents.
        metadata: Free-form metadata constraints.
    """

    document_ids: list[str] | None = Field(
        default=None,
        description="Restrict results to these document IDs",
    )
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Metadata constraints",
    )


class VectorRecord(BaseModel):
    """A record to store in the vector database.

    Attributes:
        id: Unique identifier for the record.
        tenant_id: Owning tenant.
        project_id: Owning project within the tenant.
        document_id: Source document.
        chunk_id: Source chunk.
        vector: The embedding vector.
        payload: Additional metadata to store with the vector.
        visibility: Visibility state. New records are hidden.
    """

    id: str = Field(description="Unique record identifier")
    tenant_id: str = Field(description="Owning tenant")
    project_id: str = Field(description="Owning project")
    document_id: str = Field(description="Source document")
    chunk_id: str = Field(description="Source chunk")
    vector: list[float] = Field(description="Embedding vector")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Metadata payload",
    )
    visibility: Visibility = Field(
        default=Visibility.HIDDEN,
        description="Visibility state",
    )

    @property
    def is_deleted(self) -> bool:
        """Persisted form of the visibility state."""
        return self.visibility != Visibility.VISIBLE


class SearchParams(BaseModel):
    """Parameters for a tenant-scoped similarity search.

    Attributes:
        tenant_id: Tenant scope. Must be non-empty.
        project_id: Project scope. Must be non-empty.
        vector: Query vector.
        top_k: Maximum results to return.
        score_threshold: Minimum similarity score.
        filter: Validated query filter.
    """

    tenant_id: str = Field(description="Tenant scope")
    project_id: str = Field(description="Project scope")
    vector: list[float] = Field(description="Query vector")
    top_k: int = Field(default=10, ge=1, description="Maximum results")
    score_threshold: float | None = Field(
        default=None,
        description="Minimum similarity score",
    )
    filter: QueryFilter | None = Field(default=None, description="Query filter")


class SearchResult(BaseModel):
    """Result from a vector similarity search.

    Attributes:
        id: Record identifier.
        score: Similarity score (higher is more similar).
        payload: Stored metadata.
    """

    id: str = Field(description="Record identifier")
    score: float = Field(description="Similarity score")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Record metadata",
    )
