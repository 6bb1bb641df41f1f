"""Vector store interface and Qdrant implementation."""

import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    HasIdCondition,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    Range,
    VectorParams,
)

from ragcore.config import QdrantSettings
from ragcore.exceptions import ErrorCode, IsolationViolationError, VectorStoreError
from ragcore.logging_config import get_logger
from ragcore.observability.metrics import track_vectorstore_operation
from ragcore.vectorstore.models import (
    SearchParams,
    SearchResult,
    VectorRecord,
    Visibility,
)

logger = get_logger(__name__)

# Scoping keys written by the store; they override same-named payload keys
RESERVED_PAYLOAD_KEYS = frozenset(
    {"tenant_id", "project_id", "document_id", "chunk_id", "is_deleted"}
)


def build_payload(record: VectorRecord) -> dict:
    """Merge a record's payload with its scoping fields."""
    return {
        **record.payload,
        "tenant_id": record.tenant_id,
        "project_id": record.project_id,
        "document_id": record.document_id,
        "chunk_id": record.chunk_id,
        "is_deleted": record.is_deleted,
    }


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Every read and every destructive operation is scoped by tenant. Search
    is additionally scoped by project and never returns hidden records.
    """

    backend: str = "vectorstore"

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        records: list[VectorRecord],
    ) -> int:
        """Insert or update records, idempotent by record ID.

        Args:
            collection: Collection name.
            records: Records to upsert.

        Returns:
            Number of records upserted.

        Raises:
            VectorStoreError: If upsert fails.
        """
        ...

    @abstractmethod
    async def search(
        self,
        collection: str,
        params: SearchParams,
    ) -> list[SearchResult]:
        """Search for similar visible vectors within a tenant and project.

        Args:
            collection: Collection name.
            params: Scope, query vector and limits.

        Returns:
            Results ordered by descending score.

        Raises:
            IsolationViolationError: If tenant or project is empty.
            VectorStoreError: If search fails.
        """
        ...

    @abstractmethod
    async def delete(
        self,
        collection: str,
        tenant_id: str,
        ids: list[str],
    ) -> int:
        """Delete a tenant's records by ID.

        Args:
            collection: Collection name.
            tenant_id: Tenant scope. Must be non-empty.
            ids: Record IDs to delete.

        Returns:
            Number of records deleted.

        Raises:
            IsolationViolationError: If tenant is empty.
            VectorStoreError: If deletion fails.
        """
        ...

    @abstractmethod
    async def delete_by_filter(
        self,
        collection: str,
        tenant_id: str,
        document_id: str | None = None,
        project_id: str | None = None,
        min_index: int | None = None,
    ) -> int:
        """Delete a tenant's records matching a document and/or project.

        ``min_index`` narrows the match to chunks whose ``index`` payload is
        at least that value, which drops the tail left behind when a
        document is re-ingested into fewer chunks.

        Returns:
            Number of records deleted.

        Raises:
            IsolationViolationError: If tenant is empty.
            VectorStoreError: If deletion fails.
        """
        ...

    @abstractmethod
    async def set_visibility(
        self,
        collection: str,
        tenant_id: str,
        document_id: str,
        visibility: Visibility,
        project_id: str | None = None,
    ) -> None:
        """Change the visibility of all records of a document.

        ``DELETED`` removes the records.

        Raises:
            IsolationViolationError: If tenant is empty.
            VectorStoreError: If the update fails.
        """
        ...

    @abstractmethod
    async def ensure_collection(self, collection: str, dimensions: int) -> None:
        """Create the collection and its scope indexes if missing.

        Args:
            collection: Collection name.
            dimensions: Vector dimensions.

        Raises:
            VectorStoreError: If creation fails.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None

    @staticmethod
    def _require_scope(
        operation: str,
        tenant_id: str,
        project_id: str | None = None,
        check_project: bool = False,
    ) -> None:
        """Reject calls missing their tenant (and project) scope."""
        if not tenant_id or not tenant_id.strip():
            raise IsolationViolationError(
                f"tenant_id is required for {operation}",
                details={"operation": operation},
            )
        if check_project and (not project_id or not project_id.strip()):
            raise IsolationViolationError(
                f"project_id is required for {operation}",
                details={"operation": operation, "tenant_id": tenant_id},
            )

    @contextmanager
    def _track_operation(self, operation: str) -> Iterator[None]:
        """Record duration and outcome of a backend call."""
        start_time = time.perf_counter()
        try:
            yield
        except Exception:
            track_vectorstore_operation(
                self.backend, operation, time.perf_counter() - start_time, success=False
            )
            raise
        track_vectorstore_operation(
            self.backend, operation, time.perf_counter() - start_time
        )


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation.

    Scope fields are stored in the point payload and matched with payload
    filters. Point IDs must be UUIDs or unsigned integers.
    """

    backend = "qdrant"

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._settings = settings or QdrantSettings()
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    async def upsert(
        self,
        collection: str,
        records: list[VectorRecord],
    ) -> int:
        """Upsert records into collection in batches."""
        if not records:
            return 0
        for record in records:
            self._require_scope(
                "upsert", record.tenant_id, record.project_id, check_project=True
            )

        client = await self._get_client()
        batch_size = self._settings.upsert_batch_size

        try:
            with self._track_operation("upsert"):
                for i in range(0, len(records), batch_size):
                    points = [
                        PointStruct(
                            id=record.id,
                            vector=record.vector,
                            payload=build_payload(record),
                        )
                        for record in records[i : i + batch_size]
                    ]
                    await client.upsert(collection_name=collection, points=points)

        except Exception as e:
            raise _store_error("Failed to upsert records", collection, e) from e

        logger.debug(
            f"Upserted {len(records)} records",
            extra={"collection": collection},
        )
        return len(records)

    async def search(
        self,
        collection: str,
        params: SearchParams,
    ) -> list[SearchResult]:
        """Search for similar vectors within the tenant and project."""
        self._require_scope(
            "search", params.tenant_id, params.project_id, check_project=True
        )

        conditions = [
            FieldCondition(key="tenant_id", match=MatchValue(value=params.tenant_id)),
            FieldCondition(key="project_id", match=MatchValue(value=params.project_id)),
            FieldCondition(key="is_deleted", match=MatchValue(value=False)),
        ]
        if params.filter is not None and params.filter.document_ids:
            conditions.append(
                FieldCondition(
                    key="document_id",
                    match=MatchAny(any=params.filter.document_ids),
                )
            )

        client = await self._get_client()

        try:
            with self._track_operation("search"):
                results = await client.query_points(
                    collection_name=collection,
                    query=params.vector,
                    limit=params.top_k,
                    query_filter=Filter(must=conditions),  # type: ignore[arg-type]
                    score_threshold=params.score_threshold,
                    with_payload=True,
                )

        except Exception as e:
            raise _store_error("Failed to search", collection, e) from e

        return [
            SearchResult(
                id=str(point.id),
                score=point.score if point.score is not None else 0.0,
                payload=dict(point.payload) if point.payload else {},
            )
            for point in results.points
        ]

    async def delete(
        self,
        collection: str,
        tenant_id: str,
        ids: list[str],
    ) -> int:
        """Delete a tenant's records by ID."""
        self._require_scope("delete", tenant_id)
        if not ids:
            return 0

        scope = Filter(
            must=[
                FieldCondition(key="tenant_id", match=MatchValue(value=tenant_id)),
                HasIdCondition(has_id=ids),  # type: ignore[arg-type]
            ]
        )
        return await self._delete_matching(collection, scope, "delete")

    async def delete_by_filter(
        self,
        collection: str,
        tenant_id: str,
        document_id: str | None = None,
        project_id: str | None = None,
        min_index: int | None = None,
    ) -> int:
        """Delete a tenant's records matching a document and/or project."""
        self._require_scope("delete_by_filter", tenant_id)
        scope = self._scope_filter(tenant_id, document_id, project_id, min_index)
        return await self._delete_matching(collection, scope, "delete_by_filter")

    async def set_visibility(
        self,
        collection: str,
        tenant_id: str,
        document_id: str,
        visibility: Visibility,
        project_id: str | None = None,
    ) -> None:
        """Flip the visibility of all records of a document."""
        self._require_scope("set_visibility", tenant_id)

        if visibility == Visibility.DELETED:
            await self.delete_by_filter(
                collection, tenant_id, document_id=document_id, project_id=project_id
            )
            return

        client = await self._get_client()
        scope = self._scope_filter(tenant_id, document_id, project_id)

        try:
            with self._track_operation("set_visibility"):
                await client.set_payload(
                    collection_name=collection,
                    payload={"is_deleted": visibility != Visibility.VISIBLE},
                    points=scope,
                )

        except Exception as e:
            raise _store_error(
                "Failed to update visibility", collection, e, document_id=document_id
            ) from e

        logger.info(
            f"Set document visibility to {visibility.value}",
            extra={"collection": collection, "document_id": document_id},
        )

    async def ensure_collection(self, collection: str, dimensions: int) -> None:
        """Create the collection with cosine distance and scope indexes."""
        client = await self._get_client()

        try:
            with self._track_operation("ensure_collection"):
                if await client.collection_exists(collection):
                    return

                await client.create_collection(
                    collection_name=collection,
                    vectors_config=VectorParams(
                        size=dimensions,
                        distance=Distance.COSINE,
                    ),
                )
                for field_name, schema in (
                    ("tenant_id", PayloadSchemaType.KEYWORD),
                    ("project_id", PayloadSchemaType.KEYWORD),
                    ("document_id", PayloadSchemaType.KEYWORD),
                    ("is_deleted", PayloadSchemaType.BOOL),
                    ("index", PayloadSchemaType.INTEGER),
                ):
                    await client.create_payload_index(
                        collection_name=collection,
                        field_name=field_name,
                        field_schema=schema,
                    )

        except Exception as e:
            raise _store_error("Failed to create collection", collection, e) from e

        logger.info(f"Created collection: {collection}", extra={"dimensions": dimensions})

    async def health_check(self) -> bool:
        """Check that Qdrant answers a collection listing."""
        client = await self._get_client()
        try:
            await client.get_collections()
            return True
        except Exception as e:
            logger.warning(f"Qdrant health check failed: {e}")
            return False

    @staticmethod
    def _scope_filter(
        tenant_id: str,
        document_id: str | None,
        project_id: str | None,
        min_index: int | None = None,
    ) -> Filter:
        conditions = [
            FieldCondition(key="tenant_id", match=MatchValue(value=tenant_id)),
        ]
        if project_id:
            conditions.append(
                FieldCondition(key="project_id", match=MatchValue(value=project_id))
            )
        if document_id:
            conditions.append(
                FieldCondition(key="document_id", match=MatchValue(value=document_id))
            )
        if min_index is not None:
            conditions.append(FieldCondition(key="index", range=Range(gte=min_index)))
        return Filter(must=conditions)  # type: ignore[arg-type]

    async def _delete_matching(
        self,
        collection: str,
        scope: Filter,
        operation: str,
    ) -> int:
        """Count then delete the points matching a scope filter."""
        client = await self._get_client()

        try:
            with self._track_operation(operation):
                matched = await client.count(
                    collection_name=collection,
                    count_filter=scope,
                    exact=True,
                )
                await client.delete(
                    collection_name=collection,
                    points_selector=FilterSelector(filter=scope),
                )

        except Exception as e:
            raise _store_error("Failed to delete records", collection, e) from e

        logger.debug(
            f"Deleted {matched.count} records",
            extra={"collection": collection},
        )
        return matched.count


def _store_error(
    message: str,
    collection: str,
    error: Exception,
    **details: str,
) -> VectorStoreError:
    """Wrap a Qdrant client failure, keeping the HTTP status when there is one."""
    status_code = error.status_code if isinstance(error, UnexpectedResponse) else None
    code = ErrorCode.VECTOR_STORE_ERROR
    if status_code == 404:
        code = ErrorCode.COLLECTION_NOT_FOUND

    return VectorStoreError(
        f"{message}: {error}",
        code=code,
        details={"collection": collection, "error": str(error), **details},
        status_code=status_code,
    )
