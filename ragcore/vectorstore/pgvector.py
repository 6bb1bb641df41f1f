"""PostgreSQL + pgvector implementation of the vector store.

Each collection is one table holding the scope columns, the embedding and
a JSONB payload. Similarity is cosine (``1 - cosine_distance``).
"""

import re

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Boolean,
    Column,
    Index,
    Integer,
    MetaData,
    Select,
    String,
    Table,
    delete,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ragcore.config import PgVectorSettings
from ragcore.exceptions import ErrorCode, ValidationError, VectorStoreError
from ragcore.logging_config import get_logger
from ragcore.vectorstore.models import (
    SearchParams,
    SearchResult,
    VectorRecord,
    Visibility,
)
from ragcore.vectorstore.service import VectorStore, build_payload

logger = get_logger(__name__)

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def to_async_url(connection_string: str) -> str:
    """Convert a postgres URL to the asyncpg driver form."""
    if connection_string.startswith("postgres://"):
        return connection_string.replace("postgres://", "postgresql+asyncpg://", 1)
    if connection_string.startswith("postgresql://"):
        return connection_string.replace("postgresql://", "postgresql+asyncpg://", 1)
    return connection_string


def build_table(collection: str, dimensions: int | None = None) -> Table:
    """Define the table backing a collection.

    Args:
        collection: Collection name, used as the table name.
        dimensions: Vector dimensions. When known, an HNSW cosine index is
            declared on the embedding column.

    Raises:
        ValidationError: If the collection name is not a plain identifier.
    """
    if not _IDENTIFIER_PATTERN.match(collection):
        raise ValidationError(
            f"Invalid collection name: {collection}",
            details={"collection": collection},
        )

    table = Table(
        collection,
        MetaData(),
        Column("id", String, primary_key=True),
        Column("tenant_id", String, nullable=False),
        Column("project_id", String, nullable=False),
        Column("document_id", String, nullable=False),
        Column("chunk_id", String, nullable=False),
        Column("embedding", Vector(dimensions), nullable=False),
        Column("payload", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
        Column("is_deleted", Boolean, nullable=False, server_default=text("true")),
        Index(f"ix_{collection}_tenant_project", "tenant_id", "project_id"),
        Index(f"ix_{collection}_document", "document_id"),
        Index(f"ix_{collection}_is_deleted", "is_deleted"),
    )

    if dimensions is not None:
        Index(
            f"ix_{collection}_embedding",
            table.c.embedding,
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        )

    return table


class PgVectorStore(VectorStore):
    """pgvector store over an async SQLAlchemy engine (asyncpg driver)."""

    backend = "pgvector"

    def __init__(
        self,
        settings: PgVectorSettings | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize the pgvector store.

        Args:
            settings: pgvector configuration.
            engine: Existing engine (for testing).
        """
        self._settings = settings or PgVectorSettings()
        self._engine = engine
        self._owns_engine = engine is None
        self._tables: dict[str, Table] = {}

    def _get_engine(self) -> AsyncEngine:
        """Get or create the async engine."""
        if self._engine is None:
            if not self._settings.connection_string:
                raise VectorStoreError(
                    "pgvector connection_string is not configured",
                    code=ErrorCode.VECTOR_STORE_ERROR,
                )
            self._engine = create_async_engine(
                to_async_url(self._settings.connection_string),
                pool_size=self._settings.pool_size,
                pool_pre_ping=True,
            )
        return self._engine

    async def close(self) -> None:
        """Dispose of the engine if we own it."""
        if self._owns_engine and self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    def _table(self, collection: str) -> Table:
        if collection not in self._tables:
            self._tables[collection] = build_table(collection)
        return self._tables[collection]

    async def upsert(
        self,
        collection: str,
        records: list[VectorRecord],
    ) -> int:
        """Insert or update rows by ID in batches."""
        if not records:
            return 0
        for record in records:
            self._require_scope(
                "upsert", record.tenant_id, record.project_id, check_project=True
            )

        table = self._table(collection)
        batch_size = self._settings.upsert_batch_size

        try:
            with self._track_operation("upsert"):
                async with self._get_engine().begin() as conn:
                    for i in range(0, len(records), batch_size):
                        statement = build_upsert_statement(
                            table, records[i : i + batch_size]
                        )
                        await conn.execute(statement)

        except (SQLAlchemyError, OSError) as e:
            raise VectorStoreError(
                f"Failed to upsert records: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
            ) from e

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
        """Cosine search over visible rows of the tenant and project."""
        self._require_scope(
            "search", params.tenant_id, params.project_id, check_project=True
        )
        statement = build_search_statement(self._table(collection), params)

        try:
            with self._track_operation("search"):
                async with self._get_engine().connect() as conn:
                    rows = (await conn.execute(statement)).all()

        except (SQLAlchemyError, OSError) as e:
            raise VectorStoreError(
                f"Failed to search: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
            ) from e

        return [
            SearchResult(
                id=row.id,
                score=float(row.score),
                payload={**(row.payload or {}), "is_deleted": row.is_deleted},
            )
            for row in rows
        ]

    async def delete(
        self,
        collection: str,
        tenant_id: str,
        ids: list[str],
    ) -> int:
        """Delete a tenant's rows by ID."""
        self._require_scope("delete", tenant_id)
        if not ids:
            return 0

        table = self._table(collection)
        statement = delete(table).where(
            table.c.tenant_id == tenant_id,
            table.c.id.in_(ids),
        )
        return await self._execute_write(collection, statement, "delete")

    async def delete_by_filter(
        self,
        collection: str,
        tenant_id: str,
        document_id: str | None = None,
        project_id: str | None = None,
        min_index: int | None = None,
    ) -> int:
        """Delete a tenant's rows matching a document and/or project."""
        self._require_scope("delete_by_filter", tenant_id)
        table = self._table(collection)
        statement = delete(table).where(
            *scope_conditions(table, tenant_id, document_id, project_id, min_index)
        )
        return await self._execute_write(collection, statement, "delete_by_filter")

    async def set_visibility(
        self,
        collection: str,
        tenant_id: str,
        document_id: str,
        visibility: Visibility,
        project_id: str | None = None,
    ) -> None:
        """Flip ``is_deleted`` on all rows of a document."""
        self._require_scope("set_visibility", tenant_id)

        if visibility == Visibility.DELETED:
            await self.delete_by_filter(
                collection, tenant_id, document_id=document_id, project_id=project_id
            )
            return

        table = self._table(collection)
        statement = (
            update(table)
            .where(*scope_conditions(table, tenant_id, document_id, project_id))
            .values(is_deleted=visibility != Visibility.VISIBLE)
        )
        updated = await self._execute_write(collection, statement, "set_visibility")

        logger.info(
            f"Set document visibility to {visibility.value}",
            extra={
                "collection": collection,
                "document_id": document_id,
                "rows": updated,
            },
        )

    async def ensure_collection(self, collection: str, dimensions: int) -> None:
        """Create the vector extension, the table and its indexes."""
        table = build_table(collection, dimensions)

        try:
            with self._track_operation("ensure_collection"):
                async with self._get_engine().begin() as conn:
                    await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                    await conn.run_sync(table.metadata.create_all)

        except (SQLAlchemyError, OSError) as e:
            raise VectorStoreError(
                f"Failed to create collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
            ) from e

        self._tables[collection] = table
        logger.info(f"Ensured collection: {collection}", extra={"dimensions": dimensions})

    async def health_check(self) -> bool:
        """Run ``SELECT 1`` against the database."""
        try:
            async with self._get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError, VectorStoreError) as e:
            logger.warning(f"pgvector health check failed: {e}")
            return False

    async def _execute_write(self, collection: str, statement, operation: str) -> int:
        """Execute a write statement in a transaction and return rows affected."""
        try:
            with self._track_operation(operation):
                async with self._get_engine().begin() as conn:
                    result = await conn.execute(statement)

        except (SQLAlchemyError, OSError) as e:
            raise VectorStoreError(
                f"Failed to {operation.replace('_', ' ')}: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
            ) from e

        return result.rowcount


def scope_conditions(
    table: Table,
    tenant_id: str,
    document_id: str | None = None,
    project_id: str | None = None,
    min_index: int | None = None,
) -> list:
    """Build the tenant/project/document conditions of a scoped write."""
    conditions = [table.c.tenant_id == tenant_id]
    if project_id:
        conditions.append(table.c.project_id == project_id)
    if document_id:
        conditions.append(table.c.document_id == document_id)
    if min_index is not None:
        conditions.append(table.c.payload["index"].astext.cast(Integer) >= min_index)
    return conditions


def build_upsert_statement(table: Table, records: list[VectorRecord]):
    """Build an ``INSERT ... ON CONFLICT (id) DO UPDATE`` for a batch."""
    rows = [
        {
            "id": record.id,
            "tenant_id": record.tenant_id,
            "project_id": record.project_id,
            "document_id": record.document_id,
            "chunk_id": record.chunk_id,
            "embedding": record.vector,
            "payload": build_payload(record),
            "is_deleted": record.is_deleted,
        }
        for record in records
    ]
    statement = pg_insert(table).values(rows)
    return statement.on_conflict_do_update(
        index_elements=[table.c.id],
        set_={
            name: statement.excluded[name]
            for name in (
                "tenant_id",
                "project_id",
                "document_id",
                "chunk_id",
                "embedding",
                "payload",
                "is_deleted",
            )
        },
    )


def build_search_statement(table: Table, params: SearchParams) -> Select:
    """Build the scoped cosine similarity query."""
    distance = table.c.embedding.cosine_distance(params.vector)
    score = (1 - distance).label("score")

    statement = select(
        table.c.id, table.c.payload, table.c.is_deleted, score
    ).where(
        table.c.tenant_id == params.tenant_id,
        table.c.project_id == params.project_id,
        table.c.is_deleted.is_(False),
    )

    if params.filter is not None and params.filter.document_ids:
        statement = statement.where(table.c.document_id.in_(params.filter.document_ids))

    if params.score_threshold is not None:
        statement = statement.where(1 - distance >= params.score_threshold)

    return statement.order_by(distance).limit(params.top_k)
