"""Vector store selection by backend tag."""

from ragcore.config import VectorStoreSettings, VectorStoreType, get_settings
from ragcore.exceptions import ConfigurationError
from ragcore.vectorstore.pgvector import PgVectorStore
from ragcore.vectorstore.service import QdrantVectorStore, VectorStore


def create_vector_store(settings: VectorStoreSettings | None = None) -> VectorStore:
    """Create the vector store selected by the backend tag.

    Args:
        settings: Vector store configuration. Uses defaults if not provided.

    Returns:
        Configured vector store.

    Raises:
        ConfigurationError: If the tag is unknown or its connection
            parameter is missing.
    """
    settings = settings or get_settings().vector_store

    if settings.type == VectorStoreType.QDRANT:
        if settings.qdrant is None or not settings.qdrant.url:
            raise ConfigurationError(
                "Qdrant url is required when type is 'qdrant'",
                details={"type": settings.type.value, "missing": "url"},
            )
        return QdrantVectorStore(settings.qdrant)

    if settings.type == VectorStoreType.PGVECTOR:
        if settings.pgvector is None or not settings.pgvector.connection_string:
            raise ConfigurationError(
                "pgvector connection_string is required when type is 'pgvector'",
                details={"type": settings.type.value, "missing": "connection_string"},
            )
        return PgVectorStore(settings.pgvector)

    raise ConfigurationError(
        f"Unknown vector store type: {settings.type}",
        details={"type": str(settings.type)},
    )
