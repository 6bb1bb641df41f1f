"""Application exception hierarchy.

All custom exceptions inherit from RAGCoreError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "RAG-1000"
    CONFIGURATION_ERROR = "RAG-1001"
    VALIDATION_ERROR = "RAG-1002"
    ISOLATION_VIOLATION = "RAG-1003"

    # Document processing errors (2xxx)
    DOCUMENT_PARSE_ERROR = "RAG-2001"
    UNSUPPORTED_MIME_TYPE = "RAG-2002"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "RAG-3000"
    EMBEDDING_DIMENSION_MISMATCH = "RAG-3001"
    EMBEDDING_INCOMPLETE = "RAG-3002"
    EMBEDDING_CIRCUIT_OPEN = "RAG-3003"

    # Vector store errors (4xxx)
    VECTOR_STORE_ERROR = "RAG-4000"
    COLLECTION_NOT_FOUND = "RAG-4001"

    # Retrieval errors (6xxx)
    RETRIEVAL_ERROR = "RAG-6000"
    QUERY_EMBEDDING_MISSING = "RAG-6001"


class RAGCoreError(Exception):
    """Base exception for all ragcore errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(RAGCoreError):
    """Unknown strategy/provider/store tag or missing configuration block.

    Raised at construction time and never retried.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(RAGCoreError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class IsolationViolationError(RAGCoreError):
    """A tenant- or project-scoped operation was called without its scope."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.ISOLATION_VIOLATION, details)


class DocumentError(RAGCoreError):
    """Document parsing error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DOCUMENT_PARSE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class TransportError(RAGCoreError):
    """Network or protocol failure talking to a provider or store.

    Attributes:
        status_code: HTTP status returned by the remote side, if any.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, code, details)


class EmbeddingError(TransportError):
    """Embedding provider error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code, details, status_code)


class VectorStoreError(TransportError):
    """Vector store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VECTOR_STORE_ERROR,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code, details, status_code)


class RetrievalError(RAGCoreError):
    """Retrieval operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RETRIEVAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
