"""Document ingestion module."""

from ragcore.ingestion.models import IngestionHooks, IngestionInput, IngestionResult
from ragcore.ingestion.pipeline import IngestionPipeline, build_records

__all__ = [
    "IngestionHooks",
    "IngestionInput",
    "IngestionPipeline",
    "IngestionResult",
    "build_records",
]
