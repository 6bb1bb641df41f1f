"""Document processing module."""

from ragcore.documents.chunker import (
    Chunk,
    Chunker,
    ChunkerConfig,
    ChunkMetadata,
    FixedChunker,
    RecursiveChunker,
    SemanticChunker,
    SentenceChunker,
    create_chunker,
    estimate_tokens,
)
from ragcore.documents.models import ParsedDocument
from ragcore.documents.parser import DocumentParser, TextParser, get_parser

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "Chunker",
    "ChunkerConfig",
    "DocumentParser",
    "FixedChunker",
    "ParsedDocument",
    "RecursiveChunker",
    "SemanticChunker",
    "SentenceChunker",
    "TextParser",
    "create_chunker",
    "estimate_tokens",
    "get_parser",
]
