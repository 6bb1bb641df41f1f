"""Text chunking strategies for document processing.

Every strategy uses the same token estimate (four characters per token,
rounded up) and the same overlap unit (``overlap * 4`` characters taken from
the tail of the previous chunk), so token budgets mean the same thing no
matter which strategy a project picks.
"""

import math
import re
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from ragcore.config import ChunkStrategy
from ragcore.exceptions import ConfigurationError
from ragcore.logging_config import get_logger

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")


def estimate_tokens(text: str) -> int:
    """Approximate the token count of a text (characters / 4, rounded up)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class ChunkMetadata(BaseModel):
    """Position and provenance of a chunk.

    Attributes:
        start_char: Start offset in the original text.
        end_char: End offset in the original text.
        page_number: Source page, when the parser knows it.
        section_title: Enclosing section heading, when known.
        overlap_tokens: Tokens carried over from the previous chunk.
    """

    start_char: int = Field(ge=0, description="Start position in original text")
    end_char: int = Field(ge=0, description="End position in original text")
    page_number: int | None = Field(default=None, description="Source page")
    section_title: str | None = Field(default=None, description="Section heading")
    overlap_tokens: int = Field(
        default=0,
        ge=0,
        description="Tokens carried over from the previous chunk",
    )


class Chunk(BaseModel):
    """A token-budgeted slice of a document's text.

    Attributes:
        content: The text content of the chunk.
        index: Zero-based position of this chunk in the sequence.
        token_count: Estimated token count of ``content``.
        metadata: Offsets and provenance.
    """

    content: str = Field(description="Text content of the chunk")
    index: int = Field(ge=0, description="Chunk index in sequence")
    token_count: int = Field(ge=0, description="Estimated token count")
    metadata: ChunkMetadata = Field(description="Chunk metadata")


class ChunkerConfig(BaseModel):
    """Token budget for a chunking run.

    Attributes:
        max_tokens: Target maximum tokens per chunk.
        overlap: Tokens copied from the previous chunk into the next.
    """

    max_tokens: int = Field(default=512, ge=1, description="Token budget per chunk")
    overlap: int = Field(default=50, ge=0, description="Overlap in tokens")

    @property
    def max_chars(self) -> int:
        """Character budget equivalent to ``max_tokens``."""
        return self.max_tokens * CHARS_PER_TOKEN

    @property
    def overlap_chars(self) -> int:
        """Character length of the overlap unit."""
        return self.overlap * CHARS_PER_TOKEN


class Chunker(ABC):
    """Abstract base class for text chunkers."""

    strategy: ChunkStrategy

    @abstractmethod
    def chunk(self, content: str, config: ChunkerConfig | None = None) -> list[Chunk]:
        """Split text into chunks.

        Deterministic for identical input. Empty or whitespace-only
        content yields no chunks.

        Args:
            content: The text to split.
            config: Token budget. Uses defaults if not provided.

        Returns:
            Chunks with contiguous indices starting at 0.
        """
        ...

    def _create_chunk(
        self,
        content: str,
        index: int,
        start_char: int,
        end_char: int,
        overlap_tokens: int = 0,
    ) -> Chunk:
        """Create a chunk with its token estimate and offsets."""
        return Chunk(
            content=content,
            index=index,
            token_count=estimate_tokens(content),
            metadata=ChunkMetadata(
                start_char=start_char,
                end_char=end_char,
                overlap_tokens=overlap_tokens,
            ),
        )


class FixedChunker(Chunker):
    """Slide a fixed-size character window across the text.

    The window is ``max_tokens * 4`` characters and steps back
    ``overlap * 4`` characters before each new window.
    """

    strategy = ChunkStrategy.FIXED

    def chunk(self, content: str, config: ChunkerConfig | None = None) -> list[Chunk]:
        """Split text into fixed windows."""
        config = config or ChunkerConfig()
        if not content.strip():
            return []

        chunks: list[Chunk] = []
        start = 0

        while start < len(content):
            end = min(start + config.max_chars, len(content))
            piece = content[start:end].strip()

            if piece:
                carried = config.overlap if start > 0 and config.overlap_chars else 0
                chunks.append(
                    self._create_chunk(piece, len(chunks), start, end, carried)
                )

            if end >= len(content):
                break

            next_start = end - config.overlap_chars
            if next_start <= start:
                # overlap >= max_tokens: the window cannot advance
                logger.warning(
                    "Fixed chunking stopped early: overlap does not leave room to advance",
                    extra={"max_tokens": config.max_tokens, "overlap": config.overlap},
                )
                break
            start = next_start

        return chunks


class RecursiveChunker(Chunker):
    """Split on a hierarchy of separators, largest first.

    Separator-delimited parts are merged greedily up to the budget. Any
    merged segment that is still over budget is split again with the next
    separator; the empty separator performs a hard character cut.
    """

    strategy = ChunkStrategy.RECURSIVE

    def __init__(self, separators: list[str] | None = None) -> None:
        """Initialize the recursive chunker.

        Args:
            separators: Separators in priority order. Defaults to paragraph,
                line, sentence, word and character boundaries.
        """
        self.separators = (
            list(separators) if separators is not None else list(DEFAULT_SEPARATORS)
        )

    def chunk(self, content: str, config: ChunkerConfig | None = None) -> list[Chunk]:
        """Split text recursively."""
        config = config or ChunkerConfig()
        pieces = self._split(content, config.max_tokens, 0)

        chunks: list[Chunk] = []
        offset = 0
        for piece in pieces:
            # Separators are dropped by the split, so locate each piece again
            found = content.find(piece, offset)
            start = found if found >= 0 else offset
            end = start + len(piece)
            chunks.append(self._create_chunk(piece, len(chunks), start, end))
            if found >= 0:
                offset = end

        return chunks

    def _split(self, text: str, max_tokens: int, level: int) -> list[str]:
        stripped = text.strip()
        if not stripped:
            return []
        if estimate_tokens(stripped) <= max_tokens:
            return [stripped]

        if level >= len(self.separators) or self.separators[level] == "":
            return _hard_cut(stripped, max_tokens * CHARS_PER_TOKEN)

        separator = self.separators[level]
        pieces: list[str] = []
        current = ""

        for part in stripped.split(separator):
            candidate = f"{current}{separator}{part}" if current else part
            if current and estimate_tokens(candidate) > max_tokens:
                pieces.extend(self._flush(current, max_tokens, level))
                current = part
            else:
                current = candidate

        pieces.extend(self._flush(current, max_tokens, level))
        return pieces

    def _flush(self, segment: str, max_tokens: int, level: int) -> list[str]:
        segment = segment.strip()
        if not segment:
            return []
        if estimate_tokens(segment) <= max_tokens:
            return [segment]
        return self._split(segment, max_tokens, level + 1)


class _BoundaryChunker(Chunker):
    """Accumulate boundary-delimited units until the budget is reached.

    On each flush the tail of the finished chunk (the overlap unit) is
    carried into the next one.
    """

    boundary: re.Pattern[str]
    joiner: str

    def chunk(self, content: str, config: ChunkerConfig | None = None) -> list[Chunk]:
        config = config or ChunkerConfig()
        units = _split_spans(content, self.boundary)

        chunks: list[Chunk] = []
        current = ""
        current_start = 0
        current_end = 0
        carried = 0

        for unit, unit_start in units:
            candidate = f"{current}{self.joiner}{unit}" if current else unit

            if current and estimate_tokens(candidate) > config.max_tokens:
                chunks.append(
                    self._create_chunk(
                        current, len(chunks), current_start, current_end, carried
                    )
                )

                # Shrink the overlap so tail + unit stays within the budget
                room = min(config.overlap_chars, config.max_chars - len(self.joiner) - len(unit))
                tail = current[-room:].lstrip() if room > 0 else ""
                if tail:
                    current = f"{tail}{self.joiner}{unit}"
                    current_start = max(0, current_end - len(tail))
                    carried = estimate_tokens(tail)
                else:
                    current = unit
                    current_start = unit_start
                    carried = 0
            else:
                if not current:
                    current_start = unit_start
                current = candidate

            current_end = unit_start + len(unit)

        if current:
            chunks.append(
                self._create_chunk(current, len(chunks), current_start, current_end, carried)
            )

        return chunks


class SentenceChunker(_BoundaryChunker):
    """Group sentences up to the token budget.

    A sentence boundary is terminal punctuation followed by whitespace
    and a capital letter.
    """

    strategy = ChunkStrategy.SENTENCE
    boundary = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
    joiner = " "


class SemanticChunker(_BoundaryChunker):
    """Group paragraphs (blank-line separated blocks) up to the token budget."""

    strategy = ChunkStrategy.SEMANTIC
    boundary = re.compile(r"\n\s*\n")
    joiner = "\n\n"


def _split_spans(text: str, pattern: re.Pattern[str]) -> list[tuple[str, int]]:
    """Split text on a pattern, keeping each trimmed piece and its offset."""
    bounds: list[tuple[int, int]] = []
    position = 0
    for match in pattern.finditer(text):
        bounds.append((position, match.start()))
        position = match.end()
    bounds.append((position, len(text)))

    spans: list[tuple[str, int]] = []
    for start, end in bounds:
        piece = text[start:end]
        stripped = piece.strip()
        if stripped:
            spans.append((stripped, start + len(piece) - len(piece.lstrip())))
    return spans


def _hard_cut(text: str, max_chars: int) -> list[str]:
    pieces = (text[i : i + max_chars].strip() for i in range(0, len(text), max_chars))
    return [piece for piece in pieces if piece]


_CHUNKERS: dict[ChunkStrategy, type[Chunker]] = {
    ChunkStrategy.FIXED: FixedChunker,
    ChunkStrategy.RECURSIVE: RecursiveChunker,
    ChunkStrategy.SENTENCE: SentenceChunker,
    ChunkStrategy.SEMANTIC: SemanticChunker,
}


def create_chunker(strategy: ChunkStrategy | str) -> Chunker:
    """Create the chunker registered for a strategy tag.

    Args:
        strategy: Strategy tag or its string value.

    Returns:
        A new chunker instance.

    Raises:
        ConfigurationError: If the strategy is unknown.
    """
    try:
        tag = ChunkStrategy(strategy)
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown chunking strategy: {strategy}",
            details={
                "strategy": str(strategy),
                "available": [s.value for s in ChunkStrategy],
            },
        ) from e

    return _CHUNKERS[tag]()
