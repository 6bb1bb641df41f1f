"""Document data models."""

from typing import Any

from pydantic import BaseModel, Field


class ParsedDocument(BaseModel):
    """Text extracted from a raw document by a parser.

    Attributes:
        text: Extracted plain text.
        page_count: Number of pages (estimated for flat text formats).
        metadata: Parser-specific metadata.
    """

    text: str = Field(description="Extracted plain text")
    page_count: int = Field(default=1, ge=0, description="Number of pages")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Parser metadata",
    )
