"""Document parser interface and the built-in text parser.

Binary formats (PDF, DOCX) are handled by an external extraction service
that implements the same ``DocumentParser`` interface.
"""

import math
import re
from abc import ABC, abstractmethod

from ragcore.documents.models import ParsedDocument
from ragcore.exceptions import DocumentError, ErrorCode

# Rough page size for flat text formats
CHARS_PER_PAGE = 3000

_SCRIPT_PATTERN = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_PATTERN = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


class DocumentParser(ABC):
    """Abstract base class for document parsers."""

    supported_mime_types: frozenset[str] = frozenset()

    @abstractmethod
    async def parse(self, content: bytes | str, mime_type: str) -> ParsedDocument:
        """Extract text from raw document content.

        Args:
            content: Raw bytes or already-decoded text.
            mime_type: MIME type of the content.

        Returns:
            Parsed document.

        Raises:
            DocumentError: If the MIME type is unsupported or parsing fails.
        """
        ...

    def supports(self, mime_type: str) -> bool:
        """Check if this parser handles the given MIME type."""
        return mime_type in self.supported_mime_types


class TextParser(DocumentParser):
    """Parser for text-based formats.

    Decodes bytes as UTF-8 and strips markup from HTML.
    """

    supported_mime_types = frozenset(
        {
            "text/plain",
            "text/markdown",
            "text/csv",
            "text/html",
            "application/json",
            "application/xml",
        }
    )

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    async def parse(self, content: bytes | str, mime_type: str) -> ParsedDocument:
        """Parse text content."""
        if not self.supports(mime_type):
            raise DocumentError(
                f"Unsupported MIME type for text parser: {mime_type}",
                code=ErrorCode.UNSUPPORTED_MIME_TYPE,
                details={
                    "mime_type": mime_type,
                    "supported": sorted(self.supported_mime_types),
                },
            )

        if isinstance(content, bytes):
            try:
                text = content.decode(self.encoding)
            except UnicodeDecodeError as e:
                raise DocumentError(
                    f"Failed to decode document as {self.encoding}",
                    code=ErrorCode.DOCUMENT_PARSE_ERROR,
                    details={"encoding": self.encoding, "error": str(e)},
                ) from e
        else:
            text = content

        if mime_type == "text/html":
            text = strip_html(text)

        return ParsedDocument(
            text=text,
            page_count=max(1, math.ceil(len(text) / CHARS_PER_PAGE)),
            metadata={
                "mime_type": mime_type,
                "char_count": len(text),
                "word_count": len(text.split()),
            },
        )


def strip_html(html: str) -> str:
    """Remove scripts, styles and tags, collapsing whitespace."""
    text = _SCRIPT_PATTERN.sub("", html)
    text = _STYLE_PATTERN.sub("", text)
    text = _TAG_PATTERN.sub(" ", text)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


_PARSERS: tuple[DocumentParser, ...] = (TextParser(),)


def get_parser(mime_type: str) -> DocumentParser:
    """Select the registered parser for a MIME type.

    Raises:
        DocumentError: If no parser supports the MIME type.
    """
    for parser in _PARSERS:
        if parser.supports(mime_type):
            return parser

    raise DocumentError(
        f"No parser available for MIME type: {mime_type}",
        code=ErrorCode.UNSUPPORTED_MIME_TYPE,
        details={"mime_type": mime_type},
    )
