"""Context assembly for different model families.

- claude: XML document tags
- gpt: markdown sections
- gemini, generic and anything else: numbered plain sections
"""

from ragcore.retrieval.models import ScoredChunk, TargetModel


def assemble_context(
    chunks: list[ScoredChunk],
    target_model: TargetModel | str = TargetModel.GENERIC,
) -> str:
    """Format retrieved chunks into one context string.

    Sources are numbered by position in ``chunks``, starting at 1.

    Args:
        chunks: Chunks in the order they should appear.
        target_model: Model family to format for.

    Returns:
        The context string, or an empty string for no chunks.
    """
    if not chunks:
        return ""

    target = target_model.value if isinstance(target_model, TargetModel) else target_model

    if target == TargetModel.CLAUDE.value:
        return _assemble_xml(chunks)
    if target == TargetModel.GPT.value:
        return _assemble_markdown(chunks)
    return _assemble_plain(chunks)


def _assemble_xml(chunks: list[ScoredChunk]) -> str:
    parts = [
        f'<document index="{i}" source="{chunk.document_id}">\n{chunk.content}\n</document>'
        for i, chunk in enumerate(chunks, start=1)
    ]
    return "<context>\n" + "\n".join(parts) + "\n</context>"


def _assemble_markdown(chunks: list[ScoredChunk]) -> str:
    parts = [
        f"### Source {i} ({chunk.document_id})\n\n{chunk.content}"
        for i, chunk in enumerate(chunks, start=1)
    ]
    return "## Retrieved Context\n\n" + "\n\n---\n\n".join(parts)


def _assemble_plain(chunks: list[ScoredChunk]) -> str:
    parts = [
        f"[{i}] (Source: {chunk.document_id})\n{chunk.content}"
        for i, chunk in enumerate(chunks, start=1)
    ]
    return "\n\n".join(parts)
