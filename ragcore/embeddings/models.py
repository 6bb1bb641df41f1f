"""Embedding data models."""

from pydantic import BaseModel, Field


class EmbeddingResult(BaseModel):
    """Result of an embedding operation.

    Attributes:
        embeddings: One vector per input text, in input order.
        model: The model used to generate the embeddings.
        tokens_used: Tokens billed or counted by the provider.
        dimensions: Length of every vector.
    """

    embeddings: list[list[float]] = Field(description="Embedding vectors")
    model: str = Field(description="Model used for embedding")
    tokens_used: int = Field(default=0, ge=0, description="Tokens consumed")
    dimensions: int = Field(ge=1, description="Vector dimensions")

    def model_post_init(self, __context: object) -> None:
        """Validate every vector matches the declared dimensions."""
        for i, embedding in enumerate(self.embeddings):
            if len(embedding) != self.dimensions:
                raise ValueError(
                    f"dimensions ({self.dimensions}) does not match "
                    f"length of embedding {i} ({len(embedding)})"
                )
