#!/usr/bin/env python
"""Ingest one file, publish it and run a query against it.

Usage:
    python -m scripts.ingest_and_query --file docs/guide.md \
        --tenant acme --project handbook --query "How do I reset my password?"

Components are built from the environment (see ``ragcore.config``). The
script performs the visibility flip itself, standing in for the
transactional caller that normally owns it.
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

from ragcore.config import get_settings
from ragcore.documents import create_chunker, get_parser
from ragcore.documents.chunker import ChunkerConfig
from ragcore.embeddings import create_embedding_provider
from ragcore.exceptions import RAGCoreError
from ragcore.ingestion import IngestionInput, IngestionPipeline
from ragcore.logging_config import get_logger, setup_logging
from ragcore.resilience import CircuitBreakerEmbeddingProvider, RetryingEmbeddingProvider
from ragcore.retrieval import QueryRequest, RetrievalPipeline, TargetModel
from ragcore.vectorstore import Visibility, create_vector_store

logger = get_logger(__name__)


async def ingest_and_query(
    file_path: Path,
    tenant_id: str,
    project_id: str,
    query: str,
    document_id: str | None = None,
    top_k: int = 5,
    target_model: str = TargetModel.GENERIC.value,
) -> bool:
    """Ingest a file, make it visible and print the retrieved context.

    Args:
        file_path: File to ingest.
        tenant_id: Owning tenant.
        project_id: Owning project.
        query: Query to run after ingestion.
        document_id: Document ID. Defaults to the file name.
        top_k: Number of chunks to retrieve.
        target_model: Context format.

    Returns:
        True if the run succeeded, False otherwise.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)

    mime_type = mimetypes.guess_type(file_path.name)[0] or "text/plain"
    document_id = document_id or file_path.name
    collection = settings.collection_name

    embedding_provider = RetryingEmbeddingProvider(
        CircuitBreakerEmbeddingProvider(
            create_embedding_provider(settings.embedding),
            settings.circuit_breaker,
        ),
        settings.retry,
    )
    vector_store = create_vector_store(settings.vector_store)

    try:
        await vector_store.ensure_collection(collection, embedding_provider.dimensions)

        ingestion = IngestionPipeline(
            parser=get_parser(mime_type),
            chunker=create_chunker(settings.chunking.strategy),
            embedding_provider=embedding_provider,
            vector_store=vector_store,
            collection=collection,
            chunking=ChunkerConfig(
                max_tokens=settings.chunking.max_tokens,
                overlap=settings.chunking.overlap,
            ),
        )

        logger.info(f"Ingesting {file_path} as {mime_type}")
        result = await ingestion.ingest(
            IngestionInput(
                document_id=document_id,
                tenant_id=tenant_id,
                project_id=project_id,
                content=file_path.read_bytes(),
                mime_type=mime_type,
            )
        )

        await vector_store.set_visibility(
            collection,
            tenant_id,
            document_id,
            Visibility.VISIBLE,
            project_id=project_id,
        )

        retrieval = RetrievalPipeline(embedding_provider, vector_store, collection)
        answer = await retrieval.retrieve(
            QueryRequest(
                tenant_id=tenant_id,
                project_id=project_id,
                query=query,
                top_k=top_k,
                target_model=target_model,
            )
        )

    except RAGCoreError as e:
        logger.error(f"Run failed: {e.message}", extra={"code": e.code.value})
        return False

    finally:
        await embedding_provider.close()
        await vector_store.close()

    print("\n" + "=" * 60)
    print("INGESTION")
    print("=" * 60)
    print(f"Document: {result.document_id}")
    print(f"Chunks: {result.chunk_count}")
    print(f"Tokens Used: {result.tokens_used}")
    print(f"Dimensions: {result.embedding_dimensions}")
    print("\n" + "=" * 60)
    print("RETRIEVAL")
    print("=" * 60)
    for chunk in answer.chunks:
        print(f"  {chunk.score:.4f}  {chunk.document_id}  {chunk.chunk_id}")
    print(f"Latency: {answer.metadata.retrieval_time_ms:.1f} ms")
    print("=" * 60)
    print(answer.context)

    return True


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Ingest a file and query it",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--file", type=Path, required=True, help="File to ingest")
    parser.add_argument("--tenant", required=True, help="Tenant ID")
    parser.add_argument("--project", required=True, help="Project ID")
    parser.add_argument("--query", required=True, help="Query text")
    parser.add_argument(
        "--document-id",
        default=None,
        help="Document ID (defaults to the file name)",
    )
    parser.add_argument("--top-k", type=int, default=5, help="Chunks to retrieve")
    parser.add_argument(
        "--target-model",
        choices=[m.value for m in TargetModel],
        default=TargetModel.GENERIC.value,
        help="Context format",
    )

    args = parser.parse_args()

    succeeded = asyncio.run(
        ingest_and_query(
            file_path=args.file,
            tenant_id=args.tenant,
            project_id=args.project,
            query=args.query,
            document_id=args.document_id,
            top_k=args.top_k,
            target_model=args.target_model,
        )
    )

    sys.exit(0 if succeeded else 1)


if __name__ == "__main__":
    main()
