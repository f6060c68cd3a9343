"""
Backfills embeddings for stored publication chunks.

Usage:
    python -m demakai.rag.indexer
"""

import asyncio
import logging
from typing import Optional

from ..document_store import DocumentStore
from ..models.records import Mode
from .embedder import EmbeddingService

logger = logging.getLogger(__name__)


async def index_missing_embeddings(
    document_store: DocumentStore,
    embedder: EmbeddingService,
    batch_size: int = 5,
    delay_between_batches: float = 0.5,
) -> int:
    """Embeds every chunk that has no vector yet and stores the result.

    Chunks whose embedding fails stay NULL and are picked up on the next run.

    Returns:
        Number of chunks that received an embedding.
    """
    missing = document_store.chunks_missing_embeddings()
    if not missing:
        logger.info("[INDEXER] All chunks already have embeddings")
        return 0

    logger.info(f"[INDEXER] Embedding {len(missing)} chunks")

    def _progress(done: int, total: int):
        if done % 50 == 0 or done == total:
            logger.info(f"[INDEXER] Progress: {done}/{total}")

    embeddings = await embedder.embed_batch(
        [text for _, text in missing],
        mode=Mode.PUBLICATION,
        batch_size=batch_size,
        delay_between_batches=delay_between_batches,
        on_progress=_progress,
    )

    indexed = 0
    for (chunk_id, _), embedding in zip(missing, embeddings):
        if embedding is None:
            continue
        document_store.set_chunk_embedding(chunk_id, embedding)
        indexed += 1

    logger.info(f"[INDEXER] Indexed {indexed}/{len(missing)} chunks")
    return indexed


async def main(db_path: Optional[str] = None):
    store = DocumentStore(db_path)
    store.init_db()
    await index_missing_embeddings(store, EmbeddingService())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
