import logging
from uuid import UUID, uuid5

from app.config import settings
from app.exceptions import BatchWriteFailure
from app.services.embeddings import EmbeddingFailure
from app.services.extraction import ChunkSpec
from app.stores.base import ChunkRecord, ChunkStore

logger = logging.getLogger(__name__)


def chunk_record_id(claim_token: UUID, chunk_index: int) -> UUID:
    """Record id for a chunk, stable within one enable attempt."""
    return uuid5(claim_token, str(chunk_index))


def build_chunk_records(
    document_id: UUID,
    claim_token: UUID,
    chunks: list[ChunkSpec],
    vectors: dict[int, list[float] | EmbeddingFailure],
) -> list[ChunkRecord]:
    """Pair every chunk with its vector; chunks without one get a null vector."""
    records = []
    for chunk in chunks:
        vector = vectors.get(chunk.index)
        records.append(
            ChunkRecord(
                id=chunk_record_id(claim_token, chunk.index),
                document_id=document_id,
                chunk_index=chunk.index,
                chunk_text=chunk.text,
                year=chunk.year,
                month=chunk.month,
                week=chunk.week,
                embedding=vector if isinstance(vector, list) else None,
                metadata=chunk.metadata.model_dump(),
            )
        )
    return records


async def write_chunk_records(
    store: ChunkStore,
    records: list[ChunkRecord],
    batch_size: int | None = None,
) -> int:
    """
    Write records in fixed-size batches, one store write per batch.

    Batches run sequentially. A failing batch stops the run and raises
    BatchWriteFailure; batches already written stay committed.

    Returns:
        Number of batches written
    """
    batch_size = batch_size or settings.embedding_write_batch_size
    batches_written = 0
    records_written = 0

    for i in range(0, len(records), batch_size):
        batch = records[i : i + batch_size]
        batch_number = i // batch_size + 1
        try:
            inserted = await store.insert_batch(batch)
        except Exception as e:
            logger.exception(f"Failed to write batch {batch_number}: {e}")
            raise BatchWriteFailure(batch_number, batches_written, records_written) from e

        batches_written += 1
        records_written += len(batch)
        logger.info(f"Wrote batch {batch_number} ({inserted}/{len(batch)} new records)")

    return batches_written
