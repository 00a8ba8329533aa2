"""Unit tests for batched chunk record writes."""

from uuid import uuid4

import pytest

from app.exceptions import BatchWriteFailure
from app.services.embeddings import EmbeddingFailure
from app.services.extraction import ChunkSpec
from app.services.vector_writer import build_chunk_records, chunk_record_id, write_chunk_records
from app.stores.base import ChunkRecord
from conftest import RecordingChunkStore


def make_records(count: int) -> list[ChunkRecord]:
    document_id = uuid4()
    token = uuid4()
    return [
        ChunkRecord(
            id=chunk_record_id(token, i),
            document_id=document_id,
            chunk_index=i,
            chunk_text=f"chunk {i}",
            embedding=[1.0, 0.0],
        )
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_records_are_written_in_fixed_batches() -> None:
    """Test that 120 records go out as batches of 50, 50 and 20."""
    store = RecordingChunkStore()

    batches = await write_chunk_records(store, make_records(120), batch_size=50)

    assert batches == 3
    assert store.batch_sizes == [50, 50, 20]
    assert len(store.chunks) == 120


@pytest.mark.asyncio
async def test_failed_batch_stops_the_run() -> None:
    """Test that a failing batch raises and leaves earlier batches committed."""
    store = RecordingChunkStore()
    store.fail_on_batch = 2

    with pytest.raises(BatchWriteFailure) as exc_info:
        await write_chunk_records(store, make_records(120), batch_size=50)

    failure = exc_info.value
    assert failure.batch_number == 2
    assert failure.batches_written == 1
    assert failure.records_written == 50
    assert store.batch_sizes == [50, 50]
    assert len(store.chunks) == 50


@pytest.mark.asyncio
async def test_reissued_batch_is_a_no_op() -> None:
    """Test that writing the same records twice inserts nothing the second time."""
    store = RecordingChunkStore()
    records = make_records(10)

    await write_chunk_records(store, records, batch_size=50)
    inserted = await store.insert_batch(records)

    assert inserted == 0
    assert len(store.chunks) == 10


def test_chunk_record_ids_are_stable_per_attempt() -> None:
    """Test that ids repeat within an attempt and differ across attempts."""
    token = uuid4()

    assert chunk_record_id(token, 3) == chunk_record_id(token, 3)
    assert chunk_record_id(token, 3) != chunk_record_id(token, 4)
    assert chunk_record_id(token, 3) != chunk_record_id(uuid4(), 3)


def test_build_chunk_records_nulls_failed_vectors() -> None:
    """Test that every chunk becomes a record and failures get a null vector."""
    document_id = uuid4()
    chunks = [
        ChunkSpec(index=0, text="Year 1", year=1),
        ChunkSpec(index=1, text="Launch the pilot", year=1, month=3, week=2),
        ChunkSpec(index=2, text="Page 4"),
    ]
    vectors = {0: [0.1, 0.2], 1: EmbeddingFailure(1, "timed out")}

    records = build_chunk_records(document_id, uuid4(), chunks, vectors)

    assert [r.chunk_index for r in records] == [0, 1, 2]
    assert [r.embedding for r in records] == [[0.1, 0.2], None, None]
    assert (records[1].year, records[1].month, records[1].week) == (1, 3, 2)
    assert records[1].metadata["schema_version"] == 1
    assert all(r.document_id == document_id for r in records)
