"""Unit tests for address lookup, semantic search and hybrid search."""

from uuid import uuid4

import pytest
import pytest_asyncio

from app.services.retrieval import hybrid_search, search_by_address, semantic_search
from app.stores.base import ChunkRecord, OwnerScope
from app.stores.memory import InMemoryChunkStore, InMemoryDocumentStore
from conftest import FakeEmbeddingProvider, RecordingTracer, make_document

QUERY = "pilot launch"


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider(dimension=2, vectors={QUERY: [1.0, 0.0]})


@pytest_asyncio.fixture
async def plan(document_store: InMemoryDocumentStore, chunk_store: InMemoryChunkStore):
    document = await document_store.create(make_document(OwnerScope(user_id=uuid4())))

    def chunk(index, text, address, vector):
        year, month, week = address
        return ChunkRecord(
            id=uuid4(),
            document_id=document.id,
            chunk_index=index,
            chunk_text=text,
            year=year,
            month=month,
            week=week,
            embedding=vector,
        )

    await chunk_store.insert_batch(
        [
            chunk(0, "Year 1", (1, None, None), [0.0, 1.0]),
            chunk(1, "Launch the pilot", (1, 3, 2), [1.0, 0.0]),
            chunk(2, "Pilot budget sign-off", (1, 3, 2), None),
            chunk(3, "Pilot retrospective", (2, 3, 2), [0.9, 0.1]),
            chunk(4, "Hire a designer", (2, 4, 1), [0.2, 0.8]),
            chunk(5, "Unaddressed pilot notes", (None, None, None), [0.95, 0.05]),
        ]
    )
    return document


@pytest.mark.asyncio
async def test_lookup_returns_exact_address_in_chunk_order(plan, chunk_store) -> None:
    """Test that lookup returns every chunk at the address, vectors or not."""
    chunks = await search_by_address(chunk_store, plan.id, 1, 3, 2)

    assert [c.chunk_index for c in chunks] == [1, 2]


@pytest.mark.asyncio
async def test_lookup_is_idempotent(plan, chunk_store) -> None:
    """Test that repeated lookups return the same result."""
    first = await search_by_address(chunk_store, plan.id, 1, 3, 2)
    second = await search_by_address(chunk_store, plan.id, 1, 3, 2)

    assert [c.id for c in first] == [c.id for c in second]


@pytest.mark.asyncio
async def test_lookup_of_missing_address_is_empty(plan, chunk_store) -> None:
    """Test that an address with no chunks yields an empty list."""
    assert await search_by_address(chunk_store, plan.id, 3, 12, 6) == []


@pytest.mark.asyncio
async def test_lookup_null_address_matches_unaddressed_chunks(plan, chunk_store) -> None:
    """Test that the all-null address matches chunks without markers."""
    chunks = await search_by_address(chunk_store, plan.id, None, None, None)

    assert [c.chunk_index for c in chunks] == [5]


@pytest.mark.asyncio
async def test_semantic_search_excludes_null_vectors(plan, chunk_store, embedder) -> None:
    """Test that chunks without a vector are never semantic candidates."""
    matches = await semantic_search(chunk_store, embedder, plan.id, QUERY, k=10)

    indices = [m.chunk.chunk_index for m in matches]
    assert 2 not in indices
    assert indices[0] == 1
    assert matches[0].similarity == pytest.approx(1.0)
    assert all(m.match_type == "similar" for m in matches)


@pytest.mark.asyncio
async def test_semantic_search_applies_filters_and_threshold(plan, chunk_store, embedder) -> None:
    """Test that address filters and the similarity floor narrow the candidates."""
    matches = await semantic_search(
        chunk_store, embedder, plan.id, QUERY, month=3, week=2, min_similarity=0.5
    )

    assert [m.chunk.chunk_index for m in matches] == [1, 3]


@pytest.mark.asyncio
async def test_semantic_search_without_provider_is_empty(plan, chunk_store) -> None:
    """Test that an unembeddable query means no knowledge, not an error."""
    assert await semantic_search(chunk_store, None, plan.id, QUERY) == []


@pytest.mark.asyncio
async def test_hybrid_search_puts_exact_matches_first(plan, chunk_store, embedder) -> None:
    """Test that exact matches lead and similar chunks are not duplicated."""
    matches = await hybrid_search(chunk_store, embedder, plan.id, QUERY, year=1, month=3, week=2)

    assert [(m.chunk.chunk_index, m.match_type) for m in matches] == [
        (1, "exact"),
        (2, "exact"),
        (3, "similar"),
    ]
    assert matches[0].similarity is None


@pytest.mark.asyncio
async def test_retrieval_is_traced(plan, chunk_store, embedder) -> None:
    """Test that each retrieval call records one trace event with its results."""
    tracer = RecordingTracer()

    await search_by_address(chunk_store, plan.id, 1, 3, 2, tracer=tracer)
    await semantic_search(chunk_store, embedder, plan.id, QUERY, k=2, tracer=tracer)

    lookup = tracer.named("search_by_address")[0]
    assert lookup["chunks"] == 2
    assert lookup["error"] is None
    semantic = tracer.named("semantic_search")[0]
    assert [r["rank"] for r in semantic["results"]] == [0, 1]
    assert semantic["results"][0]["match_type"] == "similar"
