"""Integration tests for the PostgreSQL + pgvector stores.

Run against a scratch schema in the database named by DATABASE_URL; skipped
when it is not set.
"""

import os
from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.config import settings
from app.db import async_database_url
from app.models import AppUser, Base, Organization
from app.stores.base import ChunkRecord, OwnerScope, utcnow
from app.stores.postgres import PgVectorChunkStore, SqlDocumentStore
from conftest import make_document

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif("DATABASE_URL" not in os.environ, reason="DATABASE_URL is not set"),
]


def unit_vector(position: int) -> list[float]:
    vector = [0.0] * settings.embedding_dimension
    vector[position] = 1.0
    return vector


@pytest_asyncio.fixture
async def session():
    """Session bound to a throwaway schema holding the full table set."""
    schema = f"test_{uuid4().hex[:12]}"
    engine = create_async_engine(
        async_database_url(os.environ["DATABASE_URL"]),
        connect_args={"server_settings": {"search_path": f"{schema},public"}},
    )
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.execute(text(f'CREATE SCHEMA "{schema}"'))
        await conn.run_sync(Base.metadata.create_all)

    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        yield session

    async with engine.begin() as conn:
        await conn.execute(text(f'DROP SCHEMA "{schema}" CASCADE'))
    await engine.dispose()


@pytest_asyncio.fixture
async def owner(session) -> OwnerScope:
    user = AppUser(id=uuid4(), email=f"{uuid4().hex}@example.org")
    session.add(user)
    await session.commit()
    return OwnerScope(user_id=user.id)


@pytest.mark.asyncio
async def test_claim_is_exclusive_until_stale(session, owner) -> None:
    """Test that only one token holds the claim until it goes stale."""
    documents = SqlDocumentStore(session)
    document = await documents.create(make_document(owner))
    stale_before = utcnow() - timedelta(minutes=15)
    first, second = uuid4(), uuid4()

    assert await documents.claim_embedding(document.id, first, stale_before) is True
    assert await documents.claim_embedding(document.id, second, stale_before) is False
    assert await documents.complete_embedding(document.id, second) is None

    later = utcnow() + timedelta(minutes=1)
    assert await documents.claim_embedding(document.id, second, later) is True
    assert await documents.complete_embedding(document.id, first) is None

    completed = await documents.complete_embedding(document.id, second)
    assert completed.is_ai_readable is True
    assert completed.embedding_claim_token is None
    assert completed.embeddings_completed_at is not None


@pytest.mark.asyncio
async def test_reinserting_a_batch_adds_no_rows(session, owner) -> None:
    """Test that a re-issued batch with the same ids is ignored."""
    document = await SqlDocumentStore(session).create(make_document(owner))
    chunks = PgVectorChunkStore(session)
    records = [
        ChunkRecord(uuid4(), document.id, i, f"chunk {i}", embedding=unit_vector(i))
        for i in range(3)
    ]

    await chunks.insert_batch(records)
    await chunks.insert_batch(records)

    assert await chunks.count_chunks(document.id) == 3


@pytest.mark.asyncio
async def test_null_address_lookup_and_ordering(session, owner) -> None:
    """Test exact lookup treats a null address as a value and orders by index."""
    document = await SqlDocumentStore(session).create(make_document(owner))
    chunks = PgVectorChunkStore(session)
    await chunks.insert_batch(
        [
            ChunkRecord(uuid4(), document.id, 3, "Launch", year=1, month=3, week=2),
            ChunkRecord(uuid4(), document.id, 1, "Preface"),
            ChunkRecord(uuid4(), document.id, 2, "Week 2", year=1, month=3, week=2),
            ChunkRecord(uuid4(), document.id, 0, "Title"),
        ]
    )

    unaddressed = await chunks.find_by_address(document.id, None, None, None)
    week = await chunks.find_by_address(document.id, 1, 3, 2)

    assert [c.chunk_text for c in unaddressed] == ["Title", "Preface"]
    assert [c.chunk_text for c in week] == ["Week 2", "Launch"]
    assert await chunks.find_by_address(document.id, 1, 3, None) == []


@pytest.mark.asyncio
async def test_nearest_skips_chunks_without_vectors(session, owner) -> None:
    """Test that chunks stored without a vector never reach semantic search."""
    document = await SqlDocumentStore(session).create(make_document(owner))
    chunks = PgVectorChunkStore(session)
    await chunks.insert_batch(
        [
            ChunkRecord(uuid4(), document.id, 0, "close", embedding=unit_vector(0)),
            ChunkRecord(uuid4(), document.id, 1, "---"),
            ChunkRecord(uuid4(), document.id, 2, "far", embedding=unit_vector(1)),
        ]
    )

    results = await chunks.nearest(document.id, unit_vector(0), limit=10)

    assert [r.chunk.chunk_text for r in results] == ["close", "far"]
    assert results[0].similarity == pytest.approx(1.0)
    assert await chunks.count_embedded(document.id) == 2


@pytest.mark.asyncio
async def test_new_year_plan_demotes_previous_in_same_slot(session, owner) -> None:
    """Test that the partial unique indexes allow one year plan per owner slot."""
    documents = SqlDocumentStore(session)
    organization = Organization(id=uuid4(), name="Greenor")
    session.add(organization)
    await session.commit()
    org_owner = OwnerScope(organization_id=organization.id)

    first = await documents.create(make_document(owner, "plan-2025.txt", is_year_plan=True))
    org_plan = await documents.create(make_document(org_owner, "team.txt", is_year_plan=True))
    second = await documents.create(make_document(owner, "plan-2026.txt", is_year_plan=True))

    assert (await documents.get(first.id)).is_year_plan is False
    assert (await documents.get(org_plan.id)).is_year_plan is True
    assert (await documents.find_year_plan(owner.user_id, organization.id)).id == second.id
    assert (await documents.find_year_plan(None, organization.id)).id == org_plan.id


@pytest.mark.asyncio
async def test_delete_cascades_to_chunks(session, owner) -> None:
    """Test that deleting a document removes its chunk rows."""
    documents = SqlDocumentStore(session)
    document = await documents.create(make_document(owner))
    chunks = PgVectorChunkStore(session)
    await chunks.insert_batch([ChunkRecord(uuid4(), document.id, 0, "only chunk")])

    assert await documents.delete(document.id) is True
    assert await chunks.count_chunks(document.id) == 0
