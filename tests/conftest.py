"""Shared fixtures: in-memory stores and fake providers."""

import asyncio
import os
from typing import Any
from uuid import UUID, uuid4

import pytest

# Settings are read at import time; run tests against in-memory stores
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""

from app.exceptions import StorageUnavailable
from app.services.embeddings import EmbeddingProvider
from app.services.pipeline import DocumentPipeline
from app.stores.base import ChunkRecord, DocumentRecord, OwnerScope
from app.stores.memory import InMemoryChunkStore, InMemoryDocumentStore

YEAR_PLAN_TEXT = """3-Year Plan

Year 1
Month 3
Week 2
Launch the pilot with two partner teams.

Week 3
Collect feedback from the pilot teams.

Year 2
Month 6
Week 1
Expand to the regional offices.
"""


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic embeddings. Texts listed in `failing` raise."""

    def __init__(
        self,
        dimension: int = 8,
        vectors: dict[str, list[float]] | None = None,
        failing: set[str] | None = None,
        delay: float = 0.0,
    ):
        self.model_name = "fake-embedding"
        self._dimension = dimension
        self.vectors = vectors or {}
        self.failing = failing or set()
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if text in self.failing:
                raise RuntimeError(f"provider rejected {text!r}")
            if text in self.vectors:
                return self.vectors[text]
            return [1.0] + [float((len(text) + i) % 7) for i in range(self._dimension - 1)]
        finally:
            self.in_flight -= 1


class FakeObjectStore:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_put = False
        self.fail_delete = False

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put:
            raise StorageUnavailable("object store is down")
        self.objects[key] = data

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageUnavailable(f"{key} not found")
        return self.objects[key]

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageUnavailable("object store is down")
        self.objects.pop(key, None)


class RecordingChunkStore(InMemoryChunkStore):
    """Chunk store that records batch sizes and can fail a given batch."""

    def __init__(self, documents: InMemoryDocumentStore | None = None):
        super().__init__(documents)
        self.batch_sizes: list[int] = []
        self.fail_on_batch: int | None = None

    async def insert_batch(self, records: list[ChunkRecord]) -> int:
        self.batch_sizes.append(len(records))
        if self.fail_on_batch is not None and len(self.batch_sizes) == self.fail_on_batch:
            raise ConnectionError("database connection lost")
        return await super().insert_batch(records)


class RecordingTracer:
    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def record(self, event: str, fields: dict[str, Any]) -> None:
        self.events.append((event, fields))

    def named(self, event: str) -> list[dict[str, Any]]:
        return [fields for name, fields in self.events if name == event]


def make_document(
    owner: OwnerScope,
    name: str = "notes.txt",
    storage_key: str | None = None,
    **fields,
) -> DocumentRecord:
    return DocumentRecord(
        id=uuid4(),
        user_id=owner.user_id,
        organization_id=owner.organization_id,
        name=name,
        original_filename=name,
        media_type="text/plain",
        size_bytes=100,
        storage_key=storage_key or f"{owner.owner_id}/{uuid4()}.txt",
        **fields,
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def organization_id() -> UUID:
    return uuid4()


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def chunk_store(document_store: InMemoryDocumentStore) -> RecordingChunkStore:
    return RecordingChunkStore(document_store)


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def tracer() -> RecordingTracer:
    return RecordingTracer()


@pytest.fixture
def pipeline(
    document_store: InMemoryDocumentStore,
    chunk_store: RecordingChunkStore,
    object_store: FakeObjectStore,
    embedder: FakeEmbeddingProvider,
    tracer: RecordingTracer,
) -> DocumentPipeline:
    return DocumentPipeline(document_store, chunk_store, object_store, embedder, tracer)
