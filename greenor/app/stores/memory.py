"""In-memory stores for running without PostgreSQL and for tests."""

import math
from datetime import datetime
from uuid import UUID

from app.stores.base import ChunkRecord, DocumentRecord, ScoredChunk, utcnow


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError("Vectors must have the same dimension")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryDocumentStore:
    def __init__(self):
        self.documents: dict[UUID, DocumentRecord] = {}
        self.chunk_stores: list["InMemoryChunkStore"] = []

    def _same_slot(self, a: DocumentRecord, b: DocumentRecord) -> bool:
        if a.organization_id is None and b.organization_id is None:
            return a.user_id == b.user_id
        if a.user_id is None and b.user_id is None:
            return a.organization_id == b.organization_id
        return False

    async def create(self, document: DocumentRecord) -> DocumentRecord:
        if document.is_year_plan:
            for existing in self.documents.values():
                if existing.is_year_plan and self._same_slot(existing, document):
                    existing.is_year_plan = False
                    existing.updated_at = utcnow()
        self.documents[document.id] = document
        return document

    async def get(self, document_id: UUID) -> DocumentRecord | None:
        return self.documents.get(document_id)

    async def list_visible(
        self, user_id: UUID, organization_id: UUID | None
    ) -> list[DocumentRecord]:
        visible = [d for d in self.documents.values() if d.is_visible_to(user_id, organization_id)]
        return sorted(visible, key=lambda d: d.created_at, reverse=True)

    async def set_ai_readable(self, document_id: UUID, value: bool) -> DocumentRecord | None:
        document = self.documents.get(document_id)
        if document:
            document.is_ai_readable = value
            document.updated_at = utcnow()
        return document

    async def claim_embedding(
        self, document_id: UUID, token: UUID, stale_before: datetime
    ) -> bool:
        document = self.documents.get(document_id)
        if document is None:
            return False
        if document.embedding_claim_token is not None and (
            document.embedding_claimed_at is None or document.embedding_claimed_at >= stale_before
        ):
            return False
        document.embedding_claim_token = token
        document.embedding_claimed_at = utcnow()
        return True

    async def complete_embedding(self, document_id: UUID, token: UUID) -> DocumentRecord | None:
        document = self.documents.get(document_id)
        if document is None or document.embedding_claim_token != token:
            return None
        document.is_ai_readable = True
        document.embeddings_completed_at = utcnow()
        document.embedding_claim_token = None
        document.embedding_claimed_at = None
        document.updated_at = utcnow()
        return document

    async def release_embedding(self, document_id: UUID, token: UUID) -> None:
        document = self.documents.get(document_id)
        if document is not None and document.embedding_claim_token == token:
            document.embedding_claim_token = None
            document.embedding_claimed_at = None

    async def delete(self, document_id: UUID) -> bool:
        if self.documents.pop(document_id, None) is None:
            return False
        for chunks in self.chunk_stores:
            await chunks.delete_for_document(document_id)
        return True

    async def find_year_plan(
        self, user_id: UUID | None, organization_id: UUID | None
    ) -> DocumentRecord | None:
        plans = [d for d in self.documents.values() if d.is_year_plan]
        if user_id is not None:
            for plan in plans:
                if plan.user_id == user_id and plan.organization_id is None:
                    return plan
        if organization_id is not None:
            for plan in plans:
                if plan.organization_id == organization_id and plan.user_id is None:
                    return plan
        return None


class InMemoryChunkStore:
    def __init__(self, documents: InMemoryDocumentStore | None = None):
        self.chunks: dict[UUID, ChunkRecord] = {}
        # Mirrors ON DELETE CASCADE when linked to a document store
        self.documents = documents
        if documents is not None:
            documents.chunk_stores.append(self)

    def _for_document(self, document_id: UUID) -> list[ChunkRecord]:
        if self.documents is not None and document_id not in self.documents.documents:
            return []
        return [c for c in self.chunks.values() if c.document_id == document_id]

    async def insert_batch(self, records: list[ChunkRecord]) -> int:
        inserted = 0
        for record in records:
            if record.id not in self.chunks:
                self.chunks[record.id] = record
                inserted += 1
        return inserted

    async def delete_for_document(self, document_id: UUID) -> int:
        doomed = [c.id for c in self.chunks.values() if c.document_id == document_id]
        for chunk_id in doomed:
            del self.chunks[chunk_id]
        return len(doomed)

    async def count_chunks(self, document_id: UUID) -> int:
        return len(self._for_document(document_id))

    async def count_embedded(self, document_id: UUID) -> int:
        return sum(1 for c in self._for_document(document_id) if c.embedding is not None)

    async def find_by_address(
        self,
        document_id: UUID,
        year: int | None,
        month: int | None,
        week: int | None,
    ) -> list[ChunkRecord]:
        matches = [
            c
            for c in self._for_document(document_id)
            if (c.year, c.month, c.week) == (year, month, week)
        ]
        return sorted(matches, key=lambda c: (c.chunk_index, c.created_at, str(c.id)))

    async def nearest(
        self,
        document_id: UUID,
        vector: list[float],
        limit: int,
        year: int | None = None,
        month: int | None = None,
        week: int | None = None,
        min_similarity: float | None = None,
        exclude_ids: set[UUID] | None = None,
    ) -> list[ScoredChunk]:
        scored = []
        for chunk in self._for_document(document_id):
            if chunk.embedding is None:
                continue
            if exclude_ids and chunk.id in exclude_ids:
                continue
            if year is not None and chunk.year != year:
                continue
            if month is not None and chunk.month != month:
                continue
            if week is not None and chunk.week != week:
                continue
            similarity = cosine_similarity(vector, chunk.embedding)
            if min_similarity is not None and similarity < min_similarity:
                continue
            scored.append(ScoredChunk(chunk=chunk, similarity=similarity))

        scored.sort(key=lambda s: (-s.similarity, s.chunk.chunk_index))
        return scored[:limit]

    async def list_addressed(self, document_id: UUID, limit: int) -> list[ChunkRecord]:
        addressed = [
            c
            for c in self._for_document(document_id)
            if c.year is not None or c.month is not None or c.week is not None
        ]
        addressed.sort(key=lambda c: c.chunk_index)
        return addressed[:limit]
