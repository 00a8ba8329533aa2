"""Storage records and the interfaces the pipeline is written against."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Protocol
from uuid import UUID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OwnerScope:
    """Owner of a document: exactly one of a user or an organization."""

    user_id: UUID | None = None
    organization_id: UUID | None = None

    def __post_init__(self):
        if (self.user_id is None) == (self.organization_id is None):
            raise ValueError("A document is owned by exactly one of a user or an organization")

    @property
    def owner_id(self) -> UUID:
        return self.organization_id or self.user_id


@dataclass
class DocumentRecord:
    id: UUID
    user_id: UUID | None
    organization_id: UUID | None
    name: str
    original_filename: str
    media_type: str
    size_bytes: int
    storage_key: str
    is_ai_readable: bool = False
    is_year_plan: bool = False
    plan_start_date: date | None = None
    plan_years: int | None = None
    embedding_claim_token: UUID | None = None
    embedding_claimed_at: datetime | None = None
    embeddings_completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_visible_to(self, user_id: UUID, organization_id: UUID | None) -> bool:
        if self.user_id is not None:
            return self.user_id == user_id
        return organization_id is not None and self.organization_id == organization_id


@dataclass
class ChunkRecord:
    """One stored chunk: text, temporal address and optional vector."""

    id: UUID
    document_id: UUID
    chunk_index: int
    chunk_text: str
    year: int | None = None
    month: int | None = None
    week: int | None = None
    embedding: list[float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ScoredChunk:
    chunk: ChunkRecord
    similarity: float


class DocumentStore(Protocol):
    async def create(self, document: DocumentRecord) -> DocumentRecord:
        """Insert a document, demoting any year plan already in the same owner slot."""
        ...

    async def get(self, document_id: UUID) -> DocumentRecord | None: ...

    async def list_visible(
        self, user_id: UUID, organization_id: UUID | None
    ) -> list[DocumentRecord]: ...

    async def set_ai_readable(self, document_id: UUID, value: bool) -> DocumentRecord | None: ...

    async def claim_embedding(
        self, document_id: UUID, token: UUID, stale_before: datetime
    ) -> bool:
        """Atomically take the embedding claim; False when another run holds it."""
        ...

    async def complete_embedding(self, document_id: UUID, token: UUID) -> DocumentRecord | None:
        """Mark embeddings complete, set the AI-readable flag and release the claim."""
        ...

    async def release_embedding(self, document_id: UUID, token: UUID) -> None: ...

    async def delete(self, document_id: UUID) -> bool: ...

    async def find_year_plan(
        self, user_id: UUID | None, organization_id: UUID | None
    ) -> DocumentRecord | None:
        """The year plan in the user's personal slot, else the organization's slot."""
        ...


class ChunkStore(Protocol):
    async def insert_batch(self, records: list[ChunkRecord]) -> int:
        """Insert records whose id is not yet present; returns rows inserted."""
        ...

    async def delete_for_document(self, document_id: UUID) -> int: ...

    async def count_chunks(self, document_id: UUID) -> int: ...

    async def count_embedded(self, document_id: UUID) -> int: ...

    async def find_by_address(
        self,
        document_id: UUID,
        year: int | None,
        month: int | None,
        week: int | None,
    ) -> list[ChunkRecord]: ...

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
    ) -> list[ScoredChunk]: ...

    async def list_addressed(self, document_id: UUID, limit: int) -> list[ChunkRecord]: ...
