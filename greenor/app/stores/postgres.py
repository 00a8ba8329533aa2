"""PostgreSQL + pgvector implementations of the document and chunk stores."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Document, DocumentEmbedding
from app.stores.base import ChunkRecord, DocumentRecord, ScoredChunk, utcnow

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = (
    "id",
    "user_id",
    "organization_id",
    "name",
    "original_filename",
    "media_type",
    "size_bytes",
    "storage_key",
    "is_ai_readable",
    "is_year_plan",
    "plan_start_date",
    "plan_years",
    "embedding_claim_token",
    "embedding_claimed_at",
    "embeddings_completed_at",
    "created_at",
    "updated_at",
)


def to_document_record(row: Document) -> DocumentRecord:
    return DocumentRecord(**{name: getattr(row, name) for name in DOCUMENT_FIELDS})


def to_chunk_record(row: DocumentEmbedding) -> ChunkRecord:
    embedding = row.embedding
    return ChunkRecord(
        id=row.id,
        document_id=row.document_id,
        chunk_index=row.chunk_index,
        chunk_text=row.chunk_text,
        year=row.year,
        month=row.month,
        week=row.week,
        embedding=None if embedding is None else [float(v) for v in embedding],
        metadata=row.chunk_metadata or {},
        created_at=row.created_at,
    )


class SqlDocumentStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, document: DocumentRecord) -> DocumentRecord:
        if document.is_year_plan:
            # Keep one year plan per owner slot
            if document.organization_id is None:
                slot = and_(
                    Document.user_id == document.user_id, Document.organization_id.is_(None)
                )
            else:
                slot = and_(
                    Document.organization_id == document.organization_id,
                    Document.user_id.is_(None),
                )
            await self.session.execute(
                update(Document)
                .where(slot, Document.is_year_plan.is_(True))
                .values(is_year_plan=False, updated_at=utcnow())
            )

        row = Document(**{name: getattr(document, name) for name in DOCUMENT_FIELDS})
        self.session.add(row)
        await self.session.commit()
        return to_document_record(row)

    async def get(self, document_id: UUID) -> DocumentRecord | None:
        row = await self.session.get(Document, document_id, populate_existing=True)
        return to_document_record(row) if row else None

    async def list_visible(
        self, user_id: UUID, organization_id: UUID | None
    ) -> list[DocumentRecord]:
        visible = Document.user_id == user_id
        if organization_id is not None:
            visible = or_(
                visible,
                and_(Document.organization_id == organization_id, Document.user_id.is_(None)),
            )

        result = await self.session.execute(
            select(Document).where(visible).order_by(Document.created_at.desc())
        )
        return [to_document_record(row) for row in result.scalars().all()]

    async def set_ai_readable(self, document_id: UUID, value: bool) -> DocumentRecord | None:
        row = await self.session.get(Document, document_id)
        if not row:
            return None
        row.is_ai_readable = value
        row.updated_at = utcnow()
        await self.session.commit()
        return to_document_record(row)

    async def claim_embedding(
        self, document_id: UUID, token: UUID, stale_before: datetime
    ) -> bool:
        result = await self.session.execute(
            text("""
                UPDATE document
                SET embedding_claim_token = :token,
                    embedding_claimed_at = now()
                WHERE id = :document_id
                  AND (embedding_claim_token IS NULL OR embedding_claimed_at < :stale_before)
                RETURNING id
            """),
            {"token": token, "document_id": document_id, "stale_before": stale_before},
        )
        claimed = result.fetchone() is not None
        await self.session.commit()
        return claimed

    async def complete_embedding(self, document_id: UUID, token: UUID) -> DocumentRecord | None:
        now = utcnow()
        result = await self.session.execute(
            update(Document)
            .where(Document.id == document_id, Document.embedding_claim_token == token)
            .values(
                is_ai_readable=True,
                embeddings_completed_at=now,
                embedding_claim_token=None,
                embedding_claimed_at=None,
                updated_at=now,
            )
            .returning(Document.id)
        )
        completed = result.fetchone() is not None
        await self.session.commit()
        if not completed:
            logger.warning(f"Embedding claim for document {document_id} was lost before completion")
            return None
        return await self.get(document_id)

    async def release_embedding(self, document_id: UUID, token: UUID) -> None:
        await self.session.execute(
            update(Document)
            .where(Document.id == document_id, Document.embedding_claim_token == token)
            .values(embedding_claim_token=None, embedding_claimed_at=None)
        )
        await self.session.commit()

    async def delete(self, document_id: UUID) -> bool:
        result = await self.session.execute(delete(Document).where(Document.id == document_id))
        await self.session.commit()
        return result.rowcount > 0

    async def find_year_plan(
        self, user_id: UUID | None, organization_id: UUID | None
    ) -> DocumentRecord | None:
        if user_id is not None:
            result = await self.session.execute(
                select(Document).where(
                    Document.is_year_plan.is_(True),
                    Document.user_id == user_id,
                    Document.organization_id.is_(None),
                )
            )
            row = result.scalar_one_or_none()
            if row:
                return to_document_record(row)

        if organization_id is not None:
            result = await self.session.execute(
                select(Document).where(
                    Document.is_year_plan.is_(True),
                    Document.organization_id == organization_id,
                    Document.user_id.is_(None),
                )
            )
            row = result.scalar_one_or_none()
            if row:
                return to_document_record(row)

        return None


class PgVectorChunkStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert_batch(self, records: list[ChunkRecord]) -> int:
        if not records:
            return 0

        stmt = (
            pg_insert(DocumentEmbedding.__table__)
            .values(
                [
                    {
                        "id": r.id,
                        "document_id": r.document_id,
                        "chunk_index": r.chunk_index,
                        "chunk_text": r.chunk_text,
                        "year": r.year,
                        "month": r.month,
                        "week": r.week,
                        "embedding": r.embedding,
                        "metadata": r.metadata,
                        "created_at": r.created_at,
                    }
                    for r in records
                ]
            )
            .on_conflict_do_nothing(index_elements=["id"])
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount

    async def delete_for_document(self, document_id: UUID) -> int:
        result = await self.session.execute(
            delete(DocumentEmbedding).where(DocumentEmbedding.document_id == document_id)
        )
        await self.session.commit()
        return result.rowcount

    async def count_chunks(self, document_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(DocumentEmbedding.id)).where(
                DocumentEmbedding.document_id == document_id
            )
        )
        return result.scalar() or 0

    async def count_embedded(self, document_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(DocumentEmbedding.id)).where(
                DocumentEmbedding.document_id == document_id,
                DocumentEmbedding.embedding.isnot(None),
            )
        )
        return result.scalar() or 0

    async def find_by_address(
        self,
        document_id: UUID,
        year: int | None,
        month: int | None,
        week: int | None,
    ) -> list[ChunkRecord]:
        result = await self.session.execute(
            select(DocumentEmbedding)
            .where(
                DocumentEmbedding.document_id == document_id,
                DocumentEmbedding.year.is_not_distinct_from(year),
                DocumentEmbedding.month.is_not_distinct_from(month),
                DocumentEmbedding.week.is_not_distinct_from(week),
            )
            .order_by(
                DocumentEmbedding.year,
                DocumentEmbedding.month,
                DocumentEmbedding.week,
                DocumentEmbedding.chunk_index,
                DocumentEmbedding.created_at,
                DocumentEmbedding.id,
            )
        )
        return [to_chunk_record(row) for row in result.scalars().all()]

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
        distance = DocumentEmbedding.embedding.cosine_distance(vector)
        query = select(DocumentEmbedding, distance.label("distance")).where(
            DocumentEmbedding.document_id == document_id,
            DocumentEmbedding.embedding.isnot(None),
        )

        if year is not None:
            query = query.where(DocumentEmbedding.year == year)
        if month is not None:
            query = query.where(DocumentEmbedding.month == month)
        if week is not None:
            query = query.where(DocumentEmbedding.week == week)
        if min_similarity is not None:
            query = query.where(distance <= 1 - min_similarity)
        if exclude_ids:
            query = query.where(DocumentEmbedding.id.notin_(exclude_ids))

        query = query.order_by(distance, DocumentEmbedding.chunk_index).limit(limit)
        result = await self.session.execute(query)

        return [
            ScoredChunk(chunk=to_chunk_record(row), similarity=1 - float(dist))
            for row, dist in result.all()
        ]

    async def list_addressed(self, document_id: UUID, limit: int) -> list[ChunkRecord]:
        result = await self.session.execute(
            select(DocumentEmbedding)
            .where(
                DocumentEmbedding.document_id == document_id,
                or_(
                    DocumentEmbedding.year.isnot(None),
                    DocumentEmbedding.month.isnot(None),
                    DocumentEmbedding.week.isnot(None),
                ),
            )
            .order_by(DocumentEmbedding.chunk_index)
            .limit(limit)
        )
        return [to_chunk_record(row) for row in result.scalars().all()]
