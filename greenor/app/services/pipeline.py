"""Document lifecycle: upload, enable/disable AI readability, delete."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID, uuid4

from app.config import settings
from app.exceptions import (
    BatchWriteFailure,
    DocumentNotFound,
    EmbeddingInProgress,
    StorageUnavailable,
    UploadTooLarge,
)
from app.services.embeddings import EmbeddingFailure, EmbeddingProvider, embed_chunks
from app.services.extraction import ChunkSpec, parse_document, resolve_media_type
from app.services.object_storage import ObjectStore, build_storage_key
from app.services.observability import NullTracer, Tracer
from app.services.text_cleaner import clean_text_for_embedding
from app.services.vector_writer import build_chunk_records, write_chunk_records
from app.stores.base import ChunkStore, DocumentRecord, DocumentStore, OwnerScope, utcnow

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    document: DocumentRecord
    chunk_count: int
    embedding_count: int = 0


@dataclass
class EnableResult:
    is_ai_readable: bool
    embedding_count: int
    chunk_count: int
    regenerated: bool


class DocumentPipeline:
    """Runs the document pipeline against injected stores and providers."""

    def __init__(
        self,
        documents: DocumentStore,
        chunks: ChunkStore,
        objects: ObjectStore,
        embedder: EmbeddingProvider | None,
        tracer: Tracer | None = None,
    ):
        self.documents = documents
        self.chunks = chunks
        self.objects = objects
        self.embedder = embedder
        self.tracer = tracer or NullTracer()

    async def upload(
        self,
        data: bytes,
        filename: str,
        media_type: str | None,
        owner: OwnerScope,
        display_name: str | None = None,
    ) -> UploadResult:
        """
        Parse, store and record an uploaded document.

        Parsing happens before anything is written, so a ParseError leaves no
        trace. Year plans are made AI-readable straight away.
        """
        if len(data) > settings.max_upload_bytes:
            raise UploadTooLarge(len(data), settings.max_upload_bytes)

        resolved_type = resolve_media_type(media_type, filename)
        parsed = parse_document(data, resolved_type, filename)

        storage_key = build_storage_key(owner, filename)
        await self.objects.put(storage_key, data, resolved_type)

        document = DocumentRecord(
            id=uuid4(),
            user_id=owner.user_id,
            organization_id=owner.organization_id,
            name=display_name or filename,
            original_filename=filename,
            media_type=resolved_type,
            size_bytes=len(data),
            storage_key=storage_key,
            is_year_plan=parsed.is_year_plan,
        )
        if parsed.is_year_plan:
            document.plan_start_date = date(date.today().year, 1, 1)
            document.plan_years = settings.plan_years

        try:
            document = await self.documents.create(document)
        except Exception:
            logger.exception(f"Failed to record document {filename}; removing stored bytes")
            await self._remove_object(storage_key)
            raise

        logger.info(
            f"Uploaded document {document.id} ({len(parsed.chunks)} chunks, "
            f"year_plan={document.is_year_plan})"
        )
        self.tracer.record(
            "document_uploaded",
            {
                "document_id": document.id,
                "chunks": len(parsed.chunks),
                "year_plan": document.is_year_plan,
            },
        )

        result = UploadResult(document=document, chunk_count=len(parsed.chunks))
        if document.is_year_plan and settings.auto_enable_year_plans:
            try:
                enabled = await self.enable_ai_readable(document.id, parsed.chunks)
                result.embedding_count = enabled.embedding_count
                result.document = await self.documents.get(document.id) or document
            except (BatchWriteFailure, EmbeddingInProgress):
                logger.exception(f"Could not make year plan {document.id} AI-readable on upload")
        return result

    async def enable_ai_readable(
        self,
        document_id: UUID,
        chunks: list[ChunkSpec] | None = None,
    ) -> EnableResult:
        """
        Generate and store embeddings, then flag the document as AI-readable.

        Skips regeneration when a completed run already left vectors behind.
        Only the run holding the document's claim token writes; concurrent runs
        raise EmbeddingInProgress.

        Raises:
            DocumentNotFound: If the document does not exist
            EmbeddingInProgress: If another run holds or takes over the claim
            BatchWriteFailure: If a batch could not be written
        """
        document = await self.documents.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)

        existing = await self.chunks.count_embedded(document_id)
        if document.embeddings_completed_at is not None and existing > 0:
            if not document.is_ai_readable:
                await self.documents.set_ai_readable(document_id, True)
            logger.info(f"Document {document_id} already has {existing} embeddings; reusing them")
            return EnableResult(
                is_ai_readable=True,
                embedding_count=existing,
                chunk_count=await self.chunks.count_chunks(document_id),
                regenerated=False,
            )

        token = uuid4()
        stale_before = utcnow() - timedelta(seconds=settings.embedding_claim_ttl_seconds)
        if not await self.documents.claim_embedding(document_id, token, stale_before):
            raise EmbeddingInProgress(document_id)

        try:
            # Rows left behind by an earlier incomplete run
            removed = await self.chunks.delete_for_document(document_id)
            if removed:
                logger.info(f"Removed {removed} chunks from an incomplete run on {document_id}")

            if chunks is None:
                chunks = await self._reparse(document)

            texts = {}
            for chunk in chunks:
                cleaned = clean_text_for_embedding(chunk.text)
                if cleaned:
                    texts[chunk.index] = cleaned

            skipped = len(chunks) - len(texts)
            if skipped:
                logger.info(f"Skipping {skipped} chunks with no text left after cleaning")

            vectors = await embed_chunks(self.embedder, texts)
            records = build_chunk_records(document_id, token, chunks, vectors)
            batches = await write_chunk_records(self.chunks, records)
        except Exception:
            await self.documents.release_embedding(document_id, token)
            raise

        embedding_count = sum(1 for r in records if r.embedding is not None)
        failures = sum(1 for v in vectors.values() if isinstance(v, EmbeddingFailure))
        if not chunks:
            logger.warning(f"Document {document_id} has no chunks; nothing to embed")

        if await self.documents.complete_embedding(document_id, token) is None:
            # Another run took the claim over; its cleanup removes these rows
            logger.warning(f"Lost the embedding claim on {document_id} before completion")
            raise EmbeddingInProgress(document_id)

        logger.info(
            f"Document {document_id} is AI-readable: {embedding_count}/{len(records)} chunks "
            f"embedded in {batches} batches"
        )
        self.tracer.record(
            "embeddings_written",
            {
                "document_id": document_id,
                "chunks": len(records),
                "embedded": embedding_count,
                "failed": failures,
                "skipped": skipped,
                "batches": batches,
            },
        )
        return EnableResult(
            is_ai_readable=True,
            embedding_count=embedding_count,
            chunk_count=len(records),
            regenerated=True,
        )

    async def disable_ai_readable(self, document_id: UUID) -> DocumentRecord:
        """Clear the AI-readable flag. Stored chunks and vectors are kept."""
        document = await self.documents.set_ai_readable(document_id, False)
        if document is None:
            raise DocumentNotFound(document_id)
        logger.info(f"Document {document_id} is no longer AI-readable")
        return document

    async def delete_document(self, document_id: UUID) -> None:
        """
        Delete a document and, by cascade, its chunks.

        The stored bytes are removed first; if the object store is unavailable
        the failure is logged and the document is deleted anyway.
        """
        document = await self.documents.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)

        await self._remove_object(document.storage_key)
        await self.documents.delete(document_id)
        logger.info(f"Deleted document {document_id}")

    async def _reparse(self, document: DocumentRecord) -> list[ChunkSpec]:
        data = await self.objects.get(document.storage_key)
        parsed = parse_document(data, document.media_type, document.original_filename)
        return parsed.chunks

    async def _remove_object(self, key: str) -> None:
        try:
            await self.objects.delete(key)
        except StorageUnavailable as e:
            logger.warning(f"Could not remove stored object {key}: {e}")
