"""Retrieval over a single document's chunks.

Exact lookup by temporal address, semantic nearest-neighbour search and a
hybrid of the two. None of these consult the document's AI-readable flag;
callers decide whether a document may be used.
"""

import logging
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from app.config import settings
from app.services.embeddings import EmbeddingFailure, EmbeddingProvider, embed_text
from app.services.observability import RetrievalTracker, Tracer
from app.services.text_cleaner import clean_text_for_embedding
from app.stores.base import ChunkRecord, ChunkStore

logger = logging.getLogger(__name__)

HYBRID_SIMILAR_LIMIT = 3
HYBRID_MIN_SIMILARITY = 0.7


@dataclass
class ChunkMatch:
    chunk: ChunkRecord
    similarity: float | None
    match_type: Literal["exact", "similar"]


async def search_by_address(
    store: ChunkStore,
    document_id: UUID,
    year: int | None,
    month: int | None,
    week: int | None,
    tracer: Tracer | None = None,
) -> list[ChunkRecord]:
    """
    Return every chunk whose (year, month, week) equals the given address.

    Ordered by (year, month, week, chunk_index). An empty list means no chunk
    has that address.
    """
    scope = {"year": year, "month": month, "week": week}
    async with RetrievalTracker(tracer, "search_by_address", document_id, scope) as tracker:
        chunks = await store.find_by_address(document_id, year, month, week)
        for rank, chunk in enumerate(chunks):
            tracker.add_chunk(chunk.id, rank=rank, chunk_index=chunk.chunk_index)
    return chunks


async def embed_query(provider: EmbeddingProvider | None, query: str) -> list[float] | None:
    cleaned = clean_text_for_embedding(query)
    if not cleaned:
        return None

    result = await embed_text(provider, cleaned)
    if isinstance(result, EmbeddingFailure):
        logger.warning(f"Could not embed search query: {result.reason}")
        return None
    return result


async def semantic_search(
    store: ChunkStore,
    provider: EmbeddingProvider | None,
    document_id: UUID,
    query: str,
    year: int | None = None,
    month: int | None = None,
    week: int | None = None,
    k: int | None = None,
    min_similarity: float | None = None,
    exclude_ids: set[UUID] | None = None,
    tracer: Tracer | None = None,
) -> list[ChunkMatch]:
    """
    Return the k chunks most similar to the query.

    Only chunks with a vector that match every provided filter are candidates.
    An empty result means there is no usable knowledge for the query, including
    when the query itself cannot be embedded.
    """
    k = k or settings.semantic_default_limit
    scope = {"year": year, "month": month, "week": week, "k": k, "min_similarity": min_similarity}

    async with RetrievalTracker(tracer, "semantic_search", document_id, scope) as tracker:
        vector = await embed_query(provider, query)
        if vector is None:
            return []

        scored = await store.nearest(
            document_id,
            vector,
            limit=k,
            year=year,
            month=month,
            week=week,
            min_similarity=min_similarity,
            exclude_ids=exclude_ids,
        )

        matches = []
        for rank, item in enumerate(scored):
            tracker.add_chunk(
                item.chunk.id,
                rank=rank,
                chunk_index=item.chunk.chunk_index,
                score=item.similarity,
                match_type="similar",
            )
            matches.append(ChunkMatch(item.chunk, item.similarity, "similar"))

    return matches


async def hybrid_search(
    store: ChunkStore,
    provider: EmbeddingProvider | None,
    document_id: UUID,
    query: str,
    year: int,
    month: int | None = None,
    week: int | None = None,
    similar_limit: int = HYBRID_SIMILAR_LIMIT,
    min_similarity: float = HYBRID_MIN_SIMILARITY,
    tracer: Tracer | None = None,
) -> list[ChunkMatch]:
    """
    Exact address matches first, then semantically similar chunks for the
    same month/week that were not already matched exactly.
    """
    exact = await search_by_address(store, document_id, year, month, week, tracer)
    results = [ChunkMatch(chunk, None, "exact") for chunk in exact]

    similar = await semantic_search(
        store,
        provider,
        document_id,
        query,
        month=month,
        week=week,
        k=similar_limit,
        min_similarity=min_similarity,
        exclude_ids={chunk.id for chunk in exact},
        tracer=tracer,
    )
    results.extend(similar)

    logger.info(
        f"Hybrid search on document {document_id}: {len(exact)} exact, {len(similar)} similar"
    )
    return results
