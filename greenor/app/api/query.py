import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import get_context_aggregator, get_pipeline
from app.api.documents import get_visible_document
from app.auth import RequestContext, get_request_context
from app.schemas import (
    AddressLookupRequest,
    ChunkResult,
    ChunkSearchResponse,
    ContextResponse,
    PlanWeekResponse,
    SemanticSearchRequest,
)
from app.services.context_builder import ContextAggregator, format_context_for_prompt
from app.services.pipeline import DocumentPipeline
from app.services.plan_calendar import map_calendar_to_plan, month_name
from app.services.retrieval import ChunkMatch, hybrid_search, search_by_address, semantic_search
from app.stores.base import ChunkRecord

logger = logging.getLogger(__name__)
router = APIRouter()


def to_chunk_result(
    chunk: ChunkRecord,
    similarity: float | None = None,
    match_type: str = "exact",
) -> ChunkResult:
    return ChunkResult(
        id=chunk.id,
        chunk_index=chunk.chunk_index,
        text=chunk.chunk_text,
        year=chunk.year,
        month=chunk.month,
        week=chunk.week,
        metadata=chunk.metadata,
        has_embedding=chunk.embedding is not None,
        similarity=similarity,
        match_type=match_type,
    )


def match_to_result(match: ChunkMatch) -> ChunkResult:
    return to_chunk_result(match.chunk, match.similarity, match.match_type)


@router.post("/documents/{document_id}/chunks/lookup", response_model=ChunkSearchResponse)
async def lookup_chunks(
    document_id: UUID,
    request: AddressLookupRequest,
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> ChunkSearchResponse:
    """Return the chunks planned for an exact (year, month, week) address."""
    await get_visible_document(pipeline, ctx, document_id)

    chunks = await search_by_address(
        pipeline.chunks,
        document_id,
        request.year,
        request.month,
        request.week,
        tracer=pipeline.tracer,
    )
    results = [to_chunk_result(c) for c in chunks]
    return ChunkSearchResponse(document_id=document_id, results=results, total=len(results))


@router.post("/documents/{document_id}/chunks/search", response_model=ChunkSearchResponse)
async def search_chunks(
    document_id: UUID,
    request: SemanticSearchRequest,
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> ChunkSearchResponse:
    """Semantic search over a document's embedded chunks."""
    await get_visible_document(pipeline, ctx, document_id)

    matches = await semantic_search(
        pipeline.chunks,
        pipeline.embedder,
        document_id,
        request.query,
        year=request.year,
        month=request.month,
        week=request.week,
        k=request.k,
        min_similarity=request.min_similarity,
        tracer=pipeline.tracer,
    )
    results = [match_to_result(m) for m in matches]
    return ChunkSearchResponse(document_id=document_id, results=results, total=len(results))


@router.get("/plan/week", response_model=PlanWeekResponse)
async def plan_for_week(
    on: date | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> PlanWeekResponse:
    """
    What the caller's year plan says about the week containing `on`.

    Maps the date onto the plan's (year, month, week) address and returns exact
    matches followed by semantically similar chunks.
    """
    on = on or date.today()
    plan = await pipeline.documents.find_year_plan(ctx.user_id, ctx.organization_id)
    if not plan or not plan.is_ai_readable:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No AI-readable year plan found. Upload a 3-Year Plan document first.",
        )

    address = map_calendar_to_plan(on, plan.plan_start_date or date(on.year, 1, 1), plan.plan_years)
    query = (
        f"What activities and milestones are planned for {month_name(address.month)} "
        f"week {address.week} in year {address.year}?"
    )
    matches = await hybrid_search(
        pipeline.chunks,
        pipeline.embedder,
        plan.id,
        query,
        year=address.year,
        month=address.month,
        week=address.week,
        tracer=pipeline.tracer,
    )

    return PlanWeekResponse(
        document_id=plan.id,
        document_name=plan.name,
        on=on,
        plan_year=address.year,
        month=address.month,
        month_name=month_name(address.month),
        week=address.week,
        query=query,
        results=[match_to_result(m) for m in matches],
    )


@router.get("/context", response_model=ContextResponse)
async def get_context(
    ctx: RequestContext = Depends(get_request_context),
    aggregator: ContextAggregator = Depends(get_context_aggregator),
) -> ContextResponse:
    """Context block for the AI assistant prompt. Unavailable sections are omitted."""
    context = await aggregator.build(ctx.user_id, ctx.organization_id)
    if context.omitted:
        logger.info(f"Context for user {ctx.user_id} omitted: {', '.join(context.omitted)}")

    return ContextResponse(
        context=format_context_for_prompt(context),
        sections=context.sections,
        omitted=context.omitted,
    )
