from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

# ============================================================================
# Document Schemas
# ============================================================================


class DocumentResponse(BaseModel):
    id: UUID
    name: str
    original_filename: str
    media_type: str
    size_bytes: int
    size_display: str
    scope: Literal["personal", "organization"]
    is_ai_readable: bool
    is_year_plan: bool
    plan_start_date: date | None = None
    plan_years: int | None = None
    created_at: datetime
    updated_at: datetime


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class UploadResponse(BaseModel):
    document: DocumentResponse
    chunks_processed: int
    embedding_count: int


class DocumentUpdateRequest(BaseModel):
    is_ai_readable: bool


class DocumentUpdateResponse(BaseModel):
    document: DocumentResponse
    embedding_count: int | None = None  # Only set when enabling
    chunk_count: int | None = None
    regenerated: bool | None = None


# ============================================================================
# Retrieval Schemas
# ============================================================================


class AddressLookupRequest(BaseModel):
    year: int | None = Field(default=None, ge=1, le=10)
    month: int | None = Field(default=None, ge=1, le=12)
    week: int | None = Field(default=None, ge=1, le=6)


class SemanticSearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    year: int | None = Field(default=None, ge=1, le=10)
    month: int | None = Field(default=None, ge=1, le=12)
    week: int | None = Field(default=None, ge=1, le=6)
    k: int | None = Field(default=None, ge=1, le=100)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)


class ChunkResult(BaseModel):
    id: UUID
    chunk_index: int
    text: str
    year: int | None = None
    month: int | None = None
    week: int | None = None
    metadata: dict[str, Any]
    has_embedding: bool
    similarity: float | None = None
    match_type: Literal["exact", "similar"] = "exact"


class ChunkSearchResponse(BaseModel):
    document_id: UUID
    results: list[ChunkResult]
    total: int


class PlanWeekResponse(BaseModel):
    document_id: UUID
    document_name: str
    on: date
    plan_year: int
    month: int
    month_name: str
    week: int
    query: str
    results: list[ChunkResult]


# ============================================================================
# Context Schemas
# ============================================================================


class ContextResponse(BaseModel):
    context: str
    sections: dict[str, str]
    omitted: list[str]
