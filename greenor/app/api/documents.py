import logging
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status

from app.api.dependencies import get_pipeline
from app.auth import RequestContext, get_request_context
from app.config import settings
from app.exceptions import (
    BatchWriteFailure,
    DocumentNotFound,
    EmbeddingInProgress,
    ParseError,
    StorageUnavailable,
    UploadTooLarge,
)
from app.schemas import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdateRequest,
    DocumentUpdateResponse,
    UploadResponse,
)
from app.services.pipeline import DocumentPipeline
from app.stores.base import DocumentRecord, OwnerScope

logger = logging.getLogger(__name__)
router = APIRouter()

SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


def format_file_size(size: int) -> str:
    """Human readable size, e.g. 1536 -> "1.5 KB"."""
    if size <= 0:
        return "0 Bytes"
    i = 0
    while size >= 1024 ** (i + 1) and i < len(SIZE_UNITS) - 1:
        i += 1
    value = round(size / 1024**i, 2)
    return f"{value:g} {SIZE_UNITS[i]}"


def to_document_response(document: DocumentRecord) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        name=document.name,
        original_filename=document.original_filename,
        media_type=document.media_type,
        size_bytes=document.size_bytes,
        size_display=format_file_size(document.size_bytes),
        scope="organization" if document.organization_id else "personal",
        is_ai_readable=document.is_ai_readable,
        is_year_plan=document.is_year_plan,
        plan_start_date=document.plan_start_date,
        plan_years=document.plan_years,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


async def get_visible_document(
    pipeline: DocumentPipeline,
    ctx: RequestContext,
    document_id: UUID,
) -> DocumentRecord:
    """Load a document the caller may see, or raise 404."""
    document = await pipeline.documents.get(document_id)
    if not document or not document.is_visible_to(ctx.user_id, ctx.organization_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )
    return document


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    scope: Literal["personal", "organization"] | None = Form(default=None),
    display_name: str | None = Form(default=None),
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> UploadResponse:
    """
    Upload a document.

    Documents belong to the caller's organization when they have one, unless
    scope=personal is requested.
    """
    if scope is None:
        scope = "organization" if ctx.organization_id else "personal"
    if scope == "organization" and not ctx.organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization scope requires an X-Organization-Id header",
        )
    owner = (
        OwnerScope(organization_id=ctx.organization_id)
        if scope == "organization"
        else OwnerScope(user_id=ctx.user_id)
    )

    filename = file.filename or "document"

    try:
        if file.size is not None and file.size > settings.max_upload_bytes:
            raise UploadTooLarge(file.size, settings.max_upload_bytes)
        # One byte past the limit is enough to reject the upload
        data = await file.read(settings.max_upload_bytes + 1)
        result = await pipeline.upload(data, filename, file.content_type, owner, display_name)
    except UploadTooLarge as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size is {format_file_size(e.limit)}",
        ) from e
    except ParseError as e:
        raise HTTPException(
            status_code=(
                status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
                if e.unsupported
                else status.HTTP_400_BAD_REQUEST
            ),
            detail=str(e),
        ) from e
    except StorageUnavailable as e:
        logger.exception(f"Object storage unavailable during upload of {filename}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage is unavailable, please try again",
        ) from e

    return UploadResponse(
        document=to_document_response(result.document),
        chunks_processed=result.chunk_count,
        embedding_count=result.embedding_count,
    )


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> DocumentListResponse:
    """List documents owned by the caller or their organization."""
    documents = await pipeline.documents.list_visible(ctx.user_id, ctx.organization_id)
    return DocumentListResponse(
        documents=[to_document_response(d) for d in documents],
        total=len(documents),
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> DocumentResponse:
    document = await get_visible_document(pipeline, ctx, document_id)
    return to_document_response(document)


@router.patch("/{document_id}", response_model=DocumentUpdateResponse)
async def update_document(
    document_id: UUID,
    request: DocumentUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> DocumentUpdateResponse:
    """Enable or disable AI readability. Enabling generates embeddings when needed."""
    await get_visible_document(pipeline, ctx, document_id)

    if not request.is_ai_readable:
        document = await pipeline.disable_ai_readable(document_id)
        return DocumentUpdateResponse(document=to_document_response(document))

    try:
        result = await pipeline.enable_ai_readable(document_id)
    except EmbeddingInProgress as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except BatchWriteFailure as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to store document embeddings, please try again",
        ) from e
    except (ParseError, StorageUnavailable) as e:
        logger.exception(f"Could not reload document {document_id} for embedding")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not read the stored document, please try again",
        ) from e

    document = await get_visible_document(pipeline, ctx, document_id)
    return DocumentUpdateResponse(
        document=to_document_response(document),
        embedding_count=result.embedding_count,
        chunk_count=result.chunk_count,
        regenerated=result.regenerated,
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> Response:
    """Delete a document and all of its chunks."""
    await get_visible_document(pipeline, ctx, document_id)
    try:
        await pipeline.delete_document(document_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
