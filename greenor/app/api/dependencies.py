from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends

from app.auth import RequestContext, get_request_context
from app.config import settings
from app.db import async_session_factory
from app.services.context_builder import ContextAggregator, database_sections, store_sections
from app.services.embeddings import EmbeddingProvider, get_embedding_provider
from app.services.object_storage import ObjectStore, get_object_store
from app.services.observability import LoggingTracer, Tracer
from app.services.pipeline import DocumentPipeline
from app.stores.base import ChunkStore, DocumentStore
from app.stores.memory import InMemoryChunkStore, InMemoryDocumentStore
from app.stores.postgres import PgVectorChunkStore, SqlDocumentStore

# Process-wide stores for STORE_BACKEND=memory
_memory_documents = InMemoryDocumentStore()
_memory_chunks = InMemoryChunkStore(_memory_documents)


@dataclass
class Stores:
    documents: DocumentStore
    chunks: ChunkStore


def get_stores(ctx: RequestContext = Depends(get_request_context)) -> Stores:
    if ctx.session is None:
        return Stores(documents=_memory_documents, chunks=_memory_chunks)
    return Stores(documents=SqlDocumentStore(ctx.session), chunks=PgVectorChunkStore(ctx.session))


@lru_cache
def get_embedder() -> EmbeddingProvider | None:
    return get_embedding_provider()


@lru_cache
def get_objects() -> ObjectStore:
    return get_object_store()


@lru_cache
def get_tracer() -> Tracer:
    return LoggingTracer()


def get_pipeline(
    stores: Stores = Depends(get_stores),
    objects: ObjectStore = Depends(get_objects),
    embedder: EmbeddingProvider | None = Depends(get_embedder),
    tracer: Tracer = Depends(get_tracer),
) -> DocumentPipeline:
    return DocumentPipeline(stores.documents, stores.chunks, objects, embedder, tracer)


def get_context_aggregator(stores: Stores = Depends(get_stores)) -> ContextAggregator:
    if settings.store_backend == "memory":
        return ContextAggregator(store_sections(stores.documents, stores.chunks))
    return ContextAggregator(database_sections(async_session_factory))
