import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import documents, query
from app.config import settings
from app.db import dispose_engine

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting Greenor document service (store={settings.store_backend}, "
        f"embeddings={settings.embedding_provider})"
    )
    yield
    await dispose_engine()


app = FastAPI(
    title="Greenor Plans",
    description="Document intelligence for budgeting and timesheets",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(documents.router, prefix="/v0/documents", tags=["documents"])
app.include_router(query.router, prefix="/v0", tags=["query"])


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
