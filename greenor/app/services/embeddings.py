"""Embedding generation.

Providers wrap a remote embedding model. Generation is best-effort per chunk:
a failed chunk yields an EmbeddingFailure value instead of an exception so
sibling chunks are never blocked.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

DEFAULT_MODELS = {
    "openai": "text-embedding-3-small",
    "gemini": "text-embedding-004",
}


class EmbeddingProvider(ABC):
    """Interface for text embedding generation."""

    model_name: str

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one piece of text. Raises on any provider failure."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of the vectors this provider returns."""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI API."""

    def __init__(self, api_key: str, model: str | None = None, dimension: int | None = None):
        from openai import AsyncOpenAI

        self.client = AsyncOpenAI(api_key=api_key, max_retries=1)
        self.model_name = model or DEFAULT_MODELS["openai"]
        self._dimension = dimension or settings.embedding_dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        response = await self.client.embeddings.create(
            model=self.model_name,
            input=text,
            dimensions=self._dimension,
        )
        return list(response.data[0].embedding)


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the Google Generative Language API."""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        dimension: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model_name = model or DEFAULT_MODELS["gemini"]
        self._dimension = dimension or settings.embedding_dimension
        self._client = client

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        payload = {
            "model": f"models/{self.model_name}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self._dimension,
        }
        url = f"{GEMINI_API_BASE}/models/{self.model_name}:embedContent"

        if self._client is not None:
            response = await self._client.post(url, params={"key": self.api_key}, json=payload)
        else:
            async with httpx.AsyncClient(timeout=settings.embedding_timeout_seconds) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)

        response.raise_for_status()
        values = response.json().get("embedding", {}).get("values")
        if not values:
            raise ValueError("Gemini response did not contain embedding values")
        return values


def get_embedding_provider() -> EmbeddingProvider | None:
    """
    Build the configured provider.

    Returns None when the provider has no API key; callers then treat every
    chunk as an embedding failure.
    """
    if settings.embedding_provider == "gemini":
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY is not set; embeddings are disabled")
            return None
        return GeminiEmbeddingProvider(settings.gemini_api_key, settings.embedding_model)

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; embeddings are disabled")
        return None
    return OpenAIEmbeddingProvider(settings.openai_api_key, settings.embedding_model)


@dataclass
class EmbeddingFailure:
    """Per-chunk embedding failure. The chunk is stored with a null vector."""

    chunk_index: int
    reason: str


async def embed_text(
    provider: EmbeddingProvider | None,
    text: str,
    chunk_index: int = -1,
    timeout: float | None = None,
) -> list[float] | EmbeddingFailure:
    """
    Embed cleaned, non-empty text with a bounded timeout.

    Never raises for provider problems; returns an EmbeddingFailure instead.
    """
    if provider is None:
        return EmbeddingFailure(chunk_index, "no embedding provider configured")
    if not text.strip():
        return EmbeddingFailure(chunk_index, "empty text")

    timeout = timeout or settings.embedding_timeout_seconds
    try:
        vector = await asyncio.wait_for(provider.embed(text), timeout=timeout)
    except asyncio.TimeoutError:
        return EmbeddingFailure(chunk_index, f"timed out after {timeout}s")
    except Exception as e:
        return EmbeddingFailure(chunk_index, f"{type(e).__name__}: {e}")

    if not vector:
        return EmbeddingFailure(chunk_index, "provider returned an empty vector")
    if len(vector) != provider.dimension:
        return EmbeddingFailure(
            chunk_index,
            f"expected {provider.dimension} dimensions, got {len(vector)}",
        )
    return vector


async def embed_chunks(
    provider: EmbeddingProvider | None,
    texts: dict[int, str],
    concurrency: int | None = None,
    timeout: float | None = None,
) -> dict[int, list[float] | EmbeddingFailure]:
    """
    Embed many chunks concurrently, keyed by chunk index.

    At most `concurrency` calls are in flight at once. Completion order does
    not matter; every input index appears in the result.
    """
    semaphore = asyncio.Semaphore(concurrency or settings.embedding_concurrency)

    async def run(index: int, text: str) -> tuple[int, list[float] | EmbeddingFailure]:
        async with semaphore:
            return index, await embed_text(provider, text, index, timeout)

    results = dict(await asyncio.gather(*(run(i, t) for i, t in texts.items())))

    failures = [r for r in results.values() if isinstance(r, EmbeddingFailure)]
    for failure in failures:
        logger.warning(f"Embedding failed for chunk {failure.chunk_index}: {failure.reason}")
    logger.info(f"Embedded {len(results) - len(failures)}/{len(results)} chunks")
    return results
