"""Unit tests for best-effort embedding generation."""

import asyncio
import json

import httpx
import pytest

from app.services.embeddings import (
    EmbeddingFailure,
    EmbeddingProvider,
    GeminiEmbeddingProvider,
    embed_chunks,
    embed_text,
    get_embedding_provider,
)
from conftest import FakeEmbeddingProvider


class WrongDimensionProvider(EmbeddingProvider):
    model_name = "wrong"

    @property
    def dimension(self) -> int:
        return 8

    async def embed(self, text: str) -> list[float]:
        return [0.5] * 4


@pytest.mark.asyncio
async def test_embed_text_returns_vector() -> None:
    """Test that a healthy provider returns a vector of the right dimension."""
    result = await embed_text(FakeEmbeddingProvider(dimension=8), "Launch the pilot")

    assert isinstance(result, list)
    assert len(result) == 8


@pytest.mark.asyncio
async def test_embed_text_without_provider_fails_softly() -> None:
    """Test that a missing provider yields a failure value, not an exception."""
    result = await embed_text(None, "Launch the pilot", chunk_index=4)

    assert isinstance(result, EmbeddingFailure)
    assert result.chunk_index == 4


@pytest.mark.asyncio
async def test_embed_text_timeout_is_a_failure() -> None:
    """Test that a slow provider call is cut off by the timeout."""
    provider = FakeEmbeddingProvider(delay=1.0)

    result = await embed_text(provider, "slow text", chunk_index=2, timeout=0.01)

    assert isinstance(result, EmbeddingFailure)
    assert "timed out" in result.reason


@pytest.mark.asyncio
async def test_embed_text_provider_error_is_a_failure() -> None:
    """Test that provider exceptions are converted into failure values."""
    provider = FakeEmbeddingProvider(failing={"bad text"})

    result = await embed_text(provider, "bad text", chunk_index=1)

    assert isinstance(result, EmbeddingFailure)
    assert "RuntimeError" in result.reason


@pytest.mark.asyncio
async def test_embed_text_rejects_wrong_dimension() -> None:
    """Test that vectors of the wrong length are treated as failures."""
    result = await embed_text(WrongDimensionProvider(), "text")

    assert isinstance(result, EmbeddingFailure)
    assert "expected 8 dimensions" in result.reason


@pytest.mark.asyncio
async def test_embed_text_empty_text_is_a_failure() -> None:
    """Test that blank text is never sent to the provider."""
    provider = FakeEmbeddingProvider()

    result = await embed_text(provider, "   ")

    assert isinstance(result, EmbeddingFailure)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_embed_chunks_isolates_failures() -> None:
    """Test that failed chunks do not block their siblings."""
    provider = FakeEmbeddingProvider(failing={"chunk 3", "chunk 7"})
    texts = {i: f"chunk {i}" for i in range(10)}

    results = await embed_chunks(provider, texts)

    assert set(results) == set(range(10))
    failed = sorted(i for i, r in results.items() if isinstance(r, EmbeddingFailure))
    assert failed == [3, 7]


@pytest.mark.asyncio
async def test_embed_chunks_bounds_concurrency() -> None:
    """Test that no more than `concurrency` provider calls run at once."""
    provider = FakeEmbeddingProvider(delay=0.01)
    texts = {i: f"chunk {i}" for i in range(20)}

    results = await embed_chunks(provider, texts, concurrency=3)

    assert len(results) == 20
    assert provider.max_in_flight <= 3
    assert len(provider.calls) == 20


@pytest.mark.asyncio
async def test_gemini_provider_posts_embed_content() -> None:
    """Test the Gemini request shape and response parsing."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": {"values": [0.1] * 768}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        provider = GeminiEmbeddingProvider("test-key", client=client)
        vector = await provider.embed("Launch the pilot")

    assert len(vector) == 768
    assert "text-embedding-004:embedContent" in seen["url"]
    assert "key=test-key" in seen["url"]
    assert seen["body"]["outputDimensionality"] == 768
    assert seen["body"]["content"]["parts"][0]["text"] == "Launch the pilot"


@pytest.mark.asyncio
async def test_gemini_http_error_becomes_failure() -> None:
    """Test that HTTP errors from Gemini surface as embedding failures."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "quota"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        provider = GeminiEmbeddingProvider("test-key", client=client)
        result = await embed_text(provider, "Launch the pilot", chunk_index=0)

    assert isinstance(result, EmbeddingFailure)
    assert "HTTPStatusError" in result.reason


def test_provider_disabled_without_api_key() -> None:
    """Test that no provider is built when the API key is missing."""
    assert get_embedding_provider() is None


@pytest.mark.asyncio
async def test_embed_chunks_empty_input() -> None:
    """Test that embedding no chunks returns an empty mapping."""
    results = await asyncio.wait_for(embed_chunks(FakeEmbeddingProvider(), {}), timeout=1)

    assert results == {}
