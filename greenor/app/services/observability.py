"""Retrieval observability.

Retrieval and pipeline code report what they did through an injected Tracer
instead of talking to any backend directly.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


class Tracer(Protocol):
    def record(self, event: str, fields: dict[str, Any]) -> None: ...


class LoggingTracer:
    """Emits one structured log line per event."""

    def __init__(self, name: str = "greenor.trace"):
        self.logger = logging.getLogger(name)

    def record(self, event: str, fields: dict[str, Any]) -> None:
        summary = " ".join(f"{key}={value}" for key, value in fields.items() if key != "results")
        self.logger.info(f"{event} {summary}", extra={"event": event, "fields": fields})


class NullTracer:
    def record(self, event: str, fields: dict[str, Any]) -> None:
        pass


@dataclass
class RetrievedChunk:
    """A chunk returned by a retrieval call."""

    chunk_id: UUID
    rank: int
    chunk_index: int
    score: float | None = None
    match_type: str = "exact"


@dataclass
class RetrievalTrace:
    trace_id: UUID
    operation: str
    document_id: UUID
    scope: dict[str, Any] | None
    chunks: list[RetrievedChunk] = field(default_factory=list)
    latency_ms: int | None = None
    error: str | None = None


class RetrievalTracker:
    """
    Context manager for tracing a retrieval call.

    Usage:
        async with RetrievalTracker(tracer, "semantic_search", document_id, scope) as tracker:
            results = await store.nearest(...)
            for i, result in enumerate(results):
                tracker.add_chunk(result.chunk.id, rank=i, chunk_index=..., score=...)
    """

    def __init__(
        self,
        tracer: Tracer | None,
        operation: str,
        document_id: UUID,
        scope: dict[str, Any] | None = None,
    ):
        self.tracer = tracer or NullTracer()
        self.trace = RetrievalTrace(
            trace_id=uuid4(),
            operation=operation,
            document_id=document_id,
            scope=scope,
        )
        self._start_time: float | None = None

    def add_chunk(
        self,
        chunk_id: UUID,
        rank: int,
        chunk_index: int,
        score: float | None = None,
        match_type: str = "exact",
    ) -> None:
        """Record a chunk returned by this call."""
        self.trace.chunks.append(
            RetrievedChunk(
                chunk_id=chunk_id,
                rank=rank,
                chunk_index=chunk_index,
                score=score,
                match_type=match_type,
            )
        )

    async def __aenter__(self) -> "RetrievalTracker":
        self._start_time = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._start_time:
            self.trace.latency_ms = int((time.perf_counter() - self._start_time) * 1000)
        if exc_val is not None:
            self.trace.error = f"{exc_type.__name__}: {exc_val}"

        self.tracer.record(
            self.trace.operation,
            {
                "trace_id": self.trace.trace_id,
                "document_id": self.trace.document_id,
                "scope": self.trace.scope,
                "chunks": len(self.trace.chunks),
                "latency_ms": self.trace.latency_ms,
                "error": self.trace.error,
                "results": [
                    {
                        "chunk_id": str(c.chunk_id),
                        "rank": c.rank,
                        "chunk_index": c.chunk_index,
                        "score": c.score,
                        "match_type": c.match_type,
                    }
                    for c in self.trace.chunks
                ],
            },
        )
