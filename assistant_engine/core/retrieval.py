"""Semantic retrieval of documentation chunks.

Embedding failure, search failure and timeouts all produce an empty
RetrievalResult with an error marker. Callers treat empty chunks as
"no grounding available", never as a reason to abort.
"""

import asyncio
import time
from typing import Any, Protocol

from assistant_engine.core.logging import get_logger
from assistant_engine.core.schemas_chat import RetrievalChunk, RetrievalResult

logger = get_logger(__name__)

EMBEDDING_FAILED = "embedding_failed"
RETRIEVAL_TIMEOUT = "retrieval_timeout"


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float] | None: ...


class DocStore(Protocol):
    def search(
        self,
        vector: list[float],
        top_k: int,
        topic_filter: str | None = None,
        provider_filter: str | None = None,
    ) -> list[dict[str, Any]]: ...


def _to_chunk(row: dict[str, Any]) -> RetrievalChunk:
    """Normalize a search row; body may arrive as markdown/content/body."""
    return RetrievalChunk(
        chunk_id=str(row.get("chunk_id") or row.get("id") or ""),
        title=row.get("title") or "",
        body=row.get("body") or row.get("markdown") or row.get("content") or "",
        similarity=float(row.get("similarity") or 0.0),
        topic=row.get("topic"),
        provider=row.get("provider"),
        metadata=row.get("metadata") or {},
    )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RetrievalClient:
    """Embeds a query and runs a biased nearest-neighbor search."""

    def __init__(self, embedder: Embedder | None, store: DocStore, timeout: float = 4.0):
        self._embedder = embedder
        self._store = store
        self._timeout = timeout

    async def retrieve(
        self,
        query: str,
        topic_bias: str | None = None,
        provider_bias: str | None = None,
        top_k: int = 5,
    ) -> RetrievalResult:
        """
        Retrieve ranked chunks for a query.

        Args:
            query: User message
            topic_bias: Topic to boost/filter by (None for general)
            provider_bias: Preferred provider to boost/filter by
            top_k: Result cap

        Returns:
            RetrievalResult; never raises
        """
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._retrieve(query, topic_bias, provider_bias, top_k, start),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Retrieval timed out after {self._timeout}s")
            return RetrievalResult(latency_ms=_elapsed_ms(start), error=RETRIEVAL_TIMEOUT)

    async def _retrieve(
        self,
        query: str,
        topic_bias: str | None,
        provider_bias: str | None,
        top_k: int,
        start: float,
    ) -> RetrievalResult:
        vector = None
        if self._embedder is not None:
            try:
                vector = await self._embedder.embed(query)
            except Exception as e:
                logger.warning(f"Query embedding raised: {e}")
        if not vector:
            return RetrievalResult(latency_ms=0, error=EMBEDDING_FAILED)

        try:
            rows = await asyncio.to_thread(
                self._store.search, vector, top_k, topic_bias, provider_bias
            )
        except Exception as e:
            logger.error(f"Vector search failed: {e}")
            return RetrievalResult(latency_ms=_elapsed_ms(start), error=str(e) or "search_failed")

        chunks = [_to_chunk(row) for row in rows[:top_k]]
        chunks.sort(key=lambda c: c.similarity, reverse=True)
        latency_ms = _elapsed_ms(start)

        logger.info(
            f"Retrieved {len(chunks)} chunks in {latency_ms}ms "
            f"(topic={topic_bias}, provider={provider_bias}, top_k={top_k})"
        )
        return RetrievalResult(chunks=chunks, latency_ms=latency_ms)
