"""Tests for the retrieval client and the Supabase doc store."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from assistant_engine.core.retrieval import EMBEDDING_FAILED, RETRIEVAL_TIMEOUT, RetrievalClient
from assistant_engine.db.doc_chunks import SupabaseDocStore

ROWS = [
    {"chunk_id": "c2", "title": "Ideogram", "markdown": "Text in images", "similarity": 0.71, "topic": "pictures"},
    {"chunk_id": "c1", "title": "FLUX Pro", "markdown": "Photoreal", "similarity": 0.88, "provider": "flux"},
]


def _embedder(vector=None):
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=vector)
    return embedder


@pytest.mark.asyncio
async def test_embedding_failure_yields_empty_marked_result():
    store = MagicMock()
    client = RetrievalClient(_embedder(None), store)

    result = await client.retrieve("best tool for product shots")

    assert result.chunks == []
    assert result.error == EMBEDDING_FAILED
    assert result.latency_ms == 0
    store.search.assert_not_called()


@pytest.mark.asyncio
async def test_missing_embedder_is_treated_as_embedding_failure():
    result = await RetrievalClient(None, MagicMock()).retrieve("hello")
    assert result.error == EMBEDDING_FAILED


@pytest.mark.asyncio
async def test_embedder_exception_is_absorbed():
    embedder = MagicMock()
    embedder.embed = AsyncMock(side_effect=RuntimeError("boom"))
    result = await RetrievalClient(embedder, MagicMock()).retrieve("hello")
    assert result.error == EMBEDDING_FAILED


@pytest.mark.asyncio
async def test_results_are_ranked_and_normalized():
    store = MagicMock()
    store.search.return_value = ROWS
    client = RetrievalClient(_embedder([0.1, 0.2]), store)

    result = await client.retrieve("images", topic_bias="pictures", provider_bias="flux", top_k=5)

    assert result.error is None
    assert result.chunk_ids == ["c1", "c2"]
    assert result.scores == [0.88, 0.71]
    assert result.chunks[0].body == "Photoreal"
    store.search.assert_called_once_with([0.1, 0.2], 5, "pictures", "flux")


@pytest.mark.asyncio
async def test_search_failure_returns_empty_with_error():
    store = MagicMock()
    store.search.side_effect = RuntimeError("rpc down")
    result = await RetrievalClient(_embedder([0.1]), store).retrieve("q")

    assert result.chunks == []
    assert result.error == "rpc down"


@pytest.mark.asyncio
async def test_slow_embedding_times_out():
    async def slow_embed(_text):
        await asyncio.sleep(1)
        return [0.1]

    embedder = MagicMock()
    embedder.embed = slow_embed
    result = await RetrievalClient(embedder, MagicMock(), timeout=0.05).retrieve("q")

    assert result.chunks == []
    assert result.error == RETRIEVAL_TIMEOUT


def test_doc_store_calls_match_rpc(fake_supabase):
    captured = {}

    def handler(params):
        captured.update(params)
        return ROWS

    fake_supabase.rpc_handlers["match_doc_chunks"] = handler
    rows = SupabaseDocStore(fake_supabase).search([0.5], 3, "video", None)

    assert rows == ROWS
    assert captured == {
        "query_embedding": [0.5],
        "top_k": 3,
        "topic_bias": "video",
        "provider_bias": None,
    }
