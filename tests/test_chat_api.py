"""Tests for chat API endpoints.

Covers the chat, feedback, session history and rate-limit endpoints via
FastAPI TestClient with an in-memory Supabase and a scripted chat model.
"""

import json
from typing import List
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from assistant_engine.api.chat import get_chat_pipeline, get_persistence_queue
from assistant_engine.core.config import Settings
from assistant_engine.core.pipeline import ChatDependencies, ChatPipeline
from assistant_engine.main import app
from tests.fakes.fake_chat_model import FakeChatModel
from tests.fakes.fake_supabase import FakeSupabase

ANSWER = json.dumps({
    "title": "Use FLUX Pro",
    "brief": "Best for photoreal product images.",
    "bullets": ["FLUX Pro for products"],
    "next_steps": ["Open FLUX Pro"],
    "type": "help",
})


# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────


def parse_sse_events(text: str) -> List[dict]:
    """Parse SSE response body into a list of event dicts."""
    events = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("data: "):
            try:
                events.append(json.loads(line[6:]))
            except json.JSONDecodeError:
                pass
    return events


def _pipeline(supabase: FakeSupabase, chat_model=None) -> ChatPipeline:
    settings = Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="test-key",
        OPENAI_API_KEY="test-openai-key",
    )
    embedder = MagicMock()
    embedder.embed = MagicMock(side_effect=RuntimeError("no network"))
    doc_store = MagicMock()
    doc_store.search.return_value = []
    return ChatPipeline(
        ChatDependencies(
            supabase=supabase,
            settings=settings,
            doc_store=doc_store,
            embedder=embedder,
            chat_model=chat_model,
            persistence=get_persistence_queue(),
        )
    )


# ──────────────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def client():
    # One portal loop for the whole test; lifespan shutdown drains the queue
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def pipeline_override(supabase):
    """Install a pipeline with a scripted model; yields the model."""
    model = FakeChatModel(text=ANSWER, deltas=['{"title": "Use FLUX Pro",', ' "bullets": ["a"]}'])
    app.dependency_overrides[get_chat_pipeline] = lambda: _pipeline(supabase, model)
    yield model
    app.dependency_overrides.pop(get_chat_pipeline, None)


@pytest.fixture
def rate_limit_mock():
    with patch("assistant_engine.api.chat.check_chat_rate_limit") as mock_check:
        yield mock_check


# ──────────────────────────────────────────────────────────────────────
# POST /v1/chat
# ──────────────────────────────────────────────────────────────────────


class TestChatEndpoint:
    """POST /v1/chat"""

    def test_blank_message_returns_400(self, client, pipeline_override, rate_limit_mock):
        response = client.post("/v1/chat", json={"message": "   "})
        assert response.status_code == 400
        assert response.json()["detail"] == "message_required"
        assert pipeline_override.calls == []
        rate_limit_mock.assert_not_called()

    def test_missing_message_returns_400(self, client, pipeline_override, rate_limit_mock):
        response = client.post("/v1/chat", json={"history": []})
        assert response.status_code == 400

    @pytest.mark.parametrize("message", [123, ["hi"], {"text": "hi"}, None])
    def test_non_string_message_returns_400(self, client, pipeline_override, rate_limit_mock, message):
        response = client.post("/v1/chat", json={"message": message})
        assert response.status_code == 400
        assert response.json()["detail"] == "message_required"
        rate_limit_mock.assert_not_called()

    def test_unconfigured_model_returns_503(self, client, supabase, rate_limit_mock):
        app.dependency_overrides[get_chat_pipeline] = lambda: _pipeline(supabase, None)
        try:
            response = client.post("/v1/chat", json={"message": "hello"})
        finally:
            app.dependency_overrides.pop(get_chat_pipeline, None)

        assert response.status_code == 503
        assert response.json()["detail"] == "openai_not_configured"
        assert supabase.calls == []

    def test_non_stream_envelope(self, client, pipeline_override, rate_limit_mock):
        response = client.post(
            "/v1/chat",
            json={"message": "how do I pick a model for Instagram product images?"},
            headers={"x-user-id": "user-42"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["response"]["title"] == "Use FLUX Pro"
        assert 0.4 <= data["response"]["_meta"]["confidence"] <= 0.65
        assert data["metadata"]["topic"] == "pictures"
        assert data["metadata"]["sources"] == []
        rate_limit_mock.assert_called_once_with("user-42")

    def test_stream_returns_sse_events(self, client, pipeline_override, rate_limit_mock):
        response = client.post("/v1/chat", json={"message": "hello", "stream": True})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        events = parse_sse_events(response.text)
        types = [e["type"] for e in events]
        assert types[0] == "meta"
        assert types[-1] == "done"
        assert types.count("done") == 1
        assert "token" in types
        assert json.loads(events[-1]["response"])["title"] == "Use FLUX Pro"

    def test_skip_preferences_header(self, client, supabase, pipeline_override, rate_limit_mock):
        supabase.rpc_handlers["get_user_preference_vector"] = lambda params: {"stored_preferences": {"tone": "bold"}}

        client.post(
            "/v1/chat",
            json={"message": "hello"},
            headers={"x-skip-preferences": "true"},
        )

        system_prompt = pipeline_override.calls[-1]["messages"][0]["content"]
        assert "User prefers" not in system_prompt
        assert ("get_user_preference_vector", "rpc") not in supabase.calls

    def test_session_failure_returns_500(self, client, supabase, pipeline_override, rate_limit_mock):
        supabase.failing_tables.add("chat_sessions")
        response = client.post("/v1/chat", json={"message": "hello"})
        assert response.status_code == 500
        assert response.json()["detail"] == "session_creation_failed"

    def test_rate_limited_returns_429(self, client, pipeline_override, rate_limit_mock):
        rate_limit_mock.side_effect = HTTPException(
            status_code=429, detail="Rate limit exceeded.", headers={"Retry-After": "6"}
        )
        response = client.post("/v1/chat", json={"message": "hello"})
        assert response.status_code == 429
        assert response.headers["retry-after"] == "6"


# ──────────────────────────────────────────────────────────────────────
# Feedback, history, rate limit status
# ──────────────────────────────────────────────────────────────────────


class TestFeedbackEndpoint:
    """POST /v1/chat/feedback"""

    def test_feedback_is_recorded(self, client, supabase):
        with patch("assistant_engine.api.chat.get_supabase", return_value=supabase):
            response = client.post(
                "/v1/chat/feedback",
                json={"message_id": "msg-1", "rating": 5, "reason_tags": ["accurate"]},
                headers={"x-user-id": "user-1"},
            )

        assert response.status_code == 200
        assert response.json()["success"] is True
        row = supabase.rows("chat_feedback")[0]
        assert row["message_id"] == "msg-1"
        assert row["user_id"] == "user-1"
        assert row["reason_tags"] == ["accurate"]

    def test_missing_message_id(self, client):
        response = client.post("/v1/chat/feedback", json={"rating": 3})
        assert response.status_code == 400
        assert response.json()["detail"] == "message_id_required"

    @pytest.mark.parametrize("rating", [-2, 6])
    def test_rating_out_of_range(self, client, rating):
        response = client.post("/v1/chat/feedback", json={"message_id": "m", "rating": rating})
        assert response.status_code == 400
        assert response.json()["detail"] == "invalid_rating"


class TestSessionMessages:
    """GET /v1/chat/sessions/{session_id}/messages"""

    def test_returns_messages_oldest_first(self, client, supabase):
        supabase.tables["chat_messages"] = [
            {"id": "2", "session_id": "s1", "role": "assistant", "created_at": "2026-01-01T00:02:00"},
            {"id": "1", "session_id": "s1", "role": "user", "created_at": "2026-01-01T00:01:00"},
            {"id": "3", "session_id": "other", "role": "user", "created_at": "2026-01-01T00:00:00"},
        ]
        with patch("assistant_engine.api.chat.get_supabase", return_value=supabase):
            response = client.get("/v1/chat/sessions/s1/messages")

        assert response.status_code == 200
        data = response.json()
        assert [m["id"] for m in data["messages"]] == ["1", "2"]
        assert data["total"] == 2

    def test_store_error_returns_500(self, client, supabase):
        supabase.failing_tables.add("chat_messages")
        with patch("assistant_engine.api.chat.get_supabase", return_value=supabase):
            response = client.get("/v1/chat/sessions/s1/messages")
        assert response.status_code == 500


class TestRateLimitStatus:
    """GET /v1/chat/rate-limit-status"""

    def test_reports_bucket(self, client):
        response = client.get("/v1/chat/rate-limit-status", headers={"x-user-id": "status-user"})
        assert response.status_code == 200
        stats = response.json()["rate_limit"]
        assert stats["burst_size"] == 15
        assert stats["tokens_remaining"] == 15
