"""Tests for conversation context and personalization signals."""

import time

import pytest

from assistant_engine.core.chat_context import (
    ContextAggregator,
    compute_smart_defaults,
    summarize_conversation,
)


def _message(role, text, topic, created_at):
    return {
        "session_id": "s1",
        "role": role,
        "raw_prompt": text,
        "topic": topic,
        "created_at": created_at,
    }


def test_summarize_empty():
    context = summarize_conversation([])
    assert context.turn_count == 0
    assert context.most_recent_topic is None


def test_summarize_newest_first_rows():
    rows = [
        _message("assistant", "{...}", "video", "2026-01-01T00:03:00"),
        _message("user", "x" * 80, "video", "2026-01-01T00:02:00"),
        _message("user", "first question", "pictures", "2026-01-01T00:01:00"),
    ]
    context = summarize_conversation(rows)

    assert context.turn_count == 3
    assert context.most_recent_topic == "video"
    assert context.recent_queries == ["x" * 50, "first question"]
    # chronological order
    assert context.turns[0]["raw_prompt"] == "first question"


def test_smart_defaults_from_stored_preference():
    defaults = compute_smart_defaults({"pictures": {"defaultProvider": "FLUX Pro"}}, [], "pictures")
    assert defaults.suggested_provider == "FLUX Pro"
    assert defaults.confidence == pytest.approx(0.8)


def test_smart_defaults_from_usage_history():
    successes = [{"model": "gpt-4o"}] * 3 + [{"model": "gpt-4o-mini"}]
    defaults = compute_smart_defaults({}, successes, "content")
    assert defaults.suggested_model == "gpt-4o"
    assert defaults.confidence == pytest.approx(0.9)  # min(0.9, 0.5 + 3/4)


def test_smart_defaults_neutral_without_signals():
    defaults = compute_smart_defaults({}, [], "video")
    assert defaults.suggested_model is None
    assert defaults.suggested_provider is None
    assert defaults.confidence == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_conversation_context_reads_latest_turns(fake_supabase):
    fake_supabase.tables["chat_messages"] = [
        _message("user", f"q{i}", "content", f"2026-01-01T00:0{i}:00") for i in range(7)
    ]
    aggregator = ContextAggregator(fake_supabase)

    context = await aggregator.get_conversation_context("s1", limit=5)

    assert context.turn_count == 5
    assert context.turns[-1]["raw_prompt"] == "q6"
    assert context.turns[0]["raw_prompt"] == "q2"


@pytest.mark.asyncio
async def test_failures_degrade_to_neutral_values(fake_supabase):
    fake_supabase.failing_tables |= {
        "chat_messages",
        "user_profiles",
        "chat_metrics",
        "campaign_templates",
        "budget_optimization_insights",
        "get_user_preference_vector",
    }
    aggregator = ContextAggregator(fake_supabase)

    assert (await aggregator.get_conversation_context("s1")).turn_count == 0
    defaults = await aggregator.get_smart_defaults("u1", "pictures")
    assert defaults.suggested_provider is None and defaults.confidence == pytest.approx(0.5)
    assert await aggregator.get_user_preferences("u1") == {}
    assert await aggregator.get_campaign_templates("pictures") == []
    assert await aggregator.get_budget_suggestions("u1") == []


@pytest.mark.asyncio
async def test_slow_store_times_out(fake_supabase):
    class SlowSupabase:
        def table(self, _name):
            time.sleep(0.3)
            return fake_supabase.table("chat_messages")

    aggregator = ContextAggregator(SlowSupabase(), context_timeout=0.05)
    context = await aggregator.get_conversation_context("s1")
    assert context.turn_count == 0


@pytest.mark.asyncio
async def test_templates_and_budget_tips(fake_supabase):
    fake_supabase.tables["campaign_templates"] = [
        {"name": "Flash Sale", "topic": "content", "is_public": True, "proven_ctr": 3.1},
        {"name": "Launch", "topic": "content", "is_public": True, "proven_ctr": 4.2},
        {"name": "Private", "topic": "content", "is_public": False, "proven_ctr": 9.0},
    ]
    fake_supabase.tables["budget_optimization_insights"] = [
        {"user_id": "u1", "title": "Use gpt-4o-mini for captions", "is_read": False,
         "priority": 2, "potential_savings": 10},
        {"user_id": "u1", "title": "Old tip", "is_read": True, "priority": 5, "potential_savings": 50},
    ]
    aggregator = ContextAggregator(fake_supabase)

    templates = await aggregator.get_campaign_templates("content")
    tips = await aggregator.get_budget_suggestions("u1")

    assert [t["name"] for t in templates] == ["Launch", "Flash Sale"]
    assert [t["title"] for t in tips] == ["Use gpt-4o-mini for captions"]
