"""Tests for answer quality rules and usage cost estimation."""

import pytest

from assistant_engine.core.llm_usage import estimate_cost
from assistant_engine.core.quality import answer_text, evaluate_rules, run_quality_checks
from tests.fakes.fake_supabase import FakeSupabase

RULES = [
    {
        "rule_name": "short_brief",
        "check_type": "length",
        "rule_config": {"max": 20},
        "severity": "warning",
    },
    {
        "rule_name": "plain_language",
        "check_type": "readability",
        "rule_config": {"max_words": 100},
        "severity": "info",
    },
    {"rule_name": "unknown", "check_type": "sentiment", "rule_config": {}},
]


def test_length_rule_flags_long_content():
    issues = evaluate_rules("x" * 25, RULES)
    assert issues == [
        {
            "severity": "warning",
            "rule": "short_brief",
            "message": "Content too long: 25 chars (max: 20)",
        }
    ]


def test_readability_rule_counts_words():
    issues = evaluate_rules(" ".join(["w"] * 101), RULES[1:])
    assert issues[0]["rule"] == "plain_language"
    assert "101 words" in issues[0]["message"]


def test_platform_filter():
    rules = [dict(RULES[0], platform="tiktok")]
    assert evaluate_rules("x" * 25, rules, platform="instagram") == []
    assert len(evaluate_rules("x" * 25, rules, platform="tiktok")) == 1


def test_answer_text_joins_brief_and_bullets():
    assert answer_text({"brief": "Use FLUX", "bullets": ["a", "b"]}) == "Use FLUX\na\nb"
    assert answer_text({"message": "Hi"}) == "Hi"


@pytest.mark.asyncio
async def test_run_quality_checks_degrades_on_store_error():
    supabase = FakeSupabase()
    supabase.failing_tables.add("quality_check_rules")
    assert await run_quality_checks(supabase, {"brief": "x" * 500}, "pictures") == []


def test_estimate_cost_prefers_longest_prefix():
    # gpt-4o-mini pricing, not gpt-4o
    assert estimate_cost("gpt-4o-mini-2024-07-18", 1_000_000, 0) == pytest.approx(0.15)
    assert estimate_cost("gpt-4o", 1_000_000, 1_000_000) == pytest.approx(12.5)


def test_estimate_cost_unknown_model_is_zero():
    assert estimate_cost("mystery-model", 1000, 1000) == 0.0
