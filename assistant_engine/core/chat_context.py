"""Chat context assembly: conversation history and personalization signals.

Every fetch runs under its own timeout and falls back to a neutral value, so
a slow or failing store never stalls the request.
"""

import asyncio
from collections import Counter
from collections.abc import Callable
from typing import Any, TypeVar

from assistant_engine.core.logging import get_logger
from assistant_engine.core.schemas_chat import ConversationContext, SmartDefaults
from assistant_engine.db.messages import list_recent_messages
from assistant_engine.db.metrics import list_successful_models
from assistant_engine.db.preferences import get_preference_vector, get_profile_preferences
from assistant_engine.db.suggestions import list_budget_suggestions, list_campaign_templates

logger = get_logger(__name__)

T = TypeVar("T")

QUERY_PREVIEW_CHARS = 50
STORED_PREFERENCE_CONFIDENCE = 0.8
MAX_HISTORY_CONFIDENCE = 0.9


async def _bounded(
    label: str,
    fn: Callable[..., T],
    *args: Any,
    timeout: float,
    fallback: T,
) -> T:
    """Run a blocking store call in a thread with a timeout and fallback."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{label} timed out after {timeout}s (using fallback)")
    except Exception as e:
        logger.warning(f"{label} failed (non-fatal): {e}")
    return fallback


def summarize_conversation(rows: list[dict[str, Any]]) -> ConversationContext:
    """Derive patterns from newest-first message rows."""
    if not rows:
        return ConversationContext()

    topics = [r["topic"] for r in rows if r.get("topic")]
    recent_queries = [
        (r.get("raw_prompt") or "")[:QUERY_PREVIEW_CHARS]
        for r in rows
        if r.get("role") == "user"
    ]
    return ConversationContext(
        turns=list(reversed(rows)),
        topics=topics,
        most_recent_topic=topics[0] if topics else None,
        recent_queries=recent_queries,
        turn_count=len(rows),
    )


def compute_smart_defaults(
    profile_preferences: dict[str, Any],
    recent_successes: list[dict[str, Any]],
    topic: str,
) -> SmartDefaults:
    """
    Combine a stored per-topic preference with recent usage.

    A stored ``defaultProvider`` for the topic gives 0.8 confidence. The most
    frequent successful model then sets confidence to
    ``min(0.9, 0.5 + top_count / total)``.
    """
    defaults = SmartDefaults()

    topic_pref = profile_preferences.get(topic) if profile_preferences else None
    if isinstance(topic_pref, dict) and topic_pref.get("defaultProvider"):
        defaults.suggested_provider = topic_pref["defaultProvider"]
        defaults.confidence = STORED_PREFERENCE_CONFIDENCE

    models = [r["model"] for r in recent_successes if r.get("model")]
    if models:
        top_model, top_count = Counter(models).most_common(1)[0]
        defaults.suggested_model = top_model
        defaults.confidence = min(MAX_HISTORY_CONFIDENCE, 0.5 + top_count / len(models))

    return defaults


class ContextAggregator:
    """Reads conversation and personalization signals for one request."""

    def __init__(
        self,
        supabase: Any,
        context_timeout: float = 2.0,
        preferences_timeout: float = 2.0,
    ):
        self._supabase = supabase
        self._context_timeout = context_timeout
        self._preferences_timeout = preferences_timeout

    async def get_conversation_context(self, session_id: str, limit: int = 5) -> ConversationContext:
        """Most recent ``limit`` turns in chronological order plus derived patterns."""
        rows = await _bounded(
            "Conversation context fetch",
            list_recent_messages,
            self._supabase,
            session_id,
            limit,
            timeout=self._context_timeout,
            fallback=[],
        )
        return summarize_conversation(rows)

    async def get_smart_defaults(self, user_id: str, topic: str) -> SmartDefaults:
        """Suggested provider/model for the topic; neutral defaults on failure."""

        def _load() -> SmartDefaults:
            prefs = get_profile_preferences(self._supabase, user_id)
            successes = list_successful_models(self._supabase, user_id, topic)
            return compute_smart_defaults(prefs, successes, topic)

        return await _bounded(
            "Smart defaults fetch",
            _load,
            timeout=self._preferences_timeout,
            fallback=SmartDefaults(),
        )

    async def get_user_preferences(self, user_id: str) -> dict[str, Any]:
        """Computed preference vector; empty on failure."""
        return await _bounded(
            "Preference fetch",
            get_preference_vector,
            self._supabase,
            user_id,
            timeout=self._preferences_timeout,
            fallback={},
        )

    async def get_campaign_templates(self, topic: str) -> list[dict[str, Any]]:
        return await _bounded(
            "Template fetch",
            list_campaign_templates,
            self._supabase,
            topic,
            timeout=self._preferences_timeout,
            fallback=[],
        )

    async def get_budget_suggestions(self, user_id: str) -> list[dict[str, Any]]:
        return await _bounded(
            "Budget suggestion fetch",
            list_budget_suggestions,
            self._supabase,
            user_id,
            timeout=self._preferences_timeout,
            fallback=[],
        )
