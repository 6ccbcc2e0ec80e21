"""User feedback on assistant messages and quality-check rules."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)

FEEDBACK_TABLE = "chat_feedback"
QUALITY_RULES_TABLE = "quality_check_rules"


def insert_feedback(
    supabase: Any,
    user_id: str,
    message_id: str,
    rating: int | None,
    reason_tags: list[str],
    free_text: str | None,
) -> dict[str, Any]:
    """
    Record feedback for an assistant message.

    Raises:
        Exception: If database operation fails
    """
    row = {
        "id": str(uuid4()),
        "message_id": message_id,
        "user_id": user_id,
        "rating": rating,
        "reason_tags": reason_tags,
        "free_text": free_text,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    response = supabase.table(FEEDBACK_TABLE).insert(row).execute()
    if not response.data:
        raise ValueError("No data returned from feedback insert")
    logger.info(f"Feedback {row['id']} recorded for message {message_id}")
    return response.data[0]


def list_quality_rules(supabase: Any, topic: str) -> list[dict[str, Any]]:
    """Active quality-check rules for a topic."""
    response = (
        supabase.table(QUALITY_RULES_TABLE)
        .select("*")
        .eq("topic", topic)
        .eq("is_active", True)
        .execute()
    )
    return response.data or []
