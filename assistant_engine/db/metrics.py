"""Operational metrics rows (one per chat request)."""

from datetime import datetime, timezone
from typing import Any

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)

METRICS_TABLE = "chat_metrics"


def insert_metrics(supabase: Any, row: dict[str, Any]) -> None:
    """
    Insert a metrics row.

    Raises:
        Exception: If database operation fails
    """
    payload = {"created_at": datetime.now(timezone.utc).isoformat(), **row}
    supabase.table(METRICS_TABLE).insert(payload).execute()
    logger.debug(
        f"Metrics logged: status={row.get('status')} model={row.get('model')} "
        f"total_ms={row.get('total_latency_ms')}"
    )


def list_successful_models(
    supabase: Any,
    user_id: str,
    topic: str,
    limit: int = 20,
) -> list[dict[str, Any]]:
    """Recent successful requests for a user+topic (newest first)."""
    response = (
        supabase.table(METRICS_TABLE)
        .select("model, topic, status")
        .eq("user_id", user_id)
        .eq("topic", topic)
        .eq("status", "success")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []
