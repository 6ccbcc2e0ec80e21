"""Chat message records (append-only)."""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)

MESSAGES_TABLE = "chat_messages"


def build_message_row(
    session_id: str,
    user_id: str,
    role: str,
    content: str | dict[str, Any],
    message_id: str | None = None,
    **metadata: Any,
) -> dict[str, Any]:
    """
    Build a chat_messages row.

    Assistant rows keep the structured payload alongside its serialized text.

    Args:
        session_id: Owning session
        user_id: User identifier
        role: 'user' or 'assistant'
        content: Raw text or structured payload
        message_id: Pre-assigned id (generated when omitted)
        **metadata: topic, schema_type, sources, model, tokens_used, latency_ms,
            has_attachments, attachment_types, complexity_score, model_selection

    Returns:
        Row dict ready for insert
    """
    return {
        "id": message_id or str(uuid4()),
        "session_id": session_id,
        "user_id": user_id,
        "role": role,
        "raw_prompt": content if isinstance(content, str) else json.dumps(content),
        "structured_response": content if role == "assistant" else None,
        "schema_type": metadata.get("schema_type"),
        "topic": metadata.get("topic"),
        "sources": metadata.get("sources") or [],
        "model": metadata.get("model"),
        "tokens_used": metadata.get("tokens_used"),
        "latency_ms": metadata.get("latency_ms"),
        "has_attachments": metadata.get("has_attachments", False),
        "attachment_types": metadata.get("attachment_types") or [],
        "complexity_score": metadata.get("complexity_score"),
        "model_selection": metadata.get("model_selection"),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def insert_message(supabase: Any, row: dict[str, Any]) -> dict[str, Any]:
    """
    Insert a message row.

    Raises:
        Exception: If database operation fails
    """
    response = supabase.table(MESSAGES_TABLE).insert(row).execute()
    if not response.data:
        raise ValueError("No data returned from message insert")
    logger.debug(f"Saved {row['role']} message {row['id']} in session {row['session_id']}")
    return response.data[0]


def list_recent_messages(supabase: Any, session_id: str, limit: int = 5) -> list[dict[str, Any]]:
    """Newest-first messages for a session."""
    response = (
        supabase.table(MESSAGES_TABLE)
        .select("role, raw_prompt, structured_response, topic, created_at")
        .eq("session_id", session_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []


def list_session_messages(supabase: Any, session_id: str, limit: int = 100) -> list[dict[str, Any]]:
    """Oldest-first messages for a session (history view)."""
    response = (
        supabase.table(MESSAGES_TABLE)
        .select("*")
        .eq("session_id", session_id)
        .order("created_at")
        .limit(limit)
        .execute()
    )
    return response.data or []
