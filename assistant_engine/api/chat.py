"""Chat assistant API endpoints."""

import asyncio
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from assistant_engine.core.config import get_settings
from assistant_engine.core.embeddings import OpenAIEmbedder
from assistant_engine.core.llm import OpenAIChatModel
from assistant_engine.core.logging import get_logger
from assistant_engine.core.persistence import PersistenceQueue
from assistant_engine.core.pipeline import (
    ChatDependencies,
    ChatModelNotConfigured,
    ChatPipeline,
    InvalidChatRequest,
    SessionUnavailable,
)
from assistant_engine.core.rate_limiter import check_chat_rate_limit, get_chat_rate_limit_stats
from assistant_engine.core.schemas_chat import ChatRequest, FeedbackRequest
from assistant_engine.db.doc_chunks import SupabaseDocStore
from assistant_engine.db.feedback import insert_feedback
from assistant_engine.db.messages import list_session_messages
from assistant_engine.db.supabase_client import get_supabase

logger = get_logger(__name__)

router = APIRouter()

MIN_RATING = -1
MAX_RATING = 5

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@lru_cache
def get_persistence_queue() -> PersistenceQueue:
    return PersistenceQueue(write_timeout=get_settings().PERSISTENCE_TIMEOUT)


@lru_cache
def get_chat_pipeline() -> ChatPipeline:
    """Build the process-wide pipeline from settings (cached)."""
    settings = get_settings()
    supabase = get_supabase()

    embedder = None
    chat_model = None
    if settings.OPENAI_API_KEY:
        embedder = OpenAIEmbedder(
            settings.OPENAI_API_KEY,
            model=settings.EMBEDDING_MODEL,
            dimension=settings.EMBEDDING_DIM,
        )
        chat_model = OpenAIChatModel(settings.OPENAI_API_KEY, temperature=settings.CHAT_TEMPERATURE)
    else:
        logger.warning("OPENAI_API_KEY not set: chat requests will return 503")

    return ChatPipeline(
        ChatDependencies(
            supabase=supabase,
            settings=settings,
            doc_store=SupabaseDocStore(supabase),
            embedder=embedder,
            chat_model=chat_model,
            persistence=get_persistence_queue(),
        )
    )


def _is_true(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


@router.post("/chat")
async def chat_with_assistant(
    body: ChatRequest,
    http_request: Request,
    x_user_id: str = Header("anonymous"),
    x_skip_preferences: str | None = Header(None),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> Any:
    """
    Answer one chat message with a grounded JSON response.

    Streams SSE events (meta, token, title, done) when ``stream`` is true,
    otherwise returns ``{response, metadata}``.

    Args:
        body: Chat request
        x_user_id: Caller identity (authentication happens upstream)
        x_skip_preferences: "true" disables personalization for this call

    Returns:
        StreamingResponse or the response envelope
    """
    try:
        pipeline.validate(body)
    except InvalidChatRequest as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ChatModelNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    check_chat_rate_limit(x_user_id)
    skip_preferences = _is_true(x_skip_preferences)

    try:
        if not body.stream:
            return await pipeline.respond(body, x_user_id, skip_preferences)

        prepared = await pipeline.prepare(body, x_user_id, skip_preferences)
        return StreamingResponse(
            pipeline.stream(prepared, is_disconnected=http_request.is_disconnected),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    except SessionUnavailable as e:
        logger.error(f"Session creation failed for user {x_user_id}: {e}", exc_info=True)
        pipeline.record_failure(x_user_id, e)
        raise HTTPException(status_code=500, detail="session_creation_failed") from e
    except Exception as e:
        logger.error(f"Error in chat endpoint: {e}", exc_info=True)
        pipeline.record_failure(x_user_id, e)
        raise HTTPException(status_code=500, detail="internal_error") from e


@router.post("/chat/feedback")
async def submit_feedback(
    body: FeedbackRequest,
    x_user_id: str = Header("anonymous"),
) -> dict[str, Any]:
    """
    Record a rating for an assistant message.

    Raises:
        HTTPException 400: missing message_id or rating outside -1..5
    """
    if not body.message_id:
        raise HTTPException(status_code=400, detail="message_id_required")
    if body.rating is not None and not MIN_RATING <= body.rating <= MAX_RATING:
        raise HTTPException(status_code=400, detail="invalid_rating")

    try:
        row = await asyncio.to_thread(
            insert_feedback,
            get_supabase(),
            x_user_id,
            body.message_id,
            body.rating,
            body.reason_tags,
            body.free_text,
        )
        return {"success": True, "feedback_id": row.get("id")}

    except Exception as e:
        logger.error(f"Error saving feedback: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="internal_error") from e


@router.get("/chat/rate-limit-status")
async def get_rate_limit_status(x_user_id: str = Header("anonymous")) -> dict[str, Any]:
    """Rate limit bucket for the calling user."""
    try:
        stats = get_chat_rate_limit_stats(x_user_id)
        return {"status": "ok", "rate_limit": stats}

    except Exception as e:
        logger.error(f"Error getting rate limit status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="internal_error") from e


@router.get("/chat/sessions/{session_id}/messages")
async def get_session_messages(
    session_id: str,
    limit: int = Query(100, ge=1, le=500, description="Maximum number of messages to return"),
) -> dict[str, Any]:
    """
    Messages for a session, oldest first.

    Args:
        session_id: Session id
        limit: Maximum number of messages

    Returns:
        Messages and total count
    """
    try:
        messages = await asyncio.to_thread(list_session_messages, get_supabase(), session_id, limit)
        return {"messages": messages, "total": len(messages)}

    except Exception as e:
        logger.error(f"Error getting messages: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="internal_error") from e
