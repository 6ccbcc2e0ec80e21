"""Chat session storage: reuse-if-fresh-else-create."""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from dateutil import parser as dateutil_parser

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)

SESSIONS_TABLE = "chat_sessions"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are treated as UTC."""
    if not value:
        return None
    try:
        parsed = dateutil_parser.isoparse(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_latest_active_session(supabase: Any, user_id: str) -> dict[str, Any] | None:
    """Most recently active session for a user, or None."""
    response = (
        supabase.table(SESSIONS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("is_active", True)
        .order("last_activity_at", desc=True)
        .limit(1)
        .execute()
    )
    rows = response.data or []
    return rows[0] if rows else None


def upsert_active_session(
    supabase: Any,
    user_id: str,
    channel: str = "web",
    idle_window: timedelta = timedelta(hours=1),
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Return the user's session, creating one when the last is stale.

    The freshness predicate is ``last_activity_at > now - idle_window``. A
    fresh session is touched and reused; otherwise prior active sessions are
    deactivated and a new one is inserted. This is read-then-write without a
    lock: two concurrent first messages can both insert.

    Args:
        supabase: Supabase client
        user_id: User identifier
        channel: Channel the user is chatting on
        idle_window: Inactivity after which a new session starts
        now: Current time (injectable for tests)

    Returns:
        Session row

    Raises:
        Exception: If a new session could not be inserted
    """
    now = now or _utc_now()

    try:
        session = get_latest_active_session(supabase, user_id)
    except Exception as e:
        logger.error(f"Session fetch failed for user {user_id}: {e}")
        session = None

    if session:
        last_activity = _parse_datetime(session.get("last_activity_at"))
        if last_activity and last_activity > now - idle_window:
            try:
                supabase.table(SESSIONS_TABLE).update(
                    {"last_activity_at": now.isoformat()}
                ).eq("id", session["id"]).execute()
                session = {**session, "last_activity_at": now.isoformat()}
            except Exception as e:
                logger.warning(f"Session touch failed for {session['id']}: {e}")
            return session

        try:
            supabase.table(SESSIONS_TABLE).update({"is_active": False}).eq(
                "user_id", user_id
            ).eq("is_active", True).execute()
        except Exception as e:
            logger.warning(f"Failed to deactivate stale sessions for user {user_id}: {e}")

    row = {
        "id": str(uuid4()),
        "user_id": user_id,
        "channel": channel,
        "is_active": True,
        "last_activity_at": now.isoformat(),
        "created_at": now.isoformat(),
    }
    response = supabase.table(SESSIONS_TABLE).insert(row).execute()
    if not response.data:
        raise ValueError("No data returned from session insert")

    logger.info(
        f"Created session {row['id']} for user {user_id}",
        extra={"extra_data": {"session_id": row["id"], "channel": channel}},
    )
    return response.data[0]
