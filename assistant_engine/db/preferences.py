"""Read-only access to user preference data.

Preferences are written by the scheduled preference-learning job; this
service only reads them.
"""

from typing import Any

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)

PROFILES_TABLE = "user_profiles"


def get_preference_vector(supabase: Any, user_id: str) -> dict[str, Any]:
    """Computed preference vector from the ``get_user_preference_vector`` RPC."""
    response = supabase.rpc("get_user_preference_vector", {"p_user_id": user_id}).execute()
    data = response.data
    return data if isinstance(data, dict) else {}


def get_profile_preferences(supabase: Any, user_id: str) -> dict[str, Any]:
    """Per-topic stored preferences, e.g. ``{"pictures": {"defaultProvider": "FLUX Pro"}}``."""
    response = (
        supabase.table(PROFILES_TABLE)
        .select("preferences")
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    rows = response.data or []
    if not rows:
        return {}
    return rows[0].get("preferences") or {}
