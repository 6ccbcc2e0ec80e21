"""Process-wide Supabase client for sessions, messages, metrics and documents."""

from functools import lru_cache

from supabase import Client, create_client

from assistant_engine.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Service-role client shared by every request.

    The client is synchronous; callers on the event loop wrap queries in
    ``asyncio.to_thread``.

    Raises:
        RuntimeError: If the client cannot be created from settings
    """
    settings = get_settings()
    try:
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Supabase client unavailable: {e}") from e
    return client
