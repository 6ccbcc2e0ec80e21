"""Campaign templates and budget-optimization insights surfaced in prompts."""

from typing import Any

TEMPLATES_TABLE = "campaign_templates"
BUDGET_INSIGHTS_TABLE = "budget_optimization_insights"


def list_campaign_templates(
    supabase: Any,
    topic: str,
    category: str | None = None,
    industry: str | None = None,
    limit: int = 3,
) -> list[dict[str, Any]]:
    """Public templates for a topic, best proven CTR first."""
    query = (
        supabase.table(TEMPLATES_TABLE)
        .select("*")
        .eq("topic", topic)
        .eq("is_public", True)
    )
    if category:
        query = query.eq("category", category)
    if industry:
        query = query.eq("industry", industry)

    response = query.order("proven_ctr", desc=True).limit(limit).execute()
    return response.data or []


def list_budget_suggestions(supabase: Any, user_id: str, limit: int = 3) -> list[dict[str, Any]]:
    """Unread budget insights for a user, highest priority and savings first."""
    response = (
        supabase.table(BUDGET_INSIGHTS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("is_read", False)
        .order("priority", desc=True)
        .order("potential_savings", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []
