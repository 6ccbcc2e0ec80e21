"""Rule-based quality checks on the assistant's answer text."""

import asyncio
from typing import Any

from assistant_engine.core.logging import get_logger
from assistant_engine.db.feedback import list_quality_rules

logger = get_logger(__name__)


def _check_length(content: str, config: dict[str, Any]) -> str | None:
    limit = config.get("max")
    if limit is not None and len(content) > limit:
        return f"Content too long: {len(content)} chars (max: {limit})"
    return None


def _check_readability(content: str, config: dict[str, Any]) -> str | None:
    limit = config.get("max_words")
    words = len(content.split())
    if limit is not None and words > limit:
        return f"Too complex: {words} words (max: {limit})"
    return None


CHECKS = {
    "length": _check_length,
    "readability": _check_readability,
}


def evaluate_rules(
    content: str,
    rules: list[dict[str, Any]],
    platform: str | None = None,
) -> list[dict[str, Any]]:
    """Issues raised by ``rules`` against ``content``; unknown check types are skipped."""
    issues: list[dict[str, Any]] = []
    for rule in rules:
        if platform and rule.get("platform") and rule["platform"] != platform:
            continue
        check = CHECKS.get(rule.get("check_type", ""))
        if check is None:
            continue
        message = check(content, rule.get("rule_config") or {})
        if message:
            issues.append({
                "severity": rule.get("severity", "warning"),
                "rule": rule.get("rule_name"),
                "message": message,
            })
    return issues


def answer_text(response: dict[str, Any]) -> str:
    """Readable text of a structured answer (brief/message plus bullets)."""
    parts = [response.get("brief") or response.get("message") or ""]
    parts.extend(str(b) for b in response.get("bullets") or [])
    return "\n".join(p for p in parts if p)


def collect_quality_issues(supabase: Any, response: dict[str, Any], topic: str) -> list[dict[str, Any]]:
    """Blocking rule fetch + evaluation; empty when the rules cannot be read."""
    try:
        rules = list_quality_rules(supabase, topic)
    except Exception as e:
        logger.warning(f"Quality checks failed (non-fatal): {e}")
        return []
    return evaluate_rules(answer_text(response), rules)


async def run_quality_checks(
    supabase: Any,
    response: dict[str, Any],
    topic: str,
    timeout: float = 2.0,
) -> list[dict[str, Any]]:
    """Evaluate active topic rules against a response; empty on any failure."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(collect_quality_issues, supabase, response, topic), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.warning(f"Quality rule fetch timed out after {timeout}s")
        return []
