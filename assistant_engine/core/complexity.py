"""Request complexity scoring used for model routing.

Pure and deterministic: the same message, attachments and history always
produce the same score in [0, 1].
"""

import re
from collections.abc import Sequence
from typing import Any

BASE_SCORE = 0.3

TECHNICAL_TERMS: tuple[str, ...] = (
    "api",
    "webhook",
    "integration",
    "schema",
    "database",
    "algorithm",
    "optimize",
)

_WHITESPACE = re.compile(r"\s+")


def _word_count(message: str) -> int:
    stripped = message.strip()
    if not stripped:
        return 0
    return len(_WHITESPACE.split(stripped))


def has_technical_terms(message: str) -> bool:
    """True when any technical term appears (case-insensitive substring)."""
    lower = message.lower()
    return any(term in lower for term in TECHNICAL_TERMS)


def calculate_complexity_score(
    message: str,
    attachments: Sequence[Any] = (),
    history: Sequence[Any] = (),
) -> float:
    """
    Score how demanding a request is.

    Each factor adds a fixed increment to a 0.3 base:
    word count > 100 (+0.2) and > 200 (+0.2), technical terms (+0.15),
    any attachment (+0.2) and more than two (+0.1), history longer than
    5 (+0.1) and 10 (+0.15) turns, more than two question marks (+0.1).

    Args:
        message: User message text
        attachments: Attachments sent with the message
        history: Prior conversation turns

    Returns:
        Complexity score clamped to [0, 1]
    """
    score = BASE_SCORE

    words = _word_count(message)
    if words > 100:
        score += 0.2
    if words > 200:
        score += 0.2

    if has_technical_terms(message):
        score += 0.15

    if len(attachments) > 0:
        score += 0.2
    if len(attachments) > 2:
        score += 0.1

    if len(history) > 5:
        score += 0.1
    if len(history) > 10:
        score += 0.15

    if message.count("?") > 2:
        score += 0.1

    return min(1.0, score)
