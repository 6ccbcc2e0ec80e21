"""Heuristic confidence score shown alongside each answer."""

from collections.abc import Collection, Sequence

MIN_CONFIDENCE = 0.4
MAX_CONFIDENCE = 0.95


def calculate_confidence(
    chunk_scores: Sequence[float],
    has_preferences: bool,
    conversation_length: int,
    model: str | None,
    premium_models: Collection[str] = (),
) -> float:
    """
    Combine retrieval quality, personalization and context depth.

    Base 0.5, plus average similarity x 0.3 when chunks were retrieved,
    0.15 when a stored preference applied, 0.1 for conversations longer
    than three turns and 0.05 for a premium-tier model.

    Returns:
        Confidence clamped to [0.4, 0.95]
    """
    confidence = 0.5

    if chunk_scores:
        avg_score = sum(chunk_scores) / len(chunk_scores)
        confidence += avg_score * 0.3

    if has_preferences:
        confidence += 0.15

    if conversation_length > 3:
        confidence += 0.1

    if model and model in premium_models:
        confidence += 0.05

    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence))
