"""Keyword intent detection: topic category and response-schema hint.

Both tables are evaluated top to bottom and the first matching rule wins.
Order is significant: "copy for my video" is a content request because the
content rule precedes the video rule.
"""

from assistant_engine.core.schemas_chat import Intent, SchemaHint, Topic

# (topic, keywords), first match wins
TOPIC_RULES: list[tuple[Topic, tuple[str, ...]]] = [
    (Topic.CONTENT, ("content", "copy", "caption")),
    (Topic.PICTURES, ("picture", "image", "photo", "flux", "dall")),
    (Topic.VIDEO, ("video", "clip", "animate", "veo", "runway", "luma")),
]

# (schema, keywords), first match wins; vision fallback handled separately
SCHEMA_RULES: list[tuple[SchemaHint, tuple[str, ...]]] = [
    (SchemaHint.QUICKSTART, ("how to", "steps", "start")),
    (SchemaHint.COMPARISON, ("compare", "vs", "difference")),
    (SchemaHint.RECOMMENDATION, ("recommend", "should i", "best")),
    (SchemaHint.SETTINGS, ("setting", "configure", "option")),
]

# Words that push the coarse hint estimate up
DETAIL_WORDS: tuple[str, ...] = ("advanced", "detailed")


def detect_topic(lower: str) -> Topic:
    """First-match topic from TOPIC_RULES, defaulting to general."""
    for topic, keywords in TOPIC_RULES:
        if any(k in lower for k in keywords):
            return topic
    return Topic.GENERAL


def detect_schema(lower: str, has_images: bool = False) -> SchemaHint:
    """First-match schema hint; images fall back to vision analysis."""
    for schema, keywords in SCHEMA_RULES:
        if any(k in lower for k in keywords):
            return schema
    if has_images:
        return SchemaHint.VISION_ANALYSIS
    return SchemaHint.EXPLANATION


def estimate_hint_complexity(lower: str, has_images: bool = False) -> float:
    """Coarse complexity for schema/UI hints. Not used for routing."""
    complexity = 0.3
    if len(lower.split(" ")) > 20:
        complexity += 0.2
    if has_images:
        complexity += 0.3
    if any(word in lower for word in DETAIL_WORDS):
        complexity += 0.2
    return min(complexity, 1.0)


def detect_intent(message: str, has_images: bool = False) -> Intent:
    """
    Classify a message into a topic category and response-schema hint.

    Args:
        message: Raw user message
        has_images: Whether image attachments were sent

    Returns:
        Intent with topic, schema hint and a coarse complexity estimate
    """
    lower = message.lower()
    return Intent(
        topic=detect_topic(lower),
        schema_hint=detect_schema(lower, has_images),
        complexity=estimate_hint_complexity(lower, has_images),
    )
