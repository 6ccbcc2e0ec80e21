"""Prompt Compiler: assembles the system prompt and model messages.

Guidance is selected from an ordered rule table keyed by (topic, trigger
words). Per-request signals are rendered only when present. The OUTPUT FORMAT
block and the fallback example always close the prompt.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from assistant_engine.context.prompt_blocks import (
    BLOCK_FALLBACK_EXAMPLE,
    BLOCK_OUTPUT_FORMAT,
    BLOCK_PERSONA,
    CLOSING_IMAGE_PROMPT,
    CLOSING_VIDEO_PROMPT,
    CRITICAL_IMAGE_PROMPT,
    CRITICAL_VIDEO_PROMPT,
    GUIDELINES_IMAGE_PROMPT,
    GUIDELINES_VIDEO_PROMPT,
    NO_DOCUMENTATION,
)
from assistant_engine.core.logging import get_logger
from assistant_engine.core.schemas_chat import (
    Attachment,
    ConversationContext,
    RetrievalChunk,
    SmartDefaults,
    Topic,
    Turn,
)

logger = get_logger(__name__)

SMART_DEFAULT_THRESHOLD = 0.7


# ── Guidance Rules ─────────────────────────────────────────────────


@dataclass(frozen=True)
class GuidanceBlock:
    """Topic-specific instructions placed at three points in the prompt."""

    topic: Topic
    triggers: tuple[str, ...]
    critical: str
    guidelines: str
    closing: str

    def matches(self, topic: Topic, lower_message: str) -> bool:
        return topic == self.topic and any(t in lower_message for t in self.triggers)


GUIDANCE_RULES: list[GuidanceBlock] = [
    GuidanceBlock(
        topic=Topic.VIDEO,
        triggers=("prompt", "scene", "animate"),
        critical=CRITICAL_VIDEO_PROMPT,
        guidelines=GUIDELINES_VIDEO_PROMPT,
        closing=CLOSING_VIDEO_PROMPT,
    ),
    GuidanceBlock(
        topic=Topic.PICTURES,
        triggers=("prompt", "detailed", "scene"),
        critical=CRITICAL_IMAGE_PROMPT,
        guidelines=GUIDELINES_IMAGE_PROMPT,
        closing=CLOSING_IMAGE_PROMPT,
    ),
]


def select_guidance(topic: Topic, message: str) -> list[GuidanceBlock]:
    lower = message.lower()
    return [rule for rule in GUIDANCE_RULES if rule.matches(topic, lower)]


# ── Signal Rendering ───────────────────────────────────────────────


@dataclass
class PromptSignals:
    """Personalization inputs; every field may be empty."""

    conversation: ConversationContext = field(default_factory=ConversationContext)
    preferences: dict[str, Any] = field(default_factory=dict)
    smart_defaults: SmartDefaults = field(default_factory=SmartDefaults)
    templates: list[dict[str, Any]] = field(default_factory=list)
    budget_suggestions: list[dict[str, Any]] = field(default_factory=list)


def stored_preferences(vector: dict[str, Any]) -> dict[str, Any] | None:
    """The explicitly saved part of a preference vector, if any."""
    return (vector or {}).get("stored_preferences") or None


def render_documentation(chunks: list[RetrievalChunk]) -> str:
    if not chunks:
        return NO_DOCUMENTATION
    return "\n\n---\n\n".join(f"# {c.title}\n\n{c.body}" for c in chunks)


def render_signals(signals: PromptSignals) -> list[str]:
    """One line per available signal, in fixed order."""
    lines: list[str] = []

    conv = signals.conversation
    if conv.turn_count > 0:
        about = conv.most_recent_topic or "general"
        lines.append(f"Context: User has asked {conv.turn_count} questions, mostly about {about}")

    stored = stored_preferences(signals.preferences)
    if stored:
        lines.append(f"User prefers: {json.dumps(stored, default=str)}")

    defaults = signals.smart_defaults
    if defaults.suggested_provider and defaults.confidence > SMART_DEFAULT_THRESHOLD:
        lines.append(
            f"Based on their history: Recommend {defaults.suggested_provider} "
            f"({round(defaults.confidence * 100)}% match)"
        )

    if signals.templates:
        names = ", ".join(
            f"{t.get('name', 'Template')} ({t.get('proven_ctr', 0)}% CTR)" for t in signals.templates
        )
        lines.append(f"Proven templates: {names}")

    if signals.budget_suggestions:
        lines.append(f"Cost tip: {signals.budget_suggestions[0].get('title', '')}")

    return lines


# ── Compilation ────────────────────────────────────────────────────


def compile_system_prompt(
    message: str,
    topic: Topic,
    chunks: list[RetrievalChunk],
    signals: PromptSignals | None = None,
) -> str:
    """
    Build the system prompt.

    Order: persona, critical instructions, signals, documentation, guidelines,
    output format, closing instructions, fallback example.
    """
    guidance = select_guidance(topic, message)
    signals = signals or PromptSignals()

    sections: list[str] = [BLOCK_PERSONA]
    sections.extend(g.critical for g in guidance)

    signal_lines = render_signals(signals)
    if signal_lines:
        sections.append("\n".join(signal_lines))

    sections.append(f"# DOCUMENTATION\n{render_documentation(chunks)}")
    sections.extend(g.guidelines for g in guidance)
    sections.append(BLOCK_OUTPUT_FORMAT)
    sections.extend(g.closing for g in guidance)
    sections.append(BLOCK_FALLBACK_EXAMPLE)

    prompt = "\n\n".join(sections)
    logger.debug(
        f"Compiled system prompt: {len(prompt)} chars, "
        f"guidance={[g.topic.value for g in guidance]}, chunks={len(chunks)}"
    )
    return prompt


def _turn_content(turn: Turn) -> str:
    if isinstance(turn.content, str):
        return turn.content
    return json.dumps(turn.content)


def build_user_content(message: str, attachments: list[Attachment]) -> str | list[dict[str, Any]]:
    """Plain text, or text plus high-detail image parts when images are attached."""
    images = [a for a in attachments if a.is_image]
    if not images:
        return message
    parts: list[dict[str, Any]] = [{"type": "text", "text": message}]
    for att in images:
        parts.append({
            "type": "image_url",
            "image_url": {"url": f"data:{att.mime_type};base64,{att.data}", "detail": "high"},
        })
    return parts


def build_messages(
    system_prompt: str,
    message: str,
    history: list[Turn],
    attachments: list[Attachment],
    history_turns: int = 6,
) -> list[dict[str, Any]]:
    """System prompt, the last ``history_turns`` turns, then the user message."""
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    recent = history[-history_turns:] if history_turns > 0 else []
    for turn in recent:
        messages.append({"role": turn.role, "content": _turn_content(turn)})
    messages.append({"role": "user", "content": build_user_content(message, attachments)})
    return messages
