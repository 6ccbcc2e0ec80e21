"""Tests for system prompt compilation and message building."""

from assistant_engine.context.prompt_blocks import (
    BLOCK_FALLBACK_EXAMPLE,
    BLOCK_OUTPUT_FORMAT,
    GUIDELINES_IMAGE_PROMPT,
    GUIDELINES_VIDEO_PROMPT,
    NO_DOCUMENTATION,
)
from assistant_engine.context.prompt_compiler import (
    PromptSignals,
    build_messages,
    compile_system_prompt,
    select_guidance,
)
from assistant_engine.core.schemas_chat import (
    Attachment,
    ConversationContext,
    RetrievalChunk,
    SmartDefaults,
    Topic,
    Turn,
)


def test_output_format_always_present():
    for topic in Topic:
        prompt = compile_system_prompt("hello", topic, [])
        assert BLOCK_OUTPUT_FORMAT in prompt
        assert BLOCK_FALLBACK_EXAMPLE in prompt
        assert prompt.rstrip().endswith(BLOCK_FALLBACK_EXAMPLE)


def test_no_chunks_renders_placeholder():
    prompt = compile_system_prompt("hello", Topic.GENERAL, [])
    assert NO_DOCUMENTATION in prompt


def test_chunks_render_as_documentation():
    chunks = [
        RetrievalChunk(chunk_id="a", title="FLUX Pro", body="Great for products", similarity=0.9),
        RetrievalChunk(chunk_id="b", title="Ideogram", body="Great for text", similarity=0.8),
    ]
    prompt = compile_system_prompt("hello", Topic.PICTURES, chunks)
    assert "# FLUX Pro\n\nGreat for products\n\n---\n\n# Ideogram\n\nGreat for text" in prompt
    assert NO_DOCUMENTATION not in prompt


def test_guidance_selection_by_topic_and_trigger():
    assert [g.topic for g in select_guidance(Topic.VIDEO, "Animate this scene")] == [Topic.VIDEO]
    assert [g.topic for g in select_guidance(Topic.PICTURES, "a detailed prompt")] == [Topic.PICTURES]
    # "detailed" is not a video trigger
    assert select_guidance(Topic.VIDEO, "a detailed answer") == []
    assert select_guidance(Topic.CONTENT, "write a prompt") == []


def test_guidance_blocks_are_placed():
    prompt = compile_system_prompt("write a scene prompt", Topic.VIDEO, [])
    assert GUIDELINES_VIDEO_PROMPT in prompt
    assert GUIDELINES_IMAGE_PROMPT not in prompt
    assert prompt.index(GUIDELINES_VIDEO_PROMPT) < prompt.index(BLOCK_OUTPUT_FORMAT)


def test_signals_rendered_when_present():
    signals = PromptSignals(
        conversation=ConversationContext(turn_count=4, most_recent_topic="pictures"),
        preferences={"favorite_panels": ["image"], "stored_preferences": {"format": "json"}},
        smart_defaults=SmartDefaults(suggested_provider="FLUX Pro", confidence=0.8),
        templates=[{"name": "Launch", "proven_ctr": 4.2}],
        budget_suggestions=[{"title": "Switch captions to gpt-4o-mini"}],
    )
    prompt = compile_system_prompt("hello", Topic.PICTURES, [], signals)

    assert "User has asked 4 questions, mostly about pictures" in prompt
    assert 'User prefers: {"format": "json"}' in prompt
    assert "Recommend FLUX Pro (80% match)" in prompt
    assert "Proven templates: Launch (4.2% CTR)" in prompt
    assert "Cost tip: Switch captions to gpt-4o-mini" in prompt


def test_low_confidence_default_is_not_recommended():
    signals = PromptSignals(smart_defaults=SmartDefaults(suggested_provider="FLUX Pro", confidence=0.7))
    prompt = compile_system_prompt("hello", Topic.PICTURES, [], signals)
    assert "Recommend FLUX Pro" not in prompt


def test_build_messages_keeps_last_six_turns():
    history = [Turn(role="user" if i % 2 == 0 else "assistant", content=f"m{i}") for i in range(10)]
    messages = build_messages("SYS", "now", history, [])

    assert messages[0] == {"role": "system", "content": "SYS"}
    assert [m["content"] for m in messages[1:-1]] == ["m4", "m5", "m6", "m7", "m8", "m9"]
    assert messages[-1] == {"role": "user", "content": "now"}


def test_structured_history_is_serialized():
    history = [Turn(role="assistant", content={"title": "Hi"})]
    messages = build_messages("SYS", "next", history, [])
    assert messages[1]["content"] == '{"title": "Hi"}'


def test_images_become_high_detail_parts():
    attachments = [
        Attachment(type="image/png", data="AAAA"),
        Attachment(type="application/pdf", data="BBBB"),
    ]
    messages = build_messages("SYS", "what is this?", [], attachments)
    content = messages[-1]["content"]

    assert content[0] == {"type": "text", "text": "what is this?"}
    assert len(content) == 2
    assert content[1]["image_url"] == {"url": "data:image/png;base64,AAAA", "detail": "high"}
