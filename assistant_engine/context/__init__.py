"""Prompt assembly for the chat pipeline.

This module provides:
- Stable prompt text blocks (persona, guidance, output format)
- Rule-table guidance selection keyed by topic and trigger words
- System prompt compilation and model message building
"""

from assistant_engine.context.prompt_compiler import (
    GuidanceBlock,
    PromptSignals,
    build_messages,
    compile_system_prompt,
    select_guidance,
)

__all__ = [
    "GuidanceBlock",
    "PromptSignals",
    "build_messages",
    "compile_system_prompt",
    "select_guidance",
]
