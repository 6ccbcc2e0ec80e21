"""Chat-model client and JSON payload helpers."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)

# Shown to the client when the streamed buffer never became valid JSON
INCOMPLETE_RESPONSE_PAYLOAD: dict[str, Any] = {
    "title": "Response Incomplete",
    "brief": "The AI response was cut off. Please try again with a shorter query.",
    "bullets": [
        "Response exceeded token limit",
        "Try breaking your question into smaller parts",
    ],
    "next_steps": ["Ask a more specific question", "Try again"],
    "type": "error",
}

# Shown when the model call itself failed
GENERATION_FAILED_PAYLOAD: dict[str, Any] = {
    "title": "Response Error",
    "brief": "The assistant could not generate an answer right now.",
    "bullets": ["The model provider returned an error"],
    "next_steps": ["Try again in a moment"],
    "type": "error",
}


# =============================================================================
# JSON payload handling
# =============================================================================


@dataclass(frozen=True)
class ParseOutcome:
    """Result of a speculative parse. ``ok`` False is a normal, non-terminal state."""

    ok: bool
    value: dict[str, Any] | None = None
    error: str | None = None


def _strip_llm_fences(raw_output: str) -> str:
    """Strip a markdown code fence wrapping the whole output.

    Only a fence at the very start counts; backticks inside JSON string
    values are left alone.
    """
    cleaned = raw_output.strip()
    if not cleaned.startswith("```"):
        return cleaned

    first_newline = cleaned.find("\n")
    if first_newline == -1:
        cleaned = cleaned[3:]
        if cleaned.startswith("json"):
            cleaned = cleaned[4:]
    else:
        # Drop the opening fence line (``` or ```json)
        cleaned = cleaned[first_newline + 1 :]
    if cleaned.rstrip().endswith("```"):
        cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def try_parse_json(raw_output: str) -> ParseOutcome:
    """
    Attempt to parse LLM output as a JSON object.

    Never raises; partial or invalid input yields ``ParseOutcome(ok=False)``.

    Args:
        raw_output: Raw (possibly partial) model output

    Returns:
        ParseOutcome with the parsed object when successful
    """
    cleaned = _strip_llm_fences(raw_output)
    if not cleaned:
        return ParseOutcome(ok=False, error="empty")
    try:
        parsed = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError) as e:
        return ParseOutcome(ok=False, error=str(e))
    if not isinstance(parsed, dict):
        return ParseOutcome(ok=False, error="not_an_object")
    return ParseOutcome(ok=True, value=parsed)


def finalize_response(raw_output: str) -> tuple[str, dict[str, Any]]:
    """
    Turn the accumulated model output into the terminal payload.

    Valid JSON passes through (fences stripped); anything else is replaced by
    INCOMPLETE_RESPONSE_PAYLOAD. Deterministic, so finalizing the same input
    twice gives the same result.

    Returns:
        (final JSON string, parsed dict)
    """
    outcome = try_parse_json(raw_output)
    if outcome.ok:
        return _strip_llm_fences(raw_output), outcome.value

    logger.warning(
        f"Incomplete JSON from model ({len(raw_output)} chars): {outcome.error}"
    )
    payload = dict(INCOMPLETE_RESPONSE_PAYLOAD)
    return json.dumps(payload), payload


# =============================================================================
# Chat-model collaborator
# =============================================================================


@dataclass
class TokenUsage:
    """Token counters reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_openai(cls, usage: Any) -> "TokenUsage":
        if usage is None:
            return cls()
        return cls(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )


@dataclass
class CompletionResult:
    """A finished, non-streamed completion."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class TokenStream:
    """Async iterator of text deltas over a provider stream.

    ``usage`` is filled in when the provider sends its final usage chunk.
    """

    def __init__(self, stream: Any):
        self._stream = stream
        self.usage = TokenUsage()

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for chunk in self._stream:
            if getattr(chunk, "usage", None):
                self.usage = TokenUsage.from_openai(chunk.usage)
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            content = getattr(choices[0].delta, "content", None)
            if content:
                yield content

    async def aclose(self) -> None:
        """Cancel the underlying HTTP stream."""
        close = getattr(self._stream, "close", None)
        if close is not None:
            await close()


class OpenAIChatModel:
    """Chat completions over the OpenAI API (JSON mode, optional streaming)."""

    def __init__(self, api_key: str, temperature: float = 0.2, client: AsyncOpenAI | None = None):
        self._client = client or AsyncOpenAI(api_key=api_key)
        self.temperature = temperature

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str,
        token_budget: int,
        json_mode: bool = True,
        stream: bool = False,
    ) -> CompletionResult | TokenStream:
        """
        Run one chat completion.

        Args:
            messages: System/history/user messages
            model: Model id
            token_budget: Max generation tokens
            json_mode: Request a JSON object response
            stream: Return a TokenStream instead of a finished result

        Returns:
            CompletionResult, or TokenStream when streaming
        """
        params: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": stream,
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        # Reasoning-era models take a different token parameter
        if model.startswith("gpt-5"):
            params["max_completion_tokens"] = token_budget
        else:
            params["max_tokens"] = token_budget

        if stream:
            params["stream_options"] = {"include_usage": True}
            raw_stream = await self._client.chat.completions.create(**params)
            return TokenStream(raw_stream)

        completion = await self._client.chat.completions.create(**params)
        text = ""
        if completion.choices:
            text = completion.choices[0].message.content or ""
        return CompletionResult(text=text, usage=TokenUsage.from_openai(completion.usage))
