"""Streaming responder: forwards model tokens as SSE events.

State machine: IDLE → AWAITING_FIRST_TOKEN → STREAMING_TOKENS → FINALIZING
→ DONE, with ERROR reachable from any state. Every completed stream ends in
exactly one ``done`` event whose ``response`` is a parseable JSON string.
"""

import asyncio
import json
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from assistant_engine.core.llm import (
    GENERATION_FAILED_PAYLOAD,
    CompletionResult,
    TokenStream,
    TokenUsage,
    finalize_response,
    try_parse_json,
)
from assistant_engine.core.llm_usage import count_tokens
from assistant_engine.core.logging import get_logger
from assistant_engine.core.schemas_chat import ModelSelection

logger = get_logger(__name__)


class ChatModel(Protocol):
    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str,
        token_budget: int,
        json_mode: bool = True,
        stream: bool = False,
    ) -> CompletionResult | TokenStream: ...


class StreamState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_TOKEN = "awaiting_first_token"
    STREAMING_TOKENS = "streaming_tokens"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


@dataclass
class ResponderOutcome:
    """What the model produced, for persistence and metrics."""

    final_text: str = ""
    parsed: dict[str, Any] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)
    delta_count: int = 0
    partial_text: str = ""
    llm_latency_ms: int = 0
    cancelled: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and self.error is None


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data)}\n\n"


def _failed_payload() -> tuple[str, dict[str, Any]]:
    payload = dict(GENERATION_FAILED_PAYLOAD)
    return json.dumps(payload), payload


class StreamingResponder:
    """Runs one model call and tracks its state transitions."""

    def __init__(self, chat_model: ChatModel, clock: Callable[[], float] = time.monotonic):
        self._chat_model = chat_model
        self._clock = clock
        self.state = StreamState.IDLE
        self.outcome = ResponderOutcome()
        self._started = 0.0

    def _latency_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def partial_token_count(self, model: str) -> int:
        """Tokens produced so far; falls back to the number of deltas."""
        counted = count_tokens(self.outcome.partial_text, model)
        return counted or self.outcome.delta_count

    async def complete(self, messages: list[dict[str, Any]], selection: ModelSelection) -> ResponderOutcome:
        """Non-streaming call with the same parse-or-fallback rule."""
        self._started = self._clock()
        self.state = StreamState.AWAITING_FIRST_TOKEN
        try:
            result = await self._chat_model.complete(
                messages, selection.model, selection.token_budget, json_mode=True, stream=False
            )
        except Exception as e:
            logger.error(f"Chat completion failed: {e}", exc_info=True)
            self.state = StreamState.ERROR
            self.outcome.final_text, self.outcome.parsed = _failed_payload()
            self.outcome.error = str(e) or type(e).__name__
            self.outcome.llm_latency_ms = self._latency_ms()
            return self.outcome

        self.state = StreamState.FINALIZING
        self.outcome.usage = result.usage
        self.outcome.partial_text = result.text
        self.outcome.final_text, self.outcome.parsed = finalize_response(result.text)
        self.outcome.llm_latency_ms = self._latency_ms()
        self.state = StreamState.DONE
        return self.outcome

    async def stream(
        self,
        messages: list[dict[str, Any]],
        selection: ModelSelection,
        meta: dict[str, Any],
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncGenerator[str, None]:
        """
        Yield SSE events: meta → token*/title* → done.

        A client disconnect closes the model stream and ends without ``done``.
        """
        self._started = self._clock()
        yield _sse_event({"type": "meta", **meta})
        self.state = StreamState.AWAITING_FIRST_TOKEN

        try:
            token_stream = await self._chat_model.complete(
                messages, selection.model, selection.token_budget, json_mode=True, stream=True
            )
        except Exception as e:
            logger.error(f"Chat stream failed to start: {e}", exc_info=True)
            self.state = StreamState.ERROR
            self.outcome.final_text, self.outcome.parsed = _failed_payload()
            self.outcome.error = str(e) or type(e).__name__
            self.outcome.llm_latency_ms = self._latency_ms()
            yield _sse_event({"type": "done", "response": self.outcome.final_text})
            return

        buffer = ""
        last_title: str | None = None
        try:
            async for delta in token_stream:
                if is_disconnected is not None and await is_disconnected():
                    logger.info("Client disconnected mid-stream")
                    self.outcome.cancelled = True
                    self.state = StreamState.ERROR
                    await token_stream.aclose()
                    return

                self.state = StreamState.STREAMING_TOKENS
                buffer += delta
                self.outcome.partial_text = buffer
                self.outcome.delta_count += 1
                yield _sse_event({"type": "token", "content": delta})

                parsed = try_parse_json(buffer)
                if parsed.ok:
                    title = parsed.value.get("title")
                    if title and title != last_title:
                        last_title = title
                        yield _sse_event({"type": "title", "content": title})
        except (asyncio.CancelledError, GeneratorExit):
            self.outcome.cancelled = True
            self.state = StreamState.ERROR
            await token_stream.aclose()
            raise
        except Exception as e:
            # Provider error mid-stream; finalize whatever arrived
            logger.error(f"Chat stream interrupted: {e}", exc_info=True)
            self.outcome.error = str(e) or type(e).__name__

        self.state = StreamState.FINALIZING
        self.outcome.usage = token_stream.usage
        self.outcome.final_text, self.outcome.parsed = finalize_response(buffer)
        self.outcome.llm_latency_ms = self._latency_ms()
        self.state = StreamState.ERROR if self.outcome.error else StreamState.DONE
        yield _sse_event({"type": "done", "response": self.outcome.final_text})
