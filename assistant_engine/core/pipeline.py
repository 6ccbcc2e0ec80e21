"""Chat pipeline: one user message in, one grounded JSON answer out.

Collaborators are constructed once and injected through ChatDependencies.
Per request: session upsert → intent + complexity → parallel context,
preferences, templates and retrieval → routing → prompt → model call →
confidence → fire-and-forget persistence.
"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from assistant_engine.context.prompt_compiler import (
    PromptSignals,
    build_messages,
    compile_system_prompt,
    stored_preferences,
)
from assistant_engine.core.chat_context import ContextAggregator
from assistant_engine.core.chat_stream import ChatModel, ResponderOutcome, StreamingResponder
from assistant_engine.core.complexity import calculate_complexity_score
from assistant_engine.core.confidence import calculate_confidence
from assistant_engine.core.config import Settings
from assistant_engine.core.intent import detect_intent
from assistant_engine.core.llm_usage import count_tokens, estimate_cost
from assistant_engine.core.logging import get_logger, log_with_context
from assistant_engine.core.model_router import ModelTiers, requires_long_output, select_model
from assistant_engine.core.persistence import PersistenceQueue
from assistant_engine.core.quality import collect_quality_issues, run_quality_checks
from assistant_engine.core.retrieval import DocStore, Embedder, RetrievalClient
from assistant_engine.core.schemas_chat import (
    ChatRequest,
    ConversationContext,
    Intent,
    ModelSelection,
    RetrievalResult,
    SmartDefaults,
    Topic,
)
from assistant_engine.db.messages import build_message_row, insert_message
from assistant_engine.db.metrics import insert_metrics
from assistant_engine.db.sessions import upsert_active_session

logger = get_logger(__name__)


# =============================================================================
# Errors surfaced to the API layer
# =============================================================================


class InvalidChatRequest(ValueError):
    """The request is malformed; nothing downstream has run."""


class ChatModelNotConfigured(RuntimeError):
    """No chat-model provider is available."""


class SessionUnavailable(RuntimeError):
    """A session could not be found or created."""


# =============================================================================
# Dependencies and per-request state
# =============================================================================


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatDependencies:
    """Explicitly constructed collaborators shared across requests."""

    supabase: Any
    settings: Settings
    doc_store: DocStore
    embedder: Embedder | None = None
    chat_model: ChatModel | None = None
    persistence: PersistenceQueue = field(default_factory=PersistenceQueue)
    now: Callable[[], datetime] = _utc_now
    monotonic: Callable[[], float] = time.monotonic


@dataclass
class PreparedChat:
    """Everything known about a request before the model is called."""

    request_id: str
    user_id: str
    session_id: str
    message: str
    intent: Intent
    complexity: float
    selection: ModelSelection
    retrieval: RetrievalResult
    conversation: ConversationContext
    preferences: dict[str, Any]
    smart_defaults: SmartDefaults
    templates: list[dict[str, Any]]
    budget_suggestions: list[dict[str, Any]]
    model_messages: list[dict[str, Any]]
    confidence: float
    assistant_message_id: str
    started: float

    @property
    def preference_applied(self) -> bool:
        return stored_preferences(self.preferences) is not None


async def _resolved(value: Any) -> Any:
    return value


def _smart_defaults_summary(defaults: SmartDefaults) -> dict[str, Any] | None:
    if not defaults.suggested_provider and not defaults.suggested_model:
        return None
    return {
        "provider": defaults.suggested_provider,
        "model": defaults.suggested_model,
        "confidence": round(defaults.confidence, 2),
    }


class ChatPipeline:
    """Orchestrates a chat request across the injected collaborators."""

    def __init__(self, deps: ChatDependencies):
        self.deps = deps
        settings = deps.settings
        self.tiers = ModelTiers.from_settings(settings)
        self.aggregator = ContextAggregator(
            deps.supabase,
            context_timeout=settings.CONTEXT_TIMEOUT,
            preferences_timeout=settings.PREFERENCES_TIMEOUT,
        )
        self.retriever = RetrievalClient(deps.embedder, deps.doc_store, timeout=settings.RETRIEVAL_TIMEOUT)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self, request: ChatRequest) -> str:
        """
        Check the request before any side effects.

        Raises:
            InvalidChatRequest: message missing or blank
            ChatModelNotConfigured: no chat model injected
        """
        message = request.message.strip() if isinstance(request.message, str) else ""
        if not message:
            raise InvalidChatRequest("message_required")
        if self.deps.chat_model is None:
            raise ChatModelNotConfigured("openai_not_configured")
        return message

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    async def _open_session(self, user_id: str) -> str:
        idle_window = timedelta(minutes=self.deps.settings.SESSION_IDLE_MINUTES)
        try:
            session = await asyncio.to_thread(
                upsert_active_session,
                self.deps.supabase,
                user_id,
                "web",
                idle_window,
                self.deps.now(),
            )
        except Exception as e:
            raise SessionUnavailable(str(e)) from e
        return session["id"]

    async def prepare(
        self,
        request: ChatRequest,
        user_id: str,
        skip_preferences: bool = False,
    ) -> PreparedChat:
        """
        Gather context and build the model payload for a validated request.

        The user message is queued for persistence before returning, so it is
        written ahead of the assistant message.

        Raises:
            InvalidChatRequest, ChatModelNotConfigured: see validate()
            SessionUnavailable: session could not be created
        """
        message = self.validate(request)
        started = self.deps.monotonic()
        request_id = str(uuid4())
        settings = self.deps.settings

        session_id = await self._open_session(user_id)

        attachments = request.attachments
        has_images = any(a.is_image for a in attachments)
        complexity = calculate_complexity_score(message, attachments, request.history)
        intent = detect_intent(message, has_images)
        topic = intent.topic

        top_k = settings.RETRIEVAL_TOP_K_WITH_IMAGES if has_images else settings.RETRIEVAL_TOP_K
        topic_bias = topic.value if topic != Topic.GENERAL else None

        async def _defaults_then_retrieval() -> tuple[SmartDefaults, RetrievalResult]:
            if skip_preferences:
                defaults = SmartDefaults(confidence=0.0)
            else:
                defaults = await self.aggregator.get_smart_defaults(user_id, topic.value)
            retrieval = await self.retriever.retrieve(
                message,
                topic_bias=topic_bias,
                provider_bias=defaults.suggested_provider,
                top_k=top_k,
            )
            return defaults, retrieval

        preferences_task = (
            _resolved({}) if skip_preferences else self.aggregator.get_user_preferences(user_id)
        )
        conversation, preferences, templates, budget, (defaults, retrieval) = await asyncio.gather(
            self.aggregator.get_conversation_context(session_id),
            preferences_task,
            self.aggregator.get_campaign_templates(topic.value),
            self.aggregator.get_budget_suggestions(user_id),
            _defaults_then_retrieval(),
        )

        selection = select_model(
            complexity,
            has_images,
            attachment_count=len(attachments),
            long_output=requires_long_output(message, topic),
            tiers=self.tiers,
        )

        signals = PromptSignals(
            conversation=conversation,
            preferences=preferences,
            smart_defaults=defaults,
            templates=templates,
            budget_suggestions=budget,
        )
        system_prompt = compile_system_prompt(message, topic, retrieval.chunks, signals)
        model_messages = build_messages(
            system_prompt, message, request.history, attachments, settings.CHAT_HISTORY_TURNS
        )

        confidence = calculate_confidence(
            retrieval.scores,
            has_preferences=stored_preferences(preferences) is not None,
            conversation_length=conversation.turn_count,
            model=selection.model,
            premium_models=self.tiers.premium_models,
        )

        prepared = PreparedChat(
            request_id=request_id,
            user_id=user_id,
            session_id=session_id,
            message=message,
            intent=intent,
            complexity=complexity,
            selection=selection,
            retrieval=retrieval,
            conversation=conversation,
            preferences=preferences,
            smart_defaults=defaults,
            templates=templates,
            budget_suggestions=budget,
            model_messages=model_messages,
            confidence=round(confidence, 2),
            assistant_message_id=str(uuid4()),
            started=started,
        )

        user_row = build_message_row(
            session_id,
            user_id,
            "user",
            message,
            topic=topic.value,
            schema_type=intent.schema_hint.value,
            has_attachments=bool(attachments),
            attachment_types=[a.mime_type for a in attachments],
            complexity_score=complexity,
            model_selection=selection.model_dump(mode="json"),
        )
        self.deps.persistence.submit("user message", insert_message, self.deps.supabase, user_row)

        log_with_context(
            logger,
            logging.INFO,
            "Chat request prepared",
            request_id=request_id,
            user_id=user_id,
            session_id=session_id,
            topic=topic.value,
            schema=intent.schema_hint.value,
            complexity=complexity,
            model=selection.model,
            reason=selection.reason.value,
            chunks=len(retrieval.chunks),
            retrieval_error=retrieval.error,
        )
        return prepared

    # -------------------------------------------------------------------------
    # Response shaping
    # -------------------------------------------------------------------------

    def meta_event(self, prepared: PreparedChat) -> dict[str, Any]:
        """Diagnostics sent ahead of the first token."""
        return {
            "session_id": prepared.session_id,
            "message_id": prepared.assistant_message_id,
            "topic": prepared.intent.topic.value,
            "schema": prepared.intent.schema_hint.value,
            "model": prepared.selection.model,
            "reason": prepared.selection.reason.value,
            "chunks": prepared.retrieval.chunk_ids,
            "scores": prepared.retrieval.scores,
            "retrieval_ms": prepared.retrieval.latency_ms,
            "confidence": prepared.confidence,
            "smart_defaults": _smart_defaults_summary(prepared.smart_defaults),
            "templates": [
                {"name": t.get("name"), "ctr": t.get("proven_ctr")} for t in prepared.templates
            ]
            or None,
            "conversation_context": {
                "message_count": prepared.conversation.turn_count,
                "most_recent_topic": prepared.conversation.most_recent_topic,
            },
        }

    def _with_meta(
        self,
        prepared: PreparedChat,
        parsed: dict[str, Any],
        quality_issues: list[dict[str, Any]],
    ) -> dict[str, Any]:
        return {
            **parsed,
            "_meta": {
                "confidence": prepared.confidence,
                "smart_defaults": _smart_defaults_summary(prepared.smart_defaults),
                "quality_issues": quality_issues,
            },
        }

    def _elapsed_ms(self, prepared: PreparedChat) -> int:
        return int((self.deps.monotonic() - prepared.started) * 1000)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _metrics_row(self, prepared: PreparedChat, status: str, **extra: Any) -> dict[str, Any]:
        return {
            "request_id": prepared.request_id,
            "user_id": prepared.user_id,
            "session_id": prepared.session_id,
            "message_id": prepared.assistant_message_id,
            "topic": prepared.intent.topic.value,
            "schema_type": prepared.intent.schema_hint.value,
            "model": prepared.selection.model,
            "model_reason": prepared.selection.reason.value,
            "complexity_score": prepared.complexity,
            "retrieval_latency_ms": prepared.retrieval.latency_ms,
            "retrieval_error": prepared.retrieval.error,
            "chunks_retrieved": len(prepared.retrieval.chunks),
            "chunk_ids": prepared.retrieval.chunk_ids,
            "chunk_scores": prepared.retrieval.scores,
            "user_preference_applied": prepared.preference_applied,
            "confidence": prepared.confidence,
            "total_latency_ms": self._elapsed_ms(prepared),
            "status": status,
            **extra,
        }

    def _assistant_row(
        self,
        prepared: PreparedChat,
        outcome: ResponderOutcome,
        response: dict[str, Any],
    ) -> dict[str, Any]:
        model = prepared.selection.model
        return build_message_row(
            prepared.session_id,
            prepared.user_id,
            "assistant",
            response,
            message_id=prepared.assistant_message_id,
            topic=prepared.intent.topic.value,
            schema_type=prepared.intent.schema_hint.value,
            sources=prepared.retrieval.chunk_ids,
            model=model,
            tokens_used=outcome.usage.input_tokens + self._output_tokens(prepared, outcome),
            latency_ms=outcome.llm_latency_ms,
            complexity_score=prepared.complexity,
            model_selection=prepared.selection.model_dump(mode="json"),
        )

    def _output_tokens(self, prepared: PreparedChat, outcome: ResponderOutcome) -> int:
        return outcome.usage.output_tokens or count_tokens(outcome.partial_text, prepared.selection.model)

    def _completion_metrics(self, prepared: PreparedChat, outcome: ResponderOutcome) -> dict[str, Any]:
        model = prepared.selection.model
        tokens_in = outcome.usage.input_tokens
        tokens_out = self._output_tokens(prepared, outcome)
        return self._metrics_row(
            prepared,
            "success" if outcome.error is None else "error",
            llm_latency_ms=outcome.llm_latency_ms,
            tokens_input=tokens_in,
            tokens_output=tokens_out,
            estimated_cost_usd=estimate_cost(model, tokens_in, tokens_out),
            error_message=outcome.error,
        )

    def record_success(
        self,
        prepared: PreparedChat,
        outcome: ResponderOutcome,
        response: dict[str, Any],
    ) -> None:
        """Queue the assistant message and its metrics row."""
        self.deps.persistence.submit(
            "assistant message",
            insert_message,
            self.deps.supabase,
            self._assistant_row(prepared, outcome, response),
        )
        self.deps.persistence.submit(
            "metrics", insert_metrics, self.deps.supabase, self._completion_metrics(prepared, outcome)
        )

    def _store_streamed_answer(self, prepared: PreparedChat, outcome: ResponderOutcome) -> None:
        # Runs on the persistence worker, after the client has its answer
        issues = collect_quality_issues(
            self.deps.supabase, outcome.parsed, prepared.intent.topic.value
        )
        response = self._with_meta(prepared, outcome.parsed, issues)
        insert_message(self.deps.supabase, self._assistant_row(prepared, outcome, response))

    def record_streamed(self, prepared: PreparedChat, outcome: ResponderOutcome) -> None:
        """Queue the streamed answer (quality-checked off the connection) and its metrics."""
        self.deps.persistence.submit(
            "assistant message", self._store_streamed_answer, prepared, outcome
        )
        self.deps.persistence.submit(
            "metrics", insert_metrics, self.deps.supabase, self._completion_metrics(prepared, outcome)
        )

    def record_cancelled(self, prepared: PreparedChat, responder: StreamingResponder) -> None:
        """Best-effort metric for a stream the client abandoned."""
        partial_tokens = responder.partial_token_count(prepared.selection.model)
        log_with_context(
            logger,
            logging.INFO,
            "Chat stream cancelled",
            request_id=prepared.request_id,
            partial_tokens=partial_tokens,
        )
        metrics = self._metrics_row(
            prepared,
            "cancelled",
            tokens_output=partial_tokens,
            llm_latency_ms=responder.outcome.llm_latency_ms or self._elapsed_ms(prepared),
        )
        try:
            self.deps.persistence.submit("cancelled metrics", insert_metrics, self.deps.supabase, metrics)
        except RuntimeError as e:
            # No running loop (generator finalized outside the request)
            logger.warning(f"Could not queue cancelled metric: {e}")

    def record_failure(self, user_id: str, error: Exception, session_id: str | None = None) -> None:
        """Best-effort error-status metric for a request that failed outright."""
        row = {
            "user_id": user_id,
            "session_id": session_id,
            "status": "error",
            "error_message": str(error) or type(error).__name__,
        }
        try:
            self.deps.persistence.submit("error metrics", insert_metrics, self.deps.supabase, row)
        except RuntimeError as e:
            logger.warning(f"Could not queue error metric: {e}")

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def respond(
        self,
        request: ChatRequest,
        user_id: str,
        skip_preferences: bool = False,
    ) -> dict[str, Any]:
        """Non-streaming request: returns the ``{response, metadata}`` envelope."""
        prepared = await self.prepare(request, user_id, skip_preferences)
        responder = StreamingResponder(self.deps.chat_model, clock=self.deps.monotonic)
        outcome = await responder.complete(prepared.model_messages, prepared.selection)

        quality_issues = await run_quality_checks(
            self.deps.supabase,
            outcome.parsed,
            prepared.intent.topic.value,
            timeout=self.deps.settings.PREFERENCES_TIMEOUT,
        )
        response = self._with_meta(prepared, outcome.parsed, quality_issues)
        self.record_success(prepared, outcome, response)

        return {
            "response": response,
            "metadata": {
                "message_id": prepared.assistant_message_id,
                "session_id": prepared.session_id,
                "topic": prepared.intent.topic.value,
                "schema": prepared.intent.schema_hint.value,
                "model": prepared.selection.model,
                "sources": prepared.retrieval.chunk_ids,
                "retrieval_latency_ms": prepared.retrieval.latency_ms,
                "llm_latency_ms": outcome.llm_latency_ms,
                "total_latency_ms": self._elapsed_ms(prepared),
            },
        }

    async def stream(
        self,
        prepared: PreparedChat,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncGenerator[str, None]:
        """SSE events for a prepared request; persistence follows ``done``."""
        responder = StreamingResponder(self.deps.chat_model, clock=self.deps.monotonic)
        events = responder.stream(
            prepared.model_messages,
            prepared.selection,
            self.meta_event(prepared),
            is_disconnected=is_disconnected,
        )
        try:
            async for event in events:
                yield event
        except (asyncio.CancelledError, GeneratorExit):
            await events.aclose()
            self.record_cancelled(prepared, responder)
            raise

        if responder.outcome.cancelled:
            self.record_cancelled(prepared, responder)
            return

        self.record_streamed(prepared, responder.outcome)
