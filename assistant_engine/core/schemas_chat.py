"""Pydantic schemas for the chat pipeline."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums
# ============================================================================


class Topic(str, Enum):
    """Coarse topic category of a user message."""
    CONTENT = "content"
    PICTURES = "pictures"
    VIDEO = "video"
    GENERAL = "general"


class SchemaHint(str, Enum):
    """Expected shape of the answer, used to steer prompt phrasing."""
    QUICKSTART = "quickstart"
    COMPARISON = "comparison"
    RECOMMENDATION = "recommendation"
    SETTINGS = "settings"
    VISION_ANALYSIS = "vision_analysis"
    EXPLANATION = "explanation"


class ReasonCode(str, Enum):
    """Why the router picked a model tier."""
    LONG_OUTPUT_REQUIRED = "long_output_required"
    HIGH_COMPLEXITY = "high_complexity"
    MEDIUM_COMPLEXITY = "medium_complexity"
    LOW_COMPLEXITY = "low_complexity"


# ============================================================================
# Inbound request
# ============================================================================


class Attachment(BaseModel):
    """Inline attachment sent with a chat message."""

    model_config = ConfigDict(populate_by_name=True)

    mime_type: str = Field(default="", alias="type", description="MIME type, e.g. image/png")
    data: str = Field(default="", description="Base64-encoded payload")
    name: str | None = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class Turn(BaseModel):
    """A prior conversation turn supplied by the client."""

    role: str  # 'user' or 'assistant'
    content: str | dict[str, Any] | list[Any] = ""


class ChatRequest(BaseModel):
    """Request body for POST /v1/chat.

    ``message`` is validated by the endpoint so a blank value maps to 400
    instead of a schema error.
    """

    message: Any = None
    history: list[Turn] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    stream: bool = False


class FeedbackRequest(BaseModel):
    """Request body for POST /v1/chat/feedback."""

    message_id: str | None = None
    rating: int | None = None
    reason_tags: list[str] = Field(default_factory=list)
    free_text: str | None = None


# ============================================================================
# Pipeline value objects
# ============================================================================


class Intent(BaseModel):
    """Output of intent detection."""

    topic: Topic
    schema_hint: SchemaHint
    complexity: float = Field(..., ge=0.0, le=1.0, description="Coarse hint-only estimate")


class RetrievalChunk(BaseModel):
    """A ranked documentation fragment returned by vector search."""

    chunk_id: str
    title: str = ""
    body: str = ""
    similarity: float = 0.0
    topic: str | None = None
    provider: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievalResult(BaseModel):
    """Chunks plus diagnostics from one retrieval round trip."""

    chunks: list[RetrievalChunk] = Field(default_factory=list)
    latency_ms: int = 0
    error: str | None = None

    @property
    def chunk_ids(self) -> list[str]:
        return [c.chunk_id for c in self.chunks]

    @property
    def scores(self) -> list[float]:
        return [c.similarity for c in self.chunks]

    @property
    def average_score(self) -> float:
        if not self.chunks:
            return 0.0
        return sum(self.scores) / len(self.chunks)


class ModelSelection(BaseModel):
    """Router decision; embedded in message metadata, never stored alone."""

    model: str
    token_budget: int
    reason: ReasonCode
    complexity_score: float


class ConversationContext(BaseModel):
    """Recent session turns and the patterns derived from them."""

    turns: list[dict[str, Any]] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    most_recent_topic: str | None = None
    recent_queries: list[str] = Field(default_factory=list)
    turn_count: int = 0


class SmartDefaults(BaseModel):
    """Suggested provider/model for a topic, with a confidence in [0, 1]."""

    suggested_model: str | None = None
    suggested_provider: str | None = None
    confidence: float = 0.5
