"""Adaptive model selection by complexity, attachments and output length."""

from dataclasses import dataclass

from assistant_engine.core.schemas_chat import ModelSelection, ReasonCode, Topic

HIGH_COMPLEXITY_THRESHOLD = 0.75
MEDIUM_COMPLEXITY_THRESHOLD = 0.5
MAX_ATTACHMENTS_BEFORE_HIGH = 3

# Topics where a "write me the prompt" request produces a long answer
LONG_OUTPUT_TOPICS: dict[Topic, tuple[str, ...]] = {
    Topic.VIDEO: ("prompt", "detailed", "scene", "animate"),
    Topic.PICTURES: ("prompt", "detailed", "scene", "animate"),
}


@dataclass(frozen=True)
class ModelTier:
    """A model id paired with its generation budget."""

    model: str
    token_budget: int


@dataclass(frozen=True)
class ModelTiers:
    """The three tiers the router chooses between."""

    large: ModelTier
    medium: ModelTier
    small: ModelTier

    @property
    def premium_models(self) -> frozenset[str]:
        """Models that count as premium for confidence scoring."""
        return frozenset({self.large.model, self.medium.model})

    @classmethod
    def from_settings(cls, settings) -> "ModelTiers":
        return cls(
            large=ModelTier(settings.CHAT_MODEL_LARGE, settings.CHAT_BUDGET_LARGE),
            medium=ModelTier(settings.CHAT_MODEL_MEDIUM, settings.CHAT_BUDGET_MEDIUM),
            small=ModelTier(settings.CHAT_MODEL_SMALL, settings.CHAT_BUDGET_SMALL),
        )


DEFAULT_TIERS = ModelTiers(
    large=ModelTier("gpt-4o", 3000),
    medium=ModelTier("gpt-4o", 2000),
    small=ModelTier("gpt-4o-mini", 800),
)


def requires_long_output(message: str, topic: Topic) -> bool:
    """True for media-generation topics that ask for a detailed prompt/scene."""
    triggers = LONG_OUTPUT_TOPICS.get(topic)
    if not triggers:
        return False
    lower = message.lower()
    return any(word in lower for word in triggers)


def select_model(
    complexity: float,
    has_images: bool,
    attachment_count: int = 0,
    long_output: bool = False,
    tiers: ModelTiers = DEFAULT_TIERS,
) -> ModelSelection:
    """
    Pick a model tier. Rules are evaluated top to bottom; first match wins.

    1. long output needed       -> large, long_output_required
    2. complexity > 0.75 or > 3 attachments -> large, high_complexity
    3. complexity > 0.5 or images -> medium, medium_complexity
    4. otherwise                -> small, low_complexity

    Args:
        complexity: Score from calculate_complexity_score
        has_images: Whether image attachments were sent
        attachment_count: Number of attachments
        long_output: Whether the request needs a long answer
        tiers: Model tiers to choose from

    Returns:
        ModelSelection with model, token budget and reason code
    """
    if long_output:
        tier, reason = tiers.large, ReasonCode.LONG_OUTPUT_REQUIRED
    elif complexity > HIGH_COMPLEXITY_THRESHOLD or attachment_count > MAX_ATTACHMENTS_BEFORE_HIGH:
        tier, reason = tiers.large, ReasonCode.HIGH_COMPLEXITY
    elif complexity > MEDIUM_COMPLEXITY_THRESHOLD or has_images:
        tier, reason = tiers.medium, ReasonCode.MEDIUM_COMPLEXITY
    else:
        tier, reason = tiers.small, ReasonCode.LOW_COMPLEXITY

    return ModelSelection(
        model=tier.model,
        token_budget=tier.token_budget,
        reason=reason,
        complexity_score=complexity,
    )
