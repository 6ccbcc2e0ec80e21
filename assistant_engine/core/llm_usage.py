"""Token counting and cost estimation for chat-model calls."""

import logging

import tiktoken

logger = logging.getLogger(__name__)

# Pricing per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (2.50, 10.0),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4.1": (2.0, 8.0),
    "gpt-4.1-mini": (0.40, 1.60),
    "gpt-5": (1.25, 10.0),
    "gpt-5-mini": (0.25, 2.0),
    "text-embedding-3-small": (0.02, 0.0),
}

FALLBACK_ENCODING = "cl100k_base"


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimate cost in USD based on model pricing."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        # Longest key first so "gpt-4o-mini-2024" doesn't resolve to gpt-4o
        for key in sorted(MODEL_PRICING, key=len, reverse=True):
            if model.startswith(key):
                pricing = MODEL_PRICING[key]
                break
    if not pricing:
        logger.warning(f"No pricing found for model '{model}', using $0")
        return 0.0

    input_rate, output_rate = pricing
    cost = (tokens_input * input_rate / 1_000_000) + (tokens_output * output_rate / 1_000_000)
    return round(cost, 6)


def count_tokens(text: str, model: str) -> int:
    """Token count of ``text`` for ``model``; 0 if no tokenizer can be loaded."""
    if not text:
        return 0
    try:
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            encoding = tiktoken.get_encoding(FALLBACK_ENCODING)
        return len(encoding.encode(text))
    except Exception as e:
        logger.debug(f"Token counting unavailable for {model}: {e}")
        return 0
