"""Token pricing registry and cost calculation."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# ── Pricing Registry (USD per 1,000 tokens) ────────────────────
_PRICING: dict[str, dict[str, float]] = {
    # OpenAI
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
    # Anthropic
    "claude-3-opus": {"input": 0.015, "output": 0.075},
    "claude-3-sonnet": {"input": 0.003, "output": 0.015},
    "claude-3-haiku": {"input": 0.00025, "output": 0.00125},
}

_FOUR_PLACES = Decimal("0.0001")


def register_pricing(model: str, input_per_1k: float, output_per_1k: float) -> None:
    """Register or update pricing for a model.

    Args:
        model: Model identifier string.
        input_per_1k: Cost in USD per 1K input tokens.
        output_per_1k: Cost in USD per 1K output tokens.
    """
    _PRICING[model] = {"input": input_per_1k, "output": output_per_1k}


def get_pricing(model: str) -> dict[str, float] | None:
    """Return pricing dict for a model, or None if unknown."""
    return _PRICING.get(model)


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate USD cost for a given token count.

    Rounded half-up to 4 decimal places. Returns 0.0 for unknown models.
    """
    pricing = _PRICING.get(model)
    if pricing is None:
        return 0.0
    input_cost = Decimal(input_tokens) / 1000 * Decimal(str(pricing["input"]))
    output_cost = Decimal(output_tokens) / 1000 * Decimal(str(pricing["output"]))
    total = (input_cost + output_cost).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP)
    return float(total)
