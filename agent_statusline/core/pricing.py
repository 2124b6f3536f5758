"""
Pricing calculations and rate management.

Resolves per-model rates from a pricing table and computes the cost of a
single usage event.

Resolution Order:
1. Exact model id (e.g. "claude-sonnet-4-5-20250514")
2. Model id without its date suffix (e.g. "claude-sonnet-4-5")
3. Base family of the dated id without version numbers (e.g. "claude-sonnet")
4. Base family of the original id
5. DEFAULT_PRICING
"""

import json
import re
from dataclasses import dataclass
from importlib import resources
from typing import Any, Dict, Mapping, Optional

from .token_counter import TokenUsage

# Rate multipliers applied to the input price
CACHE_CREATION_MULTIPLIER = 1.25
CACHE_READ_MULTIPLIER = 0.10

TOKENS_PER_MILLION = 1_000_000

# Greedy prefix so the last "-20YY" in the id marks the date suffix
_DATE_SUFFIX_RE = re.compile(r"^(?P<versioned>.+)-20\d{2}")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for a specific model."""
    input: float  # USD per 1M input tokens
    output: float  # USD per 1M output tokens


# Mid-tier family pricing, used when nothing in the table matches
DEFAULT_PRICING = ModelPricing(input=3.0, output=15.0)


@dataclass(frozen=True)
class PricingTable:
    """Pricing table keyed by model id."""
    models: Dict[str, ModelPricing]
    updated: str = ""

    def get_pricing(self, model: str) -> Optional[ModelPricing]:
        """Exact lookup, None when the model is not listed."""
        return self.models.get(model)


def strip_version(model: str) -> str:
    """Remove version segments (those starting with a digit) from a model id.

    "claude-sonnet-4-5" -> "claude-sonnet", "claude-3-5-haiku" -> "claude-haiku".
    """
    parts = [part for part in model.split("-") if not (part and part[0].isdigit())]
    return "-".join(parts)


def resolve_price(model: str, table: PricingTable) -> ModelPricing:
    """Find pricing for a model, falling back through progressively looser ids.

    Never raises: pricing must not block cost display.

    Args:
        model: Model identifier as written in the usage log
        table: Active pricing table

    Returns:
        The best matching ModelPricing, or DEFAULT_PRICING
    """
    pricing = table.get_pricing(model)
    if pricing is not None:
        return pricing

    match = _DATE_SUFFIX_RE.match(model)
    if match:
        versioned = match.group("versioned")
        pricing = table.get_pricing(versioned)
        if pricing is not None:
            return pricing

        pricing = table.get_pricing(strip_version(versioned))
        if pricing is not None:
            return pricing

    pricing = table.get_pricing(strip_version(model))
    if pricing is not None:
        return pricing

    return DEFAULT_PRICING


def calculate_cost(usage: TokenUsage, pricing: ModelPricing) -> float:
    """Calculate the USD cost of one usage event.

    Output tokens are billed at the input rate in addition to the output
    rate. Cache writes cost 1.25x and cache reads 0.10x the input rate.

    Args:
        usage: Token counts of the event
        pricing: Rates for the event's model

    Returns:
        Cost in USD (unrounded)
    """
    per_input = pricing.input / TOKENS_PER_MILLION
    per_output = pricing.output / TOKENS_PER_MILLION

    cost = 0.0
    cost += usage.input_tokens * per_input
    cost += usage.output_tokens * per_input
    cost += usage.cache_creation_tokens * per_input * CACHE_CREATION_MULTIPLIER
    cost += usage.cache_read_tokens * per_input * CACHE_READ_MULTIPLIER
    cost += usage.output_tokens * per_output
    return cost


def parse_pricing_payload(raw: Any) -> PricingTable:
    """Validate a decoded pricing document and build a PricingTable.

    Expected shape: {"updated": str, "models": {id: {"input": n, "output": n}}}

    Raises:
        ValueError: If the payload does not match the expected schema
    """
    if not isinstance(raw, dict):
        raise ValueError("pricing payload must be an object")

    updated = raw.get("updated", "")
    if not isinstance(updated, str):
        raise ValueError("'updated' must be a string")

    models_data = raw.get("models")
    if not isinstance(models_data, dict) or not models_data:
        raise ValueError("'models' must be a non-empty object")

    models = {}
    for model_id, rates in models_data.items():
        if not isinstance(rates, Mapping):
            raise ValueError(f"pricing for '{model_id}' must be an object")
        values = []
        for key in ("input", "output"):
            value = rates.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"'{key}' price for '{model_id}' must be a non-negative number")
            values.append(float(value))
        models[model_id] = ModelPricing(input=values[0], output=values[1])

    return PricingTable(models=models, updated=updated)


def load_embedded_pricing() -> PricingTable:
    """Load the pricing table shipped with the package."""
    data = resources.files("agent_statusline.core").joinpath("pricing.json").read_text(encoding="utf-8")
    return parse_pricing_payload(json.loads(data))
