"""Token usage accounting and model pricing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional


@dataclass(frozen=True)
class ModelPrice:
    """USD price per one million tokens."""

    input: float
    output: float


MODEL_PRICING: Dict[str, ModelPrice] = {
    "gpt-4o": ModelPrice(input=2.50, output=10.00),
    "gpt-4o-mini": ModelPrice(input=0.15, output=0.60),
    "gpt-4-turbo": ModelPrice(input=10.00, output=30.00),
    "gpt-4": ModelPrice(input=30.00, output=60.00),
    "gpt-3.5-turbo": ModelPrice(input=0.50, output=1.50),
    "gpt-3.5-turbo-instruct": ModelPrice(input=1.50, output=2.00),
}

DEFAULT_PRICING_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class Usage:
    """Token counters for one or more model calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        if not isinstance(other, Usage):
            return NotImplemented
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Usage":
        """Build from a provider usage dict; missing keys count as zero."""
        if not data:
            return cls()
        prompt = int(data.get("prompt_tokens") or 0)
        completion = int(data.get("completion_tokens") or 0)
        total = int(data.get("total_tokens") or (prompt + completion))
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


def sum_usage(items: Iterable[Usage]) -> Usage:
    total = Usage()
    for item in items:
        total = total + item
    return total


def get_model_price(model: str) -> ModelPrice:
    """Return the price for ``model``, falling back to the default model's price."""
    return MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])


def calculate_cost(model: str, usage: Usage) -> float:
    """Estimated USD cost of ``usage`` on ``model``."""
    price = get_model_price(model)
    input_cost = usage.prompt_tokens / 1_000_000 * price.input
    output_cost = usage.completion_tokens / 1_000_000 * price.output
    return input_cost + output_cost


def format_cost(cost: float) -> str:
    return f"${cost:.6f}"
