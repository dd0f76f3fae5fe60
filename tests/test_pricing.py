"""Tests for usage accounting and cost estimation."""

import pytest

from crewkit.pricing import MODEL_PRICING, Usage, calculate_cost, format_cost, get_model_price, sum_usage


def test_usage_from_dict_fills_missing_total():
    assert Usage.from_dict({"prompt_tokens": 3, "completion_tokens": 4}) == Usage(3, 4, 7)
    assert Usage.from_dict({"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 9}).total_tokens == 9
    assert Usage.from_dict(None) == Usage()
    assert Usage.from_dict({"prompt_tokens": None}) == Usage()


def test_usage_addition_and_sum():
    total = sum_usage([Usage(1, 2, 3), Usage(10, 20, 30), Usage()])

    assert total == Usage(11, 22, 33)
    assert total.to_dict() == {"prompt_tokens": 11, "completion_tokens": 22, "total_tokens": 33}
    assert sum_usage([]) == Usage()


def test_calculate_cost_per_million_tokens():
    cost = calculate_cost("gpt-4o", Usage(prompt_tokens=1_000_000, completion_tokens=500_000))

    assert cost == pytest.approx(2.50 + 5.00)


def test_unknown_model_uses_default_price():
    assert get_model_price("some-local-model") == MODEL_PRICING["gpt-4o-mini"]
    assert calculate_cost("some-local-model", Usage(1_000_000, 0, 1_000_000)) == pytest.approx(0.15)


def test_format_cost():
    assert format_cost(0.5) == "$0.500000"
    assert format_cost(0) == "$0.000000"
