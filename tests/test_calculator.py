from __future__ import annotations

from decimal import Decimal

import pytest

from llm_costs.catalog import load_catalog
from llm_costs.engine import (
    ChatMessage,
    CostCalculator,
    PricingError,
    PricingResolver,
    RequestText,
    TokenEstimator,
)

PER_1M = Decimal(1_000_000)


def make_calculator() -> CostCalculator:
    """Create a calculator bound to the bundled catalog."""
    resolver = PricingResolver(load_catalog())
    return CostCalculator(resolver=resolver, estimator=TokenEstimator())


def test_flat_pricing_with_reported_usage() -> None:
    """Multiply reported counts by flat per-token rates."""
    result = make_calculator().calculate_costs("gpt-4", "openai", 100, 50, None)

    assert result.input_cost == Decimal("0.001")
    assert result.output_cost == Decimal("0.0015")
    assert result.cached_input_cost is None
    assert result.request_cost == Decimal("0")
    assert result.total_cost == Decimal("0.0025")
    assert result.prompt_tokens == 100
    assert result.completion_tokens == 50
    assert result.cached_tokens is None
    assert result.estimated_cost is False
    assert result.pricing_shape == "flat"


def test_estimates_from_prompt_text() -> None:
    """Estimate counts from prompt and completion text."""
    result = make_calculator().calculate_costs(
        "gpt-4",
        "openai",
        text=RequestText(
            prompt="Hello, how are you?",
            completion="I'm doing well, thank you for asking!",
        ),
    )

    assert result.prompt_tokens is not None and result.prompt_tokens > 0
    assert result.completion_tokens is not None and result.completion_tokens > 0
    assert result.input_cost is not None and result.input_cost > 0
    assert result.output_cost is not None and result.output_cost > 0
    assert result.total_cost is not None and result.total_cost > 0
    assert result.estimated_cost is True


def test_estimates_from_chat_messages() -> None:
    """Estimate the prompt count from a structured message list."""
    result = make_calculator().calculate_costs(
        "gpt-4",
        "openai",
        None,
        None,
        None,
        text=RequestText(
            messages=[
                ChatMessage(role="user", content="Hello, how are you?"),
                {"role": "assistant", "content": "I'm doing well, thanks!"},
            ],
            completion="I'm doing well, thank you for asking!",
        ),
    )

    assert result.prompt_tokens is not None and result.prompt_tokens > 0
    assert result.completion_tokens is not None and result.completion_tokens > 0
    assert result.total_cost is not None and result.total_cost > 0
    assert result.estimated_cost is True


def test_unknown_provider_yields_null_costs() -> None:
    """Keep token counts but null every cost for an unknown provider."""
    result = make_calculator().calculate_costs(
        "gpt-4", "non-existent-provider", 100, 50, None
    )

    assert result.input_cost is None
    assert result.output_cost is None
    assert result.cached_input_cost is None
    assert result.request_cost is None
    assert result.total_cost is None
    assert result.prompt_tokens == 100
    assert result.completion_tokens == 50
    assert result.cached_tokens is None
    assert result.estimated_cost is False
    assert result.pricing_shape is None


def test_unknown_model_still_reports_estimated_tokens() -> None:
    """Report estimated counts even when the model cannot be priced."""
    result = make_calculator().calculate_costs(
        "no-such-model", "openai", text=RequestText(prompt="Hello there")
    )

    assert result.total_cost is None
    assert result.prompt_tokens is not None and result.prompt_tokens > 0
    assert result.estimated_cost is True


def test_no_usage_and_no_text_yields_all_nulls() -> None:
    """Null every field when there is nothing to count or estimate."""
    result = make_calculator().calculate_costs("gpt-4", "openai", None, None, None)

    assert result.input_cost is None
    assert result.output_cost is None
    assert result.cached_input_cost is None
    assert result.request_cost is None
    assert result.total_cost is None
    assert result.prompt_tokens is None
    assert result.completion_tokens is None
    assert result.cached_tokens is None
    assert result.estimated_cost is False


def test_cached_tokens_priced_separately() -> None:
    """Price cached tokens at the cached input rate."""
    result = make_calculator().calculate_costs("gpt-4o", "openai", 100, 50, 20)

    assert result.input_cost == Decimal("0.00025")
    assert result.output_cost == Decimal("0.0005")
    assert result.cached_input_cost == Decimal("0.000025")
    assert result.total_cost == Decimal("0.000775")
    assert result.total_cost == (
        result.input_cost + result.output_cost + result.cached_input_cost
    )
    assert result.cached_tokens == 20
    assert result.estimated_cost is False


def test_cached_tokens_without_cached_price_are_not_priced() -> None:
    """Return a null cached cost, not zero, when no cached rate exists."""
    result = make_calculator().calculate_costs("gpt-4o", "azure", 100, 50, 20)

    assert result.cached_input_cost is None
    assert result.total_cost == (
        Decimal(100) * Decimal("2.75") / PER_1M
        + Decimal(50) * Decimal("11") / PER_1M
    )


@pytest.mark.parametrize(
    ("prompt_tokens", "completion_tokens", "input_cost", "output_cost", "tier"),
    [
        (15_000, 5_000, "0.015", "0.025", 0),
        (50_000, 20_000, "0.09", "0.18", 1),
        (300_000, 100_000, "1.8", "6.0", 3),
    ],
)
def test_tiers_follow_request_context_by_default(
    prompt_tokens: int,
    completion_tokens: int,
    input_cost: str,
    output_cost: str,
    tier: int,
) -> None:
    """Select the tier from the prompt size when no context size is given."""
    result = make_calculator().calculate_costs(
        "qwen3-coder-plus", "alibaba", prompt_tokens, completion_tokens, None
    )

    assert result.input_cost == Decimal(input_cost)
    assert result.output_cost == Decimal(output_cost)
    assert result.total_cost == Decimal(input_cost) + Decimal(output_cost)
    assert result.tier_index == tier


def test_explicit_context_size_selects_tier_regardless_of_volume() -> None:
    """Use the caller's context size, not the token volume, to pick a tier."""
    result = make_calculator().calculate_costs(
        "qwen3-coder-plus", "alibaba", 10, 10, None, context_size=200_000
    )

    assert result.tier_index == 2
    assert result.input_cost == Decimal(10) * Decimal(3) / PER_1M
    assert result.output_cost == Decimal(10) * Decimal(15) / PER_1M


def test_declared_context_window_used_without_prompt_count() -> None:
    """Fall back to the declared context window when the prompt is unknown."""
    result = make_calculator().calculate_costs(
        "qwen3-coder-plus", "alibaba", None, 100, None
    )

    assert result.tier_index == 3
    assert result.input_cost is None
    assert result.output_cost == Decimal(100) * Decimal(60) / PER_1M
    assert result.total_cost == result.output_cost


def test_dynamic_pricing_lower_side() -> None:
    """Use lower rates for a context at or below the threshold."""
    result = make_calculator().calculate_costs(
        "grok-4-0709", "xai", 100_000, 50_000, None, context_size=100_000
    )

    assert result.input_cost == Decimal(100_000) * (Decimal("3.0") / PER_1M)
    assert result.output_cost == Decimal(50_000) * (Decimal("15.0") / PER_1M)
    assert result.total_cost == result.input_cost + result.output_cost


def test_dynamic_pricing_upper_side() -> None:
    """Use upper rates for a context above the threshold."""
    result = make_calculator().calculate_costs(
        "grok-4-0709", "xai", 150_000, 50_000, None, context_size=150_000
    )

    assert result.input_cost == Decimal(150_000) * (Decimal("6.0") / PER_1M)
    assert result.output_cost == Decimal(50_000) * (Decimal("30.0") / PER_1M)
    assert result.total_cost == result.input_cost + result.output_cost


def test_dynamic_boundary_changes_effective_rate() -> None:
    """Yield different costs for identical usage across the threshold."""
    calculator = make_calculator()

    below = calculator.calculate_costs(
        "grok-4-0709", "xai", 1000, 1000, None, context_size=128_000
    )
    above = calculator.calculate_costs(
        "grok-4-0709", "xai", 1000, 1000, None, context_size=150_000
    )

    assert below.total_cost is not None and above.total_cost is not None
    assert below.total_cost < above.total_cost


def test_dynamic_cached_price_shared_across_threshold() -> None:
    """Charge cached tokens the same on both sides of the threshold."""
    calculator = make_calculator()

    lower = calculator.calculate_costs(
        "grok-4-0709", "xai", 100_000, 50_000, 20_000, context_size=100_000
    )
    upper = calculator.calculate_costs(
        "grok-4-0709", "xai", 150_000, 50_000, 20_000, context_size=150_000
    )

    expected = Decimal(20_000) * (Decimal("0.75") / PER_1M)
    assert lower.cached_input_cost == expected
    assert upper.cached_input_cost == expected


def test_non_dynamic_model_ignores_context_size() -> None:
    """Keep flat rates for a model without a dynamic schedule."""
    result = make_calculator().calculate_costs(
        "gpt-4o-mini", "openai", 100_000, 50_000, None, context_size=200_000
    )

    assert result.input_cost == Decimal(100_000) * (Decimal("0.15") / PER_1M)
    assert result.output_cost == Decimal(50_000) * (Decimal("0.6") / PER_1M)


def test_request_fee_is_added_to_total() -> None:
    """Include the per-call fee as its own component of the total."""
    result = make_calculator().calculate_costs("sonar", "perplexity", 1000, 500, None)

    assert result.request_cost == Decimal("0.005")
    assert result.total_cost == Decimal("0.001") + Decimal("0.0005") + Decimal(
        "0.005"
    )


def test_only_missing_counts_are_estimated() -> None:
    """Keep a reported prompt count and estimate only the completion."""
    result = make_calculator().calculate_costs(
        "gpt-4",
        "openai",
        prompt_tokens=42,
        text=RequestText(prompt="ignored", completion="Estimated reply text"),
    )

    assert result.prompt_tokens == 42
    assert result.completion_tokens is not None and result.completion_tokens > 0
    assert result.estimated_cost is True


def test_reported_counts_skip_estimation() -> None:
    """Never estimate when both counts were reported."""
    result = make_calculator().calculate_costs(
        "gpt-4", "openai", 7, 3, text=RequestText(prompt="Lots of text " * 50)
    )

    assert result.prompt_tokens == 7
    assert result.completion_tokens == 3
    assert result.estimated_cost is False


def test_total_is_sum_of_components_and_repeatable() -> None:
    """Sum non-null components and return equal results on repeat calls."""
    calculator = make_calculator()

    first = calculator.calculate_costs("gpt-4o", "openai", 1234, 567, 89)
    second = calculator.calculate_costs("gpt-4o", "openai", 1234, 567, 89)

    components = [
        cost
        for cost in (
            first.input_cost,
            first.output_cost,
            first.cached_input_cost,
            first.request_cost,
        )
        if cost is not None
    ]
    assert first.total_cost == sum(components, Decimal("0"))
    assert first == second
    assert repr(first) == repr(second)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"prompt_tokens": -1},
        {"completion_tokens": True},
        {"cached_tokens": 1.5},
        {"context_size": -10},
    ],
)
def test_invalid_counts_are_rejected(kwargs: dict[str, object]) -> None:
    """Reject negative or non-integer counts as invalid requests."""
    with pytest.raises(PricingError) as exc_info:
        make_calculator().calculate_costs("gpt-4", "openai", **kwargs)  # type: ignore[arg-type]

    assert exc_info.value.code == "INVALID_REQUEST"
    assert exc_info.value.to_payload()["details"]["field"] in kwargs
