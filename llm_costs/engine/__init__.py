"""Engine package exports."""

from llm_costs.engine.calculator import (
    CostCalculator,
    CostResult,
    RequestText,
    TokenUsage,
)
from llm_costs.engine.exceptions import PricingError
from llm_costs.engine.resolver import PricingResolver, ResolvedRates
from llm_costs.engine.tokens import ChatMessage, TokenEstimator

__all__ = [
    "ChatMessage",
    "CostCalculator",
    "CostResult",
    "PricingError",
    "PricingResolver",
    "RequestText",
    "ResolvedRates",
    "TokenEstimator",
    "TokenUsage",
]
