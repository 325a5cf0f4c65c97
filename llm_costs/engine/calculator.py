from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from llm_costs.constants import MAX_TOKEN_COUNT
from llm_costs.engine.exceptions import INVALID_REQUEST, PricingError
from llm_costs.engine.resolver import PricingResolver, ResolvedRates
from llm_costs.engine.tokens import MessageLike, TokenEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestText:
    """Raw request/response text used when exact usage is missing."""

    prompt: str | None = None
    messages: Sequence[MessageLike] | None = None
    completion: str | None = None


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int | None
    completion_tokens: int | None
    cached_tokens: int | None
    estimated_cost: bool

    @property
    def is_empty(self) -> bool:
        return (
            self.prompt_tokens is None
            and self.completion_tokens is None
            and self.cached_tokens is None
        )


@dataclass(frozen=True)
class CostResult:
    input_cost: Decimal | None
    output_cost: Decimal | None
    cached_input_cost: Decimal | None
    request_cost: Decimal | None
    total_cost: Decimal | None
    prompt_tokens: int | None
    completion_tokens: int | None
    cached_tokens: int | None
    estimated_cost: bool
    pricing_shape: str | None = None
    tier_index: int | None = None

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            cached_tokens=self.cached_tokens,
            estimated_cost=self.estimated_cost,
        )


class CostCalculator:
    def __init__(
        self,
        resolver: PricingResolver,
        estimator: TokenEstimator | None = None,
    ) -> None:
        """Build a deterministic cost calculator over a resolver."""
        self._resolver = resolver
        self._estimator = estimator or TokenEstimator()

    @property
    def resolver(self) -> PricingResolver:
        return self._resolver

    def calculate_costs(
        self,
        model: str,
        provider_id: str,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        cached_tokens: int | None = None,
        text: RequestText | None = None,
        context_size: int | None = None,
    ) -> CostResult:
        """Compute the cost of one request.

        Missing prompt/completion counts are estimated from ``text`` when it
        is given. An unknown model or provider yields null costs rather than
        an error.

        Without ``context_size`` the rates are resolved for the prompt token
        count, then for the provider's declared context window.
        """
        self._validate_count("prompt_tokens", prompt_tokens)
        self._validate_count("completion_tokens", completion_tokens)
        self._validate_count("cached_tokens", cached_tokens)
        self._validate_count("context_size", context_size)

        usage = self._resolve_usage(
            prompt_tokens, completion_tokens, cached_tokens, text
        )

        entry = self._resolver.lookup(model, provider_id)
        if entry is None:
            logger.info(
                "pricing_not_found",
                extra={
                    "event": "pricing_not_found",
                    "model": model,
                    "provider": provider_id,
                },
            )
            return self._build_result(usage, rates=None)

        if context_size is None:
            # the request's own prompt is the context it actually consumed
            context_size = (
                usage.prompt_tokens
                if usage.prompt_tokens is not None
                else entry.context_size
            )

        rates = self._resolver.resolve_entry(entry, context_size)
        return self._build_result(usage, rates=rates)

    def _resolve_usage(
        self,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        cached_tokens: int | None,
        text: RequestText | None,
    ) -> TokenUsage:
        estimated = False
        if (prompt_tokens is None or completion_tokens is None) and text:
            estimated_prompt, estimated_completion = self._estimator.estimate(
                prompt=text.prompt,
                messages=text.messages,
                completion=text.completion,
            )
            if prompt_tokens is None and estimated_prompt is not None:
                prompt_tokens = estimated_prompt
                estimated = True
            if completion_tokens is None and estimated_completion is not None:
                completion_tokens = estimated_completion
                estimated = True
            if estimated:
                logger.debug(
                    "tokens_estimated",
                    extra={"event": "tokens_estimated", "estimated": True},
                )

        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cached_tokens=cached_tokens,
            estimated_cost=estimated,
        )

    def _build_result(
        self,
        usage: TokenUsage,
        rates: ResolvedRates | None,
    ) -> CostResult:
        input_cost = output_cost = cached_input_cost = request_cost = None

        if rates is not None:
            input_cost = self._compute_cost(
                usage.prompt_tokens, rates.input_price
            )
            output_cost = self._compute_cost(
                usage.completion_tokens, rates.output_price
            )
            cached_input_cost = self._compute_cost(
                usage.cached_tokens, rates.cached_input_price
            )
            # no usage at all means there is no request to charge for
            if not usage.is_empty:
                request_cost = rates.request_price

        components = [
            cost
            for cost in (input_cost, output_cost, cached_input_cost, request_cost)
            if cost is not None
        ]
        total_cost = sum(components, Decimal("0")) if components else None

        return CostResult(
            input_cost=input_cost,
            output_cost=output_cost,
            cached_input_cost=cached_input_cost,
            request_cost=request_cost,
            total_cost=total_cost,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            cached_tokens=usage.cached_tokens,
            estimated_cost=usage.estimated_cost,
            pricing_shape=rates.pricing_shape if rates else None,
            tier_index=rates.tier_index if rates else None,
        )

    @staticmethod
    def _compute_cost(
        quantity: int | None,
        price: Decimal | None,
    ) -> Decimal | None:
        if quantity is None or price is None:
            return None
        return Decimal(quantity) * price

    @staticmethod
    def _validate_count(name: str, value: int | None) -> None:
        if value is None:
            return

        if isinstance(value, bool) or not isinstance(value, int):
            raise PricingError(
                INVALID_REQUEST,
                "Token counts must be integers",
                details={"field": name, "value": value},
            )

        if value < 0 or value > MAX_TOKEN_COUNT:
            raise PricingError(
                INVALID_REQUEST,
                "Token count out of range",
                details={
                    "field": name,
                    "min": 0,
                    "max": MAX_TOKEN_COUNT,
                    "value": value,
                },
            )
