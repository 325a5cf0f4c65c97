from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from llm_costs.catalog.models import (
    DynamicPricing,
    ModelCatalog,
    ProviderPricing,
    Rate,
    TieredPricing,
)


@dataclass(frozen=True)
class ResolvedRates:
    """Effective USD-per-token rates for one request."""

    input_price: Decimal | None
    output_price: Decimal | None
    cached_input_price: Decimal | None
    request_price: Decimal
    pricing_shape: str
    # index into the tier list, or 0/1 for the lower/upper dynamic side
    tier_index: int | None = None


def _per_token(rate: Rate | None) -> Decimal | None:
    return rate.per_token if rate is not None else None


class PricingResolver:
    def __init__(self, catalog: ModelCatalog) -> None:
        """Bind the resolver to an already-loaded catalog."""
        self._catalog = catalog

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    def lookup(self, model: str, provider_id: str) -> ProviderPricing | None:
        """Find the pricing entry of ``model`` served by ``provider_id``."""
        definition = self._catalog.get_model(model)
        if definition is None:
            return None
        return definition.get_provider(provider_id)

    def resolve(
        self,
        model: str,
        provider_id: str,
        context_size: int | None = None,
    ) -> ResolvedRates | None:
        """Resolve effective rates, or ``None`` when the pair is unknown."""
        entry = self.lookup(model, provider_id)
        if entry is None:
            return None
        return self.resolve_entry(entry, context_size)

    @staticmethod
    def resolve_entry(
        entry: ProviderPricing,
        context_size: int | None,
    ) -> ResolvedRates:
        pricing = entry.pricing

        if isinstance(pricing, TieredPricing):
            index = 0
            if context_size is not None:
                for position, tier in enumerate(pricing.tiers):
                    if tier.contains(context_size):
                        index = position
                        break
            # unknown sizes and gaps between tiers fall back to the first tier
            tier = pricing.tiers[index]
            return ResolvedRates(
                input_price=tier.input_price.per_token,
                output_price=tier.output_price.per_token,
                cached_input_price=_per_token(tier.cached_input_price),
                request_price=entry.request_price,
                pricing_shape=pricing.shape,
                tier_index=index,
            )

        if isinstance(pricing, DynamicPricing):
            upper = (
                context_size is not None and context_size > pricing.threshold
            )
            return ResolvedRates(
                input_price=(
                    pricing.upper_input_price.per_token
                    if upper
                    else pricing.lower_input_price.per_token
                ),
                output_price=(
                    pricing.upper_output_price.per_token
                    if upper
                    else pricing.lower_output_price.per_token
                ),
                cached_input_price=_per_token(pricing.cached_input_price),
                request_price=entry.request_price,
                pricing_shape=pricing.shape,
                tier_index=1 if upper else 0,
            )

        return ResolvedRates(
            input_price=_per_token(pricing.input_price),
            output_price=_per_token(pricing.output_price),
            cached_input_price=_per_token(pricing.cached_input_price),
            request_price=entry.request_price,
            pricing_shape=pricing.shape,
        )
