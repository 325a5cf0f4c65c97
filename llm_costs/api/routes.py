from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query, Request

from llm_costs import __version__
from llm_costs.api.schemas import (
    BatchCostRequest,
    BatchCostResponse,
    BatchErrorItem,
    CostBreakdown,
    CostMeta,
    CostRequest,
    CostResponse,
    ErrorBody,
    HealthResponse,
    ModelsResponse,
    ModelSummary,
    ProviderEntry,
    ProvidersResponse,
    ProviderSummary,
    UsageEntry,
    VersionResponse,
)
from llm_costs.catalog.models import (
    DynamicPricing,
    ModelCatalog,
    PricingShape,
    ProviderPricing,
    Rate,
    TieredPricing,
)
from llm_costs.engine import (
    CostCalculator,
    CostResult,
    PricingError,
    RequestText,
)
from llm_costs.engine.exceptions import PROVIDER_NOT_SUPPORTED

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1")


def _get_catalog(request: Request) -> ModelCatalog:
    return request.app.state.catalog


def _get_calculator(request: Request) -> CostCalculator:
    return request.app.state.calculator


def _to_decimal_string(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(value.normalize(), "f")


def _to_request_text(payload: CostRequest) -> RequestText | None:
    if payload.text is None:
        return None

    messages: list[dict[str, Any]] | None = None
    if payload.text.messages is not None:
        # multi-part content is flattened by the estimator
        messages = [message.model_dump() for message in payload.text.messages]

    return RequestText(
        prompt=payload.text.prompt,
        messages=messages,
        completion=payload.text.completion,
    )


def _calculate(calculator: CostCalculator, payload: CostRequest) -> CostResult:
    return calculator.calculate_costs(
        payload.model,
        payload.provider,
        prompt_tokens=payload.prompt_tokens,
        completion_tokens=payload.completion_tokens,
        cached_tokens=payload.cached_tokens,
        text=_to_request_text(payload),
        context_size=payload.context_size,
    )


def _cost_response(
    catalog: ModelCatalog,
    payload: CostRequest,
    result: CostResult,
) -> CostResponse:
    return CostResponse(
        catalog_version=catalog.catalog_version,
        model=payload.model,
        provider=payload.provider,
        currency=catalog.meta.currency,
        usage=UsageEntry(
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            cached_tokens=result.cached_tokens,
            estimated_cost=result.estimated_cost,
        ),
        costs=CostBreakdown(
            input_cost=_to_decimal_string(result.input_cost),
            output_cost=_to_decimal_string(result.output_cost),
            cached_input_cost=_to_decimal_string(result.cached_input_cost),
            request_cost=_to_decimal_string(result.request_cost),
            total_cost=_to_decimal_string(result.total_cost),
        ),
        pricing_shape=result.pricing_shape,
        tier_index=result.tier_index,
        meta=CostMeta(
            computed_at=datetime.now(UTC).isoformat(),
            engine_version=__version__,
        ),
    )


def _serialize_rate(rate: Rate | None) -> dict[str, str] | None:
    if rate is None:
        return None
    return {rate.kind: rate.raw}


def _serialize_pricing(pricing: PricingShape) -> dict[str, Any]:
    if isinstance(pricing, TieredPricing):
        return {
            "tiers": [
                {
                    "min_context_size": tier.min_context_size,
                    "max_context_size": tier.max_context_size,
                    "input_price": _serialize_rate(tier.input_price),
                    "output_price": _serialize_rate(tier.output_price),
                    "cached_input_price": _serialize_rate(
                        tier.cached_input_price
                    ),
                }
                for tier in pricing.tiers
            ]
        }
    if isinstance(pricing, DynamicPricing):
        return {
            "threshold": pricing.threshold,
            "lower": {
                "input_price": _serialize_rate(pricing.lower_input_price),
                "output_price": _serialize_rate(pricing.lower_output_price),
            },
            "upper": {
                "input_price": _serialize_rate(pricing.upper_input_price),
                "output_price": _serialize_rate(pricing.upper_output_price),
            },
            "cached_input_price": _serialize_rate(pricing.cached_input_price),
        }
    return {
        "input_price": _serialize_rate(pricing.input_price),
        "output_price": _serialize_rate(pricing.output_price),
        "cached_input_price": _serialize_rate(pricing.cached_input_price),
    }


def _provider_entry(entry: ProviderPricing, include_pricing: bool) -> ProviderEntry:
    return ProviderEntry(
        provider=entry.provider_id,
        model_name=entry.model_name,
        context_size=entry.context_size,
        max_output=entry.max_output,
        streaming=entry.streaming,
        vision=entry.vision,
        pricing_shape=entry.pricing.shape,
        pricing=_serialize_pricing(entry.pricing) if include_pricing else None,
    )


@router.post("/costs", response_model=CostResponse)
def calculate_costs(payload: CostRequest, request: Request) -> CostResponse:
    """Calculate the cost of a single completed request."""
    logger.info(
        "cost_requested",
        extra={
            "event": "cost_requested",
            "provider": payload.provider,
            "model": payload.model,
        },
    )
    result = _calculate(_get_calculator(request), payload)
    return _cost_response(_get_catalog(request), payload, result)


@router.post("/costs/batch", response_model=BatchCostResponse)
def calculate_costs_batch(
    payload: BatchCostRequest, request: Request
) -> BatchCostResponse:
    """Calculate costs for a batch and return partial successes."""
    catalog = _get_catalog(request)
    calculator = _get_calculator(request)

    results: list[CostResponse] = []
    errors: list[BatchErrorItem] = []

    for index, item in enumerate(payload.items):
        try:
            result = _calculate(calculator, item)
        except PricingError as exc:
            errors.append(
                BatchErrorItem(index=index, error=ErrorBody(**exc.to_payload()))
            )
            continue
        results.append(_cost_response(catalog, item, result))

    return BatchCostResponse(
        catalog_version=catalog.catalog_version,
        results=results,
        errors=errors,
    )


@router.get("/providers", response_model=ProvidersResponse)
def list_providers(request: Request) -> ProvidersResponse:
    """List provider ids with the number of models each one prices."""
    catalog = _get_catalog(request)
    return ProvidersResponse(
        catalog_version=catalog.catalog_version,
        providers=[
            ProviderSummary(
                provider=provider_id,
                model_count=len(catalog.models_for_provider(provider_id)),
            )
            for provider_id in catalog.list_providers()
        ],
    )


@router.get("/models", response_model=ModelsResponse)
def list_models(
    request: Request,
    provider: str | None = Query(None, min_length=1),
    include_deactivated: bool = Query(False),
    include_pricing: bool = Query(False),
) -> ModelsResponse:
    """List catalog models, optionally narrowed to one provider."""
    catalog = _get_catalog(request)

    if provider is None:
        definitions = catalog.list_models()
    else:
        if provider not in catalog.list_providers():
            raise PricingError(
                PROVIDER_NOT_SUPPORTED,
                "Provider not supported",
                details={"provider": provider},
            )
        definitions = catalog.models_for_provider(provider)

    now = datetime.now(UTC)
    models: list[ModelSummary] = []
    for definition in definitions:
        if not include_deactivated and definition.is_deactivated(now):
            continue
        entries = [
            entry
            for entry in definition.providers
            if provider is None or entry.provider_id == provider
        ]
        models.append(
            ModelSummary(
                model=definition.model,
                json_output=definition.json_output,
                deprecated_at=(
                    definition.deprecated_at.isoformat()
                    if definition.deprecated_at
                    else None
                ),
                deactivated_at=(
                    definition.deactivated_at.isoformat()
                    if definition.deactivated_at
                    else None
                ),
                providers=[
                    _provider_entry(entry, include_pricing) for entry in entries
                ],
            )
        )

    return ModelsResponse(catalog_version=catalog.catalog_version, models=models)


@router.get("/versions", response_model=VersionResponse)
def get_versions(request: Request) -> VersionResponse:
    """Return the active catalog version for this deployment."""
    return VersionResponse(catalog_version=_get_catalog(request).catalog_version)


@router.get("/healthz", response_model=HealthResponse, include_in_schema=False)
def healthz(request: Request) -> HealthResponse:
    """Liveness/readiness probe."""
    return HealthResponse(
        status="ok",
        catalog_version=_get_catalog(request).catalog_version,
        engine_version=__version__,
    )
