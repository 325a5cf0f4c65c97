from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Literal, Mapping, Union

from llm_costs.catalog.exceptions import CatalogError

RateKind = Literal["per_1m", "per_token"]

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class Rate:
    kind: RateKind
    value: Decimal
    raw: str

    @property
    def per_token(self) -> Decimal:
        """Return the rate as USD per single token."""
        if self.kind == "per_1m":
            return self.value / ONE_MILLION
        return self.value

    @classmethod
    def from_per_1m(cls, raw: str) -> "Rate":
        return cls(kind="per_1m", value=Decimal(raw), raw=raw)

    @classmethod
    def from_per_token(cls, raw: str) -> "Rate":
        return cls(kind="per_token", value=Decimal(raw), raw=raw)


@dataclass(frozen=True)
class FlatPricing:
    input_price: Rate | None = None
    output_price: Rate | None = None
    cached_input_price: Rate | None = None

    shape = "flat"


@dataclass(frozen=True)
class PricingTier:
    # both bounds inclusive
    min_context_size: int
    max_context_size: int
    input_price: Rate
    output_price: Rate
    cached_input_price: Rate | None = None

    def contains(self, context_size: int) -> bool:
        return self.min_context_size <= context_size <= self.max_context_size


@dataclass(frozen=True)
class TieredPricing:
    tiers: tuple[PricingTier, ...]

    shape = "tiered"


@dataclass(frozen=True)
class DynamicPricing:
    """Two rate sets split at a single context-size threshold.

    Requests whose context is at or below ``threshold`` pay the lower rates,
    anything above pays the upper rates. Cached input is priced the same on
    both sides.
    """

    threshold: int
    lower_input_price: Rate
    lower_output_price: Rate
    upper_input_price: Rate
    upper_output_price: Rate
    cached_input_price: Rate | None = None

    shape = "dynamic"


PricingShape = Union[FlatPricing, TieredPricing, DynamicPricing]


@dataclass(frozen=True)
class ProviderPricing:
    provider_id: str
    model_name: str
    context_size: int
    max_output: int | None
    pricing: PricingShape
    # flat USD fee per call
    request_price: Decimal = Decimal("0")
    streaming: bool = True
    vision: bool = False


@dataclass(frozen=True)
class ModelDefinition:
    model: str
    providers: tuple[ProviderPricing, ...]
    json_output: bool = False
    deprecated_at: datetime | None = None
    deactivated_at: datetime | None = None

    def get_provider(self, provider_id: str) -> ProviderPricing | None:
        """Return the first pricing entry served by ``provider_id``."""
        for entry in self.providers:
            if entry.provider_id == provider_id:
                return entry
        return None

    def is_deprecated(self, at: datetime) -> bool:
        return self.deprecated_at is not None and self.deprecated_at <= at

    def is_deactivated(self, at: datetime) -> bool:
        return self.deactivated_at is not None and self.deactivated_at <= at


@dataclass(frozen=True)
class CatalogMeta:
    catalog_version: str
    published_at: str
    currency: str
    schema_version: int


class ModelCatalog:
    """Immutable, name-indexed collection of model definitions."""

    def __init__(
        self,
        models: Iterable[ModelDefinition],
        meta: CatalogMeta,
    ) -> None:
        index: dict[str, ModelDefinition] = {}
        for definition in models:
            if definition.model in index:
                raise CatalogError(f"Duplicate model '{definition.model}'")
            index[definition.model] = definition
        self._models: Mapping[str, ModelDefinition] = MappingProxyType(index)
        self._meta = meta

    @property
    def meta(self) -> CatalogMeta:
        return self._meta

    @property
    def catalog_version(self) -> str:
        return self._meta.catalog_version

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model: object) -> bool:
        return model in self._models

    def get_model(self, model: str) -> ModelDefinition | None:
        return self._models.get(model)

    def list_models(self) -> list[ModelDefinition]:
        """List all model definitions sorted by model name."""
        return [self._models[key] for key in sorted(self._models)]

    def list_providers(self) -> list[str]:
        """List every provider id that prices at least one model."""
        return sorted(
            {
                entry.provider_id
                for definition in self._models.values()
                for entry in definition.providers
            }
        )

    def models_for_provider(self, provider_id: str) -> list[ModelDefinition]:
        return [
            definition
            for definition in self.list_models()
            if definition.get_provider(provider_id) is not None
        ]
