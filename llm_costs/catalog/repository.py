from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from llm_costs.catalog import models as catalog_models
from llm_costs.catalog.exceptions import CatalogError

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_DIR = Path(__file__).resolve().parents[1] / "data"


class CatalogRepository:
    """Read, validate and parse the bundled model catalog.

    Layout under ``root_dir`` (the packaged ``llm_costs/data`` by default)::

        pricing/registry_meta.json
        pricing/models/<family>.json
        schema/catalog_meta.schema.json
        schema/model_family.schema.json
    """

    def __init__(self, root_dir: Path | None = None) -> None:
        self._root_dir = root_dir or DEFAULT_CATALOG_DIR
        self._pricing_dir = self._root_dir / "pricing"
        self._schema_dir = self._root_dir / "schema"

        self._meta_validator = Draft202012Validator(
            self._read_json(self._schema_dir / "catalog_meta.schema.json")
        )
        self._family_validator = Draft202012Validator(
            self._read_json(self._schema_dir / "model_family.schema.json")
        )

    def load(self) -> catalog_models.ModelCatalog:
        """Load every model family file into an immutable catalog."""
        meta = self._load_meta()
        definitions: list[catalog_models.ModelDefinition] = []
        seen: dict[str, str] = {}

        for path in self._discover_families():
            for definition in self._load_family(path):
                if definition.model in seen:
                    raise CatalogError(
                        (
                            f"Duplicate model '{definition.model}' "
                            f"(already defined in {seen[definition.model]})"
                        ),
                        source=path.name,
                    )
                seen[definition.model] = path.name
                definitions.append(definition)

        catalog = catalog_models.ModelCatalog(definitions, meta)
        logger.info(
            "catalog_loaded",
            extra={
                "event": "catalog_loaded",
                "catalog_version": meta.catalog_version,
                "model_count": len(catalog),
            },
        )
        return catalog

    # ------------------------------------------------------------------
    # Internal loading
    # ------------------------------------------------------------------

    def _load_meta(self) -> catalog_models.CatalogMeta:
        raw_meta = self._read_json(self._pricing_dir / "registry_meta.json")
        self._validate_schema(
            self._meta_validator,
            raw_meta,
            "registry_meta.json",
        )
        return catalog_models.CatalogMeta(
            catalog_version=raw_meta["catalog_version"],
            published_at=raw_meta["published_at"],
            currency=raw_meta["currency"],
            schema_version=raw_meta["schema_version"],
        )

    def _discover_families(self) -> list[Path]:
        return sorted((self._pricing_dir / "models").glob("*.json"))

    def _load_family(
        self,
        path: Path,
    ) -> list[catalog_models.ModelDefinition]:
        raw = self._read_json(path)
        self._validate_schema(self._family_validator, raw, path.name)
        return [
            self._parse_model(raw_model, path.name)
            for raw_model in raw["models"]
        ]

    def _parse_model(
        self,
        raw_model: dict[str, Any],
        filename: str,
    ) -> catalog_models.ModelDefinition:
        model = raw_model["model"]
        providers: list[catalog_models.ProviderPricing] = []
        for raw_provider in raw_model["providers"]:
            entry = self._parse_provider(raw_provider, model, filename)
            if any(p.provider_id == entry.provider_id for p in providers):
                raise CatalogError(
                    (
                        f"Duplicate provider '{entry.provider_id}' "
                        f"for model '{model}'"
                    ),
                    source=filename,
                )
            providers.append(entry)

        return catalog_models.ModelDefinition(
            model=model,
            providers=tuple(providers),
            json_output=raw_model.get("json_output", False),
            deprecated_at=self._parse_timestamp(
                raw_model.get("deprecated_at"), filename
            ),
            deactivated_at=self._parse_timestamp(
                raw_model.get("deactivated_at"), filename
            ),
        )

    def _parse_provider(
        self,
        raw_provider: dict[str, Any],
        model: str,
        filename: str,
    ) -> catalog_models.ProviderPricing:
        return catalog_models.ProviderPricing(
            provider_id=raw_provider["provider_id"],
            model_name=raw_provider["model_name"],
            context_size=raw_provider["context_size"],
            max_output=raw_provider.get("max_output"),
            streaming=raw_provider.get("streaming", True),
            vision=raw_provider.get("vision", False),
            request_price=Decimal(raw_provider.get("request_price", "0")),
            pricing=self._parse_pricing(
                raw_provider["pricing"],
                f"{model}/{raw_provider['provider_id']}",
                filename,
            ),
        )

    def _parse_pricing(
        self,
        raw_pricing: dict[str, Any],
        label: str,
        filename: str,
    ) -> catalog_models.PricingShape:
        # the schema guarantees exactly one shape key
        if "tiers" in raw_pricing:
            tiers = tuple(
                catalog_models.PricingTier(
                    min_context_size=raw_tier["min_context_size"],
                    max_context_size=raw_tier["max_context_size"],
                    input_price=self._parse_rate(raw_tier["input_price"]),
                    output_price=self._parse_rate(raw_tier["output_price"]),
                    cached_input_price=self._parse_optional_rate(
                        raw_tier.get("cached_input_price")
                    ),
                )
                for raw_tier in raw_pricing["tiers"]
            )
            self._validate_tiers(tiers, label, filename)
            return catalog_models.TieredPricing(tiers=tiers)

        if "dynamic" in raw_pricing:
            raw_dynamic = raw_pricing["dynamic"]
            return catalog_models.DynamicPricing(
                threshold=raw_dynamic["threshold"],
                lower_input_price=self._parse_rate(
                    raw_dynamic["lower"]["input_price"]
                ),
                lower_output_price=self._parse_rate(
                    raw_dynamic["lower"]["output_price"]
                ),
                upper_input_price=self._parse_rate(
                    raw_dynamic["upper"]["input_price"]
                ),
                upper_output_price=self._parse_rate(
                    raw_dynamic["upper"]["output_price"]
                ),
                cached_input_price=self._parse_optional_rate(
                    raw_dynamic.get("cached_input_price")
                ),
            )

        raw_flat = raw_pricing["flat"]
        return catalog_models.FlatPricing(
            input_price=self._parse_optional_rate(raw_flat.get("input_price")),
            output_price=self._parse_optional_rate(
                raw_flat.get("output_price")
            ),
            cached_input_price=self._parse_optional_rate(
                raw_flat.get("cached_input_price")
            ),
        )

    @staticmethod
    def _validate_tiers(
        tiers: tuple[catalog_models.PricingTier, ...],
        label: str,
        filename: str,
    ) -> None:
        previous: catalog_models.PricingTier | None = None
        for index, tier in enumerate(tiers):
            if tier.min_context_size > tier.max_context_size:
                raise CatalogError(
                    (
                        f"Tier {index} of '{label}' has min_context_size "
                        f"{tier.min_context_size} > max_context_size "
                        f"{tier.max_context_size}"
                    ),
                    source=filename,
                )
            if (
                previous is not None
                and tier.min_context_size <= previous.max_context_size
            ):
                raise CatalogError(
                    (
                        f"Tier {index} of '{label}' overlaps or precedes "
                        f"tier {index - 1}"
                    ),
                    source=filename,
                )
            previous = tier

    @staticmethod
    def _parse_rate(raw_rate: dict[str, str]) -> catalog_models.Rate:
        if "per_1m" in raw_rate:
            return catalog_models.Rate.from_per_1m(raw_rate["per_1m"])
        return catalog_models.Rate.from_per_token(raw_rate["per_token"])

    @classmethod
    def _parse_optional_rate(
        cls,
        raw_rate: dict[str, str] | None,
    ) -> catalog_models.Rate | None:
        if raw_rate is None:
            return None
        return cls._parse_rate(raw_rate)

    @staticmethod
    def _parse_timestamp(raw: str | None, filename: str) -> datetime | None:
        if raw is None:
            return None
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise CatalogError(
                f"Invalid timestamp '{raw}'", source=filename
            ) from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _validate_schema(
        validator: Draft202012Validator,
        payload: dict[str, Any],
        filename: str,
    ) -> None:
        errors = sorted(
            validator.iter_errors(payload),
            key=lambda err: [str(part) for part in err.path],
        )
        if not errors:
            return

        first_error = errors[0]
        path = ".".join(str(part) for part in first_error.path)
        path_suffix = f" at '{path}'" if path else ""
        raise CatalogError(
            f"Schema validation failed{path_suffix}: {first_error.message}",
            source=filename,
        )


def load_catalog(root_dir: Path | None = None) -> catalog_models.ModelCatalog:
    """Load the catalog bundled under ``root_dir`` (the repository root)."""
    return CatalogRepository(root_dir=root_dir).load()
