"""Model catalog package exports."""

from llm_costs.catalog.exceptions import CatalogError
from llm_costs.catalog.models import (
    CatalogMeta,
    DynamicPricing,
    FlatPricing,
    ModelCatalog,
    ModelDefinition,
    PricingShape,
    PricingTier,
    ProviderPricing,
    Rate,
    TieredPricing,
)
from llm_costs.catalog.repository import (
    DEFAULT_CATALOG_DIR,
    CatalogRepository,
    load_catalog,
)

__all__ = [
    "DEFAULT_CATALOG_DIR",
    "CatalogError",
    "CatalogMeta",
    "CatalogRepository",
    "DynamicPricing",
    "FlatPricing",
    "ModelCatalog",
    "ModelDefinition",
    "PricingShape",
    "PricingTier",
    "ProviderPricing",
    "Rate",
    "TieredPricing",
    "load_catalog",
]
