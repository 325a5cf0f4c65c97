from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from llm_costs import __version__
from llm_costs.api.errors import (
    internal_error_handler,
    pricing_error_handler,
    validation_error_handler,
)
from llm_costs.api.middleware import BodySizeLimitMiddleware, RequestIdMiddleware
from llm_costs.api.routes import router
from llm_costs.catalog import load_catalog
from llm_costs.constants import MAX_REQUEST_BODY_BYTES
from llm_costs.engine import (
    CostCalculator,
    PricingError,
    PricingResolver,
    TokenEstimator,
)
from llm_costs.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and graceful shutdown."""
    logger.info("startup", extra={"event": "startup"})
    yield
    logger.info("shutdown", extra={"event": "shutdown"})


def create_app(catalog_root: Path | None = None) -> FastAPI:
    """Create the FastAPI application around a freshly loaded catalog."""
    configure_logging()

    app = FastAPI(
        title="LLM Cost Resolution API",
        version=__version__,
        lifespan=lifespan,
    )

    catalog = load_catalog(root_dir=catalog_root)
    app.state.catalog = catalog
    app.state.calculator = CostCalculator(
        resolver=PricingResolver(catalog),
        estimator=TokenEstimator(),
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        BodySizeLimitMiddleware,
        max_body_bytes=MAX_REQUEST_BODY_BYTES,
    )
    app.include_router(router)

    app.add_exception_handler(PricingError, cast(Any, pricing_error_handler))
    app.add_exception_handler(
        RequestValidationError,
        cast(Any, validation_error_handler),
    )
    app.add_exception_handler(Exception, cast(Any, internal_error_handler))

    return app


app = create_app()
