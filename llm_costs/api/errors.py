from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from llm_costs.engine.exceptions import INVALID_REQUEST, PricingError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def get_request_id(request: Request) -> str | None:
    """Read request ID from request state when available."""
    return getattr(request.state, "request_id", None)


def build_error_payload(
    code: str, message: str, details: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build a consistent API error payload envelope."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }


def error_response(
    request: Request,
    status_code: int,
    payload: dict[str, Any],
) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(payload),
    )
    request_id = get_request_id(request)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def pricing_error_handler(
    request: Request,
    exc: PricingError,
) -> JSONResponse:
    """Convert a domain pricing error into an HTTP response."""
    logger.info(
        "pricing_error",
        extra={
            "event": "pricing_error",
            "status_code": exc.status_code,
            "error_code": exc.code,
            "request_id": get_request_id(request),
        },
    )
    return error_response(
        request,
        exc.status_code,
        {"error": exc.to_payload()},
    )


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return a normalized response for request validation failures."""
    return error_response(
        request,
        400,
        build_error_payload(
            INVALID_REQUEST,
            "Request validation failed",
            {"validation_errors": exc.errors()},
        ),
    )


async def internal_error_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Return a generic internal error response without leaking details."""
    logger.exception(
        "internal_error",
        extra={
            "event": "internal_error",
            "status_code": 500,
            "error_code": "INTERNAL_ERROR",
            "request_id": get_request_id(request),
        },
    )
    return error_response(
        request,
        500,
        build_error_payload("INTERNAL_ERROR", "Internal server error"),
    )
