from __future__ import annotations

import uuid

from fastapi.responses import JSONResponse
from starlette.middleware import base as middleware_base
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from llm_costs.api.errors import REQUEST_ID_HEADER, build_error_payload
from llm_costs.engine.exceptions import INVALID_REQUEST

_CHECKED_METHODS = frozenset({"POST", "PUT", "PATCH"})


class RequestIdMiddleware(middleware_base.BaseHTTPMiddleware):
    """Attach a unique request ID to every request and response."""

    async def dispatch(
        self,
        request: Request,
        call_next: middleware_base.RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _content_length(raw: str | None) -> int | None:
    if not raw or not raw.isdigit():
        return None
    return int(raw)


class BodySizeLimitMiddleware(middleware_base.BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        """Create a middleware instance enforcing maximum request size."""
        super().__init__(app)
        self._max_body_bytes = max_body_bytes

    async def dispatch(
        self,
        request: Request,
        call_next: middleware_base.RequestResponseEndpoint,
    ) -> Response:
        """Reject over-sized cost requests before they reach route handlers."""
        if request.method not in _CHECKED_METHODS or not (
            request.url.path.startswith("/v1/")
        ):
            return await call_next(request)

        declared = _content_length(request.headers.get("content-length"))
        if declared is not None and declared > self._max_body_bytes:
            return self._too_large(declared)

        body = await request.body()
        if len(body) > self._max_body_bytes:
            return self._too_large(len(body))

        async def receive() -> dict[str, object]:
            return {"type": "http.request", "body": body, "more_body": False}

        return await call_next(Request(request.scope, receive))

    def _too_large(self, actual: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content=build_error_payload(
                INVALID_REQUEST,
                f"Request body exceeds {self._max_body_bytes} bytes",
                {
                    "max_body_bytes": self._max_body_bytes,
                    "content_length": actual,
                },
            ),
        )
