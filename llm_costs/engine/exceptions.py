from __future__ import annotations

from typing import Any

INVALID_REQUEST = "INVALID_REQUEST"
PROVIDER_NOT_SUPPORTED = "PROVIDER_NOT_SUPPORTED"


class PricingError(Exception):
    """A caller-facing error with a stable code.

    Unknown models and providers are not errors for cost calculation; they
    produce null costs. This is raised for contract violations only.
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}
