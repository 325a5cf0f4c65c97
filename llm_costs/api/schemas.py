from __future__ import annotations

from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from llm_costs.constants import MAX_BATCH_SIZE, MAX_TOKEN_COUNT

TokenCount = Annotated[int, Field(ge=0, le=MAX_TOKEN_COUNT, strict=True)]


class TextPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: str | None = None


class ChatMessagePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["system", "developer", "user", "assistant", "tool"]
    content: str | list[TextPart] | None = None


class RequestTextPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str | None = None
    messages: list[ChatMessagePayload] | None = None
    completion: str | None = None

    @pydantic.model_validator(mode="after")
    def validate_prompt_source(self) -> "RequestTextPayload":
        """Reject payloads that carry both flat prompt text and messages."""
        if self.prompt is not None and self.messages is not None:
            raise ValueError("Provide either prompt or messages, not both")
        return self


class CostRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    prompt_tokens: TokenCount | None = None
    completion_tokens: TokenCount | None = None
    cached_tokens: TokenCount | None = None
    context_size: TokenCount | None = None
    text: RequestTextPayload | None = None


class BatchCostRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[CostRequest] = Field(
        min_length=1,
        max_length=MAX_BATCH_SIZE,
    )


class CostBreakdown(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_cost: str | None
    output_cost: str | None
    cached_input_cost: str | None
    request_cost: str | None
    total_cost: str | None


class UsageEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt_tokens: int | None
    completion_tokens: int | None
    cached_tokens: int | None
    estimated_cost: bool


class CostMeta(BaseModel):
    model_config = ConfigDict(extra="forbid")

    computed_at: str
    engine_version: str


class CostResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_version: str
    model: str
    provider: str
    currency: str
    usage: UsageEntry
    costs: CostBreakdown
    pricing_shape: str | None
    tier_index: int | None
    meta: CostMeta


class ErrorBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str
    message: str
    details: dict[str, Any]


class BatchErrorItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int
    error: ErrorBody


class BatchCostResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_version: str
    results: list[CostResponse]
    errors: list[BatchErrorItem]


class ProviderSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: str
    model_count: int


class ProvidersResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_version: str
    providers: list[ProviderSummary]


class ProviderEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    provider: str
    model_name: str
    context_size: int
    max_output: int | None
    streaming: bool
    vision: bool
    pricing_shape: str
    pricing: dict[str, Any] | None = None


class ModelSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str
    json_output: bool
    deprecated_at: str | None
    deactivated_at: str | None
    providers: list[ProviderEntry]


class ModelsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_version: str
    models: list[ModelSummary]


class VersionResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_version: str


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    catalog_version: str
    engine_version: str
