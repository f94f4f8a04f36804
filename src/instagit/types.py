"""Shared data types for the Instagit client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamRequest:
    """One top-level analysis request.  Never mutated after creation."""

    repo: str
    prompt: str
    ref: str | None = None
    token: str | None = None

    @property
    def model(self) -> str:
        """The API encodes the repository (and optional ``@ref``) as the model."""
        if self.ref:
            return f"{self.repo}@{self.ref}"
        return self.repo

    def to_payload(self) -> dict[str, object]:
        return {
            "model": self.model,
            "input": self.prompt,
            "stream": True,
        }

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


# ---------------------------------------------------------------------------
# Usage / result
# ---------------------------------------------------------------------------

class LenientModel(BaseModel):
    """Wire model whose fields fall back to their default on a bad value.

    A null or mistyped field costs that field only, never the whole record.
    """

    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_error(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo,
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].get_default()


class UsageData(LenientModel):
    """Usage record carried by a ``response.completed`` event."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    tier: str = "free"
    tokens_remaining: int = 0
    upgrade_hint: str | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Final value returned to the caller."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    tier: str = "free"
    tokens_remaining: int = 0
    upgrade_hint: str | None = None

    @classmethod
    def from_usage(cls, text: str, usage: UsageData | None) -> AnalysisResult:
        usage = usage or UsageData()
        return cls(
            text=text,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            tier=usage.tier,
            tokens_remaining=usage.tokens_remaining,
            upgrade_hint=usage.upgrade_hint,
        )
