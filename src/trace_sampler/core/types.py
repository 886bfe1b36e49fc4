from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class TransactionInfo(BaseModel):
    """What an instrumentation call site knows about the finishing transaction."""

    name: str
    custom_parameters: dict[str, Any] = Field(default_factory=dict)
    uri: str | None = None
    request_params: dict[str, Any] = Field(default_factory=dict)
