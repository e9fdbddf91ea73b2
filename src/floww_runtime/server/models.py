"""Pydantic models for the container server responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecuteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    message: str
    triggers_processed: int = Field(alias="triggersProcessed")


class DefinitionsResponse(BaseModel):
    success: bool
    triggers: list[dict[str, Any]] = Field(default_factory=list)
    providers: list[dict[str, str]] = Field(default_factory=list)
    error: str | None = None
