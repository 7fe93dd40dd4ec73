"""Pydantic request models for API endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class PutDocument(BaseModel):
    document: dict[str, Any]


class PatchDocument(BaseModel):
    fields: dict[str, Any]


class AppendDocument(BaseModel):
    document: dict[str, Any]


class UpdateSettings(BaseModel):
    watch_timeout_seconds: float | None = Field(default=None, gt=0)
    max_query_limit: int | None = Field(default=None, ge=1)
