"""Pydantic API models — request / response bodies."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from autotrigger.core.schedule.types import TriggerRecord


# ════════════════════════════════════════════════════════════
# API REQUEST / RESPONSE
# ════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    status: str
    version: str = ""
    state: str = ""


class CrontabRequest(BaseModel):
    expression: str


class TestRequest(BaseModel):
    models: list[str] = Field(default_factory=list)


class TestResponse(BaseModel):
    accepted: bool
    record: TriggerRecord | None = None


class PreviewResponse(BaseModel):
    fire_times: list[datetime] = Field(default_factory=list)


class ActionResponse(BaseModel):
    success: bool
    state: str
