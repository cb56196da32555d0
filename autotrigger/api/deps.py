"""FastAPI dependency injection — pull singletons from app.state."""

from __future__ import annotations

from fastapi import Request

from autotrigger.core.config.schema import Config
from autotrigger.engine.controller import TriggerController


def get_config(request: Request) -> Config:
    """Get Config singleton from app state."""
    return request.app.state.config


def get_controller(request: Request) -> TriggerController:
    """Get TriggerController singleton from app state."""
    return request.app.state.controller
