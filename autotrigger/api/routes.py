"""Core API routes — auto-trigger state, schedule, test runs, history."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from loguru import logger

from autotrigger import __version__
from autotrigger.api.deps import get_config, get_controller
from autotrigger.core.config.schema import Config
from autotrigger.core.schedule.presets import SCHEDULE_PRESETS, SchedulePreset
from autotrigger.core.schedule.types import (
    CrontabValidation,
    ScheduleConfig,
    SchedulerSnapshot,
)
from autotrigger.engine.controller import TriggerController
from autotrigger.engine.errors import AuthorizationRequiredError, ScheduleValidationError
from autotrigger.memory.models import (
    ActionResponse,
    CrontabRequest,
    HealthResponse,
    PreviewResponse,
    TestRequest,
    TestResponse,
)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(controller: TriggerController = Depends(get_controller)):
    """Health check."""
    return HealthResponse(status="ok", version=__version__, state=controller.state.value)


# ── State ────────────────────────────────────────────────────


@router.get("/auto-trigger/state", response_model=SchedulerSnapshot)
async def get_state(controller: TriggerController = Depends(get_controller)):
    """Current snapshot (also pushed to WebSocket subscribers)."""
    return await controller.get_state()


@router.get("/auto-trigger/presets", response_model=list[SchedulePreset])
async def list_presets():
    return SCHEDULE_PRESETS


# ── Schedule ─────────────────────────────────────────────────


@router.put("/auto-trigger/schedule", response_model=SchedulerSnapshot)
async def save_schedule(
    body: dict[str, Any] = Body(...),
    controller: TriggerController = Depends(get_controller),
):
    """Replace the whole schedule config."""
    try:
        await controller.save_schedule(body)
    except ScheduleValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except AuthorizationRequiredError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return controller.snapshot()


@router.post("/auto-trigger/schedule/toggle", response_model=SchedulerSnapshot)
async def toggle_schedule(controller: TriggerController = Depends(get_controller)):
    try:
        await controller.toggle_enabled()
    except AuthorizationRequiredError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return controller.snapshot()


@router.post("/auto-trigger/schedule/preview", response_model=PreviewResponse)
async def preview_schedule(
    body: ScheduleConfig,
    count: int | None = Query(default=None, ge=1, le=50),
    controller: TriggerController = Depends(get_controller),
):
    """Upcoming fire times for an unsaved config. Local, no state change."""
    return PreviewResponse(fire_times=controller.preview(body, count))


@router.post("/auto-trigger/crontab/validate", response_model=CrontabValidation)
async def validate_crontab(
    body: CrontabRequest,
    controller: TriggerController = Depends(get_controller),
):
    return controller.validate_crontab(body.expression)


# ── Authorization ────────────────────────────────────────────


@router.post("/auto-trigger/authorize", response_model=ActionResponse)
async def authorize(controller: TriggerController = Depends(get_controller)):
    ok = await controller.authorize()
    return ActionResponse(success=ok, state=controller.state.value)


@router.post("/auto-trigger/revoke", response_model=ActionResponse)
async def revoke(controller: TriggerController = Depends(get_controller)):
    """Ask for revocation — needs /revoke/confirm to take effect."""
    ok = await controller.revoke()
    return ActionResponse(success=ok, state=controller.state.value)


@router.post("/auto-trigger/revoke/confirm", response_model=ActionResponse)
async def confirm_revoke(controller: TriggerController = Depends(get_controller)):
    try:
        ok = await controller.confirm_revoke()
    except Exception as e:
        logger.error(f"Revoke failed: {e}")
        raise HTTPException(status_code=502, detail=f"Revoke failed: {e}")
    return ActionResponse(success=ok, state=controller.state.value)


@router.post("/auto-trigger/revoke/cancel", response_model=ActionResponse)
async def cancel_revoke(controller: TriggerController = Depends(get_controller)):
    ok = await controller.cancel_revoke()
    return ActionResponse(success=ok, state=controller.state.value)


# ── Test run / history ───────────────────────────────────────


@router.post("/auto-trigger/test", response_model=TestResponse)
async def test_trigger(
    body: TestRequest | None = None,
    controller: TriggerController = Depends(get_controller),
):
    """Run a manual trigger. ``accepted`` is false when one is already running."""
    models = body.models if body else None
    try:
        record = await controller.request_test(models or None)
    except AuthorizationRequiredError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return TestResponse(accepted=record is not None, record=record)


@router.delete("/auto-trigger/history", response_model=SchedulerSnapshot)
async def clear_history(controller: TriggerController = Depends(get_controller)):
    await controller.clear_history()
    return controller.snapshot()


@router.get("/auto-trigger/config")
async def get_engine_config(config: Config = Depends(get_config)):
    """Non-secret engine settings the UI needs (preview count, history cap)."""
    return {
        "preview_count": config.schedule.preview_count,
        "history_limit": config.schedule.history_limit,
        "history_max_days": config.schedule.history_max_days,
        "default_model": config.schedule.default_model,
    }
