"""Tests for autotrigger.core.cron.scheduler — APScheduler bridge."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.triggers.date import DateTrigger

from autotrigger.core.cron.scheduler import JOB_ID, AutoTriggerScheduler


@pytest.fixture
async def enabled(controller, credentials):
    credentials.authorized = True
    await controller.start()
    await controller.toggle_enabled()
    return controller


@pytest.mark.asyncio
async def test_reschedule_arms_date_trigger(enabled, cfg):
    sched = AutoTriggerScheduler(enabled, cfg)
    with patch.object(sched, "_scheduler") as mock_apscheduler:
        sched.reschedule(enabled.snapshot())

    mock_apscheduler.add_job.assert_called_once()
    kwargs = mock_apscheduler.add_job.call_args.kwargs
    assert isinstance(kwargs["trigger"], DateTrigger)
    assert kwargs["id"] == JOB_ID
    assert sched.scheduled_for == datetime(2024, 1, 11, 8, 0)


@pytest.mark.asyncio
async def test_reschedule_same_time_is_noop(enabled, cfg):
    sched = AutoTriggerScheduler(enabled, cfg)
    with patch.object(sched, "_scheduler") as mock_apscheduler:
        sched.reschedule(enabled.snapshot())
        sched.reschedule(enabled.snapshot())
    assert mock_apscheduler.add_job.call_count == 1


@pytest.mark.asyncio
async def test_disable_disarms(enabled, cfg):
    sched = AutoTriggerScheduler(enabled, cfg)
    with patch.object(sched, "_scheduler") as mock_apscheduler:
        sched.reschedule(enabled.snapshot())
        await enabled.toggle_enabled()
        sched.reschedule(enabled.snapshot())

    mock_apscheduler.remove_job.assert_called_once_with(JOB_ID)
    assert sched.scheduled_for is None


@pytest.mark.asyncio
async def test_unauthorized_never_arms(controller, cfg):
    await controller.start()
    sched = AutoTriggerScheduler(controller, cfg)
    with patch.object(sched, "_scheduler") as mock_apscheduler:
        sched.reschedule(controller.snapshot())
    mock_apscheduler.add_job.assert_not_called()


@pytest.mark.asyncio
async def test_start_subscribes_and_rearms_on_change(enabled, cfg):
    sched = AutoTriggerScheduler(enabled, cfg)
    with patch.object(sched, "_scheduler") as mock_apscheduler:
        await sched.start()
        await enabled.save_schedule({"enabled": True, "daily_times": ["12:00"]})
        assert sched.scheduled_for == datetime(2024, 1, 10, 12, 0)
        await sched.stop()

    mock_apscheduler.start.assert_called_once()
    mock_apscheduler.shutdown.assert_called_once()
    assert mock_apscheduler.add_job.call_count == 2


@pytest.mark.asyncio
async def test_fire_runs_controller():
    controller = MagicMock()
    controller.run_auto_trigger = AsyncMock(return_value=None)
    sched = AutoTriggerScheduler(controller)
    with patch.object(sched, "reschedule") as reschedule:
        await sched._fire()

    controller.run_auto_trigger.assert_awaited_once()
    reschedule.assert_called_once_with(controller.snapshot.return_value)


@pytest.mark.asyncio
async def test_fire_survives_exception():
    controller = MagicMock()
    controller.run_auto_trigger = AsyncMock(side_effect=RuntimeError("boom"))
    sched = AutoTriggerScheduler(controller)
    with patch.object(sched, "reschedule") as reschedule:
        await sched._fire()
    reschedule.assert_called_once()
