"""Tests for autotrigger.engine.controller — state machine, run-lock, history."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from autotrigger.core.config import Config
from autotrigger.core.schedule.types import (
    RepeatMode,
    ScheduleConfig,
    SchedulerState,
    TriggerRecord,
    TriggerType,
)
from autotrigger.engine.controller import TriggerController
from autotrigger.engine.errors import AuthorizationRequiredError, ScheduleValidationError

from conftest import NOW, FakeCredentials, FakeExecutor


async def _until_running(controller: TriggerController) -> None:
    for _ in range(100):
        if controller.test_running:
            return
        await asyncio.sleep(0)
    raise AssertionError("test never started")


async def _until_called(executor: FakeExecutor) -> None:
    for _ in range(100):
        if executor.calls:
            return
        await asyncio.sleep(0)
    raise AssertionError("executor never called")


@pytest.fixture
async def authorized(controller, credentials):
    credentials.authorized = True
    await controller.start()
    return controller


# ── Lifecycle / authorization ────────────────────────────────


@pytest.mark.asyncio
async def test_start_unauthorized(controller):
    snap = await controller.start()
    assert snap.state == SchedulerState.UNAUTHORIZED
    assert snap.version == 1
    assert snap.available_targets[0].id == "gemini-3-flash"
    assert snap.next_fire_time is None


@pytest.mark.asyncio
async def test_authorize_publishes(controller):
    seen = []
    controller.subscribe(seen.append)
    await controller.start()

    assert await controller.authorize() is True
    assert controller.state == SchedulerState.AUTHORIZED_DISABLED
    assert seen[-1].authorization.email == "me@example.com"
    assert [s.version for s in seen] == sorted(s.version for s in seen)


@pytest.mark.asyncio
async def test_authorize_denied(cfg, store, executor):
    controller = TriggerController(
        cfg, store, FakeCredentials(grant=False), executor, clock=lambda: NOW
    )
    await controller.start()
    assert await controller.authorize() is False
    assert controller.state == SchedulerState.UNAUTHORIZED


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break(controller):
    def _boom(snap):
        raise RuntimeError("observer down")

    received = []
    controller.subscribe(_boom)
    controller.subscribe(received.append)
    assert await controller.authorize() is True
    assert received


@pytest.mark.asyncio
async def test_unsubscribe(controller):
    received = []
    unsubscribe = controller.subscribe(received.append)
    unsubscribe()
    await controller.start()
    assert received == []


@pytest.mark.asyncio
async def test_revoke_requires_confirmation(authorized, credentials):
    await authorized.toggle_enabled()

    assert await authorized.revoke() is True
    assert authorized.state == SchedulerState.REVOKE_PENDING
    assert credentials.revoked is False

    assert await authorized.cancel_revoke() is True
    assert authorized.state == SchedulerState.AUTHORIZED_ENABLED

    await authorized.revoke()
    assert await authorized.confirm_revoke() is True
    assert credentials.revoked is True
    assert authorized.state == SchedulerState.UNAUTHORIZED
    assert authorized.schedule.enabled is False


@pytest.mark.asyncio
async def test_revoke_when_unauthorized(controller):
    await controller.start()
    assert await controller.revoke() is False
    assert await controller.confirm_revoke() is False
    assert await controller.cancel_revoke() is False


# ── Schedule ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_enable_requires_authorization(controller):
    await controller.start()
    with pytest.raises(AuthorizationRequiredError):
        await controller.save_schedule(ScheduleConfig(enabled=True))
    with pytest.raises(AuthorizationRequiredError):
        await controller.toggle_enabled()


@pytest.mark.asyncio
async def test_save_disabled_while_unauthorized(controller):
    await controller.start()
    saved = await controller.save_schedule({"repeat_mode": "interval", "interval_hours": 2})
    assert saved.repeat_mode == RepeatMode.INTERVAL
    assert controller.schedule.interval_hours == 2


@pytest.mark.asyncio
async def test_save_invalid_dict(authorized):
    with pytest.raises(ScheduleValidationError):
        await authorized.save_schedule({"daily_times": ["25:00"]})


@pytest.mark.asyncio
async def test_save_invalid_crontab(authorized):
    with pytest.raises(ScheduleValidationError):
        await authorized.save_schedule({"crontab": "0 8"})
    assert authorized.schedule.crontab is None


@pytest.mark.asyncio
async def test_save_empty_models_uses_default(authorized):
    saved = await authorized.save_schedule({"selected_models": []})
    assert saved.selected_models == ["gemini-3-flash"]


@pytest.mark.asyncio
async def test_schedule_persists(authorized, cfg, store, credentials, executor):
    await authorized.save_schedule({"enabled": True, "daily_times": ["07:15"]})

    reloaded = TriggerController(cfg, store, credentials, executor, clock=lambda: NOW)
    assert reloaded.schedule.enabled is True
    assert reloaded.schedule.daily_times == ["07:15"]


@pytest.mark.asyncio
async def test_toggle_sets_next_fire_time(authorized):
    await authorized.toggle_enabled()
    snap = authorized.snapshot()
    assert snap.state == SchedulerState.AUTHORIZED_ENABLED
    assert snap.next_fire_time == datetime(2024, 1, 11, 8, 0)
    assert snap.description == "Every day at 8:00"


def test_preview_uses_configured_count(controller):
    runs = controller.preview()
    assert len(runs) == 5
    assert runs[0] == datetime(2024, 1, 11, 8, 0)


def test_preview_unsaved_config(controller):
    cfg = ScheduleConfig(crontab="0 12 * * *")
    assert controller.preview(cfg, count=1) == [datetime(2024, 1, 10, 12, 0)]


def test_invalid_stored_schedule_falls_back(cfg, store, credentials, executor):
    store.save_state("schedule_config", {"daily_times": ["nope"]})
    controller = TriggerController(cfg, store, credentials, executor, clock=lambda: NOW)
    assert controller.schedule == ScheduleConfig()


# ── Manual test / run-lock ───────────────────────────────────


@pytest.mark.asyncio
async def test_request_test_requires_authorization(controller):
    await controller.start()
    with pytest.raises(AuthorizationRequiredError):
        await controller.request_test()


@pytest.mark.asyncio
async def test_request_test_records(authorized, executor, store):
    record = await authorized.request_test()

    assert record.success is True
    assert executor.calls == [(["gemini-3-flash"], TriggerType.MANUAL)]
    snap = authorized.snapshot()
    assert snap.last_trigger == record
    assert snap.test_running is False
    assert len(store.get_trigger_history()) == 1


@pytest.mark.asyncio
async def test_request_test_explicit_models(authorized, executor):
    await authorized.request_test(["m1", "m2"])
    assert executor.calls[0][0] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_second_request_dropped_while_running(authorized, executor):
    executor.gate = asyncio.Event()
    first = asyncio.create_task(authorized.request_test())
    await _until_called(executor)
    assert authorized.test_running is True

    assert await authorized.request_test() is None
    assert len(executor.calls) == 1

    executor.gate.set()
    assert (await first) is not None
    assert authorized.test_running is False


@pytest.mark.asyncio
async def test_run_lock_timeout(tmp_path, credentials, executor):
    cfg = Config(
        database={"path": str(tmp_path / "t.db")},
        schedule={"test_timeout_s": 0.05},
    )
    from autotrigger.memory.store import TriggerStore

    controller = TriggerController(
        cfg, TriggerStore(cfg.database.path), credentials, executor, clock=lambda: NOW
    )
    credentials.authorized = True
    await controller.start()
    executor.gate = asyncio.Event()

    record = await controller.request_test()
    assert record.success is False
    assert record.message == "Trigger timed out after 0.05s"
    assert record.trigger_type == TriggerType.MANUAL
    assert controller.test_running is False


@pytest.mark.asyncio
async def test_backend_update_releases_lock(authorized, executor):
    executor.gate = asyncio.Event()
    task = asyncio.create_task(authorized.request_test())
    await _until_running(authorized)

    await authorized.notify_backend_update()
    assert authorized.test_running is False

    executor.gate.set()
    await task
    assert authorized.test_running is False


@pytest.mark.asyncio
async def test_record_trigger_releases_lock(authorized, executor):
    executor.gate = asyncio.Event()
    task = asyncio.create_task(authorized.request_test())
    await _until_running(authorized)

    external = TriggerRecord(timestamp=NOW, success=True, trigger_type=TriggerType.AUTO)
    await authorized.record_trigger(external)
    assert authorized.test_running is False
    assert authorized.snapshot().last_trigger == external

    executor.gate.set()
    await task


@pytest.mark.asyncio
async def test_notify_without_running_test_is_noop(authorized):
    version = authorized.snapshot().version
    await authorized.notify_backend_update()
    assert authorized.snapshot().version == version


# ── Automatic trigger / history ──────────────────────────────


@pytest.mark.asyncio
async def test_auto_trigger_skipped_when_disabled(authorized, executor):
    assert await authorized.run_auto_trigger() is None
    assert executor.calls == []


@pytest.mark.asyncio
async def test_auto_trigger_runs(authorized, executor):
    await authorized.save_schedule({"enabled": True, "selected_models": ["a", "b"]})
    record = await authorized.run_auto_trigger()
    assert record.trigger_type == TriggerType.AUTO
    assert executor.calls == [(["a", "b"], TriggerType.AUTO)]


@pytest.mark.asyncio
async def test_executor_exception_becomes_failed_record(authorized, executor):
    async def _raise(models, trigger_type):
        raise RuntimeError("network down")

    executor.trigger = _raise
    record = await authorized.request_test()
    assert record.success is False
    assert record.message == "network down"


@pytest.mark.asyncio
async def test_history_cap(tmp_path, executor):
    cfg = Config(database={"path": str(tmp_path / "t.db")}, schedule={"history_limit": 3})
    from autotrigger.memory.store import TriggerStore

    controller = TriggerController(
        cfg,
        TriggerStore(cfg.database.path),
        FakeCredentials(authorized=True),
        executor,
        clock=lambda: NOW,
    )
    await controller.start()
    for _ in range(5):
        await controller.request_test()
    assert len(controller.snapshot().history) == 3


@pytest.mark.asyncio
async def test_clear_history(authorized, store):
    await authorized.request_test()
    await authorized.clear_history()
    assert authorized.snapshot().history == []
    assert store.get_trigger_history() == []


@pytest.mark.asyncio
async def test_history_survives_restart(authorized, cfg, store, credentials):
    await authorized.request_test()
    reloaded = TriggerController(cfg, store, credentials, FakeExecutor(), clock=lambda: NOW)
    assert len(reloaded.snapshot().history) == 1


@pytest.mark.asyncio
async def test_cancelled_test_releases_run_lock(authorized, executor):
    executor.gate = asyncio.Event()
    task = asyncio.create_task(authorized.request_test())
    await _until_called(executor)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert authorized.test_running is False
    assert authorized.snapshot().history == []

    executor.gate = None
    record = await authorized.request_test()
    assert record is not None
    assert authorized.test_running is False
