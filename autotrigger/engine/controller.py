"""TriggerController — the scheduler state machine.

Owns the schedule config, authorization view, run-lock and history ledger.
Every mutation goes through one asyncio.Lock, bumps ``version``, persists
and pushes an immutable SchedulerSnapshot to subscribers.

States::

    unauthorized --authorize()--> authorized_{enabled,disabled}
    authorized_* --toggle_enabled() / save_schedule()--> authorized_*
    authorized_* --revoke()--> revoke_pending --confirm_revoke()--> unauthorized
                                revoke_pending --cancel_revoke()--> authorized_*

``test_running`` is orthogonal: one manual test at a time, extra requests
are dropped, and the lock is force-released after ``test_timeout_s``.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from pydantic import ValidationError

from autotrigger.core.config.schema import Config
from autotrigger.core.schedule.calculator import (
    compute_next_fire_times,
    describe_schedule,
    next_fire_time,
    validate_crontab,
)
from autotrigger.core.schedule.types import (
    AuthorizationState,
    CrontabValidation,
    ModelInfo,
    ScheduleConfig,
    SchedulerSnapshot,
    SchedulerState,
    TriggerRecord,
    TriggerType,
)
from autotrigger.engine.credentials import CredentialService
from autotrigger.engine.errors import AuthorizationRequiredError, ScheduleValidationError
from autotrigger.engine.executor import TriggerExecutor
from autotrigger.engine.history import HistoryLedger
from autotrigger.memory.store import TriggerStore

SCHEDULE_CONFIG_KEY = "schedule_config"

Subscriber = Callable[[SchedulerSnapshot], Awaitable[None] | None]


class TriggerController:
    """Single mutation entry point for the auto-trigger engine."""

    def __init__(
        self,
        config: Config,
        db: TriggerStore,
        credentials: CredentialService,
        executor: TriggerExecutor,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.db = db
        self.credentials = credentials
        self.executor = executor
        self._clock = clock

        self._lock = asyncio.Lock()
        self._subscribers: list[Subscriber] = []
        self._version = 0

        self._schedule = self._load_schedule()
        self._authorization = AuthorizationState()
        self._available: list[ModelInfo] = list(config.trigger.models)
        self._revoke_pending = False
        self._test_running = False
        self._test_token: object | None = None

        self._ledger = HistoryLedger(
            limit=config.schedule.history_limit,
            max_age=timedelta(days=config.schedule.history_max_days),
        )
        self._ledger.load(db.get_trigger_history(), now=self._clock())

    # ── Loading / persistence ───────────────────────────────

    def _default_schedule(self) -> ScheduleConfig:
        return ScheduleConfig(selected_models=[self.config.schedule.default_model])

    def _load_schedule(self) -> ScheduleConfig:
        data = self.db.get_state(SCHEDULE_CONFIG_KEY)
        if not data:
            return self._default_schedule()
        try:
            schedule = ScheduleConfig(**data)
        except ValidationError as e:
            logger.warning(f"Stored schedule is invalid, using defaults: {e}")
            return self._default_schedule()
        if not schedule.selected_models:
            schedule = schedule.model_copy(
                update={"selected_models": [self.config.schedule.default_model]}
            )
        return schedule

    def _persist_schedule(self) -> None:
        self.db.save_state(SCHEDULE_CONFIG_KEY, self._schedule.model_dump(mode="json"))

    def _persist_history(self) -> None:
        self.db.save_trigger_history(self._ledger.list())

    async def start(self) -> SchedulerSnapshot:
        """Refresh authorization and targets from collaborators, publish."""
        self._authorization = await self.credentials.get_authorization()
        await self.refresh_targets()
        async with self._lock:
            snap = self._bump()
        await self._publish(snap)
        logger.info(f"TriggerController started — state={snap.state.value}")
        return snap

    async def refresh_targets(self) -> list[ModelInfo]:
        try:
            self._available = await self.executor.fetch_available_models()
        except Exception as e:
            logger.warning(f"Could not refresh available targets: {e}")
        return list(self._available)

    # ── Read side ───────────────────────────────────────────

    @property
    def schedule(self) -> ScheduleConfig:
        return self._schedule

    @property
    def authorization(self) -> AuthorizationState:
        return self._authorization

    @property
    def test_running(self) -> bool:
        return self._test_running

    @property
    def state(self) -> SchedulerState:
        if not self._authorization.is_authorized:
            return SchedulerState.UNAUTHORIZED
        if self._revoke_pending:
            return SchedulerState.REVOKE_PENDING
        if self._schedule.enabled:
            return SchedulerState.AUTHORIZED_ENABLED
        return SchedulerState.AUTHORIZED_DISABLED

    def snapshot(self) -> SchedulerSnapshot:
        return SchedulerSnapshot(
            version=self._version,
            state=self.state,
            config=self._schedule,
            authorization=self._authorization,
            history=self._ledger.list(),
            last_trigger=self._ledger.last(),
            next_fire_time=next_fire_time(self._schedule, self._clock()),
            available_targets=list(self._available),
            test_running=self._test_running,
            description=describe_schedule(self._schedule),
        )

    async def get_state(self) -> SchedulerSnapshot:
        """Current snapshot, also pushed to subscribers."""
        snap = self.snapshot()
        await self._publish(snap)
        return snap

    def preview(
        self, config: ScheduleConfig | None = None, count: int | None = None
    ) -> list[datetime]:
        """Upcoming fire times for ``config`` (default: the saved one)."""
        count = self.config.schedule.preview_count if count is None else count
        return compute_next_fire_times(config or self._schedule, self._clock(), count)

    def validate_crontab(self, expression: str) -> CrontabValidation:
        return validate_crontab(expression, self._clock(), self.config.schedule.preview_count)

    # ── Observers ───────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a snapshot observer. Returns an unsubscribe callable."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _bump(self) -> SchedulerSnapshot:
        self._version += 1
        return self.snapshot()

    async def _publish(self, snap: SchedulerSnapshot) -> None:
        logger.debug(f"Publishing snapshot v{snap.version} to {len(self._subscribers)} observers")
        for callback in list(self._subscribers):
            try:
                result = callback(snap)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Snapshot observer {callback!r} failed: {e}")

    # ── Authorization ───────────────────────────────────────

    def _require_auth(self, action: str) -> None:
        if not self._authorization.is_authorized:
            raise AuthorizationRequiredError(action)

    async def authorize(self) -> bool:
        """Delegate to the credential service. State advances only on success."""
        try:
            ok = await self.credentials.authorize()
        except Exception as e:
            logger.error(f"Authorization error: {e}")
            return False
        if not ok:
            logger.warning("Authorization was not granted")
            return False

        authorization = await self.credentials.get_authorization()
        async with self._lock:
            self._authorization = authorization
            self._revoke_pending = False
            snap = self._bump()
        logger.info(f"Authorized ({authorization.email or 'unknown account'})")
        await self._publish(snap)
        return True

    async def revoke(self) -> bool:
        """Enter the confirmation sub-state. Nothing is revoked yet."""
        async with self._lock:
            if not self._authorization.is_authorized or self._revoke_pending:
                return False
            self._revoke_pending = True
            snap = self._bump()
        await self._publish(snap)
        return True

    async def cancel_revoke(self) -> bool:
        async with self._lock:
            if not self._revoke_pending:
                return False
            self._revoke_pending = False
            snap = self._bump()
        await self._publish(snap)
        return True

    async def confirm_revoke(self) -> bool:
        """Revoke the credential and disable the schedule."""
        async with self._lock:
            if not self._revoke_pending:
                return False
            await self.credentials.revoke()
            self._authorization = await self.credentials.get_authorization()
            self._revoke_pending = False
            if self._schedule.enabled:
                self._schedule = self._schedule.model_copy(update={"enabled": False})
                self._persist_schedule()
            snap = self._bump()
        logger.info("Authorization revoked, schedule disabled")
        await self._publish(snap)
        return True

    # ── Schedule ────────────────────────────────────────────

    def _coerce(self, config: ScheduleConfig | dict[str, Any]) -> ScheduleConfig:
        if isinstance(config, dict):
            try:
                config = ScheduleConfig(**config)
            except ValidationError as e:
                raise ScheduleValidationError(str(e)) from e
        if not config.selected_models:
            config = config.model_copy(
                update={"selected_models": [self.config.schedule.default_model]}
            )
        if config.has_crontab:
            result = validate_crontab(config.crontab, self._clock())
            if not result.valid:
                raise ScheduleValidationError(f"Invalid crontab expression: {result.error}")
        return config

    async def save_schedule(self, config: ScheduleConfig | dict[str, Any]) -> ScheduleConfig:
        """Replace the whole schedule config atomically."""
        schedule = self._coerce(config)
        if schedule.enabled:
            self._require_auth("enabling the schedule")

        async with self._lock:
            self._schedule = schedule
            self._persist_schedule()
            snap = self._bump()
        logger.info(
            f"Schedule saved, enabled={schedule.enabled}, "
            f"mode={'crontab' if schedule.has_crontab else schedule.repeat_mode.value}"
        )
        await self._publish(snap)
        return schedule

    async def toggle_enabled(self) -> ScheduleConfig:
        self._require_auth("toggling the schedule")
        async with self._lock:
            self._schedule = self._schedule.model_copy(
                update={"enabled": not self._schedule.enabled}
            )
            self._persist_schedule()
            snap = self._bump()
        logger.info(f"Schedule {'enabled' if self._schedule.enabled else 'disabled'}")
        await self._publish(snap)
        return self._schedule

    # ── Execution ───────────────────────────────────────────

    async def _execute(self, models: list[str], trigger_type: TriggerType) -> TriggerRecord:
        start = self._clock()
        prompt = f"[{', '.join(models)}] {self.config.trigger.prompt}"
        timeout = self.config.schedule.test_timeout_s
        try:
            return await asyncio.wait_for(
                self.executor.trigger(models, trigger_type), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Trigger ({trigger_type.value}) timed out after {timeout:g}s")
            message = f"Trigger timed out after {timeout:g}s"
        except Exception as e:
            logger.error(f"Trigger ({trigger_type.value}) raised: {e}")
            message = str(e)
        return TriggerRecord(
            timestamp=self._clock(),
            success=False,
            trigger_type=trigger_type,
            prompt=prompt,
            message=message,
            duration_ms=int((self._clock() - start).total_seconds() * 1000),
        )

    async def request_test(self, models: list[str] | None = None) -> TriggerRecord | None:
        """Run one manual trigger. Returns None when dropped by the run-lock."""
        self._require_auth("manual test")

        async with self._lock:
            if self._test_running:
                logger.warning("Manual test already running, request dropped")
                return None
            token = object()
            self._test_running = True
            self._test_token = token
            targets = list(models or self._schedule.selected_models) or [
                self.config.schedule.default_model
            ]
            snap = self._bump()

        record: TriggerRecord | None = None
        try:
            await self._publish(snap)
            record = await self._execute(targets, TriggerType.MANUAL)
        finally:
            # Also runs on cancellation
            async with self._lock:
                if record is not None:
                    self._ledger.append(record, now=self._clock())
                    self._persist_history()
                if self._test_token is token:
                    self._test_running = False
                    self._test_token = None
                snap = self._bump()
            if record is None:
                logger.warning("Manual test cancelled, run-lock released")
            else:
                logger.info(f"Manual test finished, success={record.success}")
            await self._publish(snap)
        return record

    async def run_auto_trigger(self) -> TriggerRecord | None:
        """Called by the timer collaborator when a fire time arrives."""
        if not self._schedule.enabled:
            logger.info("Auto trigger skipped: schedule disabled")
            return None
        if not self._authorization.is_authorized:
            logger.warning("Auto trigger skipped: not authorized")
            return None

        record = await self._execute(list(self._schedule.selected_models), TriggerType.AUTO)
        await self.record_trigger(record)
        if record.success:
            logger.info("Scheduled trigger executed successfully")
        else:
            logger.error(f"Scheduled trigger failed: {record.message}")
        return record

    async def record_trigger(self, record: TriggerRecord) -> None:
        """Append a record produced by the execution backend.

        A fresh result from the backend also releases the run-lock.
        """
        async with self._lock:
            self._ledger.append(record, now=self._clock())
            self._persist_history()
            self._release_run_lock()
            snap = self._bump()
        await self._publish(snap)

    async def notify_backend_update(self) -> None:
        """Entry point for an external execution backend pushing a fresh snapshot.

        A host that runs triggers out of process sends ``backend_update`` over
        the WebSocket (see ``api.ws``); any fresh backend snapshot releases the
        run-lock, the same as ``record_trigger``.
        """
        async with self._lock:
            if not self._release_run_lock():
                return
            snap = self._bump()
        await self._publish(snap)

    def _release_run_lock(self) -> bool:
        if not self._test_running:
            return False
        self._test_running = False
        self._test_token = None
        logger.debug("Run-lock released by backend update")
        return True

    async def clear_history(self) -> None:
        async with self._lock:
            self._ledger.clear()
            self.db.clear_trigger_history()
            snap = self._bump()
        logger.info("Trigger history cleared")
        await self._publish(snap)
