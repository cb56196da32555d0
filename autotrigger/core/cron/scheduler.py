"""AutoTriggerScheduler — APScheduler bridge for automatic firing.

The controller only computes ``next_fire_time``; this class owns the timer.
It keeps exactly one DateTrigger job armed at the next fire time and re-arms
it every time the controller publishes a snapshot.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from autotrigger.core.schedule.types import SchedulerSnapshot

if TYPE_CHECKING:
    from autotrigger.core.config.schema import Config
    from autotrigger.engine.controller import TriggerController

JOB_ID = "auto_trigger"


class AutoTriggerScheduler:
    """Arms a one-shot job at the next fire time and re-arms after each run."""

    def __init__(self, controller: TriggerController, config: Config | None = None):
        self.controller = controller
        self.config = config
        grace = config.background.auto_fire.misfire_grace_s if config else 60
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": grace,
            }
        )
        self._scheduled_for: datetime | None = None
        self._unsubscribe = None

    @property
    def scheduled_for(self) -> datetime | None:
        return self._scheduled_for

    async def start(self) -> None:
        """Subscribe to controller snapshots and start the scheduler."""
        self._unsubscribe = self.controller.subscribe(self.reschedule)
        self._scheduler.start()
        self.reschedule(self.controller.snapshot())
        logger.info("AutoTriggerScheduler started")

    async def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._scheduler.shutdown(wait=False)
        logger.info("AutoTriggerScheduler stopped")

    def reschedule(self, snap: SchedulerSnapshot) -> None:
        """Arm (or disarm) the job for the snapshot's next fire time."""
        target = snap.next_fire_time if snap.authorization.is_authorized else None

        if target is None:
            if self._scheduled_for is not None:
                self._remove_job()
                logger.info("Auto trigger disarmed")
            return

        if target == self._scheduled_for:
            return

        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=target),
            id=JOB_ID,
            replace_existing=True,
        )
        self._scheduled_for = target
        logger.info(f"Next auto trigger scheduled at {target.isoformat(timespec='minutes')}")

    def _remove_job(self) -> None:
        try:
            self._scheduler.remove_job(JOB_ID)
        except JobLookupError:
            pass  # Job may already have fired
        self._scheduled_for = None

    async def _fire(self) -> None:
        logger.info("Executing scheduled trigger")
        self._scheduled_for = None
        try:
            record = await self.controller.run_auto_trigger()
        except Exception as e:
            logger.error(f"Scheduled trigger raised: {e}")
            record = None
        if record is None:
            # No snapshot was published, re-arm from current state
            self.reschedule(self.controller.snapshot())
