"""Automatic firing — APScheduler bridge driven by the controller's next fire time."""

from autotrigger.core.cron.scheduler import AutoTriggerScheduler

__all__ = ["AutoTriggerScheduler"]
