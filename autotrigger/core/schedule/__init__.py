"""Schedule model and fire-time computation."""

from autotrigger.core.schedule.calculator import (
    compute_next_fire_times,
    config_to_crontab,
    describe_schedule,
    next_fire_time,
    validate_crontab,
)
from autotrigger.core.schedule.fields import parse_field
from autotrigger.core.schedule.types import (
    AuthorizationState,
    ModelInfo,
    RepeatMode,
    ScheduleConfig,
    SchedulerSnapshot,
    SchedulerState,
    TriggerRecord,
    TriggerType,
)

__all__ = [
    "AuthorizationState",
    "ModelInfo",
    "RepeatMode",
    "ScheduleConfig",
    "SchedulerSnapshot",
    "SchedulerState",
    "TriggerRecord",
    "TriggerType",
    "compute_next_fire_times",
    "config_to_crontab",
    "describe_schedule",
    "next_fire_time",
    "parse_field",
    "validate_crontab",
]
