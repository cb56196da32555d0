"""Built-in schedule presets."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from autotrigger.core.schedule.types import RepeatMode, ScheduleConfig


class SchedulePreset(BaseModel):
    id: str
    name: str
    description: str
    config: dict[str, Any] = Field(default_factory=dict)


SCHEDULE_PRESETS: list[SchedulePreset] = [
    SchedulePreset(
        id="morning",
        name="Morning trigger",
        description="Every day at 07:00",
        config={"repeat_mode": RepeatMode.DAILY, "daily_times": ["07:00"]},
    ),
    SchedulePreset(
        id="workday",
        name="Workday trigger",
        description="Weekdays at 08:00",
        config={
            "repeat_mode": RepeatMode.WEEKLY,
            "weekly_days": [1, 2, 3, 4, 5],
            "weekly_times": ["08:00"],
        },
    ),
    SchedulePreset(
        id="every4h",
        name="Every 4 hours",
        description="From 07:00, every 4 hours",
        config={
            "repeat_mode": RepeatMode.INTERVAL,
            "interval_hours": 4,
            "interval_start_time": "07:00",
            "interval_end_time": "23:00",
        },
    ),
]


def get_preset(preset_id: str) -> SchedulePreset | None:
    return next((p for p in SCHEDULE_PRESETS if p.id == preset_id), None)


def apply_preset(config: ScheduleConfig, preset_id: str) -> ScheduleConfig:
    """Return a new config with the preset's fields merged in.

    The preset selects a structured mode, so any crontab override is cleared.
    Raises KeyError for an unknown preset id.
    """
    preset = get_preset(preset_id)
    if preset is None:
        raise KeyError(preset_id)
    data = config.model_dump()
    data.update(preset.config)
    data["crontab"] = None
    return ScheduleConfig(**data)
