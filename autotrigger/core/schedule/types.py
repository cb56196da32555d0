"""Schedule types — configuration, trigger records, snapshots."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MODEL = "gemini-3-flash"

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class RepeatMode(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"


class TriggerType(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class SchedulerState(str, Enum):
    UNAUTHORIZED = "unauthorized"
    AUTHORIZED_DISABLED = "authorized_disabled"
    AUTHORIZED_ENABLED = "authorized_enabled"
    REVOKE_PENDING = "revoke_pending"


def _check_time(value: str) -> str:
    if not _TIME_RE.match(value):
        raise ValueError(f"invalid time {value!r}, expected zero-padded HH:MM")
    return value


def _unique(values: list) -> list:
    """De-duplicate while keeping first-seen order."""
    seen = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


# ════════════════════════════════════════════════════════════
# SCHEDULE CONFIG
# ════════════════════════════════════════════════════════════


class ScheduleConfig(BaseModel):
    """User intent for the recurring trigger — replaced wholesale on save.

    ``crontab``, when non-blank, overrides ``repeat_mode`` and every
    structured field for fire-time computation.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    enabled: bool = False
    repeat_mode: RepeatMode = RepeatMode.DAILY

    daily_times: list[str] = Field(default_factory=lambda: ["08:00"], min_length=1)

    weekly_days: list[int] = Field(
        default_factory=lambda: [1, 2, 3, 4, 5], min_length=1
    )
    weekly_times: list[str] = Field(default_factory=lambda: ["08:00"], min_length=1)

    interval_hours: int = Field(default=4, ge=1)
    interval_start_time: str = "08:00"
    interval_end_time: str = "22:00"

    crontab: str | None = None

    # Empty list is substituted with the default target on save
    selected_models: list[str] = Field(default_factory=lambda: [DEFAULT_MODEL])

    @field_validator("daily_times", "weekly_times")
    @classmethod
    def _validate_times(cls, v: list[str]) -> list[str]:
        return _unique([_check_time(t) for t in v])

    @field_validator("interval_start_time", "interval_end_time")
    @classmethod
    def _validate_time(cls, v: str) -> str:
        return _check_time(v)

    @field_validator("weekly_days")
    @classmethod
    def _validate_days(cls, v: list[int]) -> list[int]:
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"weekday {day} out of range 0..6 (0 = Sunday)")
        return _unique(v)

    @field_validator("crontab")
    @classmethod
    def _normalize_crontab(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("selected_models")
    @classmethod
    def _validate_models(cls, v: list[str]) -> list[str]:
        return _unique([m.strip() for m in v if m and m.strip()])

    @property
    def has_crontab(self) -> bool:
        """True when the cron override governs fire-time computation."""
        return bool(self.crontab and self.crontab.strip())


# ════════════════════════════════════════════════════════════
# AUTHORIZATION / TARGETS
# ════════════════════════════════════════════════════════════


class AuthorizationState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_authorized: bool = False
    email: str | None = None
    expires_at: str | None = None


class ModelInfo(BaseModel):
    """One available trigger target."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    model_constant: str = ""


# ════════════════════════════════════════════════════════════
# HISTORY / SNAPSHOT
# ════════════════════════════════════════════════════════════


class TriggerRecord(BaseModel):
    """Outcome of one trigger attempt — immutable once created."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    success: bool
    trigger_type: TriggerType = TriggerType.MANUAL
    prompt: str | None = None
    message: str | None = None
    duration_ms: int | None = None


class SchedulerSnapshot(BaseModel):
    """Read-only view pushed to observers after every state change."""

    model_config = ConfigDict(frozen=True)

    version: int
    state: SchedulerState
    config: ScheduleConfig
    authorization: AuthorizationState
    history: list[TriggerRecord] = Field(default_factory=list)
    last_trigger: TriggerRecord | None = None
    next_fire_time: datetime | None = None
    available_targets: list[ModelInfo] = Field(default_factory=list)
    test_running: bool = False
    description: str = ""


class CrontabValidation(BaseModel):
    valid: bool
    description: str | None = None
    next_runs: list[datetime] = Field(default_factory=list)
    error: str | None = None
    note: str | None = None
