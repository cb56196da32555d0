"""autotrigger configuration schema — YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from autotrigger.core.schedule.types import DEFAULT_MODEL, ModelInfo


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class ScheduleSettings(BaseModel):
    """Schedule engine knobs (schedule.*)."""

    default_model: str = DEFAULT_MODEL
    preview_count: int = 5
    history_limit: int = 40
    history_max_days: int = 7
    test_timeout_s: float = 120.0  # run-lock is force-released after this


class TriggerConfig(BaseModel):
    """Trigger backend (trigger.*)."""

    api_base: str = "https://daily-cloudcode-pa.sandbox.googleapis.com"
    user_agent: str = "antigravity/1.11.3 windows/amd64"
    prompt: str = "hi"
    request_timeout_s: float = 30.0
    project_id: str = ""
    models: list[ModelInfo] = Field(
        default_factory=lambda: [
            ModelInfo(id=DEFAULT_MODEL, display_name="Gemini 3 Flash"),
        ]
    )


# Background
class AutoFireConfig(BaseModel):
    enabled: bool = True
    misfire_grace_s: int = 60


class BackgroundConfig(BaseModel):
    auto_fire: AutoFireConfig = Field(default_factory=AutoFireConfig)


# Database
class DatabaseConfig(BaseModel):
    path: str = "data/autotrigger.db"


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings — env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: YAML (init kwargs) > env vars > .env > defaults

    Env override examples:
        AUTOTRIGGER_SCHEDULE__DEFAULT_MODEL=gemini-3-pro-high
        AUTOTRIGGER_DATABASE__PATH=data/prod.db
        AUTOTRIGGER_BACKGROUND__AUTO_FIRE__ENABLED=false
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTOTRIGGER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # ── Computed properties ─────────────────────────────────

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)
