"""Configuration loader — YAML file + env override."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from autotrigger.core.config.schema import Config

USER_CONFIG = Path("~/.config/autotrigger/config.yaml")


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Load configuration.

    Resolution order for config file:
        1. Explicit ``config_path`` argument
        2. ``AUTOTRIGGER_CONFIG`` env variable
        3. ``./config.yaml`` in cwd
        4. ``~/.config/autotrigger/config.yaml``

    Keys missing from the YAML fall back to env vars, then ``.env``, then
    defaults (handled by pydantic-settings).
    """
    path = _resolve_path(config_path)
    data = _load_yaml(path)
    if path and data:
        logger.debug(f"Config loaded from {path}")
    return Config(**data)


def _resolve_path(config_path: str | Path | None = None) -> Path | None:
    if config_path:
        return Path(config_path)

    env = os.environ.get("AUTOTRIGGER_CONFIG")
    if env:
        return Path(env)

    for candidate in (Path("config.yaml"), USER_CONFIG.expanduser()):
        if candidate.exists():
            return candidate
    return None


def _load_yaml(path: Path | None) -> dict[str, Any]:
    """Load YAML mapping, empty dict if the file is missing or empty."""
    if not path or not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level")
    return data
