"""Configuration module."""

from autotrigger.core.config.loader import load_config
from autotrigger.core.config.schema import Config

__all__ = ["Config", "load_config"]
