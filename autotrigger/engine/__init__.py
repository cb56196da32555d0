"""Auto-trigger engine — state machine, ledger and collaborators."""

from autotrigger.engine.controller import TriggerController
from autotrigger.engine.errors import (
    AuthorizationRequiredError,
    AutoTriggerError,
    ScheduleValidationError,
)
from autotrigger.engine.history import HistoryLedger

__all__ = [
    "AuthorizationRequiredError",
    "AutoTriggerError",
    "HistoryLedger",
    "ScheduleValidationError",
    "TriggerController",
]
