"""Engine errors."""

from __future__ import annotations


class AutoTriggerError(Exception):
    """Base class for autotrigger engine errors."""


class ScheduleValidationError(AutoTriggerError):
    """Raised when a schedule config is rejected on save."""


class AuthorizationRequiredError(AutoTriggerError):
    """Raised when an operation needs an authorized credential."""

    def __init__(self, action: str = "this action"):
        self.action = action
        super().__init__(f"Authorization required for {action}")
