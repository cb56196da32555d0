"""Shared fixtures — fake credential/executor collaborators and a fixed clock."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from autotrigger.core.config import Config
from autotrigger.core.schedule.types import (
    AuthorizationState,
    ModelInfo,
    TriggerRecord,
    TriggerType,
)
from autotrigger.engine.controller import TriggerController
from autotrigger.memory.store import TriggerStore

# Wednesday
NOW = datetime(2024, 1, 10, 9, 30)


class FakeCredentials:
    def __init__(self, authorized: bool = False, grant: bool = True):
        self.authorized = authorized
        self.grant = grant
        self.revoked = False

    async def authorize(self) -> bool:
        if self.grant:
            self.authorized = True
        return self.grant

    async def revoke(self) -> None:
        self.authorized = False
        self.revoked = True

    async def get_authorization(self) -> AuthorizationState:
        if not self.authorized:
            return AuthorizationState(is_authorized=False)
        return AuthorizationState(is_authorized=True, email="me@example.com")

    async def get_access_token(self) -> str | None:
        return "token" if self.authorized else None


class FakeExecutor:
    """Records calls; blocks on ``gate`` when one is set."""

    def __init__(self, success: bool = True, clock=lambda: NOW):
        self.success = success
        self.clock = clock
        self.calls: list[tuple[list[str], TriggerType]] = []
        self.gate: asyncio.Event | None = None

    async def trigger(self, models, trigger_type):
        self.calls.append((list(models), trigger_type))
        if self.gate is not None:
            await self.gate.wait()
        return TriggerRecord(
            timestamp=self.clock(),
            success=self.success,
            trigger_type=trigger_type,
            prompt=f"[{', '.join(models)}] hi",
            message="ok" if self.success else "boom",
            duration_ms=12,
        )

    async def fetch_available_models(self):
        return [ModelInfo(id="gemini-3-flash", display_name="Gemini 3 Flash")]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def cfg(tmp_path):
    return Config(database={"path": str(tmp_path / "test.db")})


@pytest.fixture
def store(cfg):
    return TriggerStore(cfg.database.path)


@pytest.fixture
def credentials():
    return FakeCredentials()


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def controller(cfg, store, credentials, executor):
    return TriggerController(cfg, store, credentials, executor, clock=lambda: NOW)
