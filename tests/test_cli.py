"""Tests for autotrigger.cli."""

from datetime import datetime
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from autotrigger.cli.commands import app
from autotrigger.core.config import Config

from conftest import FakeExecutor

runner = CliRunner()

_PATCH_CONFIG = "autotrigger.core.config.loader.load_config"
_PATCH_EXECUTOR = "autotrigger.engine.executor.HttpTriggerExecutor"


@pytest.fixture
def fake_config(tmp_path):
    return Config(database={"path": str(tmp_path / "cli.db")})


@pytest.fixture
def invoke(fake_config):
    """Run the CLI against a tmp database and a fake executor."""
    executor = FakeExecutor(clock=datetime.now)

    def _invoke(*args, **kwargs):
        with (
            patch(_PATCH_CONFIG, return_value=fake_config),
            patch(_PATCH_EXECUTOR, return_value=executor),
        ):
            return runner.invoke(app, list(args), **kwargs)

    _invoke.executor = executor
    return _invoke


def _authorize(invoke):
    result = invoke("auth", "import", "--refresh-token", "r1", "--email", "me@example.com")
    assert result.exit_code == 0, result.output
    return result


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("run", "status", "preview", "validate-cron", "test", "schedule", "auth"):
        assert name in result.output


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "autotrigger v" in result.output


def test_status_unauthorized(invoke):
    result = invoke("status")
    assert result.exit_code == 0
    assert "unauthorized" in result.output


def test_validate_cron(invoke):
    result = invoke("validate-cron", "0 8 * * *")
    assert result.exit_code == 0
    assert "Valid" in result.output

    result = invoke("validate-cron", "0 8")
    assert result.exit_code == 1
    assert "5 fields" in result.output


def test_preview_count(invoke):
    result = invoke("preview", "--count", "3")
    assert result.exit_code == 0
    assert "3." in result.output
    assert "4." not in result.output


def test_enable_requires_auth(invoke):
    result = invoke("enable")
    assert result.exit_code == 1
    assert "Not authorized" in result.output


def test_auth_import_status_revoke(invoke):
    result = _authorize(invoke)
    assert "Authorized" in result.output

    result = invoke("auth", "status")
    assert "me@example.com" in result.output

    result = invoke("auth", "revoke", "--yes")
    assert result.exit_code == 0
    assert "revoked" in result.output

    result = invoke("auth", "status")
    assert "Not authorized" in result.output


def test_auth_revoke_cancelled(invoke):
    _authorize(invoke)
    result = invoke("auth", "revoke", input="n\n")
    assert "Cancelled" in result.output
    assert "me@example.com" in invoke("auth", "status").output


def test_enable_disable(invoke):
    _authorize(invoke)
    result = invoke("enable")
    assert result.exit_code == 0
    assert "Schedule enabled" in result.output

    result = invoke("disable")
    assert "Schedule disabled" in result.output


def test_manual_test_and_history(invoke):
    _authorize(invoke)
    result = invoke("test", "-m", "m1")
    assert result.exit_code == 0
    assert "Trigger succeeded" in result.output
    assert invoke.executor.calls[0][0] == ["m1"]

    result = invoke("history")
    assert "manual" in result.output

    invoke("clear-history")
    assert "No trigger history" in invoke("history").output


def test_schedule_set_and_show(invoke):
    result = invoke("schedule", "set", "--mode", "interval", "--every", "2")
    assert result.exit_code == 0, result.output
    assert "Schedule saved" in result.output

    result = invoke("schedule", "show")
    assert "interval" in result.output


def test_schedule_set_invalid(invoke):
    result = invoke("schedule", "set", "--time", "25:00")
    assert result.exit_code == 1
    assert "not saved" in result.output


def test_schedule_preset(invoke):
    result = invoke("schedule", "preset", "workday")
    assert result.exit_code == 0
    assert "Weekdays" in result.output

    result = invoke("schedule", "preset", "nope")
    assert result.exit_code == 1


def test_schedule_preset_clears_crontab(invoke):
    result = invoke("schedule", "set", "--cron", "0 9 * * *")
    assert result.exit_code == 0, result.output

    result = invoke("schedule", "preset", "morning")
    assert result.exit_code == 0
    assert "Every day at 7:00" in result.output

    result = invoke("status")
    assert "crontab" not in result.output
    assert "daily" in result.output
