"""Tests for the idle-sleep resource guard."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from boson.power import (
    DEFAULT_INHIBIT_REASON,
    NullSleepInhibitor,
    ProcessSleepInhibitor,
    inhibit_command,
    prevent_idle_sleep,
)
from test_helpers import FakeInhibitor


@pytest.mark.asyncio
async def test_guard_acquires_and_releases_once():
    inhibitor = FakeInhibitor()

    async with prevent_idle_sleep(inhibitor, enabled=True) as token:
        assert token == "token-1"
        assert inhibitor.released == []

    assert inhibitor.acquired == [DEFAULT_INHIBIT_REASON]
    assert inhibitor.released == ["token-1"]


@pytest.mark.asyncio
async def test_guard_releases_on_exception():
    inhibitor = FakeInhibitor()

    with pytest.raises(RuntimeError):
        async with prevent_idle_sleep(inhibitor, enabled=True):
            raise RuntimeError("boom")

    assert inhibitor.released == ["token-1"]


@pytest.mark.asyncio
async def test_disabled_guard_acquires_nothing():
    inhibitor = FakeInhibitor()

    async with prevent_idle_sleep(inhibitor, enabled=False) as token:
        assert token is None

    assert inhibitor.acquired == []
    assert inhibitor.released == []


@pytest.mark.asyncio
async def test_overlapping_guards_hold_independent_tokens():
    inhibitor = FakeInhibitor()

    async with prevent_idle_sleep(inhibitor, enabled=True) as outer:
        async with prevent_idle_sleep(inhibitor, enabled=True) as inner:
            assert inner != outer
        assert inhibitor.released == [inner]

    assert inhibitor.released == [inner, outer]


@pytest.mark.asyncio
async def test_null_inhibitor_is_a_no_op():
    inhibitor = NullSleepInhibitor()

    async with prevent_idle_sleep(inhibitor, enabled=True) as token:
        assert token is None


def test_inhibit_command_macos():
    with patch("boson.power.shutil.which", return_value="/usr/bin/caffeinate"):
        command = inhibit_command("reason", platform="darwin")

    assert command[:2] == ["caffeinate", "-i"]


def test_inhibit_command_linux():
    with patch("boson.power.shutil.which", return_value="/usr/bin/systemd-inhibit"):
        command = inhibit_command("chatting", platform="linux")

    assert command[0] == "systemd-inhibit"
    assert "--why=chatting" in command


def test_inhibit_command_unavailable():
    with patch("boson.power.shutil.which", return_value=None):
        assert inhibit_command("reason", platform="linux") is None
    assert inhibit_command("reason", platform="win32") is None


@pytest.mark.asyncio
async def test_process_inhibitor_without_helper_yields_no_token():
    with patch("boson.power.inhibit_command", return_value=None):
        token = await ProcessSleepInhibitor().acquire("reason")

    assert token is None


@pytest.mark.asyncio
async def test_process_inhibitor_spawns_and_terminates_helper():
    process = MagicMock()
    process.returncode = None
    process.wait = AsyncMock(return_value=0)
    spawn = AsyncMock(return_value=process)

    with patch("boson.power.inhibit_command", return_value=["sleep", "infinity"]), patch(
        "boson.power.asyncio.create_subprocess_exec", spawn
    ):
        inhibitor = ProcessSleepInhibitor()
        token = await inhibitor.acquire("reason")
        await inhibitor.release(token)

    assert spawn.call_args.args == ("sleep", "infinity")
    process.terminate.assert_called_once()
    process.wait.assert_awaited_once()


@pytest.mark.asyncio
async def test_process_inhibitor_spawn_failure_yields_no_token():
    spawn = AsyncMock(side_effect=FileNotFoundError("missing"))

    with patch("boson.power.inhibit_command", return_value=["caffeinate"]), patch(
        "boson.power.asyncio.create_subprocess_exec", spawn
    ):
        token = await ProcessSleepInhibitor().acquire("reason")

    assert token is None


@pytest.mark.asyncio
async def test_release_skips_exited_helper():
    process = MagicMock()
    process.returncode = 0

    await ProcessSleepInhibitor().release(process)

    process.terminate.assert_not_called()
