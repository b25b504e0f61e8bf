"""Idle-sleep inhibition held for the duration of one chat exchange.

Each exchange acquires its own token and releases it on every exit path.
Overlapping exchanges hold independent tokens.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Optional, Protocol

from .constants import APP_NAME
from .logging import log_event

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

DEFAULT_INHIBIT_REASON = "prevent-app-suspension"


class SleepInhibitor(Protocol):
    """Acquires and releases an "inhibit idle suspension" token."""

    async def acquire(self, reason: str) -> Any:
        ...

    async def release(self, token: Any) -> None:
        ...


class NullSleepInhibitor:
    """Inhibitor for platforms without a supported mechanism."""

    async def acquire(self, reason: str) -> Any:
        return None

    async def release(self, token: Any) -> None:
        return None


def inhibit_command(reason: str, platform: str = sys.platform) -> Optional[list[str]]:
    """Return the helper command that blocks idle sleep while it runs."""
    if platform == "darwin" and shutil.which("caffeinate"):
        return ["caffeinate", "-i", "-w", str(os.getpid())]
    if platform.startswith("linux") and shutil.which("systemd-inhibit"):
        return [
            "systemd-inhibit",
            "--what=idle:sleep",
            f"--who={APP_NAME}",
            f"--why={reason}",
            "--mode=block",
            "sleep",
            "infinity",
        ]
    return None


class ProcessSleepInhibitor:
    """Holds inhibition by keeping a platform helper process alive.

    macOS uses ``caffeinate``, Linux ``systemd-inhibit``. Elsewhere, or when
    the helper is missing, acquisition yields no token.
    """

    async def acquire(self, reason: str) -> Optional[asyncio.subprocess.Process]:
        command = inhibit_command(reason)
        if command is None:
            log_event("sleep_inhibit_unavailable", level=logging.INFO, platform=sys.platform)
            return None
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            log_event(
                "sleep_inhibit_unavailable",
                level=logging.WARNING,
                platform=sys.platform,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None
        return process

    async def release(self, token: Optional[asyncio.subprocess.Process]) -> None:
        if token is None or token.returncode is not None:
            return
        try:
            token.terminate()
        except ProcessLookupError:
            return
        await token.wait()


@asynccontextmanager
async def prevent_idle_sleep(
    inhibitor: SleepInhibitor,
    *,
    enabled: bool,
    reason: str = DEFAULT_INHIBIT_REASON,
) -> AsyncGenerator[Any, None]:
    """Hold an inhibition token for the body of the ``async with`` block.

    When *enabled* is False nothing is acquired and release is a no-op.

    Yields:
        The inhibitor's token (None when disabled or unavailable)
    """
    if not enabled:
        yield None
        return

    token = await inhibitor.acquire(reason)
    log_event("sleep_inhibit_acquired", level=logging.DEBUG, reason=reason, held=token is not None)
    try:
        yield token
    finally:
        await inhibitor.release(token)
        log_event("sleep_inhibit_released", level=logging.DEBUG, reason=reason)
