"""Install-wide settings document and the app settings it carries.

The document (``boson-settings.json``) holds the endpoint/model registry
alongside ``appSettings``. Only the general block is interpreted here; other
sections written by the desktop shell are preserved untouched.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .constants import SETTINGS_FILENAME
from .json_store import read_document, write_document
from .logging import log_event

CURRENT_SETTINGS_VERSION = 1


def empty_settings_document() -> dict[str, Any]:
    return {"endpointProfiles": [], "modelProfiles": []}


@dataclass(slots=True)
class GeneralSettings:
    """Behavioral toggles from the general settings section."""

    prevent_sleep_while_running: bool = True
    show_reasoning: bool = False
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> GeneralSettings:
        if not isinstance(raw, Mapping):
            return cls()
        defaults = cls()
        prevent_sleep = raw.get("preventSleepWhileRunning")
        show_reasoning = raw.get("showReasoning")
        return cls(
            prevent_sleep_while_running=(
                prevent_sleep
                if isinstance(prevent_sleep, bool)
                else defaults.prevent_sleep_while_running
            ),
            show_reasoning=(
                show_reasoning if isinstance(show_reasoning, bool) else defaults.show_reasoning
            ),
            extras={
                str(k): v
                for k, v in raw.items()
                if k not in {"preventSleepWhileRunning", "showReasoning"}
            },
        )

    def to_dict(self) -> dict[str, Any]:
        payload = dict(self.extras)
        payload["preventSleepWhileRunning"] = self.prevent_sleep_while_running
        payload["showReasoning"] = self.show_reasoning
        return payload


@dataclass(slots=True)
class AppSettings:
    """Versioned application settings."""

    settings_version: int = CURRENT_SETTINGS_VERSION
    general: GeneralSettings = field(default_factory=GeneralSettings)
    sections: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def migrate(cls, raw: Any) -> AppSettings:
        """Parse stored settings, upgrading older versions and filling defaults."""
        if not isinstance(raw, Mapping):
            return cls()
        version = raw.get("settingsVersion")
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            version = CURRENT_SETTINGS_VERSION
        return cls(
            settings_version=max(version, CURRENT_SETTINGS_VERSION),
            general=GeneralSettings.from_raw(raw.get("general")),
            sections={
                str(k): v
                for k, v in raw.items()
                if k not in {"settingsVersion", "general"}
            },
        )

    def to_dict(self) -> dict[str, Any]:
        payload = dict(self.sections)
        payload["settingsVersion"] = self.settings_version
        payload["general"] = self.general.to_dict()
        return payload


class SettingsStore:
    """Read-modify-write access to the settings document."""

    def __init__(self, data_dir: str | os.PathLike[str]):
        self.path = Path(os.path.expanduser(os.fspath(data_dir))) / SETTINGS_FILENAME
        self._lock = asyncio.Lock()

    async def read(self) -> dict[str, Any]:
        return await read_document(self.path, empty_settings_document)

    async def update(self, mutate) -> Any:
        """Apply ``mutate(document)`` under the store lock and persist the result.

        Returns whatever *mutate* returns.
        """
        async with self._lock:
            data = await self.read()
            result = mutate(data)
            await write_document(self.path, data)
            return result

    async def get_app_settings(self) -> AppSettings:
        """Return current app settings; unreadable documents yield defaults."""
        try:
            data = await self.read()
        except (OSError, ValueError) as e:
            log_event(
                "settings_read_failed",
                level=logging.WARNING,
                settings_file=str(self.path),
                error_type=type(e).__name__,
                error=str(e),
            )
            return AppSettings()
        return AppSettings.migrate(data.get("appSettings"))

    async def set_general(self, **changes: Any) -> AppSettings:
        """Update general settings fields by attribute name."""

        def _apply(data: dict[str, Any]) -> AppSettings:
            settings = AppSettings.migrate(data.get("appSettings"))
            for key, value in changes.items():
                if not hasattr(settings.general, key) or key == "extras":
                    raise ValueError(f"Unknown general setting: {key}")
                if not isinstance(value, bool):
                    raise ValueError(f"Setting '{key}' must be a boolean")
                setattr(settings.general, key, value)
            settings.settings_version = CURRENT_SETTINGS_VERSION
            data["appSettings"] = settings.to_dict()
            return settings

        return await self.update(_apply)
