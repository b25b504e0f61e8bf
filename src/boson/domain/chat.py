"""Typed thread/message models and serialization helpers.

On disk the thread document keeps camelCase keys
(``projectId``, ``createdAt``, ``archivedAt``) so it stays readable by other
clients of the same data directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from ..constants import DEFAULT_THREAD_TITLE

MESSAGE_ROLES = ("user", "assistant", "system")


@dataclass(slots=True, frozen=True)
class Message:
    """Single message in a thread log."""

    id: str
    role: str
    content: str

    @classmethod
    def from_raw(cls, raw_message: Any, *, index: int | None = None) -> Message:
        """Create a typed message from a raw persisted dict."""
        if not isinstance(raw_message, dict):
            idx = f" at index {index}" if index is not None else ""
            raise ValueError(f"Invalid thread message{idx}: expected object")
        content = raw_message.get("content", "")
        return cls(
            id=str(raw_message.get("id", "")),
            role=str(raw_message.get("role", "")),
            content=content if isinstance(content, str) else str(content),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize message to persisted dict shape."""
        return {"id": self.id, "role": self.role, "content": self.content}

    def for_request(self) -> dict[str, str]:
        """Return the role/content pair sent to a completion endpoint."""
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class Thread:
    """Persisted conversation metadata plus (optionally) its messages."""

    id: str
    project_id: str
    title: str = DEFAULT_THREAD_TITLE
    created_at: str | None = None
    archived_at: str | None = None
    messages: list[Message] = field(default_factory=list)
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def is_archived(self) -> bool:
        """Return True when the thread carries an archive timestamp."""
        return bool(self.archived_at)

    @property
    def has_default_title(self) -> bool:
        """Return True while the title is empty or still the placeholder."""
        current = (self.title or "").strip()
        return not current or current == DEFAULT_THREAD_TITLE

    @classmethod
    def from_raw(cls, raw_thread: Any) -> Thread:
        """Create thread metadata from a raw persisted dict."""
        if not isinstance(raw_thread, dict):
            raise ValueError("Invalid thread record: expected object")
        if "id" not in raw_thread:
            raise ValueError("Invalid thread record: missing id")

        extras = {
            key: value
            for key, value in raw_thread.items()
            if key not in {"id", "projectId", "title", "createdAt", "archivedAt"}
        }
        title = raw_thread.get("title")
        return cls(
            id=str(raw_thread["id"]),
            project_id=str(raw_thread.get("projectId", "")),
            title=title if isinstance(title, str) else DEFAULT_THREAD_TITLE,
            created_at=raw_thread.get("createdAt"),
            archived_at=raw_thread.get("archivedAt") or None,
            extras=extras,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize thread metadata (without messages) to persisted shape."""
        payload: dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "title": self.title,
            "createdAt": self.created_at,
        }
        if self.archived_at:
            payload["archivedAt"] = self.archived_at
        payload.update(self.extras)
        return payload

    def with_messages(self, messages: list[Message]) -> Thread:
        """Return a copy of this thread carrying *messages*."""
        return replace(self, messages=list(messages), extras=dict(self.extras))
