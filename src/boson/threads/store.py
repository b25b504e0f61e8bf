"""Thread persistence store.

All threads of an install live in one JSON document::

    {"threads": [Thread...], "messagesByThreadId": {thread_id: [Message...]}}

Each mutation re-reads the document, applies its change, and rewrites the
whole file. Read-modify-write cycles are serialized per store instance, so
two tasks touching different fields of the same thread (a title update and a
message append) never revert each other. There is no transaction spanning
several operations.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, TypeVar

from ..constants import DEFAULT_THREAD_TITLE, THREAD_TITLE_MAX_CHARS, THREADS_FILENAME
from ..domain.chat import Message, Thread
from ..errors import ThreadStoreError
from ..ids import new_id
from ..json_store import read_document, write_document
from ..logging import log_event
from ..time_utils import parse_utc, utc_now_iso

T = TypeVar("T")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def empty_thread_document() -> dict[str, Any]:
    return {"threads": [], "messagesByThreadId": {}}


def _sort_key(timestamp: str | None) -> datetime:
    return parse_utc(timestamp) or _EPOCH


def _find_thread(data: dict[str, Any], thread_id: str) -> Optional[dict[str, Any]]:
    for raw in data.get("threads") or []:
        if isinstance(raw, dict) and raw.get("id") == thread_id:
            return raw
    return None


class _Unchanged:
    """Marks a mutation that decided not to rewrite the document."""

    def __init__(self, result: Any):
        self.result = result


class ThreadStore:
    """Append-only per-thread message log with archive and title metadata."""

    def __init__(self, data_dir: str | os.PathLike[str]):
        self.path = Path(os.path.expanduser(os.fspath(data_dir))) / THREADS_FILENAME
        self._lock = asyncio.Lock()

    async def _read(self) -> dict[str, Any]:
        try:
            data = await read_document(self.path, empty_thread_document)
        except (OSError, ValueError) as e:
            raise ThreadStoreError(f"Failed to read thread store {self.path}: {e}") from e
        if not isinstance(data.get("threads"), list):
            data["threads"] = []
        if not isinstance(data.get("messagesByThreadId"), dict):
            data["messagesByThreadId"] = {}
        return data

    def _decode(self, build: Callable[[], T]) -> T:
        try:
            return build()
        except ValueError as e:
            raise ThreadStoreError(f"Invalid record in thread store {self.path}: {e}") from e

    async def _write(self, data: dict[str, Any]) -> None:
        try:
            await write_document(self.path, data)
        except OSError as e:
            raise ThreadStoreError(f"Failed to write thread store {self.path}: {e}") from e

    async def _mutate(self, mutate: Callable[[dict[str, Any]], T]) -> T:
        """Run one read-modify-write cycle; ``_Unchanged`` results skip the write."""
        async with self._lock:
            data = await self._read()
            result = mutate(data)
            if isinstance(result, _Unchanged):
                return result.result
            await self._write(data)
            return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, thread_id: str) -> Optional[Thread]:
        """Return the thread with its messages, or None when unknown."""
        data = await self._read()
        raw = _find_thread(data, thread_id)
        if raw is None:
            return None
        raw_messages = data["messagesByThreadId"].get(thread_id) or []
        return self._decode(
            lambda: Thread.from_raw(raw).with_messages(
                [Message.from_raw(item, index=i) for i, item in enumerate(raw_messages)]
            )
        )

    async def list(self, project_id: str) -> list[Thread]:
        """Non-archived threads of *project_id*, newest first."""
        data = await self._read()
        threads = self._decode(
            lambda: [
                Thread.from_raw(raw)
                for raw in data["threads"]
                if isinstance(raw, dict) and raw.get("projectId") == project_id and not raw.get("archivedAt")
            ]
        )
        return sorted(threads, key=lambda t: _sort_key(t.created_at), reverse=True)

    async def list_archived(self, project_id: str) -> list[Thread]:
        """Archived threads of *project_id*, most recently archived first."""
        data = await self._read()
        threads = self._decode(
            lambda: [
                Thread.from_raw(raw)
                for raw in data["threads"]
                if isinstance(raw, dict) and raw.get("projectId") == project_id and raw.get("archivedAt")
            ]
        )
        return sorted(threads, key=lambda t: _sort_key(t.archived_at), reverse=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, project_id: str, title: str | None = None) -> Thread:
        """Create an empty thread; a blank title falls back to the placeholder."""
        thread = Thread(
            id=new_id(),
            project_id=project_id,
            title=(title or "").strip()[:THREAD_TITLE_MAX_CHARS] or DEFAULT_THREAD_TITLE,
            created_at=utc_now_iso(),
        )

        def _apply(data: dict[str, Any]) -> Thread:
            data["threads"].append(thread.to_dict())
            data["messagesByThreadId"][thread.id] = []
            return thread

        created = await self._mutate(_apply)
        log_event(
            "thread_created",
            level=logging.INFO,
            thread_id=created.id,
            project_id=project_id,
            threads_file=str(self.path),
        )
        return created

    async def append_message(
        self, thread_id: str, message: Message | Mapping[str, Any]
    ) -> Optional[Message]:
        """Append *message* to the thread log and return the stored message.

        A missing id is assigned. Returns None, without writing, when the
        thread is unknown.
        """
        raw = message.to_dict() if isinstance(message, Message) else dict(message)

        def _apply(data: dict[str, Any]) -> Any:
            if _find_thread(data, thread_id) is None:
                return _Unchanged(None)
            log = data["messagesByThreadId"].setdefault(thread_id, [])
            existing_ids = {item.get("id") for item in log if isinstance(item, dict)}
            message_id = raw.get("id") or new_id()
            while message_id in existing_ids:
                message_id = new_id()
            content = raw.get("content", "")
            stored = Message(
                id=str(message_id),
                role=str(raw.get("role", "")),
                content=content if isinstance(content, str) else str(content),
            )
            log.append(stored.to_dict())
            return stored

        stored = await self._mutate(_apply)
        if stored is not None:
            log_event(
                "thread_message_appended",
                level=logging.INFO,
                thread_id=thread_id,
                message_id=stored.id,
                role=stored.role,
                content_chars=len(stored.content),
            )
        return stored

    async def update_title(self, thread_id: str, title: Any) -> bool:
        """Set the title when it is non-empty after trimming and truncation."""
        if not isinstance(title, str):
            return False
        normalized = title.strip()[:THREAD_TITLE_MAX_CHARS].strip()
        if not normalized:
            return False

        def _apply(data: dict[str, Any]) -> Any:
            raw = _find_thread(data, thread_id)
            if raw is None:
                return _Unchanged(False)
            raw["title"] = normalized
            return True

        updated = await self._mutate(_apply)
        if updated:
            log_event("thread_title_updated", level=logging.INFO, thread_id=thread_id, title=normalized)
        return updated

    async def archive(self, thread_id: str) -> bool:
        """Archive the thread; archiving an archived thread changes nothing."""

        def _apply(data: dict[str, Any]) -> Any:
            raw = _find_thread(data, thread_id)
            if raw is None:
                return _Unchanged(False)
            if raw.get("archivedAt"):
                return _Unchanged(True)
            raw["archivedAt"] = utc_now_iso()
            return True

        archived = await self._mutate(_apply)
        if archived:
            log_event("thread_archived", level=logging.INFO, thread_id=thread_id)
        return archived

    async def unarchive(self, thread_id: str) -> bool:
        """Restore the thread to the active listing; no-op if not archived."""

        def _apply(data: dict[str, Any]) -> Any:
            raw = _find_thread(data, thread_id)
            if raw is None:
                return _Unchanged(False)
            if "archivedAt" not in raw:
                return _Unchanged(True)
            del raw["archivedAt"]
            return True

        restored = await self._mutate(_apply)
        if restored:
            log_event("thread_unarchived", level=logging.INFO, thread_id=thread_id)
        return restored
