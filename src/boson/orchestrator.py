"""Chat exchange orchestration.

One user turn runs two independent tasks: the streaming exchange itself and
a best-effort title inference. They share no in-memory state; each touches
the thread store through its own read-modify-write cycles (messages vs.
title), so neither can revert the other.

If the event sink goes away mid-exchange, delivery simply stops. The stream
is still consumed to its end and the reply persisted, keeping the thread log
consistent for the next time it is opened.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from .chat.client import ChatClient, ChatError, ChatResult
from .chat.request import ChatPayload
from .chat.titles import generate_title, should_infer_title
from .domain.chat import Message
from .domain.events import TERMINAL_EVENTS, DoneEvent, ErrorEvent, StartEvent, StreamEvent
from .errors import ErrorKind
from .logging import log_event, sanitize_error_message
from .power import NullSleepInhibitor, SleepInhibitor, prevent_idle_sleep
from .settings import SettingsStore
from .threads.store import ThreadStore

STREAM_CHANNEL_PREFIX = "chat:stream:"
TITLE_UPDATED_CHANNEL = "threads:titleUpdated"


class EventSink(Protocol):
    """Presentation-side receiver of stream and title events."""

    @property
    def closed(self) -> bool:
        ...

    def send(self, channel: str, payload: dict[str, Any]) -> None:
        ...


@dataclass(frozen=True, slots=True)
class MessageExchange:
    """Persisted user/assistant pair from one turn."""

    thread_id: str
    user_message: Message
    assistant_message: Optional[Message]


@dataclass(frozen=True, slots=True)
class StreamOutcome:
    """How a streaming exchange ended."""

    terminal: StreamEvent
    user_message: Optional[Message] = None
    assistant_message: Optional[Message] = None

    @property
    def ok(self) -> bool:
        return isinstance(self.terminal, DoneEvent)


def _deliver(sink: EventSink, channel: str, payload: dict[str, Any]) -> None:
    if not sink.closed:
        sink.send(channel, payload)


def _last_user_text(payload: Mapping[str, Any]) -> Optional[str]:
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        return None
    last = messages[-1]
    if not isinstance(last, Mapping) or last.get("role") != "user":
        return None
    content = last.get("content")
    return content if isinstance(content, str) else None


class ChatOrchestrator:
    """Composes the chat client, thread store, sleep guard, and title task."""

    def __init__(
        self,
        client: ChatClient,
        threads: ThreadStore,
        settings: SettingsStore,
        inhibitor: SleepInhibitor | None = None,
    ):
        self._client = client
        self._threads = threads
        self._settings = settings
        self._inhibitor = inhibitor or NullSleepInhibitor()
        self._title_tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_title_tasks(self) -> frozenset[asyncio.Task[None]]:
        return frozenset(self._title_tasks)

    async def _prevent_sleep(self) -> bool:
        settings = await self._settings.get_app_settings()
        return settings.general.prevent_sleep_while_running

    # ------------------------------------------------------------------
    # Title inference
    # ------------------------------------------------------------------

    def _start_title_task(
        self, thread_id: str, model_profile_id: str, first_user_text: str, sink: EventSink
    ) -> asyncio.Task[None]:
        task = asyncio.create_task(
            self._infer_title(thread_id, model_profile_id, first_user_text, sink),
            name=f"title:{thread_id}",
        )
        self._title_tasks.add(task)
        task.add_done_callback(self._title_tasks.discard)
        return task

    async def _infer_title(
        self, thread_id: str, model_profile_id: str, first_user_text: str, sink: EventSink
    ) -> None:
        log_event(
            "title_task_start",
            level=logging.INFO,
            thread_id=thread_id,
            model_profile_id=model_profile_id,
        )
        try:
            title = await generate_title(
                self._client, model_profile_id, first_user_text, thread_id=thread_id
            )
            if not title:
                return
            if await self._threads.update_title(thread_id, title):
                _deliver(sink, TITLE_UPDATED_CHANNEL, {"threadId": thread_id, "title": title})
        except Exception as e:
            log_event(
                "title_task_failed",
                level=logging.WARNING,
                thread_id=thread_id,
                error_type=type(e).__name__,
                error=sanitize_error_message(str(e)),
            )

    async def aclose(self, *, cancel_pending: bool = False) -> None:
        """Wait for (or cancel) outstanding title tasks."""
        tasks = list(self._title_tasks)
        if not tasks:
            return
        if cancel_pending:
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Exchanges
    # ------------------------------------------------------------------

    async def send(self, payload: ChatPayload | dict[str, Any]) -> ChatResult:
        """Non-streaming completion under the sleep guard."""
        async with prevent_idle_sleep(self._inhibitor, enabled=await self._prevent_sleep()):
            return await self._client.complete(payload)

    async def start_stream(
        self,
        payload: ChatPayload | dict[str, Any],
        thread_id: Optional[str],
        sink: EventSink,
    ) -> StreamOutcome:
        """Stream one exchange to *sink*, persisting it when *thread_id* is known.

        The payload's trailing user message is appended before the request is
        made; the reply is appended when the stream completes. On success the
        ``done`` event carries the persisted pair instead of the raw reply.
        """
        async with prevent_idle_sleep(self._inhibitor, enabled=await self._prevent_sleep()):
            user_message: Optional[Message] = None
            user_text = _last_user_text(payload) if isinstance(payload, Mapping) else None
            if thread_id and user_text is not None:
                user_message = await self._threads.append_message(
                    thread_id, {"role": "user", "content": user_text}
                )
                if user_message is not None:
                    model_profile_id = payload.get("model_profile_id")
                    thread = await self._threads.get(thread_id)
                    if should_infer_title(thread, user_text, model_profile_id):
                        self._start_title_task(thread_id, model_profile_id, user_text.strip(), sink)

            terminal: StreamEvent = ErrorEvent(ErrorKind.NETWORK_ERROR, "Stream ended without result")
            assistant_message: Optional[Message] = None
            async for event in self._client.stream_events(payload):
                if isinstance(event, DoneEvent) and thread_id and user_message is not None:
                    terminal = event
                    assistant_message = await self._threads.append_message(
                        thread_id, {"role": event.role, "content": event.content}
                    )
                    _deliver(
                        sink,
                        STREAM_CHANNEL_PREFIX + event.name,
                        {
                            "threadId": thread_id,
                            "userMessage": user_message.to_dict(),
                            "assistantMessage": (
                                assistant_message.to_dict() if assistant_message else None
                            ),
                        },
                    )
                    continue
                if isinstance(event, TERMINAL_EVENTS):
                    terminal = event
                _deliver(sink, STREAM_CHANNEL_PREFIX + event.name, event.to_payload())

            return StreamOutcome(terminal, user_message, assistant_message)

    async def send_message(
        self, thread_id: str, text: str, model_profile_id: str
    ) -> MessageExchange | ChatError:
        """Append *text*, complete against the full thread history, append the reply."""
        async with prevent_idle_sleep(self._inhibitor, enabled=await self._prevent_sleep()):
            user_message = await self._threads.append_message(
                thread_id, {"role": "user", "content": text}
            )
            if user_message is None:
                return ChatError(ErrorKind.THREAD_NOT_FOUND, "Thread not found")
            thread = await self._threads.get(thread_id)
            history = [m.for_request() for m in thread.messages] if thread else []
            result = await self._client.complete(
                {"model_profile_id": model_profile_id, "messages": history}
            )
            if isinstance(result, ChatError):
                return result
            assistant_message = await self._threads.append_message(
                thread_id, {"role": result.role, "content": result.content}
            )
            return MessageExchange(thread_id, user_message, assistant_message)

    async def send_message_stream(
        self, thread_id: str, text: str, model_profile_id: str, sink: EventSink
    ) -> StreamOutcome:
        """Stream a reply to *text* using the thread's full history as context."""
        thread = await self._threads.get(thread_id)
        if thread is None:
            start = StartEvent()
            _deliver(sink, STREAM_CHANNEL_PREFIX + start.name, start.to_payload())
            error = ErrorEvent(ErrorKind.THREAD_NOT_FOUND, "Thread not found")
            _deliver(sink, STREAM_CHANNEL_PREFIX + error.name, error.to_payload())
            return StreamOutcome(error)
        history = [m.for_request() for m in thread.messages]
        history.append({"role": "user", "content": text})
        return await self.start_stream(
            {"model_profile_id": model_profile_id, "messages": history}, thread_id, sink
        )
