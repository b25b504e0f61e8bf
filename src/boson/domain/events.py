"""Lifecycle events emitted by a streaming completion.

A call yields exactly one ``StartEvent`` and ends with exactly one terminal
event (``DoneEvent`` or ``ErrorEvent``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from ..errors import ErrorKind


@dataclass(frozen=True, slots=True)
class StartEvent:
    name: ClassVar[str] = "start"
    status: str = "thinking"

    def to_payload(self) -> dict[str, Any]:
        return {"status": self.status}


@dataclass(frozen=True, slots=True)
class StatusEvent:
    name: ClassVar[str] = "status"
    phase: str = "writing"

    def to_payload(self) -> dict[str, Any]:
        return {"status": self.phase}


@dataclass(frozen=True, slots=True)
class ToolStartEvent:
    name: ClassVar[str] = "tool_start"
    tool_name: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"toolName": self.tool_name}


@dataclass(frozen=True, slots=True)
class ToolEndEvent:
    name: ClassVar[str] = "tool_end"

    def to_payload(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True, slots=True)
class DeltaEvent:
    name: ClassVar[str] = "delta"
    chunk: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"chunk": self.chunk}


@dataclass(frozen=True, slots=True)
class ReasoningEvent:
    name: ClassVar[str] = "reasoning"
    chunk: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"chunk": self.chunk}


@dataclass(frozen=True, slots=True)
class ReasoningDoneEvent:
    name: ClassVar[str] = "reasoning_done"

    def to_payload(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True, slots=True)
class DoneEvent:
    name: ClassVar[str] = "done"
    role: str = "assistant"
    content: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    name: ClassVar[str] = "error"
    kind: ErrorKind = ErrorKind.NETWORK_ERROR
    message: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.kind.value, "message": self.message}


StreamEvent = Union[
    StartEvent,
    StatusEvent,
    ToolStartEvent,
    ToolEndEvent,
    DeltaEvent,
    ReasoningEvent,
    ReasoningDoneEvent,
    DoneEvent,
    ErrorEvent,
]

TERMINAL_EVENTS = (DoneEvent, ErrorEvent)


def is_terminal(event: StreamEvent) -> bool:
    """Return True for the event that closes a stream."""
    return isinstance(event, TERMINAL_EVENTS)
