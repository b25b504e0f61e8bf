"""Typed domain models shared across storage, registry, and chat layers."""

from .chat import MESSAGE_ROLES, Message, Thread
from .events import (
    DeltaEvent,
    DoneEvent,
    ErrorEvent,
    ReasoningDoneEvent,
    ReasoningEvent,
    StartEvent,
    StatusEvent,
    TERMINAL_EVENTS,
    StreamEvent,
    ToolEndEvent,
    ToolStartEvent,
    is_terminal,
)
from .profile import ENDPOINT_PRESETS, MODEL_PURPOSES, EndpointProfile, ModelProfile, ModelSelection

__all__ = [
    "ENDPOINT_PRESETS",
    "MESSAGE_ROLES",
    "MODEL_PURPOSES",
    "TERMINAL_EVENTS",
    "DeltaEvent",
    "DoneEvent",
    "EndpointProfile",
    "ErrorEvent",
    "Message",
    "ModelProfile",
    "ModelSelection",
    "ReasoningDoneEvent",
    "ReasoningEvent",
    "StartEvent",
    "StatusEvent",
    "StreamEvent",
    "Thread",
    "ToolEndEvent",
    "ToolStartEvent",
    "is_terminal",
]
