"""Error taxonomy shared by the chat pipeline, registry, and thread store."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Terminal error categories reported to callers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    THREAD_NOT_FOUND = "THREAD_NOT_FOUND"

    def __str__(self) -> str:
        return self.value


class ChatRequestError(Exception):
    """Failure inside the completion pipeline, carrying its terminal kind.

    Raised internally and translated into an error event or result at the
    client boundary; callers of ``ChatClient`` never see it.
    """

    def __init__(self, kind: ErrorKind, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code


class ThreadStoreError(Exception):
    """Thread document could not be read or written."""


class RegistryError(ValueError):
    """Invalid registry input or unknown endpoint/model id."""


class EndpointRequestError(Exception):
    """Model listing against an endpoint failed."""
