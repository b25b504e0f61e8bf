"""Completion pipeline: request building, SSE decoding, and the event protocol."""

from .client import ChatClient, ChatError, ChatReply, ChatResult
from .request import ChatPayload, CompletionRequest, build_completion_request
from .sse import SSEDecoder, StreamDelta, extract_deltas, iter_deltas
from .titles import TITLE_SYSTEM_PROMPT, generate_title, normalize_title, should_infer_title

__all__ = [
    "TITLE_SYSTEM_PROMPT",
    "ChatClient",
    "ChatError",
    "ChatPayload",
    "ChatReply",
    "ChatResult",
    "CompletionRequest",
    "SSEDecoder",
    "StreamDelta",
    "build_completion_request",
    "extract_deltas",
    "generate_title",
    "iter_deltas",
    "normalize_title",
    "should_infer_title",
]
