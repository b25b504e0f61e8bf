"""Thread title inference from the first user message."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Optional

from ..constants import INFERRED_TITLE_MAX_CHARS, TITLE_SOURCE_MAX_CHARS
from ..domain.chat import Thread
from ..logging import log_event, sanitize_error_message
from .client import ChatError

if TYPE_CHECKING:
    from .client import ChatClient

TITLE_SYSTEM_PROMPT = (
    "You are a titling assistant. Reply with only a short phrase (3-6 words) that "
    "summarizes the following user message. No quotes, no explanation, no punctuation "
    "at the end."
)


def should_infer_title(
    thread: Optional[Thread], first_user_text: str, model_profile_id: Optional[str]
) -> bool:
    """Return True for a placeholder-titled thread with text and a model to use."""
    if thread is None or not thread.has_default_title:
        return False
    return bool(first_user_text.strip()) and bool(model_profile_id)


def normalize_title(raw: Optional[str]) -> Optional[str]:
    """Collapse whitespace and clip to the inferred-title length."""
    if raw is None:
        return None
    title = " ".join(str(raw).split())[:INFERRED_TITLE_MAX_CHARS].strip()
    return title or None


async def generate_title(
    client: ChatClient,
    model_profile_id: str,
    first_message_text: str,
    *,
    thread_id: Optional[str] = None,
) -> Optional[str]:
    """Ask the model for a short title; returns None on any failure."""
    text = first_message_text.strip()[:TITLE_SOURCE_MAX_CHARS] if isinstance(first_message_text, str) else ""
    if not text:
        return None

    started = time.perf_counter()
    result = await client.complete(
        {
            "model_profile_id": model_profile_id,
            "messages": [
                {"role": "system", "content": TITLE_SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
        }
    )
    if isinstance(result, ChatError):
        log_event(
            "title_task_failed",
            level=logging.WARNING,
            thread_id=thread_id,
            error_type=result.kind.value,
            error=sanitize_error_message(result.message),
        )
        return None

    title = normalize_title(result.content)
    if title is None:
        log_event(
            "title_task_failed",
            level=logging.WARNING,
            thread_id=thread_id,
            error_type="EmptyTitle",
            error="Empty content in title response",
        )
        return None

    log_event(
        "title_task_done",
        level=logging.INFO,
        thread_id=thread_id,
        title=title,
        latency_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return title
