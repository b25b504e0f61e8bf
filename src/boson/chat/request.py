"""Outbound completion request construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, TypedDict

from ..domain.profile import EndpointProfile, ModelProfile


class ChatMessagePayload(TypedDict):
    role: str
    content: str


class ChatPayload(TypedDict, total=False):
    """Caller-supplied chat send payload."""

    model_profile_id: str
    messages: list[ChatMessagePayload]
    max_tokens: int


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """Fully-formed POST to ``{base_url}/chat/completions``."""

    url: str
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def stream(self) -> bool:
        return bool(self.body.get("stream"))


def format_messages(messages: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Strip messages down to the role/content pairs the endpoint accepts."""
    return [{"role": m["role"], "content": m["content"]} for m in messages]


def build_completion_request(
    model: ModelProfile,
    endpoint: EndpointProfile,
    messages: Iterable[Mapping[str, Any]],
    *,
    stream: bool,
    api_key: str | None = None,
    max_tokens: int | None = None,
) -> CompletionRequest:
    """Build the request descriptor for one completion call.

    Args:
        model: Resolved model profile (model id and sampling parameters)
        endpoint: Endpoint the model belongs to
        messages: Ordered history; only role and content are sent
        stream: Request a ``text/event-stream`` response
        api_key: Secret for the endpoint; no Authorization header when empty
        max_tokens: Per-request cap overriding the profile's cap

    Returns:
        CompletionRequest with URL, JSON body, and headers
    """
    body: dict[str, Any] = {
        "model": model.model_id,
        "messages": format_messages(messages),
    }
    if model.temperature is not None:
        body["temperature"] = model.temperature
    effective_max_tokens = max_tokens if max_tokens is not None else model.max_tokens
    if effective_max_tokens is not None:
        body["max_tokens"] = effective_max_tokens
    if stream:
        body["stream"] = True

    headers = {"Content-Type": "application/json"}
    if api_key and api_key.strip():
        headers["Authorization"] = f"Bearer {api_key.strip()}"
    if stream:
        headers["Accept"] = "text/event-stream"

    return CompletionRequest(url=endpoint.chat_completions_url, body=body, headers=headers)
