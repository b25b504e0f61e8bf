"""Completion client for OpenAI-compatible endpoints.

``ChatClient.stream_events`` turns one streaming completion into the ordered
event protocol: one ``StartEvent``, then ``StatusEvent("writing")`` once the
body is confirmed, content/reasoning deltas in arrival order,
``ReasoningDoneEvent`` if any reasoning arrived, and finally exactly one
``DoneEvent`` or ``ErrorEvent``. No exception escapes the generator; every
failure becomes the terminal error event.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Union

import httpx

from ..domain.events import (
    DeltaEvent,
    DoneEvent,
    ErrorEvent,
    ReasoningDoneEvent,
    ReasoningEvent,
    StartEvent,
    StatusEvent,
    StreamEvent,
)
from ..errors import ChatRequestError, ErrorKind
from ..ids import new_id
from ..keys.keychain import CredentialStore
from ..logging import (
    estimate_message_chars,
    extract_http_error_context,
    log_event,
    sanitize_error_message,
)
from ..registry import ProfileResolver
from ..timeouts import build_httpx_timeout
from ..validation import validate_chat_send
from .request import ChatPayload, CompletionRequest, build_completion_request
from .sse import SSEDecoder, iter_deltas

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChatReply:
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class ChatError:
    kind: ErrorKind
    message: str


ChatResult = Union[ChatReply, ChatError]


def _status_error(status_code: int) -> Optional[ChatRequestError]:
    """Map statuses that are decided without reading the body."""
    if status_code in (401, 403):
        return ChatRequestError(
            ErrorKind.INVALID_API_KEY, "Invalid or unauthorized API key", status_code=status_code
        )
    if status_code == 404:
        return ChatRequestError(
            ErrorKind.MODEL_NOT_FOUND, "Model or endpoint not found", status_code=status_code
        )
    if status_code == 429:
        return ChatRequestError(
            ErrorKind.RATE_LIMITED, "Rate limited; try again later", status_code=status_code
        )
    return None


def _error_body_message(body: bytes, status_code: int) -> str:
    """Best-effort ``error.message`` from a JSON error body."""
    message = f"Request failed: {status_code}"
    try:
        parsed = json.loads(body)
    except ValueError:
        return message
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
            return error["message"]
    return message


async def _raise_for_status(response: httpx.Response) -> None:
    mapped = _status_error(response.status_code)
    if mapped is not None:
        raise mapped
    if not response.is_success:
        body = await response.aread()
        raise ChatRequestError(
            ErrorKind.NETWORK_ERROR,
            _error_body_message(body, response.status_code),
            status_code=response.status_code,
        )


def _has_body(response: httpx.Response) -> bool:
    if response.status_code == 204:
        return False
    return response.headers.get("content-length", "").strip() != "0"


def _transport_message(error: Exception) -> str:
    return sanitize_error_message(str(error)) or type(error).__name__ or "Network request failed"


class ChatClient:
    """Issues completion calls against the endpoint a model profile points at.

    Args:
        resolver: Model/endpoint profile lookups
        credentials: Secret lookup; None sends no Authorization header
        http_client: Shared ``httpx.AsyncClient``; one is created on demand
            (and closed by ``aclose``) when omitted
    """

    def __init__(
        self,
        resolver: ProfileResolver,
        credentials: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._resolver = resolver
        self._credentials = credentials
        self._http_client = http_client
        self._owns_http_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=build_httpx_timeout())
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _lookup_secret(self, endpoint_id: str) -> Optional[str]:
        if self._credentials is None:
            return None
        # keyring backends block; keep them off the event loop.
        return await asyncio.to_thread(self._credentials.get, endpoint_id)

    async def prepare(self, payload: ChatPayload | dict[str, Any], *, stream: bool) -> CompletionRequest:
        """Validate the payload and resolve it into a request descriptor.

        Raises:
            ChatRequestError: VALIDATION_ERROR or MODEL_NOT_FOUND
        """
        error = validate_chat_send(payload)
        if error:
            raise ChatRequestError(ErrorKind.VALIDATION_ERROR, error)

        try:
            model = await self._resolver.get_model(payload["model_profile_id"])
            if model is None:
                raise ChatRequestError(ErrorKind.MODEL_NOT_FOUND, "Model profile not found")
            endpoint = await self._resolver.get_endpoint(model.endpoint_profile_id)
        except (OSError, ValueError) as e:
            raise ChatRequestError(
                ErrorKind.MODEL_NOT_FOUND, f"Profile registry unavailable: {e}"
            ) from e
        if endpoint is None:
            raise ChatRequestError(ErrorKind.MODEL_NOT_FOUND, "Endpoint not found")

        api_key = await self._lookup_secret(endpoint.id)
        return build_completion_request(
            model,
            endpoint,
            payload["messages"],
            stream=stream,
            api_key=api_key,
            max_tokens=payload.get("max_tokens"),
        )

    def _log_request(self, request_id: str, payload: Any, request: CompletionRequest) -> None:
        log_event(
            "chat_request",
            level=logging.INFO,
            request_id=request_id,
            model_profile_id=payload.get("model_profile_id"),
            model=request.body.get("model"),
            stream=request.stream,
            message_count=len(request.body["messages"]),
            input_chars=estimate_message_chars(request.body["messages"]),
            has_api_key="Authorization" in request.headers,
        )

    def _log_error(
        self,
        request_id: str,
        payload: Any,
        error: ChatRequestError,
        started: float,
        cause: Exception | None = None,
    ) -> None:
        cause = cause if cause is not None else error.__cause__
        context = extract_http_error_context(cause) if isinstance(cause, Exception) else {}
        context.pop("http_status", None)
        log_event(
            "chat_error",
            level=logging.WARNING,
            request_id=request_id,
            model_profile_id=payload.get("model_profile_id") if isinstance(payload, dict) else None,
            error_kind=error.kind.value,
            error=sanitize_error_message(error.message),
            http_status=error.status_code,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            **context,
        )

    async def complete(self, payload: ChatPayload | dict[str, Any]) -> ChatResult:
        """Run a non-streaming completion; failures come back as ``ChatError``."""
        request_id = new_id()
        started = time.perf_counter()
        try:
            request = await self.prepare(payload, stream=False)
            self._log_request(request_id, payload, request)
            try:
                response = await self._client().post(
                    request.url, headers=request.headers, json=request.body
                )
            except httpx.HTTPError as e:
                raise ChatRequestError(ErrorKind.NETWORK_ERROR, _transport_message(e)) from e
            await _raise_for_status(response)
            try:
                data = response.json()
            except ValueError as e:
                raise ChatRequestError(
                    ErrorKind.NETWORK_ERROR,
                    "Invalid response body",
                    status_code=response.status_code,
                ) from e
        except ChatRequestError as e:
            self._log_error(request_id, payload, e, started)
            return ChatError(e.kind, e.message)

        content = ""
        choices = data.get("choices") if isinstance(data, dict) else None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                content = message["content"]

        log_event(
            "chat_response",
            level=logging.INFO,
            request_id=request_id,
            model_profile_id=payload.get("model_profile_id"),
            http_status=response.status_code,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            output_chars=len(content),
        )
        return ChatReply(role="assistant", content=content)

    async def stream_events(self, payload: ChatPayload | dict[str, Any]) -> AsyncIterator[StreamEvent]:
        """Stream one completion as lifecycle events (see module docstring)."""
        request_id = new_id()
        started = time.perf_counter()
        content_parts: list[str] = []
        reasoning_parts: list[str] = []
        decoder = SSEDecoder(request_id=request_id)

        yield StartEvent(status="thinking")

        try:
            request = await self.prepare(payload, stream=True)
            self._log_request(request_id, payload, request)
            async with self._client().stream(
                "POST", request.url, headers=request.headers, json=request.body
            ) as response:
                await _raise_for_status(response)
                if not _has_body(response):
                    raise ChatRequestError(
                        ErrorKind.NETWORK_ERROR,
                        "No response body",
                        status_code=response.status_code,
                    )
                log_event(
                    "stream_start",
                    level=logging.INFO,
                    request_id=request_id,
                    model=request.body.get("model"),
                )
                yield StatusEvent(phase="writing")

                async for delta in iter_deltas(response.aiter_bytes(), decoder):
                    if delta.kind == "content":
                        content_parts.append(delta.text)
                        yield DeltaEvent(chunk=delta.text)
                    else:
                        reasoning_parts.append(delta.text)
                        yield ReasoningEvent(chunk=delta.text)
        except ChatRequestError as e:
            self._log_error(request_id, payload, e, started)
            yield ErrorEvent(kind=e.kind, message=e.message)
            return
        except httpx.HTTPError as e:
            error = ChatRequestError(ErrorKind.NETWORK_ERROR, _transport_message(e))
            self._log_error(request_id, payload, error, started, e)
            yield ErrorEvent(kind=error.kind, message=error.message)
            return
        except Exception as e:
            logger.error("Unexpected streaming failure: %s", sanitize_error_message(str(e)), exc_info=True)
            error = ChatRequestError(ErrorKind.NETWORK_ERROR, _transport_message(e))
            self._log_error(request_id, payload, error, started)
            yield ErrorEvent(kind=error.kind, message=error.message)
            return

        content = "".join(content_parts)
        reasoning = "".join(reasoning_parts)
        log_event(
            "stream_done",
            level=logging.INFO,
            request_id=request_id,
            model_profile_id=payload.get("model_profile_id"),
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            delta_count=len(content_parts),
            output_chars=len(content),
            reasoning_chars=len(reasoning),
            skipped_records=decoder.skipped_records,
        )
        if reasoning:
            yield ReasoningDoneEvent()
        yield DoneEvent(role="assistant", content=content)
