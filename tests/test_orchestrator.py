"""Tests for ChatOrchestrator exchanges and title inference."""

import asyncio
from unittest.mock import patch

import httpx
import pytest

from boson.chat.client import ChatError
from boson.constants import DEFAULT_THREAD_TITLE
from boson.errors import ErrorKind
from boson.orchestrator import (
    STREAM_CHANNEL_PREFIX,
    TITLE_UPDATED_CHANNEL,
    ChatOrchestrator,
    MessageExchange,
)
from boson.threads import ThreadStore
from test_helpers import (
    FakeInhibitor,
    RecordingSink,
    completion_response,
    make_chat_client,
    make_registry,
    request_json,
    sse_body,
    streaming_response,
)


class FakeEndpoint:
    """Routes streaming and title requests to separate canned responses."""

    def __init__(self, stream_response=None, title_response=None):
        self.stream_response = stream_response
        self.title_response = title_response
        self.stream_requests = []
        self.title_requests = []

    def __call__(self, request):
        body = request_json(request)
        if body.get("stream"):
            self.stream_requests.append(body)
            return self.stream_response()
        self.title_requests.append(body)
        return self.title_response()


async def _setup(tmp_path, endpoint, inhibitor=None):
    settings, registry, _, model = await make_registry(tmp_path)
    client = make_chat_client(registry, endpoint)
    threads = ThreadStore(tmp_path)
    orchestrator = ChatOrchestrator(client, threads, settings, inhibitor or FakeInhibitor())
    return orchestrator, threads, settings, model


def _stream_payload(model, text):
    return {"model_profile_id": model.id, "messages": [{"role": "user", "content": text}]}


def _three_chunk_reply():
    body = sse_body("Sure", ", I'll", " look")
    first = body.index(b"\n\n") + 2
    second = body.index(b"\n\n", first) + 2
    return streaming_response([body[:first], body[first:second], body[second:]])


@pytest.mark.asyncio
async def test_streamed_exchange_persists_both_messages_and_infers_title(tmp_path):
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("Parser bug fix"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj")
    sink = RecordingSink()

    outcome = await orchestrator.start_stream(
        _stream_payload(model, "fix the bug in parser.js"), thread.id, sink
    )
    await orchestrator.aclose()

    assert outcome.ok
    assert outcome.terminal.content == "Sure, I'll look"
    stored = await threads.get(thread.id)
    assert [(m.role, m.content) for m in stored.messages] == [
        ("user", "fix the bug in parser.js"),
        ("assistant", "Sure, I'll look"),
    ]
    assert stored.title == "Parser bug fix"

    stream_channels = [c for c in sink.channels if c.startswith(STREAM_CHANNEL_PREFIX)]
    assert stream_channels == [
        STREAM_CHANNEL_PREFIX + name
        for name in ("start", "status", "delta", "delta", "delta", "done")
    ]
    done = dict(sink.events)[STREAM_CHANNEL_PREFIX + "done"]
    assert done["threadId"] == thread.id
    assert done["userMessage"]["content"] == "fix the bug in parser.js"
    assert done["assistantMessage"]["content"] == "Sure, I'll look"
    assert (TITLE_UPDATED_CHANNEL, {"threadId": thread.id, "title": "Parser bug fix"}) in sink.events
    assert endpoint.title_requests[0]["messages"][1]["content"] == "fix the bug in parser.js"


@pytest.mark.asyncio
async def test_model_not_found_keeps_only_user_message(tmp_path):
    endpoint = FakeEndpoint(lambda: httpx.Response(404), lambda: httpx.Response(404))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj")
    sink = RecordingSink()

    outcome = await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, sink)
    await orchestrator.aclose()

    assert not outcome.ok
    assert outcome.terminal.kind is ErrorKind.MODEL_NOT_FOUND
    assert outcome.assistant_message is None
    stored = await threads.get(thread.id)
    assert [m.role for m in stored.messages] == ["user"]
    assert stored.title == DEFAULT_THREAD_TITLE
    assert sink.channels[-1] == STREAM_CHANNEL_PREFIX + "error"
    assert not any(c == TITLE_UPDATED_CHANNEL for c in sink.channels)


@pytest.mark.asyncio
async def test_no_title_task_for_named_thread(tmp_path):
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("Unused"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj", "Already named")

    await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, RecordingSink())

    assert orchestrator.pending_title_tasks == frozenset()
    await orchestrator.aclose()
    assert endpoint.title_requests == []
    assert (await threads.get(thread.id)).title == "Already named"


@pytest.mark.asyncio
async def test_unknown_thread_skips_persistence_and_title(tmp_path):
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("Unused"))
    orchestrator, _, _, model = await _setup(tmp_path, endpoint)
    sink = RecordingSink()

    outcome = await orchestrator.start_stream(_stream_payload(model, "hello"), "missing", sink)
    await orchestrator.aclose()

    assert outcome.ok
    assert outcome.user_message is None
    assert endpoint.title_requests == []
    done = dict(sink.events)[STREAM_CHANNEL_PREFIX + "done"]
    assert done == {"role": "assistant", "content": "Sure, I'll look"}


@pytest.mark.asyncio
async def test_title_failure_is_swallowed(tmp_path):
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: httpx.Response(500))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj")
    sink = RecordingSink()

    outcome = await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, sink)
    await orchestrator.aclose()

    assert outcome.ok
    assert (await threads.get(thread.id)).title == DEFAULT_THREAD_TITLE
    assert TITLE_UPDATED_CHANNEL not in sink.channels


@pytest.mark.asyncio
async def test_closed_sink_still_persists_reply(tmp_path):
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("Quiet title"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj")
    sink = RecordingSink(closed=True)

    outcome = await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, sink)
    await orchestrator.aclose()

    assert outcome.ok
    assert sink.events == []
    stored = await threads.get(thread.id)
    assert [m.content for m in stored.messages] == ["hello", "Sure, I'll look"]
    assert stored.title == "Quiet title"


@pytest.mark.asyncio
async def test_guard_held_once_per_exchange(tmp_path):
    inhibitor = FakeInhibitor()
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("T"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint, inhibitor)
    thread = await threads.create("proj", "Named")

    await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, RecordingSink())

    assert len(inhibitor.acquired) == 1
    assert inhibitor.released == ["token-1"]


@pytest.mark.asyncio
async def test_guard_released_after_error(tmp_path):
    inhibitor = FakeInhibitor()
    endpoint = FakeEndpoint(lambda: httpx.Response(429), lambda: httpx.Response(429))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint, inhibitor)
    thread = await threads.create("proj", "Named")

    outcome = await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, RecordingSink())

    assert outcome.terminal.kind is ErrorKind.RATE_LIMITED
    assert inhibitor.released == ["token-1"]


@pytest.mark.asyncio
async def test_guard_disabled_by_setting(tmp_path):
    inhibitor = FakeInhibitor()
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("T"))
    orchestrator, threads, settings, model = await _setup(tmp_path, endpoint, inhibitor)
    await settings.set_general(prevent_sleep_while_running=False)
    thread = await threads.create("proj", "Named")

    await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, RecordingSink())

    assert inhibitor.acquired == []


@pytest.mark.asyncio
async def test_send_message_uses_thread_history(tmp_path):
    endpoint = FakeEndpoint(title_response=lambda: completion_response("Second answer"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj", "Named")
    await threads.append_message(thread.id, {"role": "user", "content": "first"})
    await threads.append_message(thread.id, {"role": "assistant", "content": "first answer"})

    result = await orchestrator.send_message(thread.id, "second", model.id)

    assert isinstance(result, MessageExchange)
    assert result.assistant_message.content == "Second answer"
    sent = endpoint.title_requests[0]["messages"]
    assert [m["content"] for m in sent] == ["first", "first answer", "second"]
    stored = await threads.get(thread.id)
    assert [m.content for m in stored.messages][-2:] == ["second", "Second answer"]


@pytest.mark.asyncio
async def test_send_message_unknown_thread(tmp_path):
    endpoint = FakeEndpoint()
    orchestrator, _, _, model = await _setup(tmp_path, endpoint)

    result = await orchestrator.send_message("missing", "hi", model.id)

    assert result == ChatError(ErrorKind.THREAD_NOT_FOUND, "Thread not found")


@pytest.mark.asyncio
async def test_send_message_stream_appends_to_history(tmp_path):
    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("T"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj", "Named")
    await threads.append_message(thread.id, {"role": "user", "content": "earlier"})

    outcome = await orchestrator.send_message_stream(thread.id, "now", model.id, RecordingSink())

    assert outcome.ok
    assert [m["content"] for m in endpoint.stream_requests[0]["messages"]] == ["earlier", "now"]
    stored = await threads.get(thread.id)
    assert [m.content for m in stored.messages] == ["earlier", "now", "Sure, I'll look"]


@pytest.mark.asyncio
async def test_send_message_stream_unknown_thread(tmp_path):
    endpoint = FakeEndpoint()
    orchestrator, _, _, model = await _setup(tmp_path, endpoint)
    sink = RecordingSink()

    outcome = await orchestrator.send_message_stream("missing", "hi", model.id, sink)

    assert outcome.terminal.kind is ErrorKind.THREAD_NOT_FOUND
    assert sink.events == [
        (STREAM_CHANNEL_PREFIX + "start", {"status": "thinking"}),
        (STREAM_CHANNEL_PREFIX + "error", {"error": "THREAD_NOT_FOUND", "message": "Thread not found"}),
    ]


@pytest.mark.asyncio
async def test_send_is_guarded_completion(tmp_path):
    inhibitor = FakeInhibitor()
    endpoint = FakeEndpoint(title_response=lambda: completion_response("pong"))
    orchestrator, _, _, model = await _setup(tmp_path, endpoint, inhibitor)

    result = await orchestrator.send(_stream_payload(model, "ping"))

    assert result.content == "pong"
    assert inhibitor.released == ["token-1"]


@pytest.mark.asyncio
async def test_aclose_can_cancel_pending_title_tasks(tmp_path):
    release = asyncio.Event()

    async def slow_title(*args, **kwargs):
        await release.wait()
        return "Never"

    endpoint = FakeEndpoint(_three_chunk_reply, lambda: completion_response("unused"))
    orchestrator, threads, _, model = await _setup(tmp_path, endpoint)
    thread = await threads.create("proj")

    with patch("boson.orchestrator.generate_title", slow_title):
        await orchestrator.start_stream(_stream_payload(model, "hello"), thread.id, RecordingSink())
        assert len(orchestrator.pending_title_tasks) == 1
        await orchestrator.aclose(cancel_pending=True)

    assert orchestrator.pending_title_tasks == frozenset()
    assert (await threads.get(thread.id)).title == DEFAULT_THREAD_TITLE
