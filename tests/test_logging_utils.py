"""Tests for structured logging helpers."""

import json
import logging
from types import SimpleNamespace

import httpx

from boson.logging import (
    StructuredTextFormatter,
    before_sleep_log_event,
    build_run_log_path,
    extract_http_error_context,
    log_event,
    sanitize_error_message,
)


def _record(name, msg, args=()):
    return logging.LogRecord(
        name=name, level=logging.INFO, pathname=__file__, lineno=1, msg=msg, args=args, exc_info=None
    )


def test_structured_formatter_extracts_httpx_request_fields():
    formatter = StructuredTextFormatter()
    record = _record(
        "httpx",
        'HTTP Request: %s %s "%s %d %s"',
        ("POST", "https://api.example.test/v1/chat/completions", "HTTP/1.1", 200, "OK"),
    )

    result = formatter.format(record)

    assert "=== httpx_request ===" in result
    assert "http_method: POST" in result
    assert "http_url: https://api.example.test/v1/chat/completions" in result
    assert "http_status: 200" in result
    assert "message: HTTP Request:" not in result


def test_structured_formatter_renders_event_payload_in_preferred_order():
    formatter = StructuredTextFormatter()
    payload = {"ts": "t", "event": "chat_error", "error": "boom", "error_kind": "NETWORK_ERROR", "request_id": "r1"}

    lines = formatter.format(_record("root", json.dumps(payload))).splitlines()

    assert lines[0] == "=== chat_error ==="
    keys = [line.split(":", 1)[0] for line in lines[1:]]
    assert keys.index("request_id") < keys.index("error_kind") < keys.index("error")


def test_structured_formatter_separates_entries_with_blank_line():
    formatter = StructuredTextFormatter()

    first = formatter.format(_record("boson", "one"))
    second = formatter.format(_record("boson", "two"))

    assert not first.startswith("\n")
    assert second.startswith("\n=== boson ===")


def test_log_event_emits_json(caplog):
    caplog.set_level(logging.INFO)

    log_event("thread_created", thread_id="t1", tags=("x",), threads_file="~/x.json")

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "thread_created"
    assert payload["thread_id"] == "t1"
    assert payload["tags"] == ["x"]
    assert not payload["threads_file"].startswith("~")


def test_before_sleep_callback_logs_retry(caplog):
    caplog.set_level(logging.WARNING)
    callback = before_sleep_log_event(event="models_fetch_retry", endpoint_id="ep")
    outcome = SimpleNamespace(failed=True, exception=lambda: httpx.ConnectError("refused"))
    retry_state = SimpleNamespace(
        outcome=outcome, next_action=SimpleNamespace(sleep=0.5), attempt_number=1, fn=None
    )

    callback(retry_state)

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "models_fetch_retry"
    assert payload["endpoint_id"] == "ep"
    assert payload["attempt"] == 1
    assert payload["error_type"] == "ConnectError"


def test_build_run_log_path_is_unique(tmp_path):
    first = build_run_log_path(str(tmp_path))
    open(first, "w").close()

    second = build_run_log_path(str(tmp_path))

    assert first != second
    assert first.endswith(".log") and second.endswith(".log")


def test_extract_http_error_context_from_status_error():
    request = httpx.Request("GET", "https://api.example.test/v1/models")
    response = httpx.Response(503, request=request)
    error = httpx.HTTPStatusError("unavailable", request=request, response=response)

    context = extract_http_error_context(error)

    assert context["http_method"] == "GET"
    assert context["http_status"] == 503


def test_extract_http_error_context_without_request():
    assert extract_http_error_context(httpx.ConnectError("refused")) == {}


def test_sanitize_error_message_redacts_secrets():
    message = (
        "key sk-abcdefghijklmnop failed; Bearer abcdefghijklmnopqrstuvwxyz "
        "token eyJhbGciOi.eyJzdWIiOi.c2lnbmF0dXJl"
    )

    sanitized = sanitize_error_message(message)

    assert "sk-abcdefghijklmnop" not in sanitized
    assert "[REDACTED_API_KEY]" in sanitized
    assert "Bearer [REDACTED_TOKEN]" in sanitized
    assert "[REDACTED_JWT]" in sanitized
