"""Preferred key ordering for structured log events."""

from __future__ import annotations

LOG_PATH_FIELDS = frozenset(
    {
        "data_dir",
        "log_file",
        "logs_dir",
        "settings_file",
        "threads_file",
    }
)

DEFAULT_EVENT_KEY_ORDER: tuple[str, ...] = (
    "ts_utc",
    "level",
    "logger",
    "ts",
    "message",
)

_REQUEST_KEYS = (
    "ts_utc",
    "level",
    "logger",
    "ts",
    "request_id",
    "endpoint_id",
    "model_profile_id",
    "model",
    "stream",
)

EVENT_KEY_ORDER: dict[str, tuple[str, ...]] = {
    "app_start": ("ts_utc", "level", "logger", "ts", "data_dir", "log_file"),
    "app_stop": ("ts_utc", "level", "logger", "ts", "reason", "uptime_ms"),
    "chat_request": _REQUEST_KEYS + ("message_count", "input_chars", "has_api_key"),
    "chat_response": _REQUEST_KEYS + ("http_status", "latency_ms", "output_chars"),
    "chat_error": _REQUEST_KEYS
    + ("error_kind", "error", "http_status", "latency_ms"),
    "stream_start": _REQUEST_KEYS,
    "stream_done": _REQUEST_KEYS
    + ("latency_ms", "delta_count", "output_chars", "reasoning_chars"),
    "stream_record_skipped": ("ts_utc", "level", "logger", "ts", "request_id", "reason"),
    "thread_created": ("ts_utc", "level", "logger", "ts", "thread_id", "project_id"),
    "thread_message_appended": (
        "ts_utc",
        "level",
        "logger",
        "ts",
        "thread_id",
        "message_id",
        "role",
        "content_chars",
    ),
    "thread_title_updated": ("ts_utc", "level", "logger", "ts", "thread_id", "title"),
    "title_task_start": ("ts_utc", "level", "logger", "ts", "thread_id", "model_profile_id"),
    "title_task_done": ("ts_utc", "level", "logger", "ts", "thread_id", "title", "latency_ms"),
    "title_task_failed": (
        "ts_utc",
        "level",
        "logger",
        "ts",
        "thread_id",
        "error_type",
        "error",
    ),
    "models_fetch": ("ts_utc", "level", "logger", "ts", "endpoint_id", "http_status", "model_count"),
    "models_fetch_retry": (
        "ts_utc",
        "level",
        "logger",
        "ts",
        "endpoint_id",
        "attempt",
        "sleep_sec",
        "error_type",
        "error",
    ),
}
