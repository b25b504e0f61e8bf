"""Caller-input validation for chat sends and registry edits.

Each validator returns an error message string, or ``None`` when the input
is acceptable.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from .domain.chat import MESSAGE_ROLES
from .domain.profile import ENDPOINT_PRESETS, MODEL_PURPOSES


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return bool(parsed.scheme) and bool(parsed.netloc)


def validate_chat_send(payload: Any) -> Optional[str]:
    """Validate a chat send payload (``model_profile_id`` + ``messages``)."""
    if not isinstance(payload, Mapping):
        return "Invalid payload"
    if not _is_non_empty_string(payload.get("model_profile_id")):
        return "model_profile_id is required"
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        return "messages must be a non-empty list"
    for index, message in enumerate(messages):
        if (
            not isinstance(message, Mapping)
            or not isinstance(message.get("role"), str)
            or not isinstance(message.get("content"), str)
        ):
            return f"messages[{index}] must have role and content"
        if message["role"] not in MESSAGE_ROLES:
            return f"messages[{index}].role invalid"
    max_tokens = payload.get("max_tokens")
    if max_tokens is not None and (
        isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens < 1
    ):
        return "max_tokens must be a positive integer"
    return None


def validate_create_endpoint(name: Any, preset: Any, base_url: Any) -> Optional[str]:
    if not _is_non_empty_string(name):
        return "name is required"
    if preset not in ENDPOINT_PRESETS:
        return "preset must be one of: " + ", ".join(ENDPOINT_PRESETS)
    if base_url is not None and not isinstance(base_url, str):
        return "base_url must be a string"
    if base_url and base_url.strip() and not _is_valid_url(base_url):
        return "base_url must be a valid URL"
    return None


def validate_update_endpoint(patch: Mapping[str, Any]) -> Optional[str]:
    if "name" in patch and not _is_non_empty_string(patch["name"]):
        return "name must be non-empty"
    if "preset" in patch and patch["preset"] not in ENDPOINT_PRESETS:
        return "invalid preset"
    if "base_url" in patch:
        base_url = patch["base_url"]
        if not _is_non_empty_string(base_url):
            return "base_url must be non-empty"
        if not _is_valid_url(base_url):
            return "base_url must be a valid URL"
    return None


def _validate_sampling(patch: Mapping[str, Any]) -> Optional[str]:
    if "temperature" in patch:
        temperature = patch["temperature"]
        if temperature is not None and (
            isinstance(temperature, bool)
            or not isinstance(temperature, (int, float))
            or not 0 <= temperature <= 2
        ):
            return "temperature must be None or 0-2"
    if "max_tokens" in patch:
        max_tokens = patch["max_tokens"]
        if max_tokens is not None and (
            isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens < 1
        ):
            return "max_tokens must be None or positive"
    return None


def validate_add_model(
    model_id: Any,
    endpoint_profile_id: Any,
    *,
    label: Any = None,
    purpose: Any = None,
    temperature: Any = None,
    max_tokens: Any = None,
) -> Optional[str]:
    if not _is_non_empty_string(model_id):
        return "model_id is required"
    if not _is_non_empty_string(endpoint_profile_id):
        return "endpoint_profile_id is required"
    if label is not None and not isinstance(label, str):
        return "label must be string"
    if purpose is not None and purpose not in MODEL_PURPOSES:
        return "purpose must be one of: " + ", ".join(MODEL_PURPOSES)
    return _validate_sampling({"temperature": temperature, "max_tokens": max_tokens})


def validate_update_model(patch: Mapping[str, Any]) -> Optional[str]:
    if "label" in patch and not isinstance(patch["label"], str):
        return "label must be string"
    if "model_id" in patch and not _is_non_empty_string(patch["model_id"]):
        return "model_id must be non-empty"
    if "purpose" in patch and patch["purpose"] not in MODEL_PURPOSES:
        return "purpose must be one of: " + ", ".join(MODEL_PURPOSES)
    return _validate_sampling(patch)
