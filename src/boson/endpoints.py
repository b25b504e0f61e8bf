"""Endpoint utilities: model listing and connection checks.

Both calls GET ``{baseUrl}/models`` and send an Authorization header only
when a secret is stored, so local and optional-auth servers work without one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .domain.profile import EndpointProfile
from .errors import EndpointRequestError
from .keys.keychain import CredentialStore
from .logging import before_sleep_log_event, log_event, sanitize_error_message
from .registry import ProfileResolver
from .timeouts import (
    ENDPOINT_READ_TIMEOUT_SEC,
    RETRY_BACKOFF_INITIAL_SEC,
    RETRY_BACKOFF_MAX_SEC,
    STANDARD_RETRY_ATTEMPTS,
    build_httpx_timeout,
)


@dataclass(frozen=True, slots=True)
class ModelListing:
    id: str
    label: str


@dataclass(frozen=True, slots=True)
class ConnectionCheck:
    ok: bool
    message: Optional[str] = None


def normalize_model_list(payload: Any) -> list[ModelListing]:
    """Flatten the shapes servers use for ``/models`` into listings.

    Accepts a bare array, ``{"data": [...]}`` or ``{"models": [...]}``;
    items may be plain strings or objects carrying ``id`` or ``model``.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict) and isinstance(payload.get("data"), list):
        items = payload["data"]
    elif isinstance(payload, dict) and isinstance(payload.get("models"), list):
        items = payload["models"]
    else:
        return []

    listings: list[ModelListing] = []
    for item in items:
        if isinstance(item, str):
            model_id = item
        elif isinstance(item, dict):
            model_id = item.get("id") or item.get("model")
        else:
            continue
        if isinstance(model_id, str) and model_id:
            listings.append(ModelListing(id=model_id, label=model_id))
    return listings


async def _auth_headers(credentials: CredentialStore | None, endpoint_id: str) -> dict[str, str]:
    if credentials is None:
        return {}
    secret = await asyncio.to_thread(credentials.get, endpoint_id)
    if secret and secret.strip():
        return {"Authorization": f"Bearer {secret.strip()}"}
    return {}


def _endpoint_client(http_client: httpx.AsyncClient | None) -> httpx.AsyncClient:
    return http_client or httpx.AsyncClient(timeout=build_httpx_timeout(ENDPOINT_READ_TIMEOUT_SEC))


async def _get_models_response(
    client: httpx.AsyncClient, endpoint: EndpointProfile, headers: dict[str, str]
) -> httpx.Response:
    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(
            multiplier=RETRY_BACKOFF_INITIAL_SEC,
            min=RETRY_BACKOFF_INITIAL_SEC,
            max=RETRY_BACKOFF_MAX_SEC,
        ),
        stop=stop_after_attempt(STANDARD_RETRY_ATTEMPTS),
        reraise=True,
        before_sleep=before_sleep_log_event(
            event="models_fetch_retry",
            endpoint_id=endpoint.id,
            level=logging.WARNING,
        ),
    )
    async def _get() -> httpx.Response:
        return await client.get(endpoint.models_url, headers=headers)

    return await _get()


async def fetch_models(
    registry: ProfileResolver,
    credentials: CredentialStore | None,
    endpoint_id: str,
    http_client: httpx.AsyncClient | None = None,
) -> list[ModelListing]:
    """List the models an endpoint serves.

    Transient transport errors are retried; the last one is reported.

    Raises:
        EndpointRequestError: Unknown endpoint, transport failure, or non-2xx
    """
    endpoint = await registry.get_endpoint(endpoint_id)
    if endpoint is None:
        raise EndpointRequestError("Endpoint not found")
    headers = await _auth_headers(credentials, endpoint_id)

    client = _endpoint_client(http_client)
    try:
        try:
            response = await _get_models_response(client, endpoint, headers)
        except httpx.HTTPError as e:
            raise EndpointRequestError(
                sanitize_error_message(str(e)) or "Network request failed"
            ) from e
    finally:
        if http_client is None:
            await client.aclose()

    if not response.is_success:
        log_event(
            "models_fetch",
            level=logging.WARNING,
            endpoint_id=endpoint_id,
            http_status=response.status_code,
        )
        raise EndpointRequestError(f"Failed to fetch models: {response.status_code}")
    try:
        payload = response.json()
    except ValueError:
        payload = None

    listings = normalize_model_list(payload)
    log_event(
        "models_fetch",
        level=logging.INFO,
        endpoint_id=endpoint_id,
        http_status=response.status_code,
        model_count=len(listings),
    )
    return listings


async def test_connection(
    registry: ProfileResolver,
    credentials: CredentialStore | None,
    endpoint_id: str,
    http_client: httpx.AsyncClient | None = None,
) -> ConnectionCheck:
    """Probe the endpoint's model listing once; never raises."""
    endpoint = await registry.get_endpoint(endpoint_id)
    if endpoint is None:
        return ConnectionCheck(False, "Endpoint not found")
    headers = await _auth_headers(credentials, endpoint_id)

    client = _endpoint_client(http_client)
    try:
        response = await client.get(endpoint.models_url, headers=headers)
    except httpx.HTTPError as e:
        return ConnectionCheck(False, sanitize_error_message(str(e)) or "Connection failed")
    finally:
        if http_client is None:
            await client.aclose()

    if response.status_code in (401, 403):
        return ConnectionCheck(False, "Invalid API key")
    if response.status_code == 404:
        return ConnectionCheck(False, "Endpoint not found")
    if not response.is_success:
        return ConnectionCheck(False, f"Request failed: {response.status_code}")
    return ConnectionCheck(True)

