"""Tests for model listing and connection checks."""

import httpx
import pytest

from boson.endpoints import (
    ConnectionCheck,
    ModelListing,
    fetch_models,
    normalize_model_list,
    test_connection as check_connection,
)
from boson.errors import EndpointRequestError
from test_helpers import StaticCredentials, make_registry, mock_client


@pytest.mark.parametrize(
    "payload,expected",
    [
        (["a", "b"], ["a", "b"]),
        ({"data": [{"id": "gpt-x"}, {"id": "gpt-y", "object": "model"}]}, ["gpt-x", "gpt-y"]),
        ({"models": [{"model": "llama3"}, {"name": "no-id"}, 7]}, ["llama3"]),
        ({"data": "nope"}, []),
        ("text", []),
        (None, []),
    ],
)
def test_normalize_model_list(payload, expected):
    assert [m.id for m in normalize_model_list(payload)] == expected


def test_normalize_model_list_labels():
    assert normalize_model_list([{"id": "m"}]) == [ModelListing(id="m", label="m")]


@pytest.mark.asyncio
async def test_fetch_models_sends_auth_and_normalizes(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": [{"id": "gpt-x"}]})

    listings = await fetch_models(
        registry, StaticCredentials({endpoint.id: "sk-key"}), endpoint.id, mock_client(handler)
    )

    assert [m.id for m in listings] == ["gpt-x"]
    assert str(seen[0].url) == "https://api.example.test/v1/models"
    assert seen[0].headers["Authorization"] == "Bearer sk-key"


@pytest.mark.asyncio
async def test_fetch_models_without_secret_sends_no_auth(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=["m"])

    await fetch_models(registry, StaticCredentials(), endpoint.id, mock_client(handler))

    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_fetch_models_non_json_body_is_empty(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)

    listings = await fetch_models(
        registry, None, endpoint.id, mock_client(lambda request: httpx.Response(200, text="<html>"))
    )

    assert listings == []


@pytest.mark.asyncio
async def test_fetch_models_error_status(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)

    with pytest.raises(EndpointRequestError, match="Failed to fetch models: 500"):
        await fetch_models(
            registry, None, endpoint.id, mock_client(lambda request: httpx.Response(500))
        )


@pytest.mark.asyncio
async def test_fetch_models_unknown_endpoint(tmp_path):
    _, registry, _, _ = await make_registry(tmp_path)

    with pytest.raises(EndpointRequestError, match="Endpoint not found"):
        await fetch_models(registry, None, "missing", mock_client(lambda request: httpx.Response(200)))


@pytest.mark.asyncio
async def test_fetch_models_retries_transport_errors(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json=["m"])

    listings = await fetch_models(registry, None, endpoint.id, mock_client(handler))

    assert len(attempts) == 3
    assert [m.id for m in listings] == ["m"]


@pytest.mark.asyncio
async def test_fetch_models_gives_up_after_retries(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EndpointRequestError, match="refused"):
        await fetch_models(registry, None, endpoint.id, mock_client(handler))
    assert len(attempts) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,expected",
    [
        (200, ConnectionCheck(True)),
        (401, ConnectionCheck(False, "Invalid API key")),
        (403, ConnectionCheck(False, "Invalid API key")),
        (404, ConnectionCheck(False, "Endpoint not found")),
        (503, ConnectionCheck(False, "Request failed: 503")),
    ],
)
async def test_connection_check_statuses(tmp_path, status, expected):
    _, registry, endpoint, _ = await make_registry(tmp_path)

    result = await check_connection(
        registry, None, endpoint.id, mock_client(lambda request: httpx.Response(status))
    )

    assert result == expected


@pytest.mark.asyncio
async def test_connection_check_transport_error(tmp_path):
    _, registry, endpoint, _ = await make_registry(tmp_path)

    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    result = await check_connection(registry, None, endpoint.id, mock_client(handler))

    assert result == ConnectionCheck(False, "no route to host")


@pytest.mark.asyncio
async def test_connection_check_unknown_endpoint(tmp_path):
    _, registry, _, _ = await make_registry(tmp_path)

    result = await check_connection(registry, None, "missing", mock_client(lambda request: httpx.Response(200)))

    assert result == ConnectionCheck(False, "Endpoint not found")
