"""Tests for the remote configuration client."""

import asyncio

import httpx
import pytest

from money_conversations.config import RemoteConfigSettings
from money_conversations.services.remote_config import (
    ConfigRetrievalState,
    RemoteConfigClient,
)

ENDPOINT = "http://config.local/config.json"
TARGET = "https://target.local/welcome"


def make_settings(**overrides):
    values = {
        "endpoint": ENDPOINT,
        "retry_backoff_seconds": 0,
        "reachability_timeout_seconds": 0.5,
    }
    values.update(overrides)
    return RemoteConfigSettings(**values)


def routed(config_response, target_status=200):
    """Transport answering the config endpoint and the target URL."""
    calls = {"config": 0, "target": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "config.local":
            calls["config"] += 1
            return config_response()
        calls["target"] += 1
        return httpx.Response(target_status, text="ok")

    return httpx.MockTransport(handler), calls


@pytest.mark.asyncio
async def test_fresh_config_with_reachable_url():
    transport, calls = routed(lambda: httpx.Response(200, json={"url_3": TARGET}))
    client = RemoteConfigClient(make_settings(), transport=transport)

    url, state = await client.retrieve_target_url()

    assert url == TARGET
    assert state == ConfigRetrievalState.COMPLETED
    assert calls == {"config": 1, "target": 1}
    assert client.state == ConfigRetrievalState.COMPLETED


@pytest.mark.asyncio
async def test_empty_url_completes_without_redirect():
    transport, calls = routed(lambda: httpx.Response(200, json={"url_3": "  "}))
    client = RemoteConfigClient(make_settings(), transport=transport)

    result = await client.retrieve_target_url()

    assert result == (None, ConfigRetrievalState.COMPLETED)
    assert calls["target"] == 0


@pytest.mark.asyncio
async def test_unreachable_url_degrades_to_failed():
    transport, _ = routed(lambda: httpx.Response(200, json={"url_3": TARGET}), target_status=404)
    client = RemoteConfigClient(make_settings(), transport=transport)

    result = await client.retrieve_target_url()

    assert result == (None, ConfigRetrievalState.FAILED)
    assert "unreachable" in client.last_error


@pytest.mark.asyncio
async def test_slow_target_times_out():
    async def slow_then_ok(request: httpx.Request) -> httpx.Response:
        if request.url.host == "config.local":
            return httpx.Response(200, json={"url_3": TARGET})
        await asyncio.sleep(5)
        return httpx.Response(200)

    client = RemoteConfigClient(
        make_settings(reachability_timeout_seconds=0.05),
        transport=httpx.MockTransport(slow_then_ok),
    )

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)


@pytest.mark.asyncio
async def test_rate_limited_uses_cached_fallback():
    responses = iter([
        httpx.Response(200, json={"url_2": "https://cached.local/", "url_3": ""}),
        httpx.Response(429),
    ])
    transport, _ = routed(lambda: next(responses))
    client = RemoteConfigClient(make_settings(), transport=transport)

    await client.retrieve_target_url()
    url, state = await client.retrieve_target_url()

    assert url == "https://cached.local/"
    assert state == ConfigRetrievalState.RATE_LIMITED


@pytest.mark.asyncio
async def test_rate_limited_without_cache():
    transport, _ = routed(lambda: httpx.Response(429))
    client = RemoteConfigClient(make_settings(), transport=transport)

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.RATE_LIMITED)


@pytest.mark.asyncio
async def test_server_error_fails():
    transport, _ = routed(lambda: httpx.Response(503, text="unavailable"))
    client = RemoteConfigClient(make_settings(), transport=transport)

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)


@pytest.mark.asyncio
async def test_non_object_body_fails():
    transport, _ = routed(lambda: httpx.Response(200, json=["not", "an", "object"]))
    client = RemoteConfigClient(make_settings(), transport=transport)

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)


@pytest.mark.asyncio
async def test_transport_errors_are_retried():
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    client = RemoteConfigClient(
        make_settings(fetch_attempts=3),
        transport=httpx.MockTransport(handler),
    )

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_recovers_after_transient_error():
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "config.local":
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"url_3": TARGET})
        return httpx.Response(200)

    client = RemoteConfigClient(make_settings(), transport=httpx.MockTransport(handler))

    assert await client.retrieve_target_url() == (TARGET, ConfigRetrievalState.COMPLETED)


@pytest.mark.asyncio
async def test_missing_endpoint_fails_without_request():
    client = RemoteConfigClient(RemoteConfigSettings(endpoint=None))
    assert client.state == ConfigRetrievalState.PENDING

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)


@pytest.mark.asyncio
async def test_malformed_target_url_fails():
    transport, calls = routed(
        lambda: httpx.Response(200, json={"url_3": "http://exa mple.com/\x00"})
    )
    client = RemoteConfigClient(make_settings(), transport=transport)

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)
    assert calls["target"] == 0


@pytest.mark.asyncio
async def test_malformed_endpoint_fails():
    transport, calls = routed(lambda: httpx.Response(200, json={"url_3": TARGET}))
    client = RemoteConfigClient(
        make_settings(endpoint="http://exa mple.com/\x00"), transport=transport,
    )

    assert await client.retrieve_target_url() == (None, ConfigRetrievalState.FAILED)
    assert calls == {"config": 0, "target": 0}
