"""
Tests for the httpx interception hook.
"""

from unittest.mock import patch

import httpx
import pytest
import respx

import batchdispatch.hooks as hooks_module
from batchdispatch.exceptions import NestedResolveError
from batchdispatch.hooks import (
    Interceptor,
    active_interceptor,
    descriptor_from_httpx_request,
    install_hooks,
    intercepting,
    uninstall_hooks,
)
from batchdispatch.unit import SuspendableUnit


def test_install_hooks_idempotent():
    """install_hooks can be called multiple times safely."""
    original_send = httpx.AsyncClient.send

    install_hooks()
    first_send = httpx.AsyncClient.send
    install_hooks()

    assert first_send is hooks_module._httpx_async_send_hook
    assert httpx.AsyncClient.send is first_send
    assert hooks_module._original_httpx_async_send is original_send


def test_uninstall_hooks_restores_send():
    original_send = httpx.AsyncClient.send
    install_hooks()

    uninstall_hooks()

    assert httpx.AsyncClient.send is original_send
    assert hooks_module._hooks_installed is False


@pytest.mark.asyncio
async def test_hook_passes_through_without_interceptor():
    """Without a registered interceptor the request reaches the transport."""
    install_hooks()

    with respx.mock:
        respx.get("https://example.com/test").mock(
            return_value=httpx.Response(200, json={"status": "ok"})
        )

        async with httpx.AsyncClient() as client:
            response = await client.get("https://example.com/test")

    assert isinstance(response, httpx.Response)
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_hook_passes_through_outside_unit(reset_context):
    """A registered interceptor only applies while a unit is being stepped."""
    with respx.mock:
        route = respx.post("https://example.com/api").mock(
            return_value=httpx.Response(201, json={"id": "123"})
        )

        with intercepting(Interceptor()):
            async with httpx.AsyncClient() as client:
                response = await client.post("https://example.com/api", json={"name": "test"})

    assert route.called
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_hook_suspends_running_unit(reset_context):
    """Inside a unit, send parks the unit on the captured request."""
    client = httpx.AsyncClient()

    with intercepting(Interceptor()):
        unit = SuspendableUnit(
            lambda: client.post(
                "https://example.com/api?q=1",
                content=b"payload",
                headers={"X-Custom": "value"},
            )
        )
        descriptor = unit.start()

        assert unit.is_paused
        assert descriptor.method == "POST"
        assert descriptor.url == "https://example.com/api?q=1"
        assert descriptor.body == b"payload"
        assert descriptor.headers["x-custom"] == "value"
        assert descriptor.args["method"] == "POST"

        unit.resume("resolved")

    assert unit.result == "resolved"
    await client.aclose()


@pytest.mark.asyncio
async def test_hook_echoes_cookies_in_args(reset_context):
    """Cookies sent in the cookie header show up in args like explicit requests."""
    client = httpx.AsyncClient()

    with intercepting(Interceptor()):
        unit = SuspendableUnit(
            lambda: client.get(
                "https://example.com/cookies",
                headers={"Cookie": "session=abc; theme=dark"},
            )
        )
        descriptor = unit.start()
        unit.close()

    assert descriptor.cookies == {}
    assert descriptor.args["cookies"] == {"session": "abc", "theme": "dark"}
    assert descriptor.args["headers"] == descriptor.headers
    assert descriptor.args["headers"] is not descriptor.headers
    await client.aclose()


@pytest.mark.asyncio
async def test_hook_returns_preseeded_response(reset_context):
    """A responder answer is handed back without suspending."""
    client = httpx.AsyncClient()
    seeded = httpx.Response(200, text="seeded")

    with intercepting(Interceptor(responder=lambda descriptor: seeded)):
        unit = SuspendableUnit(lambda: client.get("https://example.com/seeded"))
        descriptor = unit.start()

    assert descriptor is None
    assert unit.is_terminated
    assert unit.result is seeded
    await client.aclose()


@pytest.mark.asyncio
async def test_hook_logs_intercepted_request(reset_context):
    """Intercepted requests are logged with masked headers."""
    client = httpx.AsyncClient()

    with patch.object(hooks_module.log, "info") as mock_info:
        with intercepting(Interceptor()):
            unit = SuspendableUnit(
                lambda: client.get("https://example.com/test", headers={"X-Test": "secret"})
            )
            unit.start()

    assert mock_info.called
    call_kwargs = mock_info.call_args[1]
    assert call_kwargs["event"] == "httpx request intercepted"
    assert call_kwargs["method"] == "GET"
    assert call_kwargs["url"] == "https://example.com/test"
    assert call_kwargs["headers"]["x-test"] == "***"
    await client.aclose()


def test_nested_registration_is_rejected(reset_context):
    with intercepting(Interceptor()):
        with pytest.raises(NestedResolveError):
            with intercepting(Interceptor()):
                pass

    assert active_interceptor.get() is None


def test_interceptor_is_deregistered_on_error(reset_context):
    with pytest.raises(RuntimeError):
        with intercepting(Interceptor()):
            raise RuntimeError("boom")

    assert active_interceptor.get() is None


def test_descriptor_from_json_request():
    request = httpx.Request(
        "PUT",
        "https://example.com/items/1",
        json={"name": "test"},
        headers={"Authorization": "Bearer token"},
    )

    descriptor = descriptor_from_httpx_request(request=request)

    assert descriptor.method == "PUT"
    assert descriptor.url == "https://example.com/items/1"
    assert descriptor.headers["authorization"] == "Bearer token"
    assert descriptor.headers["content-type"] == "application/json"
    assert b'"name"' in descriptor.body


def test_descriptor_without_body():
    descriptor = descriptor_from_httpx_request(request=httpx.Request("GET", "https://example.com/"))

    assert descriptor.body is None
