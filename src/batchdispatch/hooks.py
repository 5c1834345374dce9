"""
Intercepts asynchronous HTTP requests issued from inside a dispatched unit.
``httpx.AsyncClient.send`` is patched globally, but interception only happens
while an ``Interceptor`` is registered through the ``active_interceptor`` context
var and a unit is being stepped. Every other call goes to the original method,
including the requests a transport sends on behalf of the dispatcher.
"""

from __future__ import annotations

import contextvars
import typing as t
from collections.abc import Iterator
from contextlib import contextmanager

import httpx
import structlog

from batchdispatch.exceptions import NestedResolveError
from batchdispatch.models import RequestDescriptor
from batchdispatch.unit import Suspension, current_unit

log = structlog.get_logger(__name__)

Responder = t.Callable[[RequestDescriptor], t.Any]

# ContextVar holding the interceptor of the batch being resolved
active_interceptor: contextvars.ContextVar[Interceptor | None] = contextvars.ContextVar(
    "active_interceptor", default=None
)

# Original method storage to avoid infinite recursion
_BASE_HTTPX_ASYNC_SEND = httpx.AsyncClient.send
_original_httpx_async_send: t.Callable[..., t.Awaitable[httpx.Response]] | None = None
_hooks_installed = False


class Interceptor:
    """
    Turn an outbound request into a suspension of the running unit.

    Parameters
    ----------
    responder : Responder | None, optional
        Test double consulted before suspending. When it returns anything other
        than ``None``, that value is handed back to the caller unchanged and the
        unit does not suspend.
    """

    def __init__(self, responder: Responder | None = None) -> None:
        self._responder = responder

    async def intercept(self, descriptor: RequestDescriptor) -> t.Any:
        """
        Suspend the running unit on ``descriptor``.

        Parameters
        ----------
        descriptor : RequestDescriptor
            Captured request.

        Returns
        -------
        typing.Any
            The value the dispatcher resumes the unit with, or the pre-seeded
            response from the responder.
        """
        if self._responder is not None:
            canned = self._responder(descriptor)
            if canned is not None:
                log.debug(
                    event="Pre-seeded response passed through",
                    method=descriptor.method,
                    url=descriptor.url,
                )
                return canned
        return await Suspension(descriptor)


def register_interceptor(interceptor: Interceptor) -> contextvars.Token:
    """
    Install hooks and make ``interceptor`` the active one.

    Returns
    -------
    contextvars.Token
        Token to pass to ``deregister_interceptor``.

    Raises
    ------
    NestedResolveError
        If another interceptor is already active in this context.
    """
    if active_interceptor.get() is not None:
        raise NestedResolveError(
            "An interceptor is already registered; nested or overlapping resolve calls are not supported"
        )
    install_hooks()
    return active_interceptor.set(interceptor)


def deregister_interceptor(token: contextvars.Token) -> None:
    active_interceptor.reset(token)


@contextmanager
def intercepting(interceptor: Interceptor) -> Iterator[Interceptor]:
    token = register_interceptor(interceptor)
    try:
        yield interceptor
    finally:
        deregister_interceptor(token)


def _normalize_httpx_headers(*, headers: httpx.Headers) -> dict[str, str]:
    """
    Normalize httpx headers into a plain dictionary.

    Parameters
    ----------
    headers : httpx.Headers
        Incoming headers.

    Returns
    -------
    dict[str, str]
        Normalized header mapping.
    """
    return {
        _decode_header_value(value=key).lower(): _decode_header_value(value=value)
        for key, value in headers.raw
    }


def _decode_header_value(*, value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode(encoding="latin1")
    return str(object=value)


def _cookies_from_header(*, value: str) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for pair in value.split(";"):
        name, sep, cookie_value = pair.strip().partition("=")
        if sep and name:
            cookies[name] = cookie_value
    return cookies


def descriptor_from_httpx_request(request: httpx.Request) -> RequestDescriptor:
    """
    Capture an ``httpx.Request`` as a request descriptor.

    Parameters
    ----------
    request : httpx.Request
        Request about to be sent.

    Returns
    -------
    RequestDescriptor
        Descriptor with lower-cased headers and the raw body.
    """
    headers = _normalize_httpx_headers(headers=request.headers)
    try:
        content = request.content
    except httpx.RequestNotRead:
        content = request.read()
    body: bytes | None = content or None
    url = str(object=request.url)
    return RequestDescriptor(
        url=url,
        method=request.method,
        headers=headers,
        body=body,
        args={
            "method": request.method,
            "headers": dict(headers),
            "body": body,
            "cookies": _cookies_from_header(value=headers.get("cookie", "")),
            "timeout": request.extensions.get("timeout"),
        },
    )


def _log_intercepted_request(*, descriptor: RequestDescriptor) -> None:
    log_context: dict[str, t.Any] = {
        "method": descriptor.method,
        "url": descriptor.url,
    }
    if descriptor.headers:
        log_context["headers"] = {key: "***" for key in descriptor.headers}
    log.info(event="httpx request intercepted", **log_context)


async def _httpx_async_send_hook(self, request: httpx.Request, **kwargs: t.Any) -> t.Any:
    """
    Intercept ``httpx.AsyncClient.send`` to suspend the running unit.

    Parameters
    ----------
    self : httpx.AsyncClient
        HTTPX client instance.
    request : httpx.Request
        Request to send.
    **kwargs : typing.Any
        Extra parameters forwarded to the original send method.

    Returns
    -------
    typing.Any
        The response record the unit is resumed with, or the response from the
        underlying HTTPX transport when nothing is intercepted.
    """
    interceptor = active_interceptor.get()
    if interceptor is not None and current_unit() is not None:
        descriptor = descriptor_from_httpx_request(request=request)
        _log_intercepted_request(descriptor=descriptor)
        return await interceptor.intercept(descriptor)

    if _original_httpx_async_send is None or _original_httpx_async_send is _httpx_async_send_hook:
        return await _BASE_HTTPX_ASYNC_SEND(self, request, **kwargs)
    return await _original_httpx_async_send(self, request, **kwargs)


def install_hooks() -> None:
    """
    Install global hooks for supported libraries.

    Notes
    -----
    This function is idempotent and currently supports ``httpx``.
    """
    global _original_httpx_async_send
    global _hooks_installed

    if _hooks_installed:
        return
    if httpx.AsyncClient.send is _httpx_async_send_hook:
        if _original_httpx_async_send is None:
            _original_httpx_async_send = _BASE_HTTPX_ASYNC_SEND
        _hooks_installed = True
        return

    _original_httpx_async_send = t.cast(
        t.Callable[..., t.Awaitable[httpx.Response]],
        httpx.AsyncClient.send,
    )
    httpx.AsyncClient.send = t.cast(t.Any, _httpx_async_send_hook)
    _hooks_installed = True


def uninstall_hooks() -> None:
    """Restore the original ``httpx.AsyncClient.send``."""
    global _original_httpx_async_send
    global _hooks_installed

    if not _hooks_installed:
        return
    httpx.AsyncClient.send = t.cast(t.Any, _original_httpx_async_send or _BASE_HTTPX_ASYNC_SEND)
    _original_httpx_async_send = None
    _hooks_installed = False
