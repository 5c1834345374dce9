"""
Main endpoint for users.
Exposes ``resolve``/``aresolve`` to run request callables through a
``Dispatcher``, and ``request`` as the explicit request capability callables
can await instead of going through an intercepted ``httpx`` client.
"""

from __future__ import annotations

import asyncio
import typing as t

from batchdispatch.config import DispatcherSettings
from batchdispatch.dispatcher import Dispatcher
from batchdispatch.exceptions import TransportUnavailable
from batchdispatch.hooks import Responder, active_interceptor
from batchdispatch.models import RequestDescriptor, ResponseRecord
from batchdispatch.normalize import normalize
from batchdispatch.transport import Transport, get_transport
from batchdispatch.unit import current_unit


async def aresolve(
    requests: t.Iterable[t.Any],
    *,
    transport: Transport | None = None,
    responder: Responder | None = None,
    settings: DispatcherSettings | None = None,
) -> list[t.Any]:
    """
    Resolve request callables concurrently.

    Parameters
    ----------
    requests : typing.Iterable[typing.Any]
        Zero-argument request callables.
    transport : Transport | None, optional
        Transport override.
    responder : Responder | None, optional
        Pre-seeded responses for tests.
    settings : DispatcherSettings | None, optional
        Dispatcher settings.

    Returns
    -------
    list[typing.Any]
        Results in submission order.
    """
    dispatcher = Dispatcher(transport=transport, responder=responder, settings=settings)
    return await dispatcher.resolve(requests)


def resolve(
    requests: t.Iterable[t.Any],
    *,
    transport: Transport | None = None,
    responder: Responder | None = None,
    settings: DispatcherSettings | None = None,
) -> list[t.Any]:
    """
    Blocking variant of ``aresolve``.

    Notes
    -----
    Runs its own event loop, so it cannot be called from a running loop; use
    ``aresolve`` there.

    Examples
    --------
    >>> import batchdispatch
    >>> first, second, third = batchdispatch.resolve([
    ...     lambda: batchdispatch.request("GET", "https://example.com/1"),
    ...     lambda: batchdispatch.request("GET", "https://example.com/2"),
    ...     "literal",
    ... ])
    """
    return asyncio.run(
        aresolve(requests, transport=transport, responder=responder, settings=settings)
    )


async def request(
    method: str,
    url: str,
    *,
    headers: t.Mapping[str, str] | None = None,
    body: bytes | str | None = None,
    cookies: t.Mapping[str, str] | None = None,
) -> t.Any:
    """
    Issue one HTTP request.

    Inside a callable being resolved, this suspends the callable until the
    batched dispatch completes. Outside of a batch, it sends the request on
    its own through the default transport.

    Parameters
    ----------
    method : str
        HTTP method.
    url : str
        Request URL.
    headers : typing.Mapping[str, str] | None, optional
        Request headers.
    body : bytes | str | None, optional
        Raw request body.
    cookies : typing.Mapping[str, str] | None, optional
        Request cookies.

    Returns
    -------
    typing.Any
        The ``ResponseRecord`` for the request, or a pre-seeded response.
    """
    normalized_headers = {key.lower(): value for key, value in (headers or {}).items()}
    cookie_map = dict(cookies or {})
    descriptor = RequestDescriptor(
        url=str(object=url),
        method=method.upper(),
        headers=normalized_headers,
        body=body,
        cookies=cookie_map,
        args={
            "method": method.upper(),
            "headers": dict(normalized_headers),
            "body": body,
            "cookies": dict(cookie_map),
        },
    )

    interceptor = active_interceptor.get()
    if interceptor is not None and current_unit() is not None:
        return await interceptor.intercept(descriptor)

    transport = get_transport(settings=DispatcherSettings.from_env())
    try:
        [raw] = await transport.dispatch_many([descriptor])
    except TransportUnavailable:
        raise
    except Exception as error:
        raw = error
    return normalize(raw, url=descriptor.url, args=descriptor.args)


async def get(url: str, **kwargs: t.Any) -> ResponseRecord:
    return await request("GET", url, **kwargs)


async def post(url: str, **kwargs: t.Any) -> ResponseRecord:
    return await request("POST", url, **kwargs)
