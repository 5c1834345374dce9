"""
Transports able to issue many HTTP requests in a single call.

A transport receives the descriptors queued by the dispatcher and returns one
raw outcome per descriptor, in the same order: a response, a
``TransportError`` value, or the exception raised for that request.
"""

from __future__ import annotations

import asyncio
import typing as t

import httpx
import structlog

from batchdispatch.config import DispatcherSettings
from batchdispatch.exceptions import TransportUnavailable
from batchdispatch.models import RequestDescriptor

log = structlog.get_logger(__name__)

__all__ = [
    "HttpxTransport",
    "Transport",
    "TransportFactory",
    "ensure_transport",
    "get_transport",
    "register_transport",
    "unregister_transport",
]


@t.runtime_checkable
class Transport(t.Protocol):
    async def dispatch_many(self, requests: t.Sequence[RequestDescriptor]) -> list[t.Any]:
        """
        Dispatch all requests concurrently.

        Parameters
        ----------
        requests : typing.Sequence[RequestDescriptor]
            Requests to send.

        Returns
        -------
        list[typing.Any]
            Raw outcomes, index-aligned with ``requests``.
        """
        ...


TransportFactory = t.Callable[[DispatcherSettings], "Transport | None"]


class HttpxTransport:
    """
    Dispatch a batch over one ``httpx.AsyncClient``.

    Parameters
    ----------
    settings : DispatcherSettings | None, optional
        Timeout, redirect and TLS settings for the client.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None, optional
        Factory for the client used per dispatch. Defaults to a client built
        from ``settings``.
    """

    def __init__(
        self,
        settings: DispatcherSettings | None = None,
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._settings = settings or DispatcherSettings()
        self._client_factory = client_factory or self._default_client

    @classmethod
    def from_settings(cls, settings: DispatcherSettings) -> HttpxTransport:
        return cls(settings=settings)

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.timeout,
            follow_redirects=self._settings.follow_redirects,
            verify=self._settings.verify,
        )

    async def dispatch_many(self, requests: t.Sequence[RequestDescriptor]) -> list[t.Any]:
        if not requests:
            return []
        log.debug(event="Dispatching batch over httpx", request_count=len(requests))
        async with self._client_factory() as client:
            outcomes = await asyncio.gather(
                *(self._send(client=client, request=request) for request in requests),
                return_exceptions=True,
            )
        return list(outcomes)

    @staticmethod
    async def _send(*, client: httpx.AsyncClient, request: RequestDescriptor) -> httpx.Response:
        http_request = client.build_request(
            method=request.method,
            url=request.url,
            headers=request.headers or None,
            content=request.body,
            cookies=request.cookies or None,
        )
        return await client.send(http_request)


_TRANSPORT_FACTORIES: list[TransportFactory] = [HttpxTransport.from_settings]


def register_transport(factory: TransportFactory, *, first: bool = False) -> None:
    """
    Add a transport factory to the registry.

    Parameters
    ----------
    factory : TransportFactory
        Callable building a transport from settings, or returning ``None`` when
        its backend is not available.
    first : bool, optional
        If ``True``, try this factory before the ones already registered.
    """
    if factory in _TRANSPORT_FACTORIES:
        return
    if first:
        _TRANSPORT_FACTORIES.insert(0, factory)
    else:
        _TRANSPORT_FACTORIES.append(factory)


def unregister_transport(factory: TransportFactory) -> None:
    if factory in _TRANSPORT_FACTORIES:
        _TRANSPORT_FACTORIES.remove(factory)


def get_transport(*, settings: DispatcherSettings | None = None) -> Transport:
    """
    Build the first available transport from the registry.

    Parameters
    ----------
    settings : DispatcherSettings | None, optional
        Settings forwarded to the factories.

    Returns
    -------
    Transport
        First transport a factory could build.

    Raises
    ------
    TransportUnavailable
        If no registered factory produced a transport.
    """
    settings = settings or DispatcherSettings()
    for factory in _TRANSPORT_FACTORIES:
        transport = factory(settings)
        if transport is not None:
            return ensure_transport(transport)
    raise TransportUnavailable(
        "Unable to dispatch requests concurrently: no transport is registered"
    )


def ensure_transport(transport: t.Any) -> Transport:
    """
    Check that ``transport`` exposes a callable ``dispatch_many``.

    Raises
    ------
    TransportUnavailable
        If it does not.
    """
    if not callable(getattr(transport, "dispatch_many", None)):
        raise TransportUnavailable(
            f"Unable to dispatch requests concurrently: {transport!r} has no dispatch_many"
        )
    return t.cast(Transport, transport)
