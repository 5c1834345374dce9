"""
Batch coordinator.

Drives every request callable as a suspendable unit, waits until all of them are
parked on an outbound request, fires a single multiplexed dispatch, and resumes
each unit with its normalized response. Results keep the submission order.
"""

from __future__ import annotations

import typing as t
import uuid

import structlog

from batchdispatch.config import DispatcherSettings
from batchdispatch.exceptions import DispatchError, RequestFailed, TransportUnavailable
from batchdispatch.hooks import Interceptor, Responder, deregister_interceptor, register_interceptor
from batchdispatch.logging import logging_context
from batchdispatch.models import RequestDescriptor, ResponseRecord
from batchdispatch.normalize import normalize
from batchdispatch.transport import Transport, ensure_transport, get_transport
from batchdispatch.unit import SuspendableUnit

log = structlog.get_logger(__name__)


class Client(t.Protocol):
    """Anything able to resolve a list of request callables."""

    async def resolve(self, requests: t.Iterable[t.Any]) -> list[t.Any]: ...


class Dispatcher:
    """
    Resolve request callables concurrently over one transport round-trip.

    Parameters
    ----------
    transport : Transport | None, optional
        Transport used for the batched dispatch. When omitted, the first
        transport of the registry is used.
    responder : Responder | None, optional
        Pre-seeded responses for tests. A non-``None`` answer is returned to the
        callable as-is and the request never reaches the transport.
    settings : DispatcherSettings | None, optional
        Settings; read from the environment when omitted.

    Notes
    -----
    The interceptor is registered in a context var for the duration of one
    ``resolve`` call. Nested or overlapping calls in the same context raise
    ``NestedResolveError``.

    Examples
    --------
    >>> dispatcher = Dispatcher()
    >>> async with httpx.AsyncClient() as client:
    ...     first, second = await dispatcher.resolve([
    ...         lambda: client.get("https://example.com/1"),
    ...         lambda: client.get("https://example.com/2"),
    ...     ])
    """

    def __init__(
        self,
        transport: Transport | None = None,
        responder: Responder | None = None,
        settings: DispatcherSettings | None = None,
    ) -> None:
        self._settings = settings or DispatcherSettings.from_env()
        self._transport = transport
        self._responder = responder

        log.debug(
            event="Initialized Dispatcher",
            transport=type(transport).__name__ if transport is not None else None,
            has_responder=responder is not None,
            raise_errors=self._settings.raise_errors,
        )

    @property
    def settings(self) -> DispatcherSettings:
        return self._settings

    async def resolve(self, requests: t.Iterable[t.Any]) -> list[t.Any]:
        """
        Resolve request callables, preserving their order.

        Parameters
        ----------
        requests : typing.Iterable[typing.Any]
            Zero-argument callables issuing at most one request each through
            an intercepted client or ``batchdispatch.request``. Non-callables
            are returned unchanged.

        Returns
        -------
        list[typing.Any]
            One entry per input: whatever the callable returned, typically the
            ``ResponseRecord`` produced for its request.

        Raises
        ------
        Exception
            Any failure raised by a callable, unchanged. No partial result is
            returned in that case.
        TransportUnavailable
            If no transport can perform the dispatch.
        """
        requests = list(requests)
        interceptor = Interceptor(responder=self._responder)
        token = register_interceptor(interceptor)
        try:
            with logging_context(batch_id=uuid.uuid4().hex[:8]):
                return await self._run(requests=requests)
        finally:
            deregister_interceptor(token)

    async def _run(self, *, requests: list[t.Any]) -> list[t.Any]:
        units = {idx: SuspendableUnit(request, index=idx) for idx, request in enumerate(requests)}
        results: list[t.Any] = [None] * len(requests)

        log.debug(event="Resolving batch", request_count=len(requests))

        try:
            await self._drive(units=units, results=results)
        except BaseException:
            for unit in units.values():
                try:
                    unit.close()
                except Exception as error:
                    log.warning(
                        event="Unit cleanup failed",
                        unit=unit.index,
                        error=str(object=error),
                    )
            raise

        log.debug(event="Batch resolved", request_count=len(requests))
        return results

    async def _drive(self, *, units: dict[int, SuspendableUnit], results: list[t.Any]) -> None:
        queue: dict[int, RequestDescriptor] = {}
        resolved: dict[int, ResponseRecord] = {}

        while units:
            for idx, unit in list(units.items()):
                if not unit.is_started:
                    descriptor = unit.start()
                elif unit.is_paused and idx in resolved:
                    descriptor = self._resume(unit=unit, record=resolved.pop(idx))
                else:
                    continue

                if descriptor is not None:
                    queue[idx] = descriptor

                if unit.is_terminated:
                    results[idx] = unit.result
                    del units[idx]
                    queue.pop(idx, None)
                    resolved.pop(idx, None)

            # Only fire once every outstanding unit is parked on a request.
            if queue and len(queue) == len(units):
                resolved.update(await self._dispatch(queue=queue))
                queue = {}

    def _resume(self, *, unit: SuspendableUnit, record: ResponseRecord) -> RequestDescriptor | None:
        if self._settings.raise_errors and record.error is not None:
            return unit.throw(RequestFailed(record))
        return unit.resume(record)

    def _get_transport(self) -> Transport:
        if self._transport is None:
            self._transport = get_transport(settings=self._settings)
        return ensure_transport(self._transport)

    async def _dispatch(self, *, queue: dict[int, RequestDescriptor]) -> dict[int, ResponseRecord]:
        """
        Send every queued request in one transport call and normalize the outcomes.

        Parameters
        ----------
        queue : dict[int, RequestDescriptor]
            Descriptors keyed by unit index.

        Returns
        -------
        dict[int, ResponseRecord]
            Records keyed by the same indexes.
        """
        indexes = sorted(queue)
        descriptors = [queue[idx] for idx in indexes]
        transport = self._get_transport()

        log.info(event="Dispatching batch", request_count=len(descriptors))
        try:
            outcomes = list(await transport.dispatch_many(descriptors))
        except TransportUnavailable:
            raise
        except Exception as error:
            log.warning(
                event="Transport dispatch raised",
                request_count=len(descriptors),
                error=str(object=error),
            )
            outcomes = [error] * len(descriptors)

        if len(outcomes) != len(descriptors):
            raise DispatchError(
                f"Transport returned {len(outcomes)} responses for {len(descriptors)} requests"
            )

        records: dict[int, ResponseRecord] = {}
        for idx, descriptor, raw in zip(indexes, descriptors, outcomes):
            record = normalize(raw, url=descriptor.url, args=descriptor.args)
            if record.error is not None:
                log.warning(
                    event="Request failed",
                    unit=idx,
                    url=descriptor.url,
                    status=record.status,
                    code=record.error.code,
                )
            records[idx] = record
        return records
