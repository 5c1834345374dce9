"""
Batchdispatch-specific runtime exceptions.
"""

from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from batchdispatch.models import ResponseRecord


class DispatchError(RuntimeError):
    """
    Base class for every error raised by batchdispatch.
    """


class TransportUnavailable(DispatchError):
    """
    Signal that no concurrent dispatch capability is available.

    Notes
    -----
    This is only detected at the moment the first batched dispatch would
    occur, so callables that never reach the network still run.
    """


class NestedResolveError(DispatchError):
    """
    Raised when ``resolve`` is entered while another batch owns the interceptor.

    Notes
    -----
    Overlapping or nested batches in the same context are not supported:
    callers must finish one ``resolve`` before starting the next one.
    """


class UnitStateError(DispatchError):
    """Raised when a suspendable unit is driven from the wrong state."""


class UnsupportedAwaitable(DispatchError):
    """
    Raised when a unit awaits something other than the interception boundary.
    """


class RequestFailed(DispatchError):
    """
    Transport failure injected into a unit at its suspension point.

    Parameters
    ----------
    record : ResponseRecord
        Normalized record carrying the error.
    """

    def __init__(self, record: ResponseRecord) -> None:
        self.record = record
        error = record.error
        message = error.message if error is not None else "request failed"
        super().__init__(f"{record.url}: {message}")
