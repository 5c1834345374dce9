"""
Resumable execution of one request-issuing callable.

A unit wraps a zero-argument callable. When the callable returns an awaitable,
the unit steps it by hand with ``send``/``throw`` instead of handing it to an
event loop. The only thing a unit may await is a ``Suspension``: awaiting one
parks the unit and hands the captured ``RequestDescriptor`` to whoever is
driving it. The driver later resumes the unit with the value the suspended
``await`` evaluates to, or throws a failure in at the same point.
"""

from __future__ import annotations

import contextvars
import inspect
import typing as t
from enum import StrEnum

import structlog

from batchdispatch.exceptions import UnitStateError, UnsupportedAwaitable
from batchdispatch.models import RequestDescriptor

log = structlog.get_logger(__name__)

_running_unit: contextvars.ContextVar[SuspendableUnit | None] = contextvars.ContextVar(
    "running_unit", default=None
)


def current_unit() -> SuspendableUnit | None:
    """
    Return the unit whose callable is executing right now.

    Returns
    -------
    SuspendableUnit | None
        Unit being stepped, or ``None`` outside of any unit step.
    """
    return _running_unit.get()


class Suspension:
    """
    Awaitable that parks the running unit on a request descriptor.

    Parameters
    ----------
    descriptor : RequestDescriptor
        Request handed to the driver of the unit.
    """

    __slots__ = ("descriptor",)

    def __init__(self, descriptor: RequestDescriptor) -> None:
        self.descriptor = descriptor

    def __await__(self) -> t.Generator[Suspension, t.Any, t.Any]:
        value = yield self
        return value


class UnitState(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class SuspendableUnit:
    """
    Controllable execution of one callable.

    Parameters
    ----------
    func : typing.Callable[[], typing.Any] | typing.Any
        Zero-argument callable. Non-callables are wrapped into a callable
        returning them unchanged.
    index : int, optional
        Position of the unit inside its batch, used in logs.
    """

    def __init__(self, func: t.Callable[[], t.Any] | t.Any, *, index: int = 0) -> None:
        if not callable(func):
            constant = func

            def func() -> t.Any:
                return constant

        self.index = index
        self._func: t.Callable[[], t.Any] = func
        self._state = UnitState.NOT_STARTED
        self._stepper: t.Any = None
        self._pending: RequestDescriptor | None = None
        self._result: t.Any = None
        self._failed = False

    @property
    def state(self) -> UnitState:
        return self._state

    @property
    def is_started(self) -> bool:
        return self._state is not UnitState.NOT_STARTED

    @property
    def is_paused(self) -> bool:
        return self._state is UnitState.SUSPENDED

    @property
    def is_terminated(self) -> bool:
        return self._state is UnitState.TERMINATED

    @property
    def pending(self) -> RequestDescriptor | None:
        """Descriptor the unit is suspended on, if any."""
        return self._pending

    @property
    def result(self) -> t.Any:
        """
        Value returned by the callable.

        Raises
        ------
        UnitStateError
            If the unit has not terminated, or terminated with a failure.
        """
        if self._state is not UnitState.TERMINATED:
            raise UnitStateError(f"Unit {self.index} has not terminated yet")
        if self._failed:
            raise UnitStateError(f"Unit {self.index} terminated with a failure")
        return self._result

    def start(self) -> RequestDescriptor | None:
        """
        Run the callable until it suspends or terminates.

        Returns
        -------
        RequestDescriptor | None
            Captured descriptor if the unit suspended, ``None`` if it terminated.

        Raises
        ------
        UnitStateError
            If the unit was already started.
        Exception
            Whatever the callable raised before reaching the boundary.
        """
        if self._state is not UnitState.NOT_STARTED:
            raise UnitStateError(f"Unit {self.index} was already started")

        self._state = UnitState.RUNNING
        log.debug(event="Unit started", unit=self.index)
        token = _running_unit.set(self)
        try:
            value = self._func()
        except BaseException:
            self._fail()
            raise
        finally:
            _running_unit.reset(token)

        if not inspect.isawaitable(value):
            self._finish(value=value)
            return None

        self._stepper = value.__await__()
        return self._step(self._stepper.send, None)

    def resume(self, value: t.Any = None) -> RequestDescriptor | None:
        """
        Continue a paused unit as though the suspended call returned ``value``.

        Parameters
        ----------
        value : typing.Any, optional
            Result of the suspended call.

        Returns
        -------
        RequestDescriptor | None
            Next descriptor if the unit suspends again, otherwise ``None``.
        """
        self._ensure_paused(action="resume")
        return self._step(self._stepper.send, value)

    def throw(self, error: BaseException) -> RequestDescriptor | None:
        """
        Raise ``error`` inside a paused unit at its suspension point.

        Parameters
        ----------
        error : BaseException
            Failure to inject.

        Returns
        -------
        RequestDescriptor | None
            Next descriptor if the callable handled the failure and suspended
            again, otherwise ``None``.
        """
        self._ensure_paused(action="throw into")
        return self._step(self._stepper.throw, error)

    def close(self) -> None:
        """
        Abandon a paused unit, finalizing its awaitable.

        Cleanup code in the callable still runs as this unit, so requests it
        issues are intercepted rather than sent.

        Raises
        ------
        RuntimeError
            If the callable suspends again while being finalized.
        """
        if self._state is not UnitState.SUSPENDED:
            return
        token = _running_unit.set(self)
        try:
            self._stepper.close()
        finally:
            _running_unit.reset(token)
            self._fail()

    def _ensure_paused(self, *, action: str) -> None:
        if self._state is not UnitState.SUSPENDED:
            raise UnitStateError(f"Cannot {action} unit {self.index} in state {self._state}")
        self._pending = None

    def _step(self, operation: t.Callable[[t.Any], t.Any], argument: t.Any) -> RequestDescriptor | None:
        self._state = UnitState.RUNNING
        token = _running_unit.set(self)
        try:
            yielded = operation(argument)
        except StopIteration as stop:
            self._finish(value=stop.value)
            return None
        except BaseException:
            self._fail()
            raise
        finally:
            _running_unit.reset(token)

        if not isinstance(yielded, Suspension):
            self._stepper.close()
            self._fail()
            raise UnsupportedAwaitable(
                f"Unit {self.index} awaited {yielded!r}; only intercepted requests may be awaited"
            )

        self._pending = yielded.descriptor
        self._state = UnitState.SUSPENDED
        log.debug(
            event="Unit suspended",
            unit=self.index,
            method=yielded.descriptor.method,
            url=yielded.descriptor.url,
        )
        return yielded.descriptor

    def _finish(self, *, value: t.Any) -> None:
        self._result = value
        self._state = UnitState.TERMINATED
        log.debug(event="Unit terminated", unit=self.index)

    def _fail(self) -> None:
        self._failed = True
        self._pending = None
        self._state = UnitState.TERMINATED
        log.debug(event="Unit failed", unit=self.index)
