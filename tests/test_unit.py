"""
Tests for SuspendableUnit in batchdispatch.unit.
"""

import asyncio

import pytest

from batchdispatch.exceptions import RequestFailed, UnitStateError, UnsupportedAwaitable
from batchdispatch.models import ErrorInfo, RequestDescriptor, ResponseRecord
from batchdispatch.unit import Suspension, SuspendableUnit, UnitState, current_unit


def _suspend(url: str) -> Suspension:
    return Suspension(RequestDescriptor(url=url))


def test_literal_terminates_on_start():
    """A non-callable is wrapped and returned unchanged."""
    unit = SuspendableUnit("literal")

    assert unit.start() is None
    assert unit.is_terminated
    assert not unit.is_paused
    assert unit.result == "literal"


def test_sync_callable_terminates_on_start():
    """A callable returning a plain value never suspends."""
    unit = SuspendableUnit(lambda: 42)

    assert unit.start() is None
    assert unit.result == 42


def test_coroutine_suspends_and_resumes():
    """Awaiting a suspension parks the unit until resumed."""

    async def fetch():
        value = await _suspend("https://x/1")
        return value * 2

    unit = SuspendableUnit(fetch, index=3)
    assert unit.state is UnitState.NOT_STARTED

    descriptor = unit.start()

    assert descriptor == RequestDescriptor(url="https://x/1")
    assert unit.is_paused
    assert unit.pending is descriptor

    assert unit.resume(21) is None
    assert unit.is_terminated
    assert unit.pending is None
    assert unit.result == 42


def test_unit_can_suspend_more_than_once():
    """Each await of a suspension hands back a new descriptor."""

    async def fetch_twice():
        first = await _suspend("https://x/1")
        second = await _suspend(f"https://x/{first}")
        return [first, second]

    unit = SuspendableUnit(fetch_twice)

    assert unit.start().url == "https://x/1"
    assert unit.resume("2").url == "https://x/2"
    assert unit.resume("done") is None
    assert unit.result == ["2", "done"]


def test_throw_is_catchable_inside_callable():
    """An injected failure surfaces at the suspension point."""
    record = ResponseRecord(
        url="https://x/1",
        status=0,
        error=ErrorInfo(code="http_request_failed_0", message="refused"),
    )

    async def fetch():
        try:
            await _suspend("https://x/1")
        except RequestFailed as error:
            return f"handled {error.record.error.message}"
        return "unreachable"

    unit = SuspendableUnit(fetch)
    unit.start()

    assert unit.throw(RequestFailed(record)) is None
    assert unit.result == "handled refused"


def test_unhandled_throw_propagates():
    """An injected failure the callable ignores escapes from throw."""

    async def fetch():
        return await _suspend("https://x/1")

    unit = SuspendableUnit(fetch)
    unit.start()

    with pytest.raises(KeyError):
        unit.throw(KeyError("boom"))
    assert unit.is_terminated
    with pytest.raises(UnitStateError):
        _ = unit.result


def test_failure_before_suspension_propagates_from_start():
    """A callable raising before the network boundary fails start."""

    def broken():
        raise ValueError("malformed arguments")

    unit = SuspendableUnit(broken)

    with pytest.raises(ValueError, match="malformed arguments"):
        unit.start()
    assert unit.is_terminated
    assert not unit.is_paused


def test_failure_inside_coroutine_before_suspension_propagates():
    async def broken():
        raise ValueError("bad url")

    unit = SuspendableUnit(broken)

    with pytest.raises(ValueError, match="bad url"):
        unit.start()


def test_start_twice_is_rejected():
    unit = SuspendableUnit(lambda: None)
    unit.start()

    with pytest.raises(UnitStateError):
        unit.start()


def test_resume_requires_paused_unit():
    unit = SuspendableUnit(lambda: None)

    with pytest.raises(UnitStateError):
        unit.resume("value")
    with pytest.raises(UnitStateError):
        unit.throw(RuntimeError("nope"))


def test_result_before_termination_is_rejected():
    async def fetch():
        return await _suspend("https://x/1")

    unit = SuspendableUnit(fetch)
    unit.start()

    with pytest.raises(UnitStateError):
        _ = unit.result


def test_awaiting_event_loop_primitives_is_rejected():
    """Only the interception boundary may be awaited inside a unit."""

    async def sleepy():
        await asyncio.sleep(0)
        return "never"

    unit = SuspendableUnit(sleepy)

    with pytest.raises(UnsupportedAwaitable):
        unit.start()
    assert unit.is_terminated


def test_current_unit_is_set_while_stepping():
    seen = []

    async def fetch():
        seen.append(current_unit())
        await _suspend("https://x/1")
        seen.append(current_unit())

    unit = SuspendableUnit(fetch)
    unit.start()
    unit.resume(None)

    assert seen == [unit, unit]
    assert current_unit() is None


def test_close_finalizes_paused_unit():
    cleaned = []

    async def fetch():
        try:
            await _suspend("https://x/1")
        finally:
            cleaned.append(current_unit())

    unit = SuspendableUnit(fetch)
    unit.start()
    unit.close()

    assert cleaned == [unit]
    assert unit.is_terminated
    with pytest.raises(UnitStateError):
        unit.result


def test_close_terminates_unit_that_suspends_during_cleanup():
    async def fetch():
        try:
            await _suspend("https://x/1")
        finally:
            await _suspend("https://x/lock")

    unit = SuspendableUnit(fetch)
    unit.start()

    with pytest.raises(RuntimeError):
        unit.close()
    assert unit.is_terminated
    assert unit.pending is None
    assert current_unit() is None
