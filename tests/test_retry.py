"""
Unit tests for retry with exponential backoff.
"""
import pytest
from sqlalchemy.exc import OperationalError

from marketplace.core.retry import is_transient_error, with_retry


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def flaky(failures, error_factory, value="ok"):
    state = {"calls": 0}

    def operation():
        state["calls"] += 1
        if state["calls"] <= failures:
            raise error_factory()
        return value

    return operation, state


@pytest.mark.asyncio
async def test_retries_timeouts_with_exponential_backoff():
    sleep = FakeSleep()
    operation, state = flaky(2, lambda: RuntimeError("query timeout expired"))

    result = await with_retry(operation, max_retries=3, initial_delay=0.5, backoff_factor=2, sleep=sleep)

    assert result == "ok"
    assert state["calls"] == 3
    assert sleep.calls == [0.5, 1.0]


@pytest.mark.asyncio
async def test_non_transient_error_propagates_immediately():
    sleep = FakeSleep()
    operation, state = flaky(1, lambda: ValueError("bad input"))

    with pytest.raises(ValueError):
        await with_retry(operation, max_retries=3, initial_delay=0.5, sleep=sleep)

    assert state["calls"] == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    sleep = FakeSleep()
    operation, state = flaky(10, lambda: ConnectionError("connection reset"))

    with pytest.raises(ConnectionError):
        await with_retry(operation, max_retries=2, initial_delay=1, backoff_factor=3, sleep=sleep)

    assert state["calls"] == 3
    assert sleep.calls == [1, 3]


@pytest.mark.asyncio
async def test_awaits_async_operations_and_reports_retries():
    sleep = FakeSleep()
    attempts = []
    state = {"calls": 0}

    async def operation():
        state["calls"] += 1
        if state["calls"] == 1:
            raise TimeoutError()
        return 42

    result = await with_retry(
        operation,
        initial_delay=0.1,
        on_retry=lambda error, attempt: attempts.append(attempt),
        sleep=sleep,
    )

    assert result == 42
    assert attempts == [1]


@pytest.mark.asyncio
async def test_custom_predicate_overrides_heuristic():
    sleep = FakeSleep()
    operation, state = flaky(1, lambda: KeyError("missing"))

    result = await with_retry(operation, should_retry=lambda e: isinstance(e, KeyError), sleep=sleep)

    assert result == "ok"
    assert state["calls"] == 2


def test_transient_error_classification():
    class CodedError(Exception):
        code = "ECONNRESET"

    assert is_transient_error(ConnectionError())
    assert is_transient_error(CodedError("peer went away"))
    assert is_transient_error(RuntimeError("Deadlock found when trying to get lock"))
    assert is_transient_error(OperationalError("SELECT 1", {}, Exception("too many connections")))
    assert not is_transient_error(ValueError("invalid literal"))
