"""Unit tests for ConditionPoller."""

import asyncio
import time

import pytest

from vcluster_e2e.errors import PollCancelledError, PollTimeoutError
from vcluster_e2e.utils.polling import (
    ConditionPoller,
    ConditionResult,
    ConditionState,
    poll_until,
)

# Scheduling slack for timing assertions on a loaded CI machine
SLACK = 0.1


class CountingCondition:
    """Condition that becomes satisfied on a given attempt."""

    def __init__(self, satisfied_on: int | None = None, fatal_on: int | None = None):
        self.calls = 0
        self.satisfied_on = satisfied_on
        self.fatal_on = fatal_on

    def __call__(self) -> ConditionResult:
        self.calls += 1
        if self.fatal_on is not None and self.calls >= self.fatal_on:
            return ConditionResult.fatal(RuntimeError(f"boom on call {self.calls}"))
        if self.satisfied_on is not None and self.calls >= self.satisfied_on:
            return ConditionResult.satisfied()
        return ConditionResult.not_yet(f"call {self.calls}")


class TestConditionResult:
    def test_factories_set_state(self):
        assert ConditionResult.satisfied().state is ConditionState.SATISFIED
        assert ConditionResult.not_yet("waiting").reason == "waiting"
        error = ValueError("bad")
        fatal = ConditionResult.fatal(error)
        assert fatal.state is ConditionState.FATAL
        assert fatal.error is error

    def test_coerce_bool(self):
        assert ConditionResult.coerce(True).state is ConditionState.SATISFIED
        assert ConditionResult.coerce(False).state is ConditionState.NOT_YET

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError):
            ConditionResult.coerce(None)  # type: ignore[arg-type]


class TestConditionPoller:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            ConditionPoller(interval=0, timeout=1)

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            ConditionPoller(interval=1, timeout=0)

    @pytest.mark.asyncio
    async def test_immediate_first_check_does_not_wait(self):
        poller = ConditionPoller(interval=0.5, timeout=2, immediate=True)
        condition = CountingCondition(satisfied_on=1)

        outcome = await poller.poll(condition)

        assert outcome.attempts == 1
        assert outcome.elapsed < 0.5

    @pytest.mark.asyncio
    async def test_non_immediate_first_check_waits_one_interval(self):
        poller = ConditionPoller(interval=0.1, timeout=2, immediate=False)
        condition = CountingCondition(satisfied_on=1)

        outcome = await poller.poll(condition)

        assert outcome.attempts == 1
        assert outcome.elapsed >= 0.1

    @pytest.mark.asyncio
    async def test_succeeds_within_one_interval_of_becoming_true(self):
        interval = 0.05
        becomes_true_at = 0.2
        start = time.monotonic()

        def condition() -> bool:
            return time.monotonic() - start >= becomes_true_at

        poller = ConditionPoller(interval=interval, timeout=2)
        await poller.poll(condition)
        elapsed = time.monotonic() - start

        assert elapsed >= becomes_true_at
        assert elapsed < becomes_true_at + interval + SLACK

    @pytest.mark.asyncio
    async def test_times_out_never_before_ceiling(self):
        poller = ConditionPoller(interval=0.05, timeout=0.3)
        condition = CountingCondition()
        start = time.monotonic()

        with pytest.raises(PollTimeoutError) as exc_info:
            await poller.poll(condition, description="the impossible")

        elapsed = time.monotonic() - start
        assert elapsed >= 0.3
        assert elapsed < 0.3 + 0.05 + SLACK
        assert exc_info.value.attempts == condition.calls
        assert "the impossible" in str(exc_info.value)
        assert exc_info.value.last_reason == f"call {condition.calls}"

    @pytest.mark.asyncio
    async def test_ceiling_not_a_multiple_of_interval(self):
        poller = ConditionPoller(interval=0.2, timeout=0.3)
        start = time.monotonic()

        with pytest.raises(PollTimeoutError):
            await poller.poll(lambda: False)

        elapsed = time.monotonic() - start
        assert 0.3 <= elapsed < 0.3 + SLACK

    @pytest.mark.asyncio
    async def test_checks_once_more_when_wait_reaches_ceiling(self):
        start = time.monotonic()

        def condition() -> bool:
            return time.monotonic() - start >= 0.3

        poller = ConditionPoller(interval=0.2, timeout=0.4)
        outcome = await poller.poll(condition)

        assert outcome.attempts == 2
        assert 0.3 <= outcome.elapsed < 0.4 + SLACK

    @pytest.mark.asyncio
    async def test_slow_check_does_not_hold_poll_past_ceiling(self):
        interval = 0.05
        timeout = 0.2
        finished = False

        async def slow_condition() -> bool:
            nonlocal finished
            await asyncio.sleep(1)
            finished = True
            return True

        poller = ConditionPoller(interval=interval, timeout=timeout)
        start = time.monotonic()

        with pytest.raises(PollTimeoutError) as exc_info:
            await poller.poll(slow_condition, description="a slow check")

        elapsed = time.monotonic() - start
        assert elapsed < timeout + interval + SLACK
        assert exc_info.value.attempts == 1
        assert "past the ceiling" in exc_info.value.last_reason
        assert not finished

    @pytest.mark.asyncio
    async def test_slow_check_that_finishes_within_grace_counts(self):
        async def condition() -> bool:
            await asyncio.sleep(0.15)
            return True

        outcome = await ConditionPoller(interval=0.1, timeout=0.2).poll(condition)

        assert outcome.attempts == 1
        assert outcome.elapsed >= 0.2

    @pytest.mark.asyncio
    async def test_fatal_error_stops_immediately(self):
        poller = ConditionPoller(interval=0.02, timeout=5)
        condition = CountingCondition(fatal_on=3)
        start = time.monotonic()

        with pytest.raises(RuntimeError, match="boom on call 3"):
            await poller.poll(condition)

        assert condition.calls == 3
        assert time.monotonic() - start < 1

    @pytest.mark.asyncio
    async def test_unclassified_exception_propagates(self):
        def condition() -> bool:
            raise KeyError("unexpected")

        poller = ConditionPoller(interval=0.01, timeout=1)

        with pytest.raises(KeyError):
            await poller.poll(condition)

    @pytest.mark.asyncio
    async def test_async_condition(self):
        calls = 0

        async def condition() -> ConditionResult:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            return ConditionResult.satisfied("done") if calls == 2 else ConditionResult.not_yet()

        outcome = await ConditionPoller(interval=0.01, timeout=1).poll(condition)

        assert outcome.attempts == 2
        assert outcome.reason == "done"

    @pytest.mark.asyncio
    async def test_cancellation_during_wait(self):
        interval = 0.05
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.15, cancel.set)
        poller = ConditionPoller(interval=interval, timeout=5)
        start = time.monotonic()

        with pytest.raises(PollCancelledError) as exc_info:
            await poller.poll(CountingCondition(), description="never", cancel_event=cancel)

        elapsed = time.monotonic() - start
        assert 0.15 <= elapsed < 0.15 + interval + SLACK
        assert not isinstance(exc_info.value, PollTimeoutError)
        assert exc_info.value.description == "never"

    @pytest.mark.asyncio
    async def test_cancellation_during_slow_condition(self):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, cancel.set)

        async def slow_condition() -> bool:
            await asyncio.sleep(10)
            return True

        poller = ConditionPoller(interval=0.01, timeout=5)
        start = time.monotonic()

        with pytest.raises(PollCancelledError):
            await poller.poll(slow_condition, cancel_event=cancel)

        assert time.monotonic() - start < 0.1 + SLACK

    @pytest.mark.asyncio
    async def test_already_cancelled_immediate_poll_does_not_evaluate(self):
        cancel = asyncio.Event()
        cancel.set()
        condition = CountingCondition(satisfied_on=1)
        poller = ConditionPoller(interval=0.01, timeout=1, immediate=True)

        with pytest.raises(PollCancelledError):
            await poller.poll(condition, cancel_event=cancel)

        assert condition.calls == 0

    @pytest.mark.asyncio
    async def test_satisfied_before_cancel_wins(self):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(1, cancel.set)

        outcome = await ConditionPoller(interval=0.01, timeout=2).poll(
            CountingCondition(satisfied_on=2), cancel_event=cancel
        )

        assert outcome.attempts == 2


@pytest.mark.asyncio
async def test_poll_until_helper():
    outcome = await poll_until(
        CountingCondition(satisfied_on=3), interval=0.01, timeout=1, immediate=True
    )

    assert outcome.attempts == 3
