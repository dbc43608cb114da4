"""
Condition polling for eventually-consistent state.

A ConditionPoller evaluates a condition at a fixed interval until it is
satisfied, reports a fatal error, or the ceiling is reached. Conditions
classify each observation explicitly with a ConditionResult, so a transient
failure is never mistaken for a fatal one (or the other way round).

Outcomes:
- satisfied: poll() returns a PollOutcome
- fatal: the error carried by the condition is raised immediately
- ceiling reached: PollTimeoutError, after one last check at the ceiling;
  a check still running one interval past the ceiling is cancelled
- cancel signal set: PollCancelledError, observed within one interval
"""

import asyncio
import enum
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from vcluster_e2e.constants import DEFAULT_POLL_INTERVAL, DEFAULT_POLL_TIMEOUT
from vcluster_e2e.errors import PollCancelledError, PollTimeoutError


class ConditionState(enum.Enum):
    SATISFIED = "satisfied"
    NOT_YET = "not_yet"
    FATAL = "fatal"


@dataclass(frozen=True)
class ConditionResult:
    """One observation made by a condition."""

    state: ConditionState
    reason: str | None = None
    error: Exception | None = None

    @classmethod
    def satisfied(cls, reason: str | None = None) -> "ConditionResult":
        return cls(ConditionState.SATISFIED, reason=reason)

    @classmethod
    def not_yet(cls, reason: str | None = None) -> "ConditionResult":
        return cls(ConditionState.NOT_YET, reason=reason)

    @classmethod
    def fatal(cls, error: Exception) -> "ConditionResult":
        return cls(ConditionState.FATAL, reason=str(error), error=error)

    @classmethod
    def coerce(cls, value: "ConditionResult | bool") -> "ConditionResult":
        if isinstance(value, ConditionResult):
            return value
        if isinstance(value, bool):
            return cls.satisfied() if value else cls.not_yet()
        raise TypeError(
            f"Condition must return ConditionResult or bool, got {type(value).__name__}"
        )


ConditionReturn = ConditionResult | bool
Condition = Callable[[], ConditionReturn | Awaitable[ConditionReturn]]


@dataclass(frozen=True)
class PollOutcome:
    """Summary of a successful poll."""

    attempts: int
    elapsed: float
    reason: str | None = None


class ConditionPoller:
    """
    Repeatedly evaluate a condition until it settles.

    Args:
        interval: Seconds between evaluations
        timeout: Ceiling in seconds for the whole poll
        immediate: Evaluate once before the first wait
        logger: Logger for per-attempt debug output
    """

    def __init__(
        self,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_POLL_TIMEOUT,
        immediate: bool = False,
        logger: logging.Logger | None = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.interval = interval
        self.timeout = timeout
        self.immediate = immediate
        self.logger = logger or logging.getLogger(__name__)

    async def poll(
        self,
        condition: Condition,
        description: str = "condition",
        cancel_event: asyncio.Event | None = None,
    ) -> PollOutcome:
        """
        Poll the condition until it is satisfied.

        Args:
            condition: Zero-argument callable, sync or async
            description: What is being awaited, used in errors and logs
            cancel_event: Optional external cancellation signal

        Returns:
            PollOutcome with attempt count and elapsed time

        Raises:
            PollTimeoutError: The ceiling elapsed without satisfaction
            PollCancelledError: cancel_event was set
            Exception: Whatever error a FATAL result carries
        """
        start = time.monotonic()
        deadline = start + self.timeout
        attempts = 0
        last_reason: str | None = None

        while True:
            if attempts > 0 or not self.immediate:
                await self._wait(
                    min(self.interval, max(deadline - time.monotonic(), 0)),
                    description,
                    start,
                    cancel_event,
                )
            elif cancel_event is not None and cancel_event.is_set():
                raise PollCancelledError(description, time.monotonic() - start)

            attempts += 1
            # A check may finish up to one interval past the ceiling
            budget = deadline + self.interval - time.monotonic()
            result = await self._evaluate(
                condition, description, start, budget, cancel_event
            )
            if result is None:
                last_reason = (
                    f"check {attempts} still running {self.interval:g}s past the ceiling"
                )
                break

            if result.state is ConditionState.SATISFIED:
                elapsed = time.monotonic() - start
                self.logger.debug(
                    f"Condition met: {description} after {attempts} attempt(s) "
                    f"in {elapsed:.2f}s"
                )
                return PollOutcome(
                    attempts=attempts, elapsed=elapsed, reason=result.reason
                )

            if result.state is ConditionState.FATAL:
                self.logger.debug(
                    f"Condition failed fatally: {description}: {result.reason}"
                )
                raise result.error

            last_reason = result.reason or last_reason
            if result.reason:
                self.logger.debug(
                    f"Still waiting for {description} (attempt {attempts}): {result.reason}"
                )

            # The check that lands on the ceiling is the last one
            if time.monotonic() >= deadline:
                break

        raise PollTimeoutError(
            description=description,
            timeout=self.timeout,
            attempts=attempts,
            last_reason=last_reason,
        )

    async def _evaluate(
        self,
        condition: Condition,
        description: str,
        start: float,
        budget: float,
        cancel_event: asyncio.Event | None,
    ) -> ConditionResult | None:
        """Run one check; None means it overran its budget and was cancelled."""
        value = condition()
        if not inspect.isawaitable(value):
            return ConditionResult.coerce(value)

        # Race the evaluation against the budget and the cancel signal so a
        # slow remote call cannot hold the poll past the ceiling or past the
        # interval after cancellation.
        evaluation = asyncio.ensure_future(value)
        waiters = {evaluation}
        cancelled = None
        if cancel_event is not None:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancelled)
        try:
            await asyncio.wait(
                waiters, timeout=max(budget, 0), return_when=asyncio.FIRST_COMPLETED
            )
            if not evaluation.done():
                if cancelled is not None and cancelled.done():
                    raise PollCancelledError(description, time.monotonic() - start)
                self.logger.debug(f"Check for {description} overran the ceiling")
                return None
        finally:
            if cancelled is not None:
                cancelled.cancel()
            if not evaluation.done():
                evaluation.cancel()
                # Let the condition run its own cleanup before we move on
                await asyncio.wait({evaluation})
        return ConditionResult.coerce(evaluation.result())

    async def _wait(
        self,
        delay: float,
        description: str,
        start: float,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise PollCancelledError(description, time.monotonic() - start)


async def poll_until(
    condition: Condition,
    interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    immediate: bool = False,
    description: str = "condition",
    cancel_event: asyncio.Event | None = None,
    logger: logging.Logger | None = None,
) -> PollOutcome:
    """One-off convenience wrapper around ConditionPoller.poll."""
    poller = ConditionPoller(
        interval=interval, timeout=timeout, immediate=immediate, logger=logger
    )
    return await poller.poll(condition, description=description, cancel_event=cancel_event)
