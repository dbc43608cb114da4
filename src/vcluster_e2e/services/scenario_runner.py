"""
Sequential scenario execution and run reporting.

Scenarios run one at a time on a single shared ScenarioContext. The first
failure aborts the run: later scenarios are reported as skipped, and remote
state created so far is left in place. A set cancel event on the context
skips every scenario not yet started.
"""

import time
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field

from vcluster_e2e.constants import OUTCOME_FAILED, OUTCOME_PASSED, OUTCOME_SKIPPED
from vcluster_e2e.errors import PollCancelledError
from vcluster_e2e.services.scenarios import DEFAULT_SCENARIOS, Scenario, ScenarioContext
from vcluster_e2e.utils.kubernetes import ClientHandle

ConnectFactory = Callable[[], AbstractAsyncContextManager[ClientHandle]]


@dataclass
class ScenarioResult:
    name: str
    outcome: str
    duration: float = 0.0
    error: Exception | None = None

    @property
    def passed(self) -> bool:
        return self.outcome == OUTCOME_PASSED


@dataclass
class RunReport:
    """Outcome of every scenario of a run, in execution order."""

    results: list[ScenarioResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def passed(self) -> bool:
        return not self.cancelled and all(
            r.outcome == OUTCOME_PASSED for r in self.results
        )

    @property
    def first_failure(self) -> ScenarioResult | None:
        for result in self.results:
            if result.outcome == OUTCOME_FAILED:
                return result
        return None

    def summary(self) -> str:
        lines = [
            f"{r.outcome:<8} {r.name} ({r.duration:.1f}s)" for r in self.results
        ]
        failure = self.first_failure
        if failure is not None:
            lines.append(f"First failure in scenario '{failure.name}': {failure.error}")
        return "\n".join(lines)


class ScenarioRunner:
    """
    Runs scenarios strictly in order against one cluster.

    Args:
        context: Shared state; its handle is used as-is when connect is None
        connect: Optional factory opening a fresh connection per scenario.
            The connection is released when the scenario ends, while the
            shared state (e.g. the created workload) carries over.
    """

    def __init__(
        self, context: ScenarioContext, connect: ConnectFactory | None = None
    ):
        self.context = context
        self.connect = connect
        self.log = context.log

    async def run(self, scenarios: Iterable[Scenario] = DEFAULT_SCENARIOS) -> RunReport:
        report = RunReport()
        skip_reason: str | None = None

        for scenario in scenarios:
            if skip_reason is None and self._cancel_requested():
                report.cancelled = True
                skip_reason = "run cancelled"

            if skip_reason is not None:
                self.log.log_scenario_skipped(scenario.name, skip_reason)
                report.results.append(ScenarioResult(scenario.name, OUTCOME_SKIPPED))
                continue

            result = await self.run_one(scenario)
            report.results.append(result)

            if not result.passed:
                skip_reason = f"scenario '{scenario.name}' failed"
                if isinstance(result.error, PollCancelledError):
                    report.cancelled = True

        return report

    def _cancel_requested(self) -> bool:
        event = self.context.cancel_event
        return event is not None and event.is_set()

    async def run_one(self, scenario: Scenario) -> ScenarioResult:
        """Run a single scenario and capture its outcome instead of raising."""
        self.log.log_scenario_start(scenario.name)
        start = time.monotonic()
        try:
            if self.connect is None:
                await scenario.run(self.context)
            else:
                await self._run_connected(self.connect, scenario)
        except Exception as e:
            duration = time.monotonic() - start
            self.log.log_scenario_error(scenario.name, e, duration)
            return ScenarioResult(scenario.name, OUTCOME_FAILED, duration, e)

        duration = time.monotonic() - start
        self.log.log_scenario_success(scenario.name, duration)
        return ScenarioResult(scenario.name, OUTCOME_PASSED, duration)

    async def _run_connected(self, connect: ConnectFactory, scenario: Scenario) -> None:
        async with connect() as handle:
            self.context.handle = handle
            try:
                await scenario.run(self.context)
            finally:
                self.context.handle = None
