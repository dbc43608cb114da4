"""
Service layer for the vcluster e2e harness.

- bootstrapper: connects to a virtual cluster and validates the connection
- scenarios: the mutating scenarios and their shared context
- scenario_runner: sequential execution and reporting
"""

from .bootstrapper import Connection, ConnectionBootstrapper
from .scenario_runner import RunReport, ScenarioResult, ScenarioRunner
from .scenarios import DEFAULT_SCENARIOS, Scenario, ScenarioContext

__all__ = [
    "Connection",
    "ConnectionBootstrapper",
    "DEFAULT_SCENARIOS",
    "RunReport",
    "Scenario",
    "ScenarioContext",
    "ScenarioResult",
    "ScenarioRunner",
]
