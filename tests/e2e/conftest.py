"""
Fixtures for end-to-end tests against a running virtual cluster.

The target comes from the same environment variables the CLI reads:

    NAMESPACE=vcluster CLUSTER_NAME=vcluster LOCAL_PORT=14550 pytest -m e2e

Every test gets its own tunnel and kubeconfig; the ScenarioContext is shared
for the whole session so later tests see the workload created by earlier ones.
Tests are skipped when CLUSTER_NAME or LOCAL_PORT is unset.
"""

import logging
from collections.abc import AsyncGenerator

import pytest

from vcluster_e2e.errors import ConfigurationError
from vcluster_e2e.models.target import Target
from vcluster_e2e.observability.logging import HarnessLogger
from vcluster_e2e.services.bootstrapper import ConnectionBootstrapper
from vcluster_e2e.services.scenarios import ScenarioContext
from vcluster_e2e.settings import Settings
from vcluster_e2e.utils.kubernetes import ClientHandle

logger = logging.getLogger("vcluster_e2e.tests")


@pytest.fixture(scope="session")
def e2e_settings() -> Settings:
    return Settings()


@pytest.fixture(scope="session")
def e2e_target(e2e_settings: Settings) -> Target:
    try:
        return e2e_settings.target()
    except ConfigurationError as e:
        pytest.skip(f"No virtual cluster configured: {e.message}")


@pytest.fixture(scope="session")
def scenario_context(e2e_settings: Settings) -> ScenarioContext:
    """State carried across the e2e tests of one session."""
    return ScenarioContext(settings=e2e_settings, log=HarnessLogger(logger))


@pytest.fixture
async def vcluster_handle(
    e2e_settings: Settings, e2e_target: Target, scenario_context: ScenarioContext
) -> AsyncGenerator[ClientHandle, None]:
    """
    Bootstrap a fresh connection for one test.

    The tunnel is stopped and the kubeconfig deleted after the test,
    whether it passed or not.
    """
    bootstrapper = ConnectionBootstrapper.from_settings(
        e2e_settings, logger=logger.getChild("bootstrap")
    )
    async with bootstrapper.connect(e2e_target) as handle:
        scenario_context.handle = handle
        try:
            yield handle
        finally:
            scenario_context.handle = None
