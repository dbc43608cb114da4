"""Shared fixtures for harness unit tests."""

import pytest

from vcluster_e2e.models.target import Target
from vcluster_e2e.models.workload import SERVICE_ACCOUNT
from vcluster_e2e.settings import Settings

from .fakes import FakeClientHandle


@pytest.fixture
def target() -> Target:
    return Target(namespace="vcluster-test", name="test", local_port=14550)


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with polling scaled down for unit tests."""
    return Settings(
        cluster_name="test",
        namespace="vcluster-test",
        local_port=14550,
        poll_interval_seconds=0.02,
        poll_timeout_seconds=0.5,
        request_timeout_seconds=1.0,
    )


@pytest.fixture
def fake_handle() -> FakeClientHandle:
    """Client handle that already answers the readiness probe."""
    handle = FakeClientHandle()
    handle.seed(SERVICE_ACCOUNT, "default", "default")
    return handle
