"""
Error handling module for the vcluster e2e harness.

This module provides the error hierarchy used to tell fatal setup failures,
polling outcomes and remote call failures apart.
"""

from .harness_errors import (
    BootstrapParseError,
    BootstrapTimeoutError,
    ConfigurationError,
    ConnectionSetupError,
    ConvergenceTimeoutError,
    HarnessError,
    PollCancelledError,
    PollTimeoutError,
    ProbeAuthenticationError,
    RemoteCallError,
    ResourceAllocationError,
    ScenarioDependencyError,
)

__all__ = [
    "HarnessError",
    "ConfigurationError",
    "ResourceAllocationError",
    "ConnectionSetupError",
    "ProbeAuthenticationError",
    "BootstrapParseError",
    "BootstrapTimeoutError",
    "ConvergenceTimeoutError",
    "PollTimeoutError",
    "PollCancelledError",
    "RemoteCallError",
    "ScenarioDependencyError",
]
