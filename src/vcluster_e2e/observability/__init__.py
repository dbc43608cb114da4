"""
Observability utilities for the vcluster e2e harness.

Structured logging and optional OpenTelemetry tracing.
"""

from .logging import HarnessLogger, setup_structured_logging
from .tracing import setup_tracing, shutdown_tracing, traced_operation

__all__ = [
    "HarnessLogger",
    "setup_structured_logging",
    "setup_tracing",
    "shutdown_tracing",
    "traced_operation",
]
