"""
OpenTelemetry tracing for harness runs.

This module provides:
- Optional OTLP export of spans (disabled unless configured)
- A traced_operation decorator that wraps bootstrap and scenario steps

Usage:
    from vcluster_e2e.observability.tracing import setup_tracing, traced_operation

    setup_tracing(enabled=True, endpoint="http://collector:4317")

    @traced_operation("create_and_converge")
    async def create_and_converge(ctx):
        ...
"""

import inspect
import functools
import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_initialized: bool = False

P = ParamSpec("P")
R = TypeVar("R")


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "vcluster-e2e",
    insecure: bool = True,
) -> TracerProvider | None:
    """
    Initialize OpenTelemetry tracing for the run.

    Args:
        enabled: Enable tracing (if False, returns None and does nothing)
        endpoint: OTLP collector endpoint (gRPC)
        service_name: Service name for traces
        insecure: Use insecure connection (no TLS)

    Returns:
        TracerProvider if enabled, None otherwise
    """
    global _tracer_provider, _initialized

    if _initialized:
        logger.debug("Tracing already initialized, skipping")
        return _tracer_provider

    if not enabled:
        logger.debug("OpenTelemetry tracing is disabled")
        _initialized = True
        return None

    logger.info(f"Initializing OpenTelemetry tracing: endpoint={endpoint}")

    resource = Resource.create({"service.name": service_name})
    _tracer_provider = TracerProvider(resource=resource)
    _tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    trace.set_tracer_provider(_tracer_provider)

    _initialized = True
    return _tracer_provider


def shutdown_tracing() -> None:
    """Shutdown tracing and flush any pending spans."""
    global _tracer_provider, _initialized

    if _tracer_provider is not None:
        logger.debug("Shutting down OpenTelemetry tracing")
        _tracer_provider.shutdown()
        _tracer_provider = None

    _initialized = False


def get_tracer(name: str = __name__) -> Tracer:
    """Get a tracer instance (no-op if tracing is disabled)."""
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _initialized and _tracer_provider is not None


def traced_operation(
    operation_name: str,
    span_kind: SpanKind = SpanKind.INTERNAL,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator that runs a coroutine function inside a span.

    Exceptions are recorded on the span and re-raised.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError("traced_operation only wraps coroutine functions")

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            tracer = get_tracer(func.__module__ or __name__)
            with tracer.start_as_current_span(
                operation_name,
                kind=span_kind,
                attributes={"harness.operation": operation_name},
            ) as span:
                try:
                    result = await func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise

        return wrapper  # type: ignore[return-value]

    return decorator
