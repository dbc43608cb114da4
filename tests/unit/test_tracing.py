"""
Unit tests for OpenTelemetry tracing module.

Note: OpenTelemetry has global state that can only be set once per process.
Tests that need to capture spans use a module-scoped tracer provider,
while tests that mock the setup use patches to avoid global state issues.
"""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from vcluster_e2e.observability.tracing import (
    get_tracer,
    is_tracing_enabled,
    setup_tracing,
    shutdown_tracing,
    traced_operation,
)


@pytest.fixture(scope="module")
def module_in_memory_exporter():
    """Module-scoped in-memory span exporter for testing."""
    return InMemorySpanExporter()


@pytest.fixture(scope="module")
def module_tracer_provider(module_in_memory_exporter):
    """Module-scoped tracer provider - set once for all tests in this module."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(module_in_memory_exporter))
    trace.set_tracer_provider(provider)
    return provider


@pytest.fixture(autouse=True)
def reset_tracing_state():
    """Reset tracing module state before and after each test."""
    import vcluster_e2e.observability.tracing as tracing_module

    tracing_module._initialized = False
    tracing_module._tracer_provider = None
    yield
    tracing_module._initialized = False
    tracing_module._tracer_provider = None


@pytest.fixture
def clear_spans(module_tracer_provider, module_in_memory_exporter):
    """Clear spans before each test that uses the module exporter."""
    module_in_memory_exporter.clear()
    yield module_in_memory_exporter
    module_in_memory_exporter.clear()


class TestSetupTracing:
    """Test setup_tracing function."""

    def test_setup_tracing_disabled(self):
        """Test setup_tracing with enabled=False returns None."""
        result = setup_tracing(enabled=False)
        assert result is None
        assert not is_tracing_enabled()

    @patch("vcluster_e2e.observability.tracing.OTLPSpanExporter")
    @patch("vcluster_e2e.observability.tracing.trace.set_tracer_provider")
    def test_setup_tracing_enabled(self, mock_set_provider, mock_exporter):
        """Test setup_tracing with enabled=True creates TracerProvider."""
        mock_exporter.return_value = MagicMock()

        result = setup_tracing(enabled=True, endpoint="http://collector:4317")

        assert isinstance(result, TracerProvider)
        assert is_tracing_enabled()
        mock_exporter.assert_called_once_with(
            endpoint="http://collector:4317", insecure=True
        )
        mock_set_provider.assert_called_once_with(result)

    @patch("vcluster_e2e.observability.tracing.OTLPSpanExporter")
    @patch("vcluster_e2e.observability.tracing.trace.set_tracer_provider")
    def test_setup_tracing_is_idempotent(self, mock_set_provider, mock_exporter):
        """Test that a second setup returns the existing provider."""
        first = setup_tracing(enabled=True)
        second = setup_tracing(enabled=True)

        assert first is second
        mock_set_provider.assert_called_once()

    def test_shutdown_tracing_flushes_provider(self):
        """Test shutdown_tracing shuts the provider down and resets state."""
        import vcluster_e2e.observability.tracing as tracing_module

        provider = MagicMock()
        tracing_module._tracer_provider = provider
        tracing_module._initialized = True

        shutdown_tracing()

        provider.shutdown.assert_called_once()
        assert not is_tracing_enabled()

    def test_get_tracer_without_setup(self):
        """Test get_tracer works (no-op) when tracing is not set up."""
        assert get_tracer("test") is not None


class TestTracedOperation:
    """Test the traced_operation decorator."""

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):

            @traced_operation("sync")
            def sync_func():
                return 1

    @pytest.mark.asyncio
    async def test_records_successful_span(self, clear_spans):
        @traced_operation("bootstrap_connection")
        async def bootstrap():
            return "connected"

        assert await bootstrap() == "connected"

        spans = clear_spans.get_finished_spans()
        assert len(spans) == 1
        assert spans[0].name == "bootstrap_connection"
        assert spans[0].attributes["harness.operation"] == "bootstrap_connection"
        assert spans[0].status.status_code == StatusCode.OK

    @pytest.mark.asyncio
    async def test_records_exception(self, clear_spans):
        @traced_operation("create_and_converge")
        async def failing():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await failing()

        span = clear_spans.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert span.events[0].name == "exception"

    def test_preserves_function_metadata(self):
        @traced_operation("named")
        async def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."
