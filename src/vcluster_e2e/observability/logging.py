"""
Structured logging utilities for the vcluster e2e harness.

This module provides correlation ID tracking, structured log formatting and
a HarnessLogger wrapper for the events a run produces (bootstrap steps,
scenario start/finish, poll progress). Components receive their logger
explicitly instead of reaching for a module-level one.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for tracking correlation IDs across async operations
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Extra attributes copied into JSON log lines when present on a record
STRUCTURED_FIELDS = (
    "scenario",
    "operation",
    "target",
    "namespace",
    "resource_kind",
    "resource_name",
    "duration",
    "attempts",
    "error_type",
    "kubeconfig_path",
    "local_port",
    "server",
    "desired_replicas",
    "ready_replicas",
)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        current_correlation_id = correlation_id.get()
        if not current_correlation_id:
            current_correlation_id = generate_correlation_id()
            correlation_id.set(current_correlation_id)

        record.correlation_id = current_correlation_id
        return True


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for logs with correlation ID support.

    Formats log records as one JSON object per line so CI log collectors
    can filter a run by correlation ID or scenario.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Returns:
        Unique correlation ID string
    """
    return str(uuid.uuid4())[:8]


def set_correlation_id(corr_id: str) -> str:
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    return correlation_id.get("")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
) -> logging.Logger:
    """
    Set up logging for a harness run.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to use JSON formatting
        correlation_id_enabled: Whether to enable correlation ID tracking

    Returns:
        The harness root logger, to be passed to the components of the run
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()

    if enable_json_formatting:
        formatter: logging.Formatter = StructuredFormatter()
    elif correlation_id_enabled:
        formatter = logging.Formatter(
            "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)

    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # The kubernetes client and urllib3 log every retry of the readiness probe
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logging.getLogger("vcluster_e2e")


class HarnessLogger:
    """
    Logger wrapper for harness events with structured fields.

    Wraps an injected logging.Logger so the bootstrapper and scenario
    runner never configure or look up loggers themselves.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("vcluster_e2e")

    def child(self, suffix: str) -> "HarnessLogger":
        return HarnessLogger(self.logger.getChild(suffix))

    def log_bootstrap_start(self, target: str, kubeconfig_path: str) -> str:
        """
        Log the start of a connection bootstrap.

        Returns:
            The correlation ID used for this run
        """
        corr_id = get_correlation_id() or set_correlation_id(
            generate_correlation_id()
        )
        self.logger.info(
            f"Connecting to virtual cluster {target}",
            extra={
                "operation": "bootstrap_start",
                "target": target,
                "kubeconfig_path": kubeconfig_path,
            },
        )
        return corr_id

    def log_bootstrap_success(
        self, target: str, server: str, duration: float, attempts: int
    ) -> None:
        self.logger.info(
            f"Connected to virtual cluster {target} via {server} "
            f"after {duration:.1f}s ({attempts} checks)",
            extra={
                "operation": "bootstrap_success",
                "target": target,
                "server": server,
                "duration": duration,
                "attempts": attempts,
            },
        )

    def log_bootstrap_error(
        self, target: str, error: Exception, duration: float
    ) -> None:
        self.logger.error(
            f"Failed to connect to virtual cluster {target}: {error}",
            extra={
                "operation": "bootstrap_error",
                "target": target,
                "error_type": type(error).__name__,
                "duration": duration,
            },
        )

    def log_scenario_start(self, scenario: str) -> None:
        self.logger.info(
            f"Starting scenario {scenario}",
            extra={"scenario": scenario, "operation": "scenario_start"},
        )

    def log_scenario_success(self, scenario: str, duration: float) -> None:
        self.logger.info(
            f"Scenario {scenario} passed in {duration:.1f}s",
            extra={
                "scenario": scenario,
                "operation": "scenario_success",
                "duration": duration,
            },
        )

    def log_scenario_error(
        self, scenario: str, error: Exception, duration: float
    ) -> None:
        self.logger.error(
            f"Scenario {scenario} failed: {error}",
            extra={
                "scenario": scenario,
                "operation": "scenario_error",
                "error_type": type(error).__name__,
                "duration": duration,
            },
        )

    def log_scenario_skipped(self, scenario: str, reason: str) -> None:
        self.logger.warning(
            f"Scenario {scenario} skipped: {reason}",
            extra={"scenario": scenario, "operation": "scenario_skipped"},
        )

    def log_mutation(
        self, operation: str, resource_kind: str, name: str, namespace: str | None
    ) -> None:
        location = f"{namespace}/{name}" if namespace else name
        self.logger.info(
            f"{operation.capitalize()} {resource_kind} {location}",
            extra={
                "operation": operation,
                "resource_kind": resource_kind,
                "resource_name": name,
                "namespace": namespace,
            },
        )
