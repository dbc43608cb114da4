"""Centralized harness settings using pydantic-settings.

This module provides a single source of truth for the harness configuration
loaded from environment variables. The target cluster is identified by the
same variables the CI pipeline exports (NAMESPACE, CLUSTER_NAME, LOCAL_PORT).
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vcluster_e2e.constants import (
    DEFAULT_AUTH_FAILURE_LIMIT,
    DEFAULT_INITIAL_REPLICAS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SCALED_REPLICAS,
    DEFAULT_SIDE_EFFECT_NAMESPACE,
    DEFAULT_TUNNEL_STARTUP_GRACE,
    DEFAULT_VCLUSTER_BINARY,
    DEFAULT_WORKLOAD_IMAGE,
    DEFAULT_WORKLOAD_NAME,
    DEFAULT_WORKLOAD_NAMESPACE,
)
from vcluster_e2e.errors import ConfigurationError
from vcluster_e2e.models.target import Target


class Settings(BaseSettings):
    """Harness configuration loaded from environment variables.

    Timing defaults mirror what the suite has always used: one-second polls
    with a one-minute ceiling and one-minute request timeouts.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Target identification
    namespace: str = Field(
        default="",
        description="Host namespace the virtual cluster runs in",
        validation_alias="NAMESPACE",
    )
    cluster_name: str = Field(
        default="",
        description="Name of the virtual cluster instance",
        validation_alias="CLUSTER_NAME",
    )
    local_port: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="Local port the tunnel binds to (0 = unset)",
        validation_alias="LOCAL_PORT",
    )

    # Tunnel CLI
    vcluster_binary: str = Field(
        default=DEFAULT_VCLUSTER_BINARY,
        description="Path or name of the vcluster CLI",
        validation_alias="VCLUSTER_BINARY",
    )
    background_proxy: bool = Field(
        default=False,
        description="Let the CLI run the tunnel as a detached background proxy",
        validation_alias="BACKGROUND_PROXY",
    )
    connect_debug: bool = Field(
        default=True,
        description="Pass --debug to the tunnel CLI",
        validation_alias="CONNECT_DEBUG",
    )
    tunnel_startup_grace_seconds: float = Field(
        default=DEFAULT_TUNNEL_STARTUP_GRACE,
        ge=0,
        description="How long to watch the tunnel process for an early exit",
        validation_alias="TUNNEL_STARTUP_GRACE_SECONDS",
    )

    # Timing
    poll_interval_seconds: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Interval between readiness/convergence checks",
        validation_alias="POLL_INTERVAL_SECONDS",
    )
    poll_timeout_seconds: float = Field(
        default=DEFAULT_POLL_TIMEOUT,
        gt=0,
        description="Ceiling for every readiness/convergence poll",
        validation_alias="POLL_TIMEOUT_SECONDS",
    )
    request_timeout_seconds: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Timeout applied to every API request",
        validation_alias="REQUEST_TIMEOUT_SECONDS",
    )
    auth_failure_limit: int = Field(
        default=DEFAULT_AUTH_FAILURE_LIMIT,
        ge=0,
        description="Consecutive 401/403 probe answers before bootstrap fails (0 = never)",
        validation_alias="AUTH_FAILURE_LIMIT",
    )

    # Scenario workload
    connection_per_scenario: bool = Field(
        default=True,
        description="Open a fresh tunnel and kubeconfig for every scenario",
        validation_alias="CONNECTION_PER_SCENARIO",
    )
    workload_namespace: str = Field(
        default=DEFAULT_WORKLOAD_NAMESPACE,
        validation_alias="WORKLOAD_NAMESPACE",
    )
    workload_name: str = Field(
        default=DEFAULT_WORKLOAD_NAME,
        validation_alias="WORKLOAD_NAME",
    )
    workload_image: str = Field(
        default=DEFAULT_WORKLOAD_IMAGE,
        validation_alias="WORKLOAD_IMAGE",
    )
    initial_replicas: int = Field(
        default=DEFAULT_INITIAL_REPLICAS,
        ge=0,
        validation_alias="INITIAL_REPLICAS",
    )
    scaled_replicas: int = Field(
        default=DEFAULT_SCALED_REPLICAS,
        ge=0,
        validation_alias="SCALED_REPLICAS",
    )
    side_effect_namespace: str = Field(
        default=DEFAULT_SIDE_EFFECT_NAMESPACE,
        validation_alias="SIDE_EFFECT_NAMESPACE",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Tag log lines with a per-run correlation ID",
    )

    # Tracing
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="TRACING_ENABLED",
        description="Export OpenTelemetry spans for bootstrap and scenarios",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP gRPC collector endpoint",
    )

    def target(self) -> Target:
        """Build the connection target from the configured identifiers.

        Raises:
            ConfigurationError: If the cluster name or local port is unset
        """
        missing = []
        if not self.cluster_name:
            missing.append("CLUSTER_NAME")
        if not self.local_port:
            missing.append("LOCAL_PORT")
        if missing:
            raise ConfigurationError(
                f"Target is not configured: missing {', '.join(missing)}"
            )
        return Target(
            namespace=self.namespace or None,
            name=self.cluster_name,
            local_port=self.local_port,
        )


# Global settings instance - initialized once at module import
settings = Settings()
