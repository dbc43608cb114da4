"""
Harness error hierarchy with categorization.

This module defines the error types raised by the vcluster e2e harness,
separating fatal setup failures, polling outcomes and remote call failures
so the run can report the first fatal error with useful guidance.
"""


class HarnessError(Exception):
    """
    Base error class for all harness exceptions.

    Provides categorization and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize harness error.

        Args:
            message: Human-readable error description
            category: Error category (setup, timeout, parse, remote, ...)
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class ConfigurationError(HarnessError):
    """Harness configuration is missing or invalid."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="configuration",
            user_action=user_action
            or "Set NAMESPACE, CLUSTER_NAME and LOCAL_PORT for the target cluster",
        )


class ResourceAllocationError(HarnessError):
    """The transient credential file could not be created."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="allocation",
            user_action="Check that the temp directory exists and is writable",
            cause=cause,
        )


class ConnectionSetupError(HarnessError):
    """The tunnel to the target could not be started."""

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="setup",
            user_action=user_action
            or "Check that the virtual cluster exists and the local port is free",
            cause=cause,
        )


class ProbeAuthenticationError(ConnectionSetupError):
    """The tunnel is live but the API server keeps rejecting the credentials."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(
            message=message,
            user_action="Check the credentials written by the tunnel CLI",
        )


class BootstrapParseError(HarnessError):
    """The tunnel wrote credentials that cannot be parsed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="parse",
            user_action="Check that the tunnel CLI version matches the cluster version",
            cause=cause,
        )


class PollTimeoutError(HarnessError):
    """A polled condition was not satisfied within its ceiling."""

    def __init__(
        self,
        description: str,
        timeout: float,
        attempts: int = 0,
        last_reason: str | None = None,
    ):
        message = f"Timed out after {timeout:g}s waiting for {description}"
        if last_reason:
            message = f"{message} (last observation: {last_reason})"
        super().__init__(message=message, category="timeout")
        self.description = description
        self.timeout = timeout
        self.attempts = attempts
        self.last_reason = last_reason


class PollCancelledError(HarnessError):
    """A poll was stopped by its cancellation signal."""

    def __init__(self, description: str, elapsed: float):
        super().__init__(
            message=f"Cancelled after {elapsed:.2f}s while waiting for {description}",
            category="cancelled",
        )
        self.description = description
        self.elapsed = elapsed


class BootstrapTimeoutError(HarnessError):
    """The connection never became usable within the poll ceiling."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="timeout",
            user_action="Check the tunnel process output and the cluster health",
            cause=cause,
        )


class ConvergenceTimeoutError(HarnessError):
    """Observed state never matched the desired state within the poll ceiling."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="timeout",
            user_action="Inspect the workload's pods and events in the virtual cluster",
            cause=cause,
        )


class RemoteCallError(HarnessError):
    """A call against the remote administrative API failed."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        reason: str | None = None,
        cause: Exception | None = None,
    ):
        if status:
            message = f"HTTP {status}: {message}"
        if reason:
            message = f"{message} (reason: {reason})"
        super().__init__(message=message, category="remote", cause=cause)
        self.status = status
        self.reason = reason

    @property
    def not_found(self) -> bool:
        return self.status == 404


class ScenarioDependencyError(HarnessError):
    """A scenario ran without the shared state an earlier scenario provides."""

    def __init__(self, scenario: str | None, missing: str):
        subject = f"Scenario '{scenario}'" if scenario else "Scenario"
        super().__init__(
            message=f"{subject} requires {missing}",
            category="dependency",
            user_action="Run the scenario that provides this state first",
        )
        self.scenario = scenario
        self.missing = missing
