"""
Connection bootstrap: turn a Target into a validated ClientHandle.

Sequence:
1. Allocate an empty, private kubeconfig file
2. Start the tunnel CLI, pointing it at that file
3. Poll until the file parses, a client can be built from it, and a
   read-only probe against the virtual cluster succeeds
4. Hand back a Connection that owns the handle, tunnel and file

Nearly every failure during step 3 is a race against the tunnel process
still coming up, so those are retried. Only malformed kubeconfig content,
a crashed tunnel and (after a threshold) repeated auth rejections are fatal.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from vcluster_e2e.constants import (
    AUTH_FAILURE_STATUSES,
    DEFAULT_AUTH_FAILURE_LIMIT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    PROBE_NAME,
    PROBE_NAMESPACE,
)
from vcluster_e2e.errors import (
    BootstrapParseError,
    BootstrapTimeoutError,
    ConnectionSetupError,
    PollTimeoutError,
    ProbeAuthenticationError,
    RemoteCallError,
)
from vcluster_e2e.models.kubeconfig import KubeConfig, parse_kubeconfig
from vcluster_e2e.models.target import Target
from vcluster_e2e.models.workload import SERVICE_ACCOUNT
from vcluster_e2e.observability.logging import HarnessLogger
from vcluster_e2e.observability.tracing import traced_operation
from vcluster_e2e.settings import Settings
from vcluster_e2e.utils.credentials import CredentialFile
from vcluster_e2e.utils.kubernetes import TRANSIENT_CLIENT_ERRORS, ClientHandle
from vcluster_e2e.utils.polling import ConditionPoller, ConditionResult
from vcluster_e2e.utils.tunnel import Tunnel, TunnelConnector, VclusterConnector

ClientFactory = Callable[[KubeConfig, float], ClientHandle]


@dataclass
class Connection:
    """A validated handle together with the scoped resources backing it."""

    handle: ClientHandle
    tunnel: Tunnel
    credential_file: CredentialFile
    target: Target

    def close(self) -> None:
        """Release the handle, stop the tunnel and delete the kubeconfig."""
        try:
            self.handle.close()
        finally:
            try:
                self.tunnel.close()
            finally:
                self.credential_file.remove()


def _close_built_handle(building: "asyncio.Future[ClientHandle]") -> None:
    if building.cancelled() or building.exception() is not None:
        return
    building.result().close()


class ReadinessCheck:
    """
    Readiness condition polled during bootstrap.

    Holds the handle built on the successful attempt; handles from failed
    attempts are closed immediately.
    """

    def __init__(
        self,
        target: Target,
        credential_file: CredentialFile,
        tunnel: Tunnel,
        client_factory: ClientFactory,
        request_timeout: float,
        auth_failure_limit: int,
    ):
        self.target = target
        self.credential_file = credential_file
        self.tunnel = tunnel
        self.client_factory = client_factory
        self.request_timeout = request_timeout
        self.auth_failure_limit = auth_failure_limit
        self.handle: ClientHandle | None = None
        self.auth_failures = 0

    async def __call__(self) -> ConditionResult:
        code = self.tunnel.returncode
        if code is not None and code != 0:
            detail = self.tunnel.output_tail() or "no output"
            return ConditionResult.fatal(
                ConnectionSetupError(
                    f"Tunnel to {self.target} exited with code {code}: {detail}"
                )
            )

        content = self.credential_file.read()
        if content is None:
            return ConditionResult.not_yet("kubeconfig not written yet")

        try:
            kubeconfig = parse_kubeconfig(content)
        except BootstrapParseError as e:
            return ConditionResult.fatal(e)

        building = asyncio.ensure_future(
            asyncio.to_thread(self.client_factory, kubeconfig, self.request_timeout)
        )
        try:
            handle = await asyncio.shield(building)
        except BootstrapParseError as e:
            return ConditionResult.fatal(e)
        except TRANSIENT_CLIENT_ERRORS as e:
            return ConditionResult.not_yet(f"client not ready: {e}")
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; close what it builds
            building.add_done_callback(_close_built_handle)
            raise

        try:
            await handle.get(SERVICE_ACCOUNT, PROBE_NAME, namespace=PROBE_NAMESPACE)
        except RemoteCallError as e:
            handle.close()
            return self._probe_failed(e)
        except asyncio.CancelledError:
            handle.close()
            raise

        self.auth_failures = 0
        self.handle = handle
        return ConditionResult.satisfied(kubeconfig.server)

    def validated_handle(self) -> ClientHandle:
        """The handle from the satisfied attempt."""
        if self.handle is None:
            raise ConnectionSetupError(
                f"Readiness of {self.target} was never confirmed by a client call"
            )
        return self.handle

    def _probe_failed(self, error: RemoteCallError) -> ConditionResult:
        if error.status not in AUTH_FAILURE_STATUSES:
            self.auth_failures = 0
            return ConditionResult.not_yet(f"probe failed: {error.message}")

        self.auth_failures += 1
        if self.auth_failure_limit and self.auth_failures >= self.auth_failure_limit:
            return ConditionResult.fatal(
                ProbeAuthenticationError(
                    f"API server of {self.target} rejected the credentials "
                    f"{self.auth_failures} times in a row (HTTP {error.status})",
                    status=error.status,
                )
            )
        return ConditionResult.not_yet(
            f"probe rejected ({self.auth_failures}/{self.auth_failure_limit or '-'}): "
            f"{error.message}"
        )


class ConnectionBootstrapper:
    """
    Establishes a validated connection to a virtual cluster.

    Args:
        connector: Tunnel collaborator
        logger: Logger for bootstrap events
        client_factory: Builds a ClientHandle from a parsed kubeconfig
        poll_interval: Seconds between readiness checks
        poll_timeout: Readiness ceiling in seconds
        request_timeout: Timeout applied to every API call of the handle
        auth_failure_limit: Consecutive 401/403 probes before giving up (0 = never)
        credential_dir: Directory for the kubeconfig file (system temp dir if None)
    """

    def __init__(
        self,
        connector: TunnelConnector,
        logger: logging.Logger | None = None,
        client_factory: ClientFactory = ClientHandle.from_kubeconfig,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        auth_failure_limit: int = DEFAULT_AUTH_FAILURE_LIMIT,
        credential_dir: str | Path | None = None,
    ):
        self.connector = connector
        self.log = HarnessLogger(logger or logging.getLogger(__name__))
        self.client_factory = client_factory
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.request_timeout = request_timeout
        self.auth_failure_limit = auth_failure_limit
        self.credential_dir = credential_dir

    @classmethod
    def from_settings(
        cls, settings: Settings, logger: logging.Logger | None = None
    ) -> "ConnectionBootstrapper":
        connector = VclusterConnector(
            binary=settings.vcluster_binary,
            background_proxy=settings.background_proxy,
            debug=settings.connect_debug,
            startup_grace=settings.tunnel_startup_grace_seconds,
        )
        return cls(
            connector,
            logger=logger,
            poll_interval=settings.poll_interval_seconds,
            poll_timeout=settings.poll_timeout_seconds,
            request_timeout=settings.request_timeout_seconds,
            auth_failure_limit=settings.auth_failure_limit,
        )

    @traced_operation("bootstrap_connection")
    async def bootstrap(
        self, target: Target, cancel_event: asyncio.Event | None = None
    ) -> Connection:
        """
        Connect to the target and wait until the connection is usable.

        The returned Connection must be closed by the caller; on any failure
        everything allocated so far is released before the error propagates.

        Raises:
            ResourceAllocationError: The kubeconfig file cannot be created
            ConnectionSetupError: The tunnel could not be started or died
            BootstrapParseError: The tunnel wrote a malformed kubeconfig
            BootstrapTimeoutError: The cluster never answered the probe in time
            PollCancelledError: cancel_event was set while waiting
        """
        start = time.monotonic()
        credential_file = CredentialFile.allocate(self.credential_dir)
        self.log.log_bootstrap_start(str(target), str(credential_file))

        tunnel: Tunnel | None = None
        check: ReadinessCheck | None = None
        try:
            tunnel = await self.connector.connect(target, credential_file.path)

            check = ReadinessCheck(
                target=target,
                credential_file=credential_file,
                tunnel=tunnel,
                client_factory=self.client_factory,
                request_timeout=self.request_timeout,
                auth_failure_limit=self.auth_failure_limit,
            )
            poller = ConditionPoller(
                interval=self.poll_interval,
                timeout=self.poll_timeout,
                immediate=False,
                logger=self.log.logger,
            )
            try:
                outcome = await poller.poll(
                    check,
                    description=f"virtual cluster {target} to accept requests",
                    cancel_event=cancel_event,
                )
            except PollTimeoutError as e:
                raise BootstrapTimeoutError(
                    f"Virtual cluster {target} was not reachable within "
                    f"{self.poll_timeout:g}s"
                    + (f" (last observation: {e.last_reason})" if e.last_reason else ""),
                    cause=e,
                ) from e

            handle = check.validated_handle()
            self.log.log_bootstrap_success(
                str(target),
                handle.server,
                time.monotonic() - start,
                outcome.attempts,
            )
            return Connection(
                handle=handle,
                tunnel=tunnel,
                credential_file=credential_file,
                target=target,
            )
        except BaseException as e:
            if check is not None and check.handle is not None:
                check.handle.close()
            try:
                if tunnel is not None:
                    tunnel.close()
            finally:
                credential_file.remove()
            if isinstance(e, Exception):
                self.log.log_bootstrap_error(str(target), e, time.monotonic() - start)
            raise

    @asynccontextmanager
    async def connect(
        self, target: Target, cancel_event: asyncio.Event | None = None
    ) -> AsyncIterator[ClientHandle]:
        """Bootstrap a connection and release it when the block exits."""
        connection = await self.bootstrap(target, cancel_event=cancel_event)
        try:
            yield connection.handle
        finally:
            connection.close()
