"""
Tunnel collaborator: exposes a virtual cluster API server on a local port.

The vcluster CLI is started as a child process. Once the tunnel is live it
writes a kubeconfig pointing at localhost:<port> to the requested path; the
harness has no other signal that the tunnel is ready.
"""

import asyncio
import functools
import logging
import socket
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import IO, Protocol

from vcluster_e2e.constants import (
    DEFAULT_DOCKER_BINARY,
    DEFAULT_TUNNEL_STARTUP_GRACE,
    DEFAULT_VCLUSTER_BINARY,
    PROXY_CLEANUP_TIMEOUT,
    TUNNEL_TERMINATE_TIMEOUT,
)
from vcluster_e2e.errors import ConnectionSetupError
from vcluster_e2e.models.target import Target

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 2000


class Tunnel(Protocol):
    """A running tunnel owned by one bootstrap sequence."""

    @property
    def returncode(self) -> int | None: ...

    def output_tail(self) -> str: ...

    def close(self) -> None: ...


class TunnelConnector(Protocol):
    async def connect(self, target: Target, kubeconfig_path: Path) -> Tunnel: ...


class VclusterTunnel:
    """
    A `vcluster connect` child process and its captured output.

    on_close runs after the process is gone; background proxy mode uses it
    to remove the container the CLI detached.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        output: IO[bytes],
        on_close: Callable[[], None] | None = None,
    ):
        self.process = process
        self._output = output
        self._on_close = on_close
        self._closed = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.poll()

    def output_tail(self) -> str:
        if self._output.closed:
            return ""
        self._output.flush()
        self._output.seek(0)
        text = self._output.read().decode("utf-8", errors="replace")
        return text[-OUTPUT_TAIL_CHARS:].strip()

    def close(self) -> None:
        """Terminate the process (kill if it does not stop) and drop its output."""
        if self._closed:
            return
        self._closed = True
        if self.process.poll() is None:
            logger.debug(f"Terminating tunnel process {self.process.pid}")
            self.process.terminate()
            try:
                self.process.wait(timeout=TUNNEL_TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning(
                    f"Tunnel process {self.process.pid} did not stop, killing it"
                )
                self.process.kill()
                self.process.wait()
        try:
            if self._on_close is not None:
                self._on_close()
        finally:
            self._output.close()


class VclusterConnector:
    """
    Starts `vcluster connect` for a target.

    Args:
        binary: vcluster CLI executable
        background_proxy: Ask the CLI to run the proxy detached (the CLI then
            exits 0 once the proxy is up); closing the tunnel removes the
            proxy container
        docker_binary: docker executable used to remove a background proxy
        debug: Pass --debug to the CLI
        startup_grace: Seconds to watch for an immediate failure
    """

    def __init__(
        self,
        binary: str = DEFAULT_VCLUSTER_BINARY,
        background_proxy: bool = False,
        debug: bool = True,
        startup_grace: float = DEFAULT_TUNNEL_STARTUP_GRACE,
        docker_binary: str = DEFAULT_DOCKER_BINARY,
    ):
        self.binary = binary
        self.background_proxy = background_proxy
        self.debug = debug
        self.startup_grace = startup_grace
        self.docker_binary = docker_binary

    def build_command(self, target: Target, kubeconfig_path: Path) -> list[str]:
        cmd = [
            self.binary,
            "connect",
            target.name,
            "--local-port",
            str(target.local_port),
            "--kube-config",
            str(kubeconfig_path),
            "--update-current=false",
        ]
        if target.namespace:
            cmd.extend(["--namespace", target.namespace])
        if self.background_proxy:
            cmd.append("--background-proxy")
        if self.debug:
            cmd.append("--debug")
        return cmd

    async def connect(self, target: Target, kubeconfig_path: Path) -> VclusterTunnel:
        """
        Start the tunnel without waiting for it to become usable.

        Raises:
            ConnectionSetupError: The local port is taken, the CLI is missing,
                or the CLI exits with an error during the startup grace period
        """
        ensure_port_available(target.local_port)

        cmd = self.build_command(target, kubeconfig_path)
        logger.debug(f"Starting tunnel: {' '.join(cmd)}")

        output = tempfile.TemporaryFile()
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=output,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            output.close()
            raise ConnectionSetupError(
                f"Cannot start tunnel CLI '{self.binary}': {e}",
                user_action="Install the vcluster CLI or set VCLUSTER_BINARY",
                cause=e,
            ) from e

        on_close = None
        if self.background_proxy:
            on_close = functools.partial(
                remove_background_proxy, target, self.docker_binary
            )
        tunnel = VclusterTunnel(process, output, on_close=on_close)

        try:
            await asyncio.sleep(self.startup_grace)
        except BaseException:
            tunnel.close()
            raise

        code = tunnel.returncode
        if code is not None and code != 0:
            detail = tunnel.output_tail()
            tunnel.close()
            raise ConnectionSetupError(
                f"Tunnel to {target} exited with code {code}: {detail or 'no output'}"
            )

        return tunnel


def ensure_port_available(port: int, host: str = "127.0.0.1") -> None:
    """Raise ConnectionSetupError if nothing can bind the local port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError as e:
            raise ConnectionSetupError(
                f"Local port {port} is not available: {e}",
                user_action="Pick a free port via LOCAL_PORT",
                cause=e,
            ) from e


def background_proxy_pattern(target: Target) -> str:
    """
    Docker name filter matching the proxy container the CLI starts.

    The CLI names it vcluster_<name>_<namespace>_<host context>_background_proxy.
    Without an explicit namespace the CLI picks one, so any namespace matches.
    """
    namespace = target.namespace or "[^_]+"
    return f"^/?vcluster_{target.name}_{namespace}_.+_background_proxy$"


def remove_background_proxy(
    target: Target, docker_binary: str = DEFAULT_DOCKER_BINARY
) -> None:
    """Force-remove background proxy containers of the target, logging failures."""
    try:
        listed = subprocess.run(
            [
                docker_binary,
                "ps",
                "--all",
                "--quiet",
                "--filter",
                f"name={background_proxy_pattern(target)}",
            ],
            capture_output=True,
            text=True,
            timeout=PROXY_CLEANUP_TIMEOUT,
            check=True,
        )
        container_ids = listed.stdout.split()
        if not container_ids:
            logger.debug(f"No background proxy container found for {target}")
            return
        subprocess.run(
            [docker_binary, "rm", "--force", *container_ids],
            capture_output=True,
            text=True,
            timeout=PROXY_CLEANUP_TIMEOUT,
            check=True,
        )
        logger.debug(f"Removed background proxy container(s) {container_ids} for {target}")
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not remove background proxy for {target}: {e}")
