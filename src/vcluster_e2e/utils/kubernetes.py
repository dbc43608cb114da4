"""
Kubernetes client handle for the virtual cluster.

ClientHandle wraps a kubernetes DynamicClient built from the tunnel's
kubeconfig and exposes the four calls the harness needs (read, create,
replace, delete) for any resource kind. Every call carries the request
timeout and runs in a worker thread so a slow API server never blocks the
event loop that watches for cancellation.
"""

import asyncio
import logging
from typing import Any

from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import HTTPError

from vcluster_e2e.constants import DEFAULT_REQUEST_TIMEOUT
from vcluster_e2e.errors import BootstrapParseError, RemoteCallError
from vcluster_e2e.models.kubeconfig import KubeConfig
from vcluster_e2e.models.workload import ResourceKind

logger = logging.getLogger(__name__)

# Failures that can happen while the tunnel is still coming up
TRANSIENT_CLIENT_ERRORS = (ConfigException, ApiException, HTTPError, OSError)


class BoundedDynamicClient(dynamic.DynamicClient):
    """
    DynamicClient whose raw requests default to a request timeout.

    API discovery runs inside the constructor and issues requests without
    a timeout of their own; against a half-open tunnel those would block
    forever.
    """

    def __init__(self, api_client: client.ApiClient, request_timeout: float, **kwargs):
        # Set before discovery runs in the parent constructor
        self.request_timeout = request_timeout
        super().__init__(api_client, **kwargs)

    def request(self, method, path, body=None, **params):
        params.setdefault("_request_timeout", self.request_timeout)
        return super().request(method, path, body=body, **params)


class ClientHandle:
    """An authenticated client for one virtual cluster."""

    def __init__(
        self,
        api_client: client.ApiClient,
        dynamic_client: dynamic.DynamicClient,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        server: str = "",
    ):
        self.api_client = api_client
        self.dynamic = dynamic_client
        self.request_timeout = request_timeout
        self.server = server

    @classmethod
    def from_kubeconfig(
        cls, kubeconfig: KubeConfig, request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    ) -> "ClientHandle":
        """
        Build a client from a parsed kubeconfig.

        Building the dynamic client performs API discovery, so this fails
        (with one of TRANSIENT_CLIENT_ERRORS) until the tunnel forwards traffic.
        Every discovery request is bounded by request_timeout.

        Raises:
            BootstrapParseError: Embedded certificate or key data is not
                valid base64
        """
        configuration = client.Configuration()
        try:
            config.load_kube_config_from_dict(
                kubeconfig.to_dict(),
                client_configuration=configuration,
                persist_config=False,
            )
        except ValueError as e:
            # binascii.Error from undecodable *-data fields
            raise BootstrapParseError(
                f"Kubeconfig credentials cannot be decoded: {e}", cause=e
            ) from e
        api_client = client.ApiClient(configuration)
        try:
            dynamic_client = BoundedDynamicClient(api_client, request_timeout)
        except BaseException:
            api_client.close()
            raise
        return cls(
            api_client,
            dynamic_client,
            request_timeout=request_timeout,
            server=kubeconfig.server,
        )

    async def get(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> dict[str, Any]:
        return await self._call(
            "get", kind, name=name, namespace=namespace, describe=name
        )

    async def create(
        self, kind: ResourceKind, body: dict[str, Any], namespace: str | None = None
    ) -> dict[str, Any]:
        return await self._call(
            "create",
            kind,
            body=body,
            namespace=namespace,
            describe=body.get("metadata", {}).get("name", ""),
        )

    async def replace(
        self, kind: ResourceKind, body: dict[str, Any], namespace: str | None = None
    ) -> dict[str, Any]:
        return await self._call(
            "replace",
            kind,
            body=body,
            namespace=namespace,
            describe=body.get("metadata", {}).get("name", ""),
        )

    async def delete(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> dict[str, Any]:
        return await self._call(
            "delete", kind, name=name, namespace=namespace, describe=name
        )

    async def _call(
        self, verb: str, kind: ResourceKind, describe: str, **kwargs: Any
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._call_sync, verb, kind, describe, kwargs)

    def _call_sync(
        self, verb: str, kind: ResourceKind, describe: str, kwargs: dict[str, Any]
    ) -> dict[str, Any]:
        namespace = kwargs.get("namespace")
        target = f"{kind} {namespace}/{describe}" if namespace else f"{kind} {describe}"
        try:
            resource = self.dynamic.resources.get(
                api_version=kind.api_version, kind=kind.kind
            )
            result = getattr(self.dynamic, verb)(
                resource, _request_timeout=self.request_timeout, **kwargs
            )
        except ResourceNotFoundError as e:
            raise RemoteCallError(
                f"{verb} {target} failed: resource type not served",
                reason="ResourceNotFound",
                cause=e,
            ) from e
        except ApiException as e:
            raise RemoteCallError(
                f"{verb} {target} failed", status=e.status, reason=e.reason, cause=e
            ) from e
        except HTTPError as e:
            raise RemoteCallError(f"{verb} {target} failed: {e}", cause=e) from e

        if result is None:
            return {}
        if hasattr(result, "to_dict"):
            return result.to_dict()
        return dict(result)

    def close(self) -> None:
        self.api_client.close()
