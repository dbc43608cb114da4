"""Unit tests for ClientHandle."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes import dynamic
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import MaxRetryError

from vcluster_e2e.errors import BootstrapParseError, RemoteCallError
from vcluster_e2e.models.kubeconfig import parse_kubeconfig
from vcluster_e2e.models.workload import DEPLOYMENT, NAMESPACE
from vcluster_e2e.utils.kubernetes import BoundedDynamicClient, ClientHandle

from .fakes import VALID_KUBECONFIG


@pytest.fixture
def dynamic_client():
    dyn = MagicMock()
    dyn.resources.get.return_value = "deployments-resource"
    return dyn


@pytest.fixture
def handle(dynamic_client):
    return ClientHandle(
        MagicMock(), dynamic_client, request_timeout=7.0, server="https://localhost:14550"
    )


class TestFromKubeconfig:
    def test_builds_dynamic_client_without_touching_default_config(self):
        kubeconfig = parse_kubeconfig(VALID_KUBECONFIG)

        with (
            patch("vcluster_e2e.utils.kubernetes.config.load_kube_config_from_dict") as load,
            patch("vcluster_e2e.utils.kubernetes.client.ApiClient") as api_client,
            patch("vcluster_e2e.utils.kubernetes.BoundedDynamicClient") as dyn,
        ):
            handle = ClientHandle.from_kubeconfig(kubeconfig, request_timeout=5.0)

        config_dict = load.call_args.args[0]
        assert config_dict["current-context"] == "vcluster_test_vcluster-test"
        assert load.call_args.kwargs["persist_config"] is False
        assert load.call_args.kwargs["client_configuration"] is not None
        dyn.assert_called_once_with(api_client.return_value, 5.0)
        assert handle.request_timeout == 5.0
        assert handle.server == "https://localhost:14550"

    def test_closes_api_client_when_discovery_fails(self):
        kubeconfig = parse_kubeconfig(VALID_KUBECONFIG)

        with (
            patch("vcluster_e2e.utils.kubernetes.config.load_kube_config_from_dict"),
            patch("vcluster_e2e.utils.kubernetes.client.ApiClient") as api_client,
            patch(
                "vcluster_e2e.utils.kubernetes.BoundedDynamicClient",
                side_effect=MaxRetryError(None, "/version"),
            ),
        ):
            with pytest.raises(MaxRetryError):
                ClientHandle.from_kubeconfig(kubeconfig)

        api_client.return_value.close.assert_called_once()

    def test_undecodable_certificate_data_is_a_parse_error(self):
        kubeconfig = parse_kubeconfig(
            VALID_KUBECONFIG.replace(
                "insecure-skip-tls-verify: true", "certificate-authority-data: abc"
            )
        )

        with (
            patch("vcluster_e2e.utils.kubernetes.client.ApiClient") as api_client,
            patch("vcluster_e2e.utils.kubernetes.BoundedDynamicClient") as dyn,
        ):
            with pytest.raises(BootstrapParseError, match="cannot be decoded"):
                ClientHandle.from_kubeconfig(kubeconfig)

        api_client.assert_not_called()
        dyn.assert_not_called()


class TestCalls:
    @pytest.mark.asyncio
    async def test_get_passes_request_timeout(self, handle, dynamic_client):
        dynamic_client.get.return_value.to_dict.return_value = {"kind": "Deployment"}

        result = await handle.get(DEPLOYMENT, "example-deployment", namespace="default")

        assert result == {"kind": "Deployment"}
        dynamic_client.resources.get.assert_called_once_with(
            api_version="apps/v1", kind="Deployment"
        )
        dynamic_client.get.assert_called_once_with(
            "deployments-resource",
            _request_timeout=7.0,
            name="example-deployment",
            namespace="default",
        )

    @pytest.mark.asyncio
    async def test_create_sends_body(self, handle, dynamic_client):
        body = {"metadata": {"name": "vcluster-example"}}
        dynamic_client.create.return_value.to_dict.return_value = body

        await handle.create(NAMESPACE, body)

        dynamic_client.create.assert_called_once_with(
            "deployments-resource", _request_timeout=7.0, body=body, namespace=None
        )

    @pytest.mark.asyncio
    async def test_api_exception_maps_to_remote_call_error(self, handle, dynamic_client):
        dynamic_client.replace.side_effect = ApiException(status=409, reason="Conflict")

        with pytest.raises(RemoteCallError) as exc_info:
            await handle.replace(
                DEPLOYMENT, {"metadata": {"name": "example-deployment"}}, namespace="default"
            )

        error = exc_info.value
        assert error.status == 409
        assert error.reason == "Conflict"
        assert "default/example-deployment" in str(error)
        assert isinstance(error.cause, ApiException)

    @pytest.mark.asyncio
    async def test_not_found(self, handle, dynamic_client):
        dynamic_client.delete.side_effect = ApiException(status=404, reason="NotFound")

        with pytest.raises(RemoteCallError) as exc_info:
            await handle.delete(NAMESPACE, "vcluster-example")

        assert exc_info.value.not_found

    @pytest.mark.asyncio
    async def test_unserved_resource_type(self, handle, dynamic_client):
        dynamic_client.resources.get.side_effect = ResourceNotFoundError("no Deployment")

        with pytest.raises(RemoteCallError, match="not served"):
            await handle.get(DEPLOYMENT, "example-deployment", namespace="default")

    @pytest.mark.asyncio
    async def test_transport_error(self, handle, dynamic_client):
        dynamic_client.get.side_effect = MaxRetryError(None, "/api/v1")

        with pytest.raises(RemoteCallError) as exc_info:
            await handle.get(NAMESPACE, "default")

        assert exc_info.value.status is None

    def test_close_closes_api_client(self, handle):
        handle.close()

        handle.api_client.close.assert_called_once()


class TestBoundedDynamicClient:
    def test_discovery_requests_carry_request_timeout(self):
        def discovering_init(self, api_client, **kwargs):
            self.request("get", "/version")

        with (
            patch.object(dynamic.DynamicClient, "__init__", discovering_init),
            patch.object(dynamic.DynamicClient, "request") as parent_request,
        ):
            dyn = BoundedDynamicClient(MagicMock(), 4.0)

        assert dyn.request_timeout == 4.0
        parent_request.assert_called_once_with(
            "get", "/version", body=None, _request_timeout=4.0
        )

    def test_explicit_request_timeout_wins(self):
        with (
            patch.object(dynamic.DynamicClient, "__init__", return_value=None),
            patch.object(dynamic.DynamicClient, "request") as parent_request,
        ):
            dyn = BoundedDynamicClient(MagicMock(), 4.0)
            dyn.request("get", "/api", _request_timeout=9.0)

        parent_request.assert_called_once_with(
            "get", "/api", body=None, _request_timeout=9.0
        )
