"""
Pydantic models for the workload the scenarios drive.

WorkloadSpec is what the harness asks for; WorkloadStatus is only ever read
back from the API server, never built by hand and written.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vcluster_e2e.constants import (
    DEFAULT_WORKLOAD_APP_LABEL,
    DEFAULT_WORKLOAD_CONTAINER,
    DEFAULT_WORKLOAD_IMAGE,
)


class ResourceKind(BaseModel):
    """An API resource type addressed by apiVersion and kind."""

    model_config = ConfigDict(frozen=True)

    api_version: str
    kind: str

    def __str__(self) -> str:
        return f"{self.api_version}/{self.kind}"


DEPLOYMENT = ResourceKind(api_version="apps/v1", kind="Deployment")
NAMESPACE = ResourceKind(api_version="v1", kind="Namespace")
SERVICE_ACCOUNT = ResourceKind(api_version="v1", kind="ServiceAccount")


class WorkloadSpec(BaseModel):
    """Desired state of a single-container Deployment."""

    model_config = {"populate_by_name": True}

    name: str = Field(..., min_length=1)
    namespace: str = Field("default", min_length=1)
    replicas: int = Field(..., ge=0, description="Desired replica count")
    image: str = Field(DEFAULT_WORKLOAD_IMAGE)
    container_name: str = Field(DEFAULT_WORKLOAD_CONTAINER)
    app_label: str = Field(DEFAULT_WORKLOAD_APP_LABEL)

    def to_manifest(self) -> dict[str, Any]:
        labels = {"app": self.app_label}
        return {
            "apiVersion": DEPLOYMENT.api_version,
            "kind": DEPLOYMENT.kind,
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": {
                "replicas": self.replicas,
                "selector": {"matchLabels": labels},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {
                        "containers": [
                            {"name": self.container_name, "image": self.image}
                        ]
                    },
                },
            },
        }


class WorkloadStatus(BaseModel):
    """Observed state of a Deployment as reported by the API server."""

    desired_replicas: int = 0
    ready_replicas: int = 0
    observed_generation: int | None = None

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> "WorkloadStatus":
        spec = resource.get("spec") or {}
        status = resource.get("status") or {}
        return cls(
            desired_replicas=spec.get("replicas") or 0,
            ready_replicas=status.get("readyReplicas") or 0,
            observed_generation=status.get("observedGeneration"),
        )

    @property
    def converged(self) -> bool:
        return self.ready_replicas == self.desired_replicas


class WorkloadRef(BaseModel):
    """A workload created by an earlier scenario, with the replica count it asked for."""

    name: str
    namespace: str
    desired_replicas: int

    def __str__(self) -> str:
        return f"{DEPLOYMENT.kind} {self.namespace}/{self.name}"


def namespace_manifest(name: str) -> dict[str, Any]:
    return {
        "apiVersion": NAMESPACE.api_version,
        "kind": NAMESPACE.kind,
        "metadata": {"name": name},
    }
