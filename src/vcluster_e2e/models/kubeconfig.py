"""
Pydantic models for the kubeconfig written by the tunnel CLI.

Only the structure the harness relies on is validated; everything else is
carried through untouched so the kubernetes client sees the original content.
"""

from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from vcluster_e2e.errors import BootstrapParseError


class ClusterEntry(BaseModel):
    """Connection details of one cluster."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    server: str = Field(..., min_length=1, description="API server URL")
    certificate_authority_data: str | None = Field(
        None, alias="certificate-authority-data"
    )
    insecure_skip_tls_verify: bool | None = Field(
        None, alias="insecure-skip-tls-verify"
    )


class NamedCluster(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    cluster: ClusterEntry


class ContextEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    cluster: str
    user: str
    namespace: str | None = None


class NamedContext(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    context: ContextEntry


class NamedUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    user: dict[str, Any] = Field(default_factory=dict)


class KubeConfig(BaseModel):
    """
    A kubeconfig document.

    The current context must resolve to a known cluster and user, otherwise
    the document is treated as malformed rather than incomplete.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field("v1", alias="apiVersion")
    kind: str = Field("Config")
    clusters: list[NamedCluster] = Field(..., min_length=1)
    contexts: list[NamedContext] = Field(..., min_length=1)
    users: list[NamedUser] = Field(default_factory=list)
    current_context: str = Field(..., alias="current-context", min_length=1)

    @model_validator(mode="after")
    def _current_context_resolves(self) -> "KubeConfig":
        context = self.context_entry()
        if context is None:
            raise ValueError(f"current-context '{self.current_context}' not found")
        if not any(c.name == context.cluster for c in self.clusters):
            raise ValueError(f"context cluster '{context.cluster}' not found")
        if self.users and not any(u.name == context.user for u in self.users):
            raise ValueError(f"context user '{context.user}' not found")
        return self

    def context_entry(self) -> ContextEntry | None:
        for ctx in self.contexts:
            if ctx.name == self.current_context:
                return ctx.context
        return None

    @property
    def server(self) -> str:
        """API server URL of the current context."""
        context = self.context_entry()
        for cluster in self.clusters:
            if context is not None and cluster.name == context.cluster:
                return cluster.cluster.server
        return self.clusters[0].cluster.server

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the dict layout the kubernetes client loads."""
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_kubeconfig(raw: bytes | str) -> KubeConfig:
    """
    Parse kubeconfig content.

    Args:
        raw: File content, already known to be non-empty

    Returns:
        Validated kubeconfig model

    Raises:
        BootstrapParseError: If the content is not a valid kubeconfig
    """
    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise BootstrapParseError(f"Kubeconfig is not valid YAML: {e}", cause=e) from e

    if not isinstance(document, dict):
        raise BootstrapParseError(
            f"Kubeconfig must be a mapping, got {type(document).__name__}"
        )

    try:
        return KubeConfig.model_validate(document)
    except ValidationError as e:
        raise BootstrapParseError(f"Kubeconfig is malformed: {e}", cause=e) from e
