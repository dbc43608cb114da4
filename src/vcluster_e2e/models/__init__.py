"""Pydantic models for the harness: targets, kubeconfigs and workloads."""

from .kubeconfig import KubeConfig, parse_kubeconfig
from .target import Target
from .workload import (
    DEPLOYMENT,
    NAMESPACE,
    SERVICE_ACCOUNT,
    ResourceKind,
    WorkloadRef,
    WorkloadSpec,
    WorkloadStatus,
    namespace_manifest,
)

__all__ = [
    "Target",
    "KubeConfig",
    "parse_kubeconfig",
    "ResourceKind",
    "DEPLOYMENT",
    "NAMESPACE",
    "SERVICE_ACCOUNT",
    "WorkloadSpec",
    "WorkloadStatus",
    "WorkloadRef",
    "namespace_manifest",
]
