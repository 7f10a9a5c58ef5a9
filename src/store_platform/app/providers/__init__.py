"""Cluster providers for the store platform."""

from .cluster_client import (
    ClusterAPIError,
    ClusterConflictError,
    ClusterConnectionError,
    ClusterNotFoundError,
    ClusterTimeoutError,
    KubernetesClusterClient,
    ResourceKind,
)
from .cluster_provisioner import ClusterProvisioner

__all__ = [
    "ClusterAPIError",
    "ClusterConflictError",
    "ClusterConnectionError",
    "ClusterNotFoundError",
    "ClusterProvisioner",
    "ClusterTimeoutError",
    "KubernetesClusterClient",
    "ResourceKind",
]
