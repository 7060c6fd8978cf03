"""Data models for the bench cluster, services and DNS mappings."""

from local_bench.models.cluster import (
    BalancerProcess,
    BootstrapReport,
    BootstrapState,
    ClusterHandle,
)
from local_bench.models.dns import DomainMapping
from local_bench.models.service import ServicePort, ServiceRecord, ServiceType

__all__ = [
    "BalancerProcess",
    "BootstrapReport",
    "BootstrapState",
    "ClusterHandle",
    "DomainMapping",
    "ServicePort",
    "ServiceRecord",
    "ServiceType",
]
