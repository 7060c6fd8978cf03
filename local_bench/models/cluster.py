"""Data models for the bench cluster and the bootstrap run."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from local_bench.models.service import ServiceRecord


class ClusterHandle(BaseModel):
    """Identifies a provisioned kind cluster."""

    name: str
    kubeconfig_path: Path

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate cluster name is not empty."""
        if not v:
            raise ValueError("cluster name cannot be empty")
        return v


class BalancerProcess(BaseModel):
    """A load balancer process launched in the background."""

    pid: int
    log_file_path: Path
    detached: bool = True
    privileged: bool = False


class BootstrapState(str, Enum):
    """States of a bootstrap run. Failed is reachable from any other state."""

    IDLE = "Idle"
    CLUSTER_CREATING = "ClusterCreating"
    BALANCER_STARTING = "BalancerStarting"
    AWAITING_ADDRESS = "AwaitingAddress"
    SYNCING_DNS = "SyncingDNS"
    READY = "Ready"
    FAILED = "Failed"


class BootstrapReport(BaseModel):
    """Outcome of a bootstrap run, partial when the run failed."""

    state: BootstrapState = BootstrapState.IDLE
    cluster: ClusterHandle | None = None
    balancer: BalancerProcess | None = None
    balancer_exited: bool = False
    service: ServiceRecord | None = None
    urls: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when the run finished with warnings."""
        return bool(self.warnings)

    @property
    def external_ip(self) -> str | None:
        """First external address of the discovered service, if any."""
        if self.service and self.service.external_ips:
            return self.service.external_ips[0]
        return None
