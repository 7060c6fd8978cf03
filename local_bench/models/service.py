"""Data models for Kubernetes services seen by the bench."""

from enum import Enum

from pydantic import BaseModel, Field


class ServiceType(str, Enum):
    """Kubernetes Service spec.type values."""

    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"
    EXTERNAL_NAME = "ExternalName"


class ServicePort(BaseModel):
    """A single port exposed by a service."""

    name: str | None = None
    port: int
    protocol: str = "TCP"


class ServiceRecord(BaseModel):
    """Read-only snapshot of a Kubernetes Service."""

    name: str
    namespace: str
    type: ServiceType = ServiceType.CLUSTER_IP
    cluster_ip: str | None = None
    external_ips: list[str] = Field(default_factory=list)
    ports: list[ServicePort] = Field(default_factory=list)

    @property
    def has_external_address(self) -> bool:
        """True once the service has at least one external address."""
        return bool(self.external_ips)

    @classmethod
    def from_v1_service(cls, service) -> "ServiceRecord":
        """Build a record from a kubernetes client V1Service.

        External IPs are the spec-level ``externalIPs`` followed by any
        load balancer ingress IPs from the status.
        """
        spec = service.spec
        external_ips = list(spec.external_i_ps or [])

        load_balancer = service.status.load_balancer if service.status else None
        for ingress in (load_balancer.ingress if load_balancer else None) or []:
            if ingress.ip:
                external_ips.append(ingress.ip)

        ports = [
            ServicePort(name=p.name, port=p.port, protocol=p.protocol or "TCP")
            for p in spec.ports or []
        ]

        return cls(
            name=service.metadata.name,
            namespace=service.metadata.namespace,
            type=ServiceType(spec.type or ServiceType.CLUSTER_IP.value),
            cluster_ip=spec.cluster_ip,
            external_ips=external_ips,
            ports=ports,
        )
