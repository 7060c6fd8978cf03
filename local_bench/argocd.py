"""Argo CD installation through Helm."""

import json
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from local_bench.exceptions import ChartInstallError, UnavailableError
from local_bench.logging_config import get_logger
from local_bench.process import is_installed, run_combined

logger = get_logger(__name__)

RELEASE_NAME = "argocd"
NAMESPACE = "argocd"
CHART_REPO = "https://argoproj.github.io/argo-helm"
CHART_NAME = "argo-cd"
INSTALL_TIMEOUT = "5m"


@dataclass
class RepoMount:
    """A host directory mounted into the Argo CD repo server.

    Attributes:
        name: Volume name
        host_path: Directory on the kind node
        mount_path: Path inside the repo-server container
    """

    name: str
    host_path: str
    mount_path: str

    @classmethod
    def parse(cls, spec: str) -> "RepoMount":
        """Parse ``NAME=HOST_PATH:MOUNT_PATH``."""
        if "=" not in spec or ":" not in spec.split("=", 1)[1]:
            raise ValueError(f"Invalid mount '{spec}'. Expected 'name=host_path:mount_path'")
        name, paths = spec.split("=", 1)
        host_path, mount_path = paths.split(":", 1)
        if not name or not host_path or not mount_path:
            raise ValueError(f"Invalid mount '{spec}'. Expected 'name=host_path:mount_path'")
        return cls(name=name.strip(), host_path=host_path.strip(), mount_path=mount_path.strip())


class ArgoCDInstaller:
    """Installs or upgrades the argo-cd chart."""

    def __init__(self, kubeconfig_path: Path | None = None, domain: str = "k8s-bench.local"):
        self.kubeconfig_path = kubeconfig_path
        self.domain = domain

    @property
    def host(self) -> str:
        return f"argocd.{self.domain}"

    def build_values(self, mounts: list[RepoMount] | None = None) -> dict[str, Any]:
        """Helm values: anonymous admin access, plain HTTP ingress, optional repo mounts."""
        mounts = mounts or []
        return {
            "global": {"domain": self.host},
            "configs": {
                "params": {"server.insecure": "true"},
                "cm": {"users.anonymous.enabled": "true"},
                "rbac": {"policy.default": "role:admin"},
            },
            "repoServer": {
                "volumes": [
                    {"name": m.name, "hostPath": {"path": m.host_path, "type": "Directory"}}
                    for m in mounts
                ],
                "volumeMounts": [{"name": m.name, "mountPath": m.mount_path} for m in mounts],
            },
            "server": {
                "ingress": {"enabled": True, "ingressClassName": "haproxy", "tls": False},
            },
        }

    def install_or_upgrade(self, mounts: list[RepoMount] | None = None) -> str:
        """Run ``helm upgrade --install`` for Argo CD and wait for it to become ready.

        Returns:
            Description of the release, e.g. ``release argocd (version 2)``

        Raises:
            UnavailableError: If helm is not installed
            ChartInstallError: If helm fails or its output cannot be parsed
        """
        if not is_installed("helm"):
            raise UnavailableError(
                "helm is not installed or not in PATH", "Install helm from https://helm.sh"
            )

        with tempfile.NamedTemporaryFile(
            mode="w", prefix="argocd-values-", suffix=".yaml", delete=False
        ) as f:
            yaml.safe_dump(self.build_values(mounts), f, default_flow_style=False)
            values_path = Path(f.name)

        args = [
            "helm",
            "upgrade",
            "--install",
            RELEASE_NAME,
            CHART_NAME,
            "--repo",
            CHART_REPO,
            "--namespace",
            NAMESPACE,
            "--create-namespace",
            "--wait",
            "--timeout",
            INSTALL_TIMEOUT,
            "--values",
            str(values_path),
            "--output",
            "json",
        ]
        if self.kubeconfig_path:
            args += ["--kubeconfig", str(self.kubeconfig_path)]

        logger.info(f"Installing {CHART_NAME} chart as release {RELEASE_NAME} in {NAMESPACE}")
        try:
            code, output = run_combined(args)
        finally:
            values_path.unlink(missing_ok=True)

        if code != 0:
            raise ChartInstallError("Argo CD install/upgrade failed", output.strip())

        try:
            # helm warnings share the combined output with the JSON document
            release, _ = json.JSONDecoder().raw_decode(output, output.index("{"))
            name, version = release["name"], release["version"]
        except (ValueError, KeyError, TypeError) as e:
            raise ChartInstallError("Could not parse helm output", f"{e}\n\n{output.strip()}")

        logger.info(f"Argo CD release {name} at version {version} in namespace {NAMESPACE}")
        return f"release {name} (version {version})"
