"""kind cluster provisioning."""

from pathlib import Path

from local_bench.exceptions import ClusterProvisionError, UnavailableError
from local_bench.logging_config import get_logger
from local_bench.models.cluster import ClusterHandle
from local_bench.process import is_installed, run_combined

logger = get_logger(__name__)

KIND_CONFIG_NAMES = ["kind-config.yaml", "kind-config.yml"]


def find_kind_config(directory: Path) -> Path | None:
    """Search a directory for a kind config file.

    Looks for the conventional names first, then any ``kind*.yaml`` or
    ``kind*.yml`` file.

    Args:
        directory: Directory to search

    Returns:
        Absolute path of the first match, or None
    """
    base = Path(directory).expanduser().absolute()
    for name in KIND_CONFIG_NAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate

    matches = sorted(p for p in base.glob("kind*.y*ml") if p.is_file())
    if matches:
        return matches[0]
    return None


class KindClient:
    """Thin wrapper around the kind CLI."""

    def _require_tools(self) -> None:
        for tool in ("kind", "docker"):
            if not is_installed(tool):
                raise UnavailableError(
                    f"{tool} is not installed or not in PATH",
                    "kind needs both the kind binary and a running docker daemon",
                )

    def create(
        self, name: str, kubeconfig_path: Path, config_path: Path | None = None
    ) -> ClusterHandle:
        """Create a kind cluster.

        Args:
            name: Cluster name
            kubeconfig_path: Where kind writes the cluster kubeconfig
            config_path: Optional kind config file

        Returns:
            Handle for the new cluster

        Raises:
            UnavailableError: If kind or docker is missing
            ClusterProvisionError: If kind fails
        """
        self._require_tools()

        kubeconfig_path = Path(kubeconfig_path)
        kubeconfig_path.parent.mkdir(parents=True, exist_ok=True)

        args = ["kind", "create", "cluster", "--name", name, "--kubeconfig", str(kubeconfig_path)]
        if config_path:
            args += ["--config", str(config_path)]

        logger.info(f"Creating kind cluster {name}")
        code, output = run_combined(args)
        if code != 0:
            logger.error(f"kind create cluster failed with return code {code}")
            raise ClusterProvisionError(f"Failed to create kind cluster '{name}'", output.strip())

        logger.info(f"kind cluster {name} created, kubeconfig at {kubeconfig_path}")
        return ClusterHandle(name=name, kubeconfig_path=kubeconfig_path)

    def delete(self, name: str) -> None:
        """Delete a kind cluster by name."""
        self._require_tools()

        logger.info(f"Deleting kind cluster {name}")
        code, output = run_combined(["kind", "delete", "cluster", "--name", name])
        if code != 0:
            raise ClusterProvisionError(f"Failed to delete kind cluster '{name}'", output.strip())
        logger.info(f"kind cluster {name} deleted")

    def cluster_exists(self, name: str) -> bool:
        """Return True if kind knows a cluster with this name."""
        self._require_tools()

        code, output = run_combined(["kind", "get", "clusters"])
        if code != 0:
            raise ClusterProvisionError("Failed to list kind clusters", output.strip())
        return name in [line.strip() for line in output.splitlines() if line.strip()]
