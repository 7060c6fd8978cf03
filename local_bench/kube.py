"""Kubernetes API access for service discovery."""

from pathlib import Path

from local_bench.exceptions import InvalidArgumentError, KubernetesError
from local_bench.logging_config import get_logger
from local_bench.models.service import ServiceRecord

logger = get_logger(__name__)


class ServiceLister:
    """Lists services in a namespace through the Kubernetes API.

    The API client is built on first use so that a lister can be created
    before kind has written the kubeconfig.
    """

    def __init__(self, kubeconfig_path: Path | None = None, core_api=None):
        """Initialize the lister.

        Args:
            kubeconfig_path: Kubeconfig to load; None uses the default lookup
            core_api: Preconfigured CoreV1Api, mainly for tests
        """
        self.kubeconfig_path = Path(kubeconfig_path) if kubeconfig_path else None
        self._core_api = core_api

    @property
    def core_api(self):
        """CoreV1Api bound to the configured kubeconfig."""
        if self._core_api is None:
            from kubernetes import client, config
            from kubernetes.config.config_exception import ConfigException

            config_file = str(self.kubeconfig_path) if self.kubeconfig_path else None
            try:
                api_client = config.new_client_from_config(config_file=config_file)
            except (ConfigException, OSError) as e:
                raise KubernetesError(
                    f"Failed to load kubeconfig: {config_file or 'default location'}",
                    f"{e}\n\nMake sure the cluster has been created and the kubeconfig is readable",
                )
            self._core_api = client.CoreV1Api(api_client)
            logger.debug(f"Kubernetes client configured from {config_file or 'default kubeconfig'}")
        return self._core_api

    def list_services(self, namespace: str, service_type: str | None = None) -> list[ServiceRecord]:
        """List services in a namespace.

        Args:
            namespace: Namespace to query
            service_type: Optional spec.type filter, matched case-insensitively

        Returns:
            Services in API order

        Raises:
            InvalidArgumentError: If namespace is empty
            KubernetesError: If the kubeconfig cannot be loaded
            kubernetes.client.rest.ApiException: If the API call fails
        """
        if not namespace:
            raise InvalidArgumentError("namespace must be provided")

        response = self.core_api.list_namespaced_service(namespace)

        records = []
        for item in response.items:
            item_type = (item.spec.type or "") if item.spec else ""
            if service_type and item_type.lower() != service_type.lower():
                continue
            records.append(ServiceRecord.from_v1_service(item))

        logger.debug(
            f"Found {len(records)} services in namespace {namespace}"
            + (f" of type {service_type}" if service_type else "")
        )
        return records
