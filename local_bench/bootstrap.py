"""Cluster bootstrap orchestration.

A run moves linearly through

    Idle -> ClusterCreating -> BalancerStarting -> AwaitingAddress -> SyncingDNS -> Ready

and drops into Failed from any step. Nothing is rolled back on failure: a
cluster or balancer that was already started stays up and has to be
cleaned up by hand (``k8s-local-bench cluster destroy``).
"""

import threading
from collections.abc import Callable
from pathlib import Path

from local_bench.balancer import BalancerSupervisor
from local_bench.dnsmasq import DnsmasqClient
from local_bench.exceptions import (
    BootstrapError,
    InvalidArgumentError,
    LocalBenchError,
    PermissionDeniedError,
    ReloadUnavailableError,
)
from local_bench.kind import KindClient, find_kind_config
from local_bench.kube import ServiceLister
from local_bench.logging_config import get_logger
from local_bench.models.cluster import BootstrapReport, BootstrapState
from local_bench.models.service import ServiceRecord
from local_bench.poller import wait_for_load_balancer_address
from local_bench.settings import Settings

logger = get_logger(__name__)

CLEANUP_HINT = (
    "Steps that already completed were not rolled back; manual cleanup may be required "
    "(k8s-local-bench cluster destroy)."
)


class ClusterBootstrap:
    """Creates a kind cluster and wires its load balancer address into dnsmasq."""

    def __init__(
        self,
        settings: Settings,
        kind: KindClient | None = None,
        supervisor: BalancerSupervisor | None = None,
        dns: DnsmasqClient | None = None,
        lister_factory: Callable[[Path], object] | None = None,
        cancel: threading.Event | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            settings: Settings for this run
            kind: Cluster provisioning client
            supervisor: Load balancer supervisor
            dns: dnsmasq client
            lister_factory: Builds a service lister from a kubeconfig path
            cancel: Event that aborts the address wait when set
        """
        self.settings = settings
        self.kind = kind or KindClient()
        self.supervisor = supervisor or BalancerSupervisor()
        self.dns = dns or DnsmasqClient(settings.dnsmasq_config)
        self.lister_factory = lister_factory or ServiceLister
        self.cancel = cancel
        self.state = BootstrapState.IDLE
        self.report = BootstrapReport()

    def run(self) -> BootstrapReport:
        """Run the bootstrap.

        Returns:
            Report of a Ready run, or of a foreground balancer run that ended

        Raises:
            BootstrapError: If any step fails; carries the failed state and
                the partial report
        """
        if self.state != BootstrapState.IDLE:
            raise InvalidArgumentError(f"Bootstrap already ran (state {self.state.value})")

        self._create_cluster()

        if self.settings.start_balancer:
            self._start_balancer()
            if self.report.balancer_exited:
                logger.info("Foreground load balancer exited; ending the run")
                return self.report
        else:
            logger.info("Not starting the load balancer (disabled in settings)")

        service = self._await_address()
        self._sync_dns(service)

        self.report.urls = self.settings.service_urls()
        self._transition(BootstrapState.READY)
        return self.report

    def _transition(self, state: BootstrapState) -> None:
        logger.info(f"Bootstrap state {self.state.value} -> {state.value}")
        self.state = state
        self.report.state = state

    def _fail(self, message: str, error: Exception) -> None:
        failed_state = self.state
        self._transition(BootstrapState.FAILED)
        if isinstance(error, LocalBenchError):
            cause = error.format_message()
        else:
            cause = str(error)
        logger.error(f"{message}: {cause}")
        raise BootstrapError(
            message,
            f"{cause}\n\n{CLEANUP_HINT}",
            failed_state=failed_state,
            report=self.report,
        ) from error

    def _kind_config(self) -> Path | None:
        configured = self.settings.kind_config
        if configured:
            if configured.expanduser().is_file():
                logger.info(f"Using kind config {configured}")
                return configured.expanduser()
            logger.warning(f"Kind config {configured} not found; ignoring")
            return None

        found = find_kind_config(self.settings.directory)
        if found:
            logger.info(f"Found kind config {found}")
        else:
            logger.info("No kind config found; creating cluster with kind defaults")
        return found

    def _create_cluster(self) -> None:
        self._transition(BootstrapState.CLUSTER_CREATING)
        try:
            self.report.cluster = self.kind.create(
                self.settings.cluster_name,
                self.settings.resolved_kubeconfig(),
                self._kind_config(),
            )
        except (LocalBenchError, OSError) as e:
            self._fail(f"Failed to create cluster '{self.settings.cluster_name}'", e)

    def _start_balancer(self) -> None:
        self._transition(BootstrapState.BALANCER_STARTING)
        name = self.settings.cluster_name

        if self.settings.reuse_running_balancer:
            pid = self.supervisor.running_pid(name)
            if pid is not None:
                warning = f"Load balancer already running for {name} (pid {pid}); not starting another"
                logger.warning(warning)
                self.report.warnings.append(warning)
                return

        try:
            if not self.supervisor.elevation_available():
                raise PermissionDeniedError(
                    "The load balancer needs root privileges and no elevation tool is available"
                )
            self.supervisor.ensure_installed()
            if self.settings.balancer_foreground:
                self.supervisor.start(name, background=False)
                self.report.balancer_exited = True
            else:
                self.report.balancer = self.supervisor.start(name, background=True)
        except LocalBenchError as e:
            self._fail("Failed to start the load balancer", e)

    def _await_address(self) -> ServiceRecord:
        self._transition(BootstrapState.AWAITING_ADDRESS)
        try:
            lister = self.lister_factory(self.report.cluster.kubeconfig_path)
            service = wait_for_load_balancer_address(
                lister,
                self.settings.ingress_namespace,
                self.settings.address_timeout,
                self.settings.poll_interval,
                cancel=self.cancel,
            )
        except LocalBenchError as e:
            self._fail("No load balancer address was assigned", e)
        self.report.service = service
        return service

    def _sync_dns(self, service: ServiceRecord) -> None:
        self._transition(BootstrapState.SYNCING_DNS)
        ip = service.external_ips[0]
        try:
            self.dns.ensure_domain_ip(self.settings.domain, ip)
        except ReloadUnavailableError as e:
            logger.warning(e.message)
            self.report.warnings.append(e.message)
        except LocalBenchError as e:
            self._fail(f"Failed to map {self.settings.domain} to {ip} in dnsmasq", e)
