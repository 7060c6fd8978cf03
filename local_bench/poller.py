"""Waiting for a LoadBalancer service to receive an external address."""

import threading
import time

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from local_bench.exceptions import (
    InvalidArgumentError,
    LocalBenchError,
    PollCancelledError,
    PollTimeoutError,
)
from local_bench.logging_config import get_logger
from local_bench.models.service import ServiceRecord, ServiceType

logger = get_logger(__name__)

# Query failures treated as "not ready yet"
TRANSIENT_ERRORS = (ApiException, HTTPError, OSError, LocalBenchError)


def wait_for_load_balancer_address(
    lister,
    namespace: str,
    timeout: float,
    poll_interval: float,
    cancel: threading.Event | None = None,
) -> ServiceRecord:
    """Poll until exactly one LoadBalancer service in the namespace has an external address.

    The first query runs one poll interval after the call, then once per
    interval. Ticks that fall behind a slow query are skipped. Query errors,
    an empty result, several LoadBalancer services, or a single service
    without an address all mean "keep waiting".

    Args:
        lister: Object providing ``list_services(namespace, service_type)``
        namespace: Namespace hosting the service
        timeout: Overall deadline in seconds
        poll_interval: Seconds between queries
        cancel: Optional event; setting it aborts the wait

    Returns:
        The single LoadBalancer service, with at least one external IP

    Raises:
        InvalidArgumentError: If namespace is empty or a duration is not positive
        PollCancelledError: If ``cancel`` was set
        PollTimeoutError: If the deadline passed first
    """
    if not namespace:
        raise InvalidArgumentError("namespace must be provided")
    if timeout <= 0:
        raise InvalidArgumentError(f"timeout must be positive, got {timeout}")
    if poll_interval <= 0:
        raise InvalidArgumentError(f"poll_interval must be positive, got {poll_interval}")

    cancel = cancel or threading.Event()
    started = time.monotonic()
    deadline = started + timeout
    next_tick = started + poll_interval
    attempts = 0

    logger.info(
        f"Waiting up to {timeout:.0f}s for a LoadBalancer address in namespace {namespace}"
    )

    while True:
        now = time.monotonic()
        if next_tick > deadline:
            if cancel.wait(max(0.0, deadline - now)):
                _raise_cancelled(namespace, started)
            elapsed = time.monotonic() - started
            raise PollTimeoutError(
                f"Timed out waiting for LoadBalancer service in namespace {namespace} "
                f"after {elapsed:.1f}s",
                f"{attempts} queries made. Check that the load balancer is running and that "
                f"exactly one LoadBalancer service exists in {namespace}",
            )

        if cancel.wait(max(0.0, next_tick - now)):
            _raise_cancelled(namespace, started)

        attempts += 1
        service = _poll_once(lister, namespace, attempts)
        if service is not None:
            logger.info(
                f"Service {service.namespace}/{service.name} has external address "
                f"{service.external_ips[0]}"
            )
            return service

        now = time.monotonic()
        next_tick += poll_interval
        while next_tick <= now:
            next_tick += poll_interval


def _poll_once(lister, namespace: str, attempt: int) -> ServiceRecord | None:
    try:
        services = lister.list_services(namespace, ServiceType.LOAD_BALANCER.value)
    except TRANSIENT_ERRORS as e:
        logger.debug(f"Poll {attempt}: service query failed, retrying: {e}")
        return None

    logger.debug(f"Poll {attempt}: {len(services)} LoadBalancer services in {namespace}")

    if len(services) > 1:
        names = ", ".join(s.name for s in services)
        logger.warning(
            f"Several LoadBalancer services in {namespace} ({names}); waiting for exactly one"
        )
        return None
    if len(services) == 1:
        if services[0].has_external_address:
            return services[0]
        logger.debug(f"Service {services[0].name} has no external address yet")
    return None


def _raise_cancelled(namespace: str, started: float) -> None:
    elapsed = time.monotonic() - started
    raise PollCancelledError(
        f"Cancelled waiting for LoadBalancer service in namespace {namespace} after {elapsed:.1f}s"
    )
