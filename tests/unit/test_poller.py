"""Unit tests for the LoadBalancer address poller."""

import threading
import time

import pytest
from kubernetes.client.rest import ApiException

from local_bench.exceptions import (
    InvalidArgumentError,
    PollCancelledError,
    PollTimeoutError,
)
from local_bench.models.service import ServiceRecord, ServiceType
from local_bench.poller import wait_for_load_balancer_address


def lb(name="ingress", ips=None):
    return ServiceRecord(
        name=name, namespace="ingress", type=ServiceType.LOAD_BALANCER, external_ips=ips or []
    )


class FakeLister:
    """Returns scripted results; an exception in the script is raised."""

    def __init__(self, responses, repeat_last=True):
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.calls = []

    def list_services(self, namespace, service_type=None):
        self.calls.append((namespace, service_type, time.monotonic()))
        if len(self.responses) > 1 or not self.repeat_last:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def test_returns_once_address_appears():
    """Empty results and a pending address are waited through."""
    lister = FakeLister([[], [], [lb(ips=[])], [lb(ips=["10.0.0.5"])]])

    service = wait_for_load_balancer_address(lister, "ingress", timeout=5, poll_interval=0.01)

    assert service.external_ips == ["10.0.0.5"]
    assert len(lister.calls) == 4
    assert all(call[:2] == ("ingress", "LoadBalancer") for call in lister.calls)


def test_first_query_after_one_interval():
    lister = FakeLister([[lb(ips=["10.0.0.5"])]])

    started = time.monotonic()
    wait_for_load_balancer_address(lister, "ingress", timeout=5, poll_interval=0.2)

    assert lister.calls[0][2] - started >= 0.19


def test_transient_errors_are_retried():
    """API and OS errors during a query mean "not ready yet"."""
    lister = FakeLister(
        [ApiException(status=503), OSError("connection refused"), [lb(ips=["10.0.0.7"])]]
    )

    service = wait_for_load_balancer_address(lister, "ingress", timeout=5, poll_interval=0.01)

    assert service.external_ips == ["10.0.0.7"]


def test_several_services_keep_waiting():
    """More than one LoadBalancer service is ambiguous and not accepted."""
    two = [lb("a", ["10.0.0.1"]), lb("b", ["10.0.0.2"])]
    lister = FakeLister([two, two, [lb("a", ["10.0.0.1"])]])

    service = wait_for_load_balancer_address(lister, "ingress", timeout=5, poll_interval=0.01)

    assert service.name == "a"
    assert len(lister.calls) == 3


def test_times_out_near_deadline():
    """With no address the wait ends close to the timeout."""
    lister = FakeLister([[]])

    started = time.monotonic()
    with pytest.raises(PollTimeoutError) as exc_info:
        wait_for_load_balancer_address(lister, "ingress", timeout=0.3, poll_interval=0.05)
    elapsed = time.monotonic() - started

    assert 0.3 <= elapsed < 0.3 + 0.05 + 0.25
    assert not isinstance(exc_info.value, PollCancelledError)
    assert "ingress" in exc_info.value.message
    assert len(lister.calls) >= 2


def test_interval_longer_than_timeout_never_queries():
    lister = FakeLister([[lb(ips=["10.0.0.5"])]])

    with pytest.raises(PollTimeoutError):
        wait_for_load_balancer_address(lister, "ingress", timeout=0.1, poll_interval=1.0)

    assert lister.calls == []


def test_cancel_stops_the_wait():
    """Setting the cancel event ends the wait with a cancellation error."""
    lister = FakeLister([[]])
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()

    started = time.monotonic()
    try:
        with pytest.raises(PollCancelledError):
            wait_for_load_balancer_address(
                lister, "ingress", timeout=10, poll_interval=0.02, cancel=cancel
            )
    finally:
        timer.cancel()

    assert time.monotonic() - started < 2


def test_already_cancelled_never_queries():
    cancel = threading.Event()
    cancel.set()
    lister = FakeLister([[lb(ips=["10.0.0.5"])]])

    with pytest.raises(PollCancelledError):
        wait_for_load_balancer_address(lister, "ingress", timeout=5, poll_interval=0.01, cancel=cancel)

    assert lister.calls == []


def test_empty_namespace_rejected():
    with pytest.raises(InvalidArgumentError):
        wait_for_load_balancer_address(FakeLister([[]]), "", timeout=1, poll_interval=0.1)


@pytest.mark.parametrize("timeout,poll_interval", [(0.2, 0), (0.2, -1), (0, 0.05), (-5, 0.05)])
def test_non_positive_durations_rejected(timeout, poll_interval):
    """A zero or negative interval or timeout fails fast instead of spinning."""
    lister = FakeLister([[]])

    with pytest.raises(InvalidArgumentError):
        wait_for_load_balancer_address(lister, "ingress", timeout=timeout, poll_interval=poll_interval)

    assert lister.calls == []
