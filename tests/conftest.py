"""Pytest configuration and shared fixtures."""

import pytest
from hypothesis import Verbosity, settings

from local_bench.models.service import ServiceRecord, ServiceType
from local_bench.settings import Settings

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the user's settings file and LOCALBENCH_* variables out of tests."""
    monkeypatch.setattr("local_bench.settings.DEFAULT_SETTINGS_FILE", tmp_path / "absent.yaml")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    for name in Settings.model_fields:
        monkeypatch.delenv(f"LOCALBENCH_{name.upper()}", raising=False)


@pytest.fixture
def bench_settings(tmp_path):
    """Settings with short timings and everything under a temp directory."""
    return Settings(
        cluster_name="test-bench",
        directory=tmp_path,
        domain="test.local",
        ingress_namespace="ingress",
        address_timeout=1.0,
        poll_interval=0.05,
        dnsmasq_config=tmp_path / "dnsmasq.conf",
    )


@pytest.fixture
def lb_service():
    """A LoadBalancer service that already has an address."""
    return ServiceRecord(
        name="haproxy-ingress",
        namespace="ingress",
        type=ServiceType.LOAD_BALANCER,
        cluster_ip="10.96.0.10",
        external_ips=["172.18.0.5"],
    )
