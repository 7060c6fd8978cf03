"""Unit tests for dnsmasq config synchronization."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from local_bench.dnsmasq import (
    CONFIG_CANDIDATES,
    DnsmasqClient,
    split_lines,
    upsert_address_line,
    write_atomic,
)
from local_bench.exceptions import (
    FileSystemError,
    InvalidArgumentError,
    ReloadUnavailableError,
    UnavailableError,
)
from local_bench.models.dns import DomainMapping


def installed(*names):
    """Stand-in for is_installed that knows only the given executables."""
    return lambda name: name in names


@pytest.fixture
def config(tmp_path):
    return tmp_path / "dnsmasq.conf"


def test_replaces_existing_active_line(config):
    """An existing mapping for the domain is replaced in place."""
    config.write_text("# comment\naddress=/k8s.local/10.0.0.1\n")

    with patch("local_bench.dnsmasq.is_installed", installed("dnsmasq", "pkill")), patch(
        "local_bench.dnsmasq.run_combined", return_value=(0, "")
    ):
        path = DnsmasqClient(config).ensure_domain_ip("k8s.local", "10.0.0.2")

    assert path == config
    assert config.read_text() == "# comment\naddress=/k8s.local/10.0.0.2\n"


def test_comment_is_not_matched(config):
    """A commented-out mapping is kept and a new active line is appended."""
    config.write_text("# address=/k8s.local/1.1.1.1\n")

    with patch("local_bench.dnsmasq.is_installed", installed("dnsmasq", "pkill")), patch(
        "local_bench.dnsmasq.run_combined", return_value=(0, "")
    ):
        DnsmasqClient(config).ensure_domain_ip("k8s.local", "10.0.0.2")

    assert config.read_text() == "# address=/k8s.local/1.1.1.1\naddress=/k8s.local/10.0.0.2\n"


def test_missing_file_is_created(config):
    """A config file that does not exist yet is created with the mapping."""
    with patch("local_bench.dnsmasq.is_installed", installed("dnsmasq", "pkill")), patch(
        "local_bench.dnsmasq.run_combined", return_value=(0, "")
    ):
        DnsmasqClient(config).ensure_domain_ip("k8s.local", "10.0.0.2")

    assert config.read_text() == "address=/k8s.local/10.0.0.2\n"


def test_repeated_calls_are_idempotent(config):
    """Applying the same mapping twice leaves the file unchanged."""
    config.write_text("port=53\r\naddress=/other.local/10.1.1.1\r\n")

    with patch("local_bench.dnsmasq.is_installed", installed("dnsmasq", "pkill")), patch(
        "local_bench.dnsmasq.run_combined", return_value=(0, "")
    ):
        client = DnsmasqClient(config)
        client.ensure_domain_ip("k8s.local", "10.0.0.2")
        first = config.read_text()
        client.ensure_domain_ip("k8s.local", "10.0.0.2")

    assert config.read_text() == first
    assert first == "port=53\naddress=/other.local/10.1.1.1\naddress=/k8s.local/10.0.0.2\n"


def test_only_first_match_is_replaced():
    """Later duplicate lines for the domain are left alone."""
    mapping = DomainMapping(domain="k8s.local", ip="10.0.0.9")
    lines = ["address=/k8s.local/1.1.1.1", "address=/k8s.local/2.2.2.2"]

    result, replaced = upsert_address_line(lines, mapping)

    assert replaced
    assert result == ["address=/k8s.local/10.0.0.9", "address=/k8s.local/2.2.2.2"]
    assert lines[0] == "address=/k8s.local/1.1.1.1"


def test_longer_domain_is_not_matched():
    """A mapping for a different domain sharing a prefix is not touched."""
    mapping = DomainMapping(domain="k8s.local", ip="10.0.0.9")

    result, replaced = upsert_address_line(["address=/k8s.local.example/1.1.1.1"], mapping)

    assert not replaced
    assert result[-1] == "address=/k8s.local/10.0.0.9"


def test_split_lines_handles_crlf_and_trailing_newline():
    assert split_lines("") == []
    assert split_lines("a\r\nb\r\n") == ["a", "b"]
    assert split_lines("a\nb") == ["a", "b"]
    assert split_lines("a\n\n") == ["a", ""]


def test_atomic_write_failure_leaves_original(config):
    """A failed rename keeps the original content and removes the temp file."""
    config.write_text("address=/k8s.local/10.0.0.1\n")

    with patch("local_bench.dnsmasq.os.replace", side_effect=OSError("rename failed")):
        with pytest.raises(FileSystemError) as exc_info:
            write_atomic(config, "address=/k8s.local/10.0.0.2\n")

    assert exc_info.value.path == config
    assert config.read_text() == "address=/k8s.local/10.0.0.1\n"
    assert list(config.parent.iterdir()) == [config]


def test_atomic_write_keeps_permissions(config):
    """The replaced file keeps the mode of the original."""
    config.write_text("old\n")
    config.chmod(0o640)

    write_atomic(config, "new\n")

    assert config.read_text() == "new\n"
    assert config.stat().st_mode & 0o777 == 0o640


def test_empty_arguments_rejected(config):
    """Empty domain or ip is rejected before anything else happens."""
    client = DnsmasqClient(config)

    with pytest.raises(InvalidArgumentError):
        client.ensure_domain_ip("", "10.0.0.1")
    with pytest.raises(InvalidArgumentError):
        client.ensure_domain_ip("k8s.local", "")
    assert not config.exists()


def test_dnsmasq_not_installed(config):
    """Without dnsmasq nothing is written."""
    with patch("local_bench.dnsmasq.is_installed", installed()):
        with pytest.raises(UnavailableError):
            DnsmasqClient(config).ensure_domain_ip("k8s.local", "10.0.0.1")

    assert not config.exists()


def test_reload_falls_through_to_next_mechanism(config):
    """A failing reload command is followed by the next available one."""
    results = {"systemctl": (1, "Unit dnsmasq.service not found."), "pkill": (0, "")}
    calls = []

    def fake_run(args, timeout=None):
        calls.append(args)
        return results[args[0]]

    with patch(
        "local_bench.dnsmasq.is_installed", installed("systemctl", "pkill", "killall")
    ), patch("local_bench.dnsmasq.run_combined", side_effect=fake_run):
        used = DnsmasqClient(config).reload(config)

    assert used == "pkill -HUP dnsmasq"
    assert calls == [["systemctl", "restart", "dnsmasq"], ["pkill", "-HUP", "dnsmasq"]]


def test_reload_timeout_falls_through(config):
    """A reload command that hangs is abandoned for the next one."""

    def fake_run(args, timeout=None):
        if args[0] == "brew":
            raise subprocess.TimeoutExpired(args, timeout)
        return 0, ""

    with patch("local_bench.dnsmasq.is_installed", installed("brew", "killall")), patch(
        "local_bench.dnsmasq.run_combined", side_effect=fake_run
    ):
        assert DnsmasqClient(config).reload(config) == "killall -HUP dnsmasq"


def test_reload_unavailable_keeps_written_file(config):
    """When no reload works the file is still updated and the error names it."""
    with patch("local_bench.dnsmasq.is_installed", installed("dnsmasq", "pkill")), patch(
        "local_bench.dnsmasq.run_combined", return_value=(1, "no process found")
    ):
        with pytest.raises(ReloadUnavailableError) as exc_info:
            DnsmasqClient(config).ensure_domain_ip("k8s.local", "10.0.0.2")

    assert exc_info.value.path == config
    assert "no process found" in exc_info.value.details
    assert config.read_text() == "address=/k8s.local/10.0.0.2\n"


def test_reload_with_no_tools(config):
    with patch("local_bench.dnsmasq.is_installed", installed()):
        with pytest.raises(ReloadUnavailableError) as exc_info:
            DnsmasqClient(config).reload(config)

    assert "None of brew" in exc_info.value.details


def test_config_path_explicit_wins(tmp_path):
    assert DnsmasqClient(tmp_path / "custom.conf").resolve_config_path() == (
        tmp_path / "custom.conf"
    )


def test_config_path_first_existing_candidate():
    """The first conventional location that exists is used."""
    existing = CONFIG_CANDIDATES[1]

    with patch.object(Path, "exists", lambda self: self == existing):
        assert DnsmasqClient().resolve_config_path() == existing


def test_config_path_defaults_to_first_candidate():
    with patch.object(Path, "exists", lambda self: False):
        assert DnsmasqClient().resolve_config_path() == CONFIG_CANDIDATES[0]


def test_non_utf8_bytes_are_preserved(config):
    """A Latin-1 comment survives the update byte for byte."""
    config.write_bytes(b"# caf\xe9\naddress=/k8s.local/1.1.1.1\n")

    with patch("local_bench.dnsmasq.is_installed", installed("dnsmasq", "pkill")), patch(
        "local_bench.dnsmasq.run_combined", return_value=(0, "")
    ):
        DnsmasqClient(config).ensure_domain_ip("k8s.local", "2.2.2.2")

    assert config.read_bytes() == b"# caf\xe9\naddress=/k8s.local/2.2.2.2\n"


@pytest.mark.parametrize("error", [RuntimeError("boom"), KeyboardInterrupt()])
def test_atomic_write_removes_temp_file_on_any_error(config, error):
    """Errors other than OSError still clean up the temp file and propagate."""
    config.write_text("address=/k8s.local/10.0.0.1\n")

    with patch("local_bench.dnsmasq.os.fsync", side_effect=error):
        with pytest.raises(type(error)):
            write_atomic(config, "address=/k8s.local/10.0.0.2\n")

    assert config.read_text() == "address=/k8s.local/10.0.0.1\n"
    assert list(config.parent.iterdir()) == [config]


def test_unencodable_content_is_a_file_system_error(config):
    """Text that cannot be encoded fails as FileSystemError without leftovers."""
    config.write_text("address=/k8s.local/10.0.0.1\n")

    with pytest.raises(FileSystemError) as exc_info:
        write_atomic(config, "address=/b\ud800.local/10.0.0.2\n")

    assert exc_info.value.path == config
    assert config.read_text() == "address=/k8s.local/10.0.0.1\n"
    assert list(config.parent.iterdir()) == [config]
