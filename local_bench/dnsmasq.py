"""dnsmasq configuration management.

Maps bench hostnames to the load balancer address by keeping one
``address=/<domain>/<ip>`` line per domain in the dnsmasq config, then asks
dnsmasq to reload. The file is replaced atomically so dnsmasq never reads a
half-written config. There is no locking: concurrent writers must be
serialized by the caller.
"""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path

from pydantic import ValidationError

from local_bench.exceptions import (
    FileSystemError,
    InvalidArgumentError,
    ReloadUnavailableError,
    UnavailableError,
)
from local_bench.logging_config import get_logger
from local_bench.models.dns import DomainMapping
from local_bench.process import is_installed, run_combined

logger = get_logger(__name__)

CONFIG_CANDIDATES = [
    Path("/opt/homebrew/etc/dnsmasq.conf"),
    Path("/usr/local/etc/dnsmasq.conf"),
    Path("/etc/dnsmasq.conf"),
]

# Tried in order; the first that succeeds wins
RELOAD_COMMANDS = [
    ["brew", "services", "restart", "dnsmasq"],
    ["systemctl", "restart", "dnsmasq"],
    ["pkill", "-HUP", "dnsmasq"],
    ["killall", "-HUP", "dnsmasq"],
]

RELOAD_TIMEOUT = 60


def split_lines(content: str) -> list[str]:
    """Split file content into lines, accepting both LF and CRLF endings."""
    if not content:
        return []
    lines = content.replace("\r\n", "\n").split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def upsert_address_line(lines: list[str], mapping: DomainMapping) -> tuple[list[str], bool]:
    """Replace the first active line for the domain, or append one.

    Comment lines are never matched. Only the first active match is
    replaced; later duplicates are left untouched.

    Returns:
        Tuple of (new lines, True if an existing line was replaced)
    """
    result = list(lines)
    for i, line in enumerate(result):
        if mapping.matches(line):
            result[i] = mapping.line
            return result, True
    result.append(mapping.line)
    return result, False


def write_atomic(path: Path, content: str) -> None:
    """Write content to path through a temp file in the same directory and a rename.

    The permission bits of an existing file are kept. The temp file is
    removed if anything fails before the rename, interrupts included.
    Undecodable bytes read with ``surrogateescape`` are written back as-is.

    Raises:
        FileSystemError: If the directory, temp file, encoding or rename fails
    """
    path = Path(path)
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            dir=path.parent,
            prefix=f"{path.name}.tmp.",
            delete=False,
            encoding="utf-8",
            errors="surrogateescape",
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException as e:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        if isinstance(e, (OSError, UnicodeError)):
            raise FileSystemError(f"Failed to write config file: {path}", path, str(e)) from e
        raise


class DnsmasqClient:
    """Keeps dnsmasq address mappings up to date."""

    def __init__(self, config_path: Path | str | None = None):
        """Initialize the client.

        Args:
            config_path: dnsmasq config file; None picks the first existing
                conventional location
        """
        self.config_path = Path(config_path) if config_path else None

    def resolve_config_path(self) -> Path:
        """Return the config file to edit."""
        if self.config_path:
            return self.config_path
        for candidate in CONFIG_CANDIDATES:
            if candidate.exists():
                return candidate
        return CONFIG_CANDIDATES[0]

    def read_lines(self, path: Path) -> list[str]:
        """Read the config file; a missing file reads as empty.

        Bytes that are not UTF-8 (a Latin-1 comment, say) are carried through
        unchanged to the next write.
        """
        try:
            return split_lines(path.read_text(encoding="utf-8", errors="surrogateescape"))
        except FileNotFoundError:
            logger.debug(f"dnsmasq config {path} does not exist yet")
            return []
        except OSError as e:
            raise FileSystemError(f"Failed to read dnsmasq config: {path}", path, str(e))

    def ensure_domain_ip(self, domain: str, ip: str) -> Path:
        """Map a domain to an IP in the dnsmasq config and reload dnsmasq.

        Args:
            domain: Domain to map (dnsmasq also resolves its subdomains)
            ip: Address to resolve to

        Returns:
            Path of the config file that was written

        Raises:
            InvalidArgumentError: If domain or ip is empty
            UnavailableError: If dnsmasq is not installed
            FileSystemError: If the config cannot be read or written
            ReloadUnavailableError: If the config was written but dnsmasq
                could not be reloaded
        """
        if not domain:
            raise InvalidArgumentError("domain must be provided")
        if not ip:
            raise InvalidArgumentError("ip must be provided")
        try:
            mapping = DomainMapping(domain=domain, ip=ip)
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid mapping {domain} -> {ip}", str(e))

        if not is_installed("dnsmasq"):
            raise UnavailableError(
                "dnsmasq is not installed or not in PATH",
                "Install dnsmasq (brew install dnsmasq, or your distribution's package)",
            )

        path = self.resolve_config_path()
        lines, replaced = upsert_address_line(self.read_lines(path), mapping)
        write_atomic(path, "\n".join(lines) + "\n")
        logger.info(
            f"{'Updated' if replaced else 'Added'} dnsmasq mapping {mapping.line} in {path}"
        )

        self.reload(path)
        return path

    def reload(self, path: Path) -> str:
        """Ask dnsmasq to reload its configuration.

        Args:
            path: Config file that was changed, reported on failure

        Returns:
            The command that reloaded dnsmasq

        Raises:
            ReloadUnavailableError: If no reload mechanism succeeded
        """
        attempts = []
        for command in RELOAD_COMMANDS:
            if not is_installed(command[0]):
                continue

            command_str = " ".join(command)
            try:
                code, output = run_combined(command, timeout=RELOAD_TIMEOUT)
            except (OSError, subprocess.TimeoutExpired) as e:
                attempts.append(f"{command_str}: {e}")
                continue

            if code == 0:
                logger.info(f"dnsmasq reloaded with: {command_str}")
                return command_str

            logger.debug(f"Reload with '{command_str}' failed with return code {code}")
            attempts.append(f"{command_str}: exit {code}: {output.strip()}")

        details = (
            "Tried:\n" + "\n".join(f"  - {a}" for a in attempts)
            if attempts
            else "None of brew, systemctl, pkill or killall is available"
        )
        raise ReloadUnavailableError(
            f"Updated dnsmasq config at {path} but could not reload dnsmasq",
            path,
            details + "\n\nRestart dnsmasq manually to apply the change",
        )
