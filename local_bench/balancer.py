"""Supervision of the cloud-provider-kind load balancer process.

cloud-provider-kind provisions addresses for LoadBalancer services of kind
clusters. It needs root to manage network namespaces, so it is started
through sudo when the bench is not already running as root. In background
mode it is detached into its own session and keeps running after the CLI
exits; its output goes to a per-cluster log file in the temp directory.
"""

import os
import signal
import subprocess
import tempfile
from pathlib import Path

from local_bench.exceptions import (
    FileSystemError,
    InvalidArgumentError,
    LaunchFailedError,
    PermissionDeniedError,
    UnavailableError,
)
from local_bench.logging_config import get_logger
from local_bench.models.cluster import BalancerProcess
from local_bench.process import (
    ELEVATION_TOOL,
    is_elevated,
    is_installed,
    process_command,
    run_combined,
)

logger = get_logger(__name__)

BALANCER_BINARY = "cloud-provider-kind"
BALANCER_MODULE = "sigs.k8s.io/cloud-provider-kind@latest"


class BalancerSupervisor:
    """Installs and launches the load balancer for a kind cluster."""

    def __init__(self, state_dir: Path | None = None):
        """Initialize the supervisor.

        Args:
            state_dir: Directory for log and pid files (defaults to the temp dir)
        """
        self.state_dir = Path(state_dir) if state_dir else Path(tempfile.gettempdir())

    def ensure_installed(self) -> None:
        """Make sure the balancer binary resolves on PATH, installing it with go if needed.

        Raises:
            UnavailableError: If go is missing, the install fails, or the binary
                still cannot be found afterwards
        """
        if is_installed(BALANCER_BINARY):
            return

        if not is_installed("go"):
            raise UnavailableError(
                f"{BALANCER_BINARY} is not installed and go is not available to build it",
                f"Install go, or install the binary manually: go install {BALANCER_MODULE}",
            )

        logger.info(f"Installing {BALANCER_BINARY} with go install")
        code, output = run_combined(["go", "install", BALANCER_MODULE])
        if code != 0:
            raise UnavailableError(f"Failed to install {BALANCER_BINARY}", output.strip())

        if not is_installed(BALANCER_BINARY):
            raise UnavailableError(
                f"{BALANCER_BINARY} not found in PATH after install",
                "Add the go bin directory (usually ~/go/bin) to PATH. "
                f"Install output: {output.strip()}",
            )
        logger.info(f"{BALANCER_BINARY} installed")

    def needs_elevation(self) -> bool:
        """True when the balancer must be started through the elevation tool."""
        return not is_elevated()

    def elevation_available(self) -> bool:
        """True when the balancer can be started with the privileges it needs."""
        return not self.needs_elevation() or is_installed(ELEVATION_TOOL)

    def validate_elevation(self) -> None:
        """Refresh cached elevation credentials, prompting on the terminal if needed.

        Raises:
            PermissionDeniedError: If validation fails
        """
        try:
            result = subprocess.run([ELEVATION_TOOL, "-v"])
        except OSError as e:
            raise PermissionDeniedError(f"{ELEVATION_TOOL} validation failed", str(e))
        if result.returncode != 0:
            raise PermissionDeniedError(
                f"{ELEVATION_TOOL} validation failed",
                f"'{ELEVATION_TOOL} -v' exited with return code {result.returncode}",
            )

    def log_path(self, cluster_name: str) -> Path:
        """Log file of the background balancer for a cluster."""
        return self.state_dir / f"{BALANCER_BINARY}-{cluster_name}.log"

    def pid_path(self, cluster_name: str) -> Path:
        """Pid file of the background balancer for a cluster."""
        return self.state_dir / f"{BALANCER_BINARY}-{cluster_name}.pid"

    def start(self, cluster_name: str, background: bool = True) -> BalancerProcess | None:
        """Start the load balancer.

        Every call launches a new process; use ``running_pid`` first to avoid
        duplicates.

        Args:
            cluster_name: Cluster the balancer serves (names the log file)
            background: Detach and return immediately instead of blocking

        Returns:
            The launched process in background mode, None in foreground mode
            once the balancer has exited

        Raises:
            InvalidArgumentError: If cluster_name is empty
            UnavailableError: If the balancer binary is not on PATH
            PermissionDeniedError: If elevation is needed but unavailable
            LaunchFailedError: If the process cannot be spawned or fails
            FileSystemError: If the log file cannot be opened
        """
        if not cluster_name:
            raise InvalidArgumentError("cluster name must be provided")

        if not is_installed(BALANCER_BINARY):
            raise UnavailableError(
                f"{BALANCER_BINARY} is not installed or not in PATH",
                "Run the cluster create command or install it with: "
                f"go install {BALANCER_MODULE}",
            )

        elevate = self.needs_elevation()
        if elevate and not is_installed(ELEVATION_TOOL):
            raise PermissionDeniedError(
                f"{BALANCER_BINARY} needs root privileges but {ELEVATION_TOOL} is not installed",
                "Run the command as root or install sudo",
            )

        if background:
            return self._launch_background(cluster_name, elevate)
        self._run_foreground(elevate)
        return None

    def _run_foreground(self, elevate: bool) -> None:
        logger.info(f"Running {BALANCER_BINARY} in the foreground")
        try:
            if elevate:
                # Attached to the terminal so the password prompt reaches the user
                returncode = subprocess.run([ELEVATION_TOOL, BALANCER_BINARY]).returncode
                output = ""
            else:
                returncode, output = run_combined([BALANCER_BINARY])
        except OSError as e:
            raise LaunchFailedError(f"Failed to start {BALANCER_BINARY}", str(e))

        if returncode != 0:
            raise LaunchFailedError(
                f"{BALANCER_BINARY} exited with return code {returncode}",
                output.strip() or None,
            )
        logger.info(f"{BALANCER_BINARY} exited")

    def _launch_background(self, cluster_name: str, elevate: bool) -> BalancerProcess:
        if elevate:
            self.validate_elevation()
            # Credentials are cached now; -n keeps the detached child from prompting
            command = [ELEVATION_TOOL, "-n", BALANCER_BINARY]
        else:
            command = [BALANCER_BINARY]

        log_path = self.log_path(cluster_name)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = open(log_path, "ab")
        except OSError as e:
            raise FileSystemError(f"Failed to open balancer log file: {log_path}", log_path, str(e))

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=log_file,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchFailedError(f"Failed to start {BALANCER_BINARY}", str(e))
        finally:
            # The child keeps its own descriptor
            log_file.close()

        self._write_pid(cluster_name, process.pid)
        logger.info(
            f"{BALANCER_BINARY} started in background with pid {process.pid}, logging to {log_path}"
        )
        return BalancerProcess(
            pid=process.pid, log_file_path=log_path, detached=True, privileged=elevate
        )

    def _write_pid(self, cluster_name: str, pid: int) -> None:
        pid_path = self.pid_path(cluster_name)
        try:
            pid_path.write_text(f"{pid}\n")
        except OSError as e:
            logger.warning(f"Failed to record balancer pid in {pid_path}: {e}")

    def running_pid(self, cluster_name: str) -> int | None:
        """Return the pid of a live background balancer for the cluster, if any.

        Stale pid files are removed, including ones whose pid now belongs to
        a different program.
        """
        pid_path = self.pid_path(cluster_name)
        try:
            pid = int(pid_path.read_text().strip())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable pid file {pid_path}: {e}")
            return None

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            logger.debug(f"Removing stale pid file {pid_path}")
            pid_path.unlink(missing_ok=True)
            return None
        except PermissionError:
            # Alive, owned by root
            pass

        command = process_command(pid)
        if command is None:
            logger.debug(f"Cannot inspect pid {pid}; trusting pid file {pid_path}")
        elif BALANCER_BINARY not in command:
            logger.warning(
                f"Pid {pid} from {pid_path} is no longer {BALANCER_BINARY} "
                f"({command or 'exited'}); removing pid file"
            )
            pid_path.unlink(missing_ok=True)
            return None
        return pid

    def stop(self, cluster_name: str) -> bool:
        """Stop the background balancer recorded for the cluster.

        Returns:
            True if a running process was signalled, False if none was running

        Raises:
            PermissionDeniedError: If the process cannot be signalled
        """
        pid = self.running_pid(cluster_name)
        if pid is None:
            return False

        logger.info(f"Stopping {BALANCER_BINARY} (pid {pid})")
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            pass
        except PermissionError:
            if not is_installed(ELEVATION_TOOL):
                raise PermissionDeniedError(
                    f"Cannot stop {BALANCER_BINARY} (pid {pid})",
                    f"The process belongs to root and {ELEVATION_TOOL} is not installed",
                )
            code, output = run_combined([ELEVATION_TOOL, "kill", "-TERM", str(pid)])
            if code != 0:
                raise PermissionDeniedError(
                    f"Cannot stop {BALANCER_BINARY} (pid {pid})", output.strip()
                )

        self.pid_path(cluster_name).unlink(missing_ok=True)
        return True
