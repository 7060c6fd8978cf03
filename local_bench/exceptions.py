"""Custom exceptions for the local bench."""

from pathlib import Path


class LocalBenchError(Exception):
    """Base exception for all local bench errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class InvalidArgumentError(LocalBenchError):
    """Exception raised when a component is called with bad input."""

    pass


class UnavailableError(LocalBenchError):
    """Exception raised when a required binary is missing and cannot be installed."""

    pass


class PermissionDeniedError(LocalBenchError):
    """Exception raised when privilege elevation is required but unobtainable."""

    pass


class LaunchFailedError(LocalBenchError):
    """Exception raised when the load balancer process cannot be spawned or fails."""

    pass


class PollTimeoutError(LocalBenchError):
    """Exception raised when a bounded wait expires without success."""

    pass


class PollCancelledError(PollTimeoutError):
    """Exception raised when the caller cancels a bounded wait."""

    pass


class FileSystemError(LocalBenchError):
    """Exception raised for file read, write or rename failures."""

    def __init__(self, message: str, path: Path, details: str = None):
        self.path = Path(path)
        super().__init__(message, details)


class ReloadUnavailableError(LocalBenchError):
    """Exception raised when the resolver config was written but could not be reloaded.

    The config change is kept; the resolver may serve stale mappings until it
    is reloaded by hand.
    """

    def __init__(self, message: str, path: Path, details: str = None):
        self.path = Path(path)
        super().__init__(message, details)


class ConfigurationError(LocalBenchError):
    """Exception raised for configuration errors."""

    pass


class KubernetesError(LocalBenchError):
    """Exception raised for Kubernetes API errors."""

    pass


class ClusterProvisionError(LocalBenchError):
    """Exception raised when kind fails to create or delete a cluster."""

    pass


class ChartInstallError(LocalBenchError):
    """Exception raised when a Helm install or upgrade fails."""

    pass


class BootstrapError(LocalBenchError):
    """Exception raised when a cluster bootstrap run ends in the failed state.

    Attributes:
        failed_state: The bootstrap state in which the failure occurred
        report: Partial report describing what was completed before the failure
    """

    def __init__(self, message: str, details: str = None, failed_state=None, report=None):
        self.failed_state = failed_state
        self.report = report
        super().__init__(message, details)
