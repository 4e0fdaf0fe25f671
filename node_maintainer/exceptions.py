"""Custom exceptions for node maintenance."""


class MaintainerError(Exception):
    """Base exception for all node maintainer errors."""

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


class ConfigurationError(MaintainerError):
    """Exception raised for configuration errors."""

    pass


class PowerShellError(MaintainerError):
    """Exception raised when a PowerShell invocation fails."""

    pass


class ClusterError(MaintainerError):
    """Exception raised for failover cluster or storage query errors."""

    pass


class PreconditionError(MaintainerError):
    """Cluster is not healthy enough to start maintenance."""

    pass


class NoPartnerError(PreconditionError):
    """No other node is Up to take over shared volumes."""

    pass


class DrainError(MaintainerError):
    """Exception raised when moving shared volumes off the node fails."""

    def __init__(self, message: str, details: str = None, moved_volumes: list[str] | None = None):
        self.moved_volumes = list(moved_volumes or [])
        super().__init__(message, details)


class MaintenanceEntryError(MaintainerError):
    """Exception raised when the node cannot be suspended."""

    pass


class MaintenanceExitError(MaintainerError):
    """Exception raised when the node cannot be resumed."""

    pass


class UpdateError(MaintainerError):
    """Exception raised for Windows Update errors."""

    pass


class UpdateDiscoveryError(UpdateError):
    """Exception raised when searching for updates fails."""

    pass


class InstallError(UpdateError):
    """Exception raised when installing updates fails."""

    pass


class ContinuationError(MaintainerError):
    """Exception raised when the post-reboot task cannot be armed or disarmed."""

    pass


class RestartError(MaintainerError):
    """Exception raised when the OS restart cannot be scheduled."""

    pass
