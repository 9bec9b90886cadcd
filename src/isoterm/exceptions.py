"""
Custom exceptions for isoterm.

This module defines domain-specific exceptions that provide better error
categorization and more informative error messages for users and developers.
"""


class IsotermError(Exception):
    """
    Base exception for all isoterm errors.

    All custom exceptions in isoterm should inherit from this class
    to allow for easy catching of all application-specific errors.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(IsotermError):
    """Exception raised when the settings file cannot be read or parsed."""

    pass


class ConfigGenerationError(IsotermError):
    """Exception raised when environment configuration files cannot be written."""

    pass


# =============================================================================
# Network and API Errors
# =============================================================================


class NetworkError(IsotermError):
    """
    Exception raised for network-related failures.

    This includes:
    - Connection timeouts and refused connections
    - DNS resolution failures
    - HTTP error responses

    Attributes:
        url: The URL being requested when the error occurred.
        status_code: The HTTP status code, when the server answered.
        is_retryable: Whether the request may succeed if repeated.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        is_retryable: bool = True,
        details: str | None = None,
    ) -> None:
        """
        Initialize the network exception.

        Args:
            message: The primary error message.
            url: The URL that was being requested.
            status_code: The HTTP status code, if any.
            is_retryable: Whether this error could be retried.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code
        self.is_retryable = is_retryable


class ApiShapeError(IsotermError):
    """Exception raised when the release API answers with an unexpected JSON shape."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class AssetNotFoundError(IsotermError):
    """
    Exception raised when no release asset matches the host platform.

    Attributes:
        tool: Name of the tool being resolved.
        os_name: Normalized operating system name.
        arch: Normalized CPU architecture.
    """

    def __init__(
        self,
        tool: str,
        os_name: str,
        arch: str,
        details: str | None = None,
    ) -> None:
        super().__init__(
            f"Could not find a compatible release asset for '{tool}' on your platform ({os_name} {arch})",
            details,
        )
        self.tool = tool
        self.os_name = os_name
        self.arch = arch


# =============================================================================
# Filesystem Errors
# =============================================================================


class ArchiveError(IsotermError):
    """
    Exception raised for archive problems.

    This includes:
    - Unsupported archive formats
    - Corrupt or truncated archives
    - A required entry missing from the archive
    """

    pass


class SymlinkError(IsotermError):
    """Exception raised when a relative symlink cannot be computed or created."""

    def __init__(
        self, message: str, link: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.link = link


# =============================================================================
# Process Errors
# =============================================================================


class ProcessError(IsotermError):
    """
    Exception raised when an introspection command fails.

    Attributes:
        command: The command line that was executed.
        returncode: Exit status of the process, if it ran.
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        returncode: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.command = command
        self.returncode = returncode
