"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class AaglCliError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(AaglCliError):
    """Raised for issues related to configuration loading or validation."""


class MetadataUnavailableError(AaglCliError):
    """Raised when the versions server is unreachable or answers with a non-2xx status."""


class MetadataResponseError(AaglCliError):
    """
    Raised when the versions server answers with a non-OK application status
    or a body that cannot be parsed into version metadata.
    """

    def __init__(self, message: str, retcode: int | None = None):
        super().__init__(message)
        self.retcode = retcode


class TargetNotFoundError(AaglCliError):
    """Raised when no download target matches the installed version and no policy resolves it."""


class TransportError(AaglCliError):
    """Raised when a package transfer fails after all attempts."""


class UnpackError(TransportError):
    """Raised when a downloaded archive cannot be extracted."""


class PrerequisiteError(AaglCliError):
    """Raised when the compatibility prefix is missing and cannot be created."""
