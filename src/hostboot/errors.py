"""Exception hierarchy and failure severities shared by every provider."""
from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """How a failed step affects the rest of the run."""

    FATAL = "fatal"
    RETRYABLE = "retryable"
    BEST_EFFORT = "best-effort"


class HostbootError(RuntimeError):
    """Base class for provisioning failures."""

    severity: Severity = Severity.FATAL

    def __init__(self, message: str = "", *, severity: Severity | None = None) -> None:
        """Create the error, optionally overriding the class severity."""
        super().__init__(message)
        if severity is not None:
            self.severity = severity


class UnsupportedPlatformError(HostbootError):
    """Raised when no recipe exists for the detected OS family."""


class InstallError(HostbootError):
    """Raised when a prerequisite could not be installed."""


class AuthenticationError(HostbootError):
    """Raised when the key registry session cannot be authenticated."""


class TransferError(HostbootError):
    """Raised when the shared private key could not be fetched."""

    severity = Severity.RETRYABLE


class RegistryAPIError(HostbootError):
    """Raised when a key registry API call fails."""

    severity = Severity.BEST_EFFORT


class CredentialError(HostbootError):
    """Raised when local key material cannot be created or stored."""


class PullError(HostbootError):
    """Raised when the configuration pull fails."""


class HookError(HostbootError):
    """Raised when the post-reboot hook cannot be installed."""


class MissingHomeError(HostbootError):
    """Raised when the invoking user's home directory cannot be resolved."""


class CommandError(HostbootError):
    """Raised by the command runner when a command fails."""

    def __init__(
        self,
        message: str,
        *,
        argv: list[str],
        returncode: int | None,
        severity: Severity = Severity.FATAL,
    ) -> None:
        """Record the failing command alongside its severity."""
        super().__init__(message, severity=severity)
        self.argv = argv
        self.returncode = returncode


__all__ = [
    "AuthenticationError",
    "CommandError",
    "CredentialError",
    "HookError",
    "HostbootError",
    "InstallError",
    "MissingHomeError",
    "PullError",
    "RegistryAPIError",
    "Severity",
    "TransferError",
    "UnsupportedPlatformError",
]
