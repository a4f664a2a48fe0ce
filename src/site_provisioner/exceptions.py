"""
Exception classes for the site provisioner.

All exceptions inherit from ProvisionerError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class ProvisionerError(Exception):
    """Base exception for all site provisioner errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(ProvisionerError):
    """Raised when the desired state is missing or invalid."""

    pass


class HostsFileError(ProvisionerError, OSError):
    """Raised when the hosts file cannot be read or written (an IOError)."""

    pass


class CertificateError(ProvisionerError):
    """Raised when a certificate store operation fails."""

    pass


class CertificateNotFoundError(CertificateError):
    """Raised when a certificate is already absent from its store."""

    pass


class HostApiError(ProvisionerError):
    """Raised when a site, app pool, or binding operation fails."""

    pass
