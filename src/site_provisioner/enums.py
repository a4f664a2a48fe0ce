"""
Enumeration types for the site provisioner.

These enums provide type-safe constants for store locations, binding
protocols, per-binding outcomes, and logging levels.
"""

from enum import Enum


class StoreLocation(Enum):
    """Certificate repository a record lives in."""

    PERSONAL = "personal"
    TRUST = "trust"


class BindingProtocol(Enum):
    """Protocol of a site binding."""

    HTTP = "http"
    HTTPS = "https"


class CertificateAction(Enum):
    """What the rationalizer did for a binding's certificate."""

    ISSUED = "issued"
    REUSED = "reused"
    RENEWED = "renewed"


class HostsAction(Enum):
    """What the reconciler did for a binding's hosts entry."""

    ADDED = "added"
    SKIPPED = "skipped"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]


_LEVEL_RANKS = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class HostnameErrorCode(Enum):
    """Error codes for binding hostname validation failures."""

    EMPTY_INPUT = "empty_input"
    FORBIDDEN_CHARS = "forbidden_chars"
    IDNA_ERROR = "idna_error"
    INVALID_LABEL = "invalid_label"
