"""
Data models for the site provisioner.

This module defines the desired state handed to the reconciler, the
inspected host state, certificate and hosts-file records, and the
per-run result reported back to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from .enums import BindingProtocol, CertificateAction, HostsAction, StoreLocation
from .exceptions import ConfigError


@dataclass(frozen=True)
class DesiredConfig:
    """Immutable desired state for one site."""

    site_name: str
    app_pool_name: str
    runtime_version: str
    bindings: tuple[str, ...]
    web_root: Path

    def validate(self) -> None:
        """
        Check the structural invariants of the desired state.

        Raises:
            ConfigError: If names are empty or there are no bindings
        """
        if not self.site_name or not self.site_name.strip():
            raise ConfigError(
                code="missing_site_name",
                message="Site name must not be empty",
            )
        if not self.app_pool_name or not self.app_pool_name.strip():
            raise ConfigError(
                code="missing_app_pool_name",
                message="App pool name must not be empty",
                details={"site_name": self.site_name},
            )
        if not self.bindings:
            raise ConfigError(
                code="missing_bindings",
                message="At least one binding is required",
                details={"site_name": self.site_name},
            )


@dataclass(frozen=True)
class Binding:
    """A (protocol, port, host-header) tuple routing requests to a site."""

    protocol: BindingProtocol
    port: int
    host_header: str

    @property
    def binding_information(self) -> str:
        return f"*:{self.port}:{self.host_header}"

    def __str__(self) -> str:
        return f"{self.host_header}:{self.port}"

    @classmethod
    def http(cls, host_header: str) -> "Binding":
        return cls(BindingProtocol.HTTP, 80, host_header)

    @classmethod
    def https(cls, host_header: str) -> "Binding":
        return cls(BindingProtocol.HTTPS, 443, host_header)


@dataclass(frozen=True)
class SiteStatus:
    """
    Inspected host state, recomputed at the start of every run.

    ``bindings`` is None when the site is absent.
    """

    site_exists: bool
    app_pool_exists: bool
    bindings: Optional[frozenset[Binding]] = None


@dataclass(frozen=True)
class CertificateRecord:
    """A certificate held in the personal or trust store."""

    subject_name: str  # CN, equal to the hostname
    thumbprint: str
    not_after: datetime
    store_location: StoreLocation = StoreLocation.PERSONAL


@dataclass(frozen=True)
class HostsEntry:
    """A single ip/hostname mapping in the hosts file."""

    ip: str
    hostname: str

    def to_line(self) -> str:
        return f"{self.ip}\t\t{self.hostname}"


@dataclass
class CertificateOutcome:
    """Result of rationalizing the certificate for one binding."""

    hostname: str
    record: CertificateRecord
    action: CertificateAction
    duplicates_removed: int = 0
    trust_installed: bool = False


@dataclass
class BindingOutcome:
    """Per-binding result of a reconcile run."""

    hostname: str
    certificate_action: CertificateAction
    thumbprint: str
    hosts_action: HostsAction
    duplicates_removed: int = 0

    def to_dict(self) -> dict:
        return {
            "hostname": self.hostname,
            "certificate": self.certificate_action.value,
            "thumbprint": self.thumbprint,
            "hosts": self.hosts_action.value,
            "duplicates_removed": self.duplicates_removed,
        }


@dataclass
class RunResult:
    """Complete result of a reconcile run."""

    site_name: str
    started_at: str
    finished_at: Optional[str] = None
    app_pool_created: bool = False
    site_recreated: bool = False
    bindings: list[BindingOutcome] = field(default_factory=list)

    def outcome_for(self, hostname: str) -> Optional[BindingOutcome]:
        for outcome in self.bindings:
            if outcome.hostname == hostname:
                return outcome
        return None

    def to_dict(self) -> dict:
        """Convert the run result to a JSON-serializable dictionary."""
        return {
            "site_name": self.site_name,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "app_pool_created": self.app_pool_created,
            "site_recreated": self.site_recreated,
            "bindings": [outcome.to_dict() for outcome in self.bindings],
        }
