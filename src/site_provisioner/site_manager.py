"""
Site convergence.

The site is always destroyed and rebuilt rather than patched binding by
binding. Binding-level edits through the host-management API proved
unreliable for SSL certificate attachment (an edit could apply to every
HTTPS binding on the site, not just the target), so a rebuild is the only
way the result is known to match the desired state.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .host_admin import HostAdminClient
from .models import Binding, CertificateOutcome, DesiredConfig, SiteStatus
from .rationalizer import CertificateRationalizer


class SiteManager:
    """Inspects and converges one site and its bindings."""

    def __init__(
        self,
        host_admin: HostAdminClient,
        rationalizer: CertificateRationalizer,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._host_admin = host_admin
        self._rationalizer = rationalizer
        self._logger = logger

    def inspect(self, desired: DesiredConfig) -> SiteStatus:
        """Read the current site and app pool state from the host."""
        bindings = self._host_admin.list_bindings(desired.site_name)
        return SiteStatus(
            site_exists=bindings is not None,
            app_pool_exists=self._host_admin.app_pool_exists(desired.app_pool_name),
            bindings=bindings,
        )

    def converge(self, desired: DesiredConfig) -> list[CertificateOutcome]:
        """
        Rebuild the site so its bindings match ``desired``.

        The first hostname creates the site on HTTP port 80, further
        hostnames add HTTP bindings, and every hostname then gets an HTTPS
        binding on port 443 with a rationalized certificate.

        Returns:
            One CertificateOutcome per binding, in binding order
        """
        if self._host_admin.site_exists(desired.site_name):
            self._host_admin.delete_site(desired.site_name)
            self._log("Deleted existing site for rebuild", {"site": desired.site_name})

        first, *rest = desired.bindings
        self._host_admin.create_site(
            desired.site_name,
            Binding.http(first),
            desired.web_root,
            desired.app_pool_name,
        )
        self._log(
            "Created site",
            {"site": desired.site_name, "binding": first, "web_root": str(desired.web_root)},
        )

        for hostname in rest:
            self._host_admin.add_binding(desired.site_name, Binding.http(hostname))

        outcomes = []
        for hostname in desired.bindings:
            https = Binding.https(hostname)
            self._host_admin.add_binding(desired.site_name, https)
            outcomes.append(
                self._rationalizer.rationalize(desired.site_name, hostname, https.port)
            )

        return outcomes

    def _log(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "SiteManager", message, data)
