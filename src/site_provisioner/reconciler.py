"""
Reconciler for the site provisioner.

Top-level orchestration that converges the host to one DesiredConfig:

1. Validate the desired state (nothing is mutated on a ConfigError)
2. Inspect the current site and app pool
3. Ensure the app pool exists
4. Rebuild the site, its bindings, and their certificates
5. Grant the serving identities access to the web root
6. Add hosts entries for bindings outside the loopback test domain

Every step is idempotent; a failed run leaves partial state in place and
re-running is the recovery path. No step is retried.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .app_pool import AppPoolManager
from .audit_logger import AuditLogger
from .certificate_store import CertificateStore
from .config import HostsConfig
from .enums import HostsAction, LogLevel
from .exceptions import ProvisionerError
from .host_admin import HostAdminClient
from .hostnames import is_loopback_domain
from .hosts_file import HostsFileEditor
from .models import BindingOutcome, DesiredConfig, RunResult, SiteStatus
from .permissions import FolderPermissionAssigner
from .rationalizer import DEFAULT_RENEWAL_THRESHOLD, CertificateRationalizer
from .site_manager import SiteManager


class Reconciler:
    """
    Converges live host state to a DesiredConfig.

    Components are built from the injected host client and certificate
    store, so the same reconciler runs against IIS or the simulated host.
    """

    def __init__(
        self,
        host_admin: HostAdminClient,
        certificate_store: CertificateStore,
        hosts_config: Optional[HostsConfig] = None,
        hosts_editor: Optional[HostsFileEditor] = None,
        permission_assigner: Optional[FolderPermissionAssigner] = None,
        renewal_threshold: timedelta = DEFAULT_RENEWAL_THRESHOLD,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._hosts_config = hosts_config or HostsConfig()
        self._hosts_editor = hosts_editor or HostsFileEditor(logger=logger)
        self._permission_assigner = permission_assigner

        self._app_pool_manager = AppPoolManager(host_admin, logger=logger)
        self._rationalizer = CertificateRationalizer(
            store=certificate_store,
            host_admin=host_admin,
            renewal_threshold=renewal_threshold,
            clock=self._clock,
            logger=logger,
        )
        self._site_manager = SiteManager(host_admin, self._rationalizer, logger=logger)

    def inspect(self, desired: DesiredConfig) -> SiteStatus:
        """Read the current state without changing anything."""
        return self._site_manager.inspect(desired)

    def reconcile(self, desired: DesiredConfig) -> RunResult:
        """
        Perform a complete convergence run.

        Args:
            desired: The desired site state

        Returns:
            RunResult with per-binding certificate and hosts outcomes

        Raises:
            ProvisionerError: The first failure; ``details["step"]`` names it
        """
        result = RunResult(site_name=desired.site_name, started_at=self._timestamp())

        self._step("validate", desired.validate)

        status = self._step("inspect", self._site_manager.inspect, desired)
        self._log_info(
            "Reconciler",
            f"Starting reconcile for site: {desired.site_name}",
            {
                "site": desired.site_name,
                "site_exists": status.site_exists,
                "app_pool_exists": status.app_pool_exists,
                "existing_bindings": sorted(str(b) for b in status.bindings or ()),
                "desired_bindings": list(desired.bindings),
            },
        )

        result.app_pool_created = self._step(
            "app_pool",
            self._app_pool_manager.ensure,
            desired.app_pool_name,
            desired.runtime_version,
        )

        certificate_outcomes = self._step("site", self._site_manager.converge, desired)
        result.site_recreated = status.site_exists

        if self._permission_assigner is not None:
            self._step(
                "permissions",
                self._permission_assigner.grant,
                desired.web_root,
                desired.app_pool_name,
            )

        for outcome in certificate_outcomes:
            hosts_action = self._step("hosts", self._ensure_hosts_entry, outcome.hostname)
            result.bindings.append(
                BindingOutcome(
                    hostname=outcome.hostname,
                    certificate_action=outcome.action,
                    thumbprint=outcome.record.thumbprint,
                    hosts_action=hosts_action,
                    duplicates_removed=outcome.duplicates_removed,
                )
            )

        result.finished_at = self._timestamp()
        self._log_info(
            "Reconciler",
            f"Reconcile completed for site: {desired.site_name}",
            result.to_dict(),
        )
        return result

    def _ensure_hosts_entry(self, hostname: str) -> HostsAction:
        if is_loopback_domain(hostname, self._hosts_config.loopback_suffix):
            return HostsAction.SKIPPED
        self._hosts_editor.add(self._hosts_config.path, self._hosts_config.ip, hostname)
        return HostsAction.ADDED

    def _step(self, name: str, func, *args):
        try:
            return func(*args)
        except ProvisionerError as e:
            e.details.setdefault("step", name)
            if self._logger:
                self._logger.log_error("Reconciler", f"Step '{name}' failed", e)
            raise

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def _log_info(self, component: str, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, component, message, data)

    @property
    def rationalizer(self) -> CertificateRationalizer:
        return self._rationalizer

    @property
    def site_manager(self) -> SiteManager:
        return self._site_manager

    @property
    def app_pool_manager(self) -> AppPoolManager:
        return self._app_pool_manager
