"""
Certificate rationalization for HTTPS bindings.

For one hostname this module leaves exactly one active certificate in the
Personal store, makes sure it is trusted, and binds it to the site's HTTPS
binding. Steps, in order:

1. Lookup every Personal certificate for ``CN=<hostname>``.
2. Deduplicate: keep the latest expiry and delete the rest. The first
   record found is the initial keeper and only a strictly later expiry
   replaces it, so equal expiries resolve to the earliest-found record.
   Personal is then queried again for the keeper.
3. Expiry check: a keeper expiring on or before now + threshold is deleted
   and reissued. The backend has no extend operation, so renewal is
   create-new plus retire-old.
4. Issue a new self-signed certificate when nothing usable remains.
5. Publish: install into Trust when missing, then attach to the binding
   using SNI.

Only Personal records are deleted. Trust copies of retired certificates
stay in the trust store.

Store failures propagate as CertificateError and abort the run.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .certificate_store import CertificateStore
from .enums import CertificateAction, LogLevel
from .exceptions import CertificateNotFoundError
from .host_admin import HostAdminClient
from .models import CertificateOutcome, CertificateRecord


DEFAULT_RENEWAL_THRESHOLD = timedelta(days=30)

HTTPS_PORT = 443


class CertificateRationalizer:
    """Decides create/renew/dedup/trust/bind for each HTTPS binding."""

    def __init__(
        self,
        store: CertificateStore,
        host_admin: HostAdminClient,
        renewal_threshold: timedelta = DEFAULT_RENEWAL_THRESHOLD,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._host_admin = host_admin
        self._renewal_threshold = renewal_threshold
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger

    def rationalize(
        self, site_name: str, hostname: str, port: int = HTTPS_PORT
    ) -> CertificateOutcome:
        """
        Converge the certificate for one hostname and bind it to the site.

        Args:
            site_name: Site owning the HTTPS binding
            hostname: Host header of the binding, also the certificate CN
            port: HTTPS port of the binding

        Returns:
            CertificateOutcome describing what happened
        """
        duplicates_removed = 0
        action = CertificateAction.ISSUED
        record: Optional[CertificateRecord] = None

        found = self._store.find_by_subject(hostname)

        if len(found) > 1:
            keeper = self.select_keeper(found)
            for candidate in found:
                if candidate.thumbprint != keeper.thumbprint:
                    self._delete(candidate, "duplicate")
                    duplicates_removed += 1
            found = [
                r for r in self._store.find_by_subject(hostname)
                if r.thumbprint == keeper.thumbprint
            ]

        if found:
            record = found[0]
            if self.needs_renewal(record):
                self._delete(record, "expiring")
                record = None
                action = CertificateAction.RENEWED
            else:
                action = CertificateAction.REUSED

        if record is None:
            record = self._store.create(hostname)

        trust_installed = False
        if not self._store.exists_in_trust(record.thumbprint):
            trust_installed = self._store.install_to_trust(record)

        self._host_admin.attach_certificate(site_name, hostname, port, record.thumbprint)

        self._log_info(
            f"Certificate {action.value} for {hostname}",
            {
                "hostname": hostname,
                "thumbprint": record.thumbprint,
                "not_after": record.not_after.isoformat(),
                "action": action.value,
                "duplicates_removed": duplicates_removed,
                "trust_installed": trust_installed,
            },
        )

        return CertificateOutcome(
            hostname=hostname,
            record=record,
            action=action,
            duplicates_removed=duplicates_removed,
            trust_installed=trust_installed,
        )

    @staticmethod
    def select_keeper(records: list[CertificateRecord]) -> CertificateRecord:
        """Return the latest-expiring record; ties go to the earliest found."""
        keeper = records[0]
        for record in records[1:]:
            if record.not_after > keeper.not_after:
                keeper = record
        return keeper

    def needs_renewal(self, record: CertificateRecord) -> bool:
        return record.not_after <= self._clock() + self._renewal_threshold

    def _delete(self, record: CertificateRecord, reason: str) -> None:
        try:
            self._store.delete(record)
        except CertificateNotFoundError:
            # A previous partial run may already have removed it
            self._log(
                LogLevel.WARN,
                "Certificate already absent",
                {"thumbprint": record.thumbprint, "reason": reason},
            )
            return
        self._log_info(
            "Deleted certificate",
            {"subject": record.subject_name, "thumbprint": record.thumbprint, "reason": reason},
        )

    def _log_info(self, message: str, data: dict) -> None:
        self._log(LogLevel.INFO, message, data)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "CertificateRationalizer", message, data)
