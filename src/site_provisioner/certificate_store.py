"""
Certificate store backends.

A store manages a Personal repository, which holds the certificates and keys
the web server presents, and a separate Trust repository of root-trusted
certificates. Records are looked up by subject CN and addressed by
thumbprint. Backends:

- FileCertificateStore: PEM files under a directory, generated with
  ``cryptography``
- WindowsCertificateStore: LocalMachine My/Root through PowerShell
- MemoryCertificateStore: in-process, for simulation mode and tests
"""

import hashlib
import itertools
import json
import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .audit_logger import AuditLogger
from .commands import CommandRunner
from .enums import LogLevel, StoreLocation
from .exceptions import CertificateError, CertificateNotFoundError
from .models import CertificateRecord


DEFAULT_VALIDITY_DAYS = 365
DEFAULT_KEY_SIZE = 2048

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CertificateStore(ABC):
    """Abstract certificate repository with a Personal and a Trust store."""

    @abstractmethod
    def find_by_subject(self, cn: str) -> list[CertificateRecord]:
        """Return every Personal record whose subject is ``CN=<cn>``, unordered."""

    @abstractmethod
    def create(self, cn: str) -> CertificateRecord:
        """Generate a self-signed certificate for ``CN=<cn>`` in Personal."""

    @abstractmethod
    def delete(self, record: CertificateRecord) -> None:
        """
        Remove a record from the store it resides in.

        Raises:
            CertificateNotFoundError: If the record is already gone
        """

    @abstractmethod
    def exists_in_trust(self, thumbprint: str) -> bool:
        """Check whether the Trust store holds a certificate with this thumbprint."""

    @abstractmethod
    def install_to_trust(self, record: CertificateRecord) -> bool:
        """
        Copy a Personal certificate into Trust.

        Returns:
            False if the thumbprint was already trusted, True otherwise
        """


class FileCertificateStore(CertificateStore):
    """
    Directory-backed store.

    Layout::

        <root>/personal/<THUMBPRINT>.pem   certificate
        <root>/personal/<THUMBPRINT>.key   private key (PKCS#8, mode 0600)
        <root>/trust/<THUMBPRINT>.pem      trusted certificate

    Lookups enumerate Personal in file modification order, so the
    earliest-created certificate is found first.
    """

    def __init__(
        self,
        root: Path,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        key_size: int = DEFAULT_KEY_SIZE,
        clock: Optional[Clock] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._root = Path(root)
        self._validity_days = validity_days
        self._key_size = key_size
        self._clock = clock or utc_now
        self._logger = logger

    @property
    def personal_dir(self) -> Path:
        return self._root / "personal"

    @property
    def trust_dir(self) -> Path:
        return self._root / "trust"

    def find_by_subject(self, cn: str) -> list[CertificateRecord]:
        if not self.personal_dir.exists():
            return []

        try:
            paths = sorted(
                self.personal_dir.glob("*.pem"),
                key=lambda p: (p.stat().st_mtime_ns, p.name),
            )
            records = []
            for path in paths:
                cert = self._load(path)
                if _common_name(cert) == cn:
                    records.append(_record_from_cert(cert, StoreLocation.PERSONAL))
            return records
        except OSError as e:
            raise CertificateError(
                code="store_io_error",
                message=f"Failed to enumerate personal store: {e}",
                details={"store": str(self.personal_dir), "subject": cn},
            ) from e

    def create(self, cn: str) -> CertificateRecord:
        key = rsa.generate_private_key(public_exponent=65537, key_size=self._key_size)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
        now = self._clock()

        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=self._validity_days))
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(cn)]), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False
            )
            .sign(key, hashes.SHA256())
        )

        record = _record_from_cert(cert, StoreLocation.PERSONAL)
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

        try:
            self.personal_dir.mkdir(parents=True, exist_ok=True)
            key_path = self.personal_dir / f"{record.thumbprint}.key"
            key_path.write_bytes(key_pem)
            os.chmod(key_path, 0o600)
            (self.personal_dir / f"{record.thumbprint}.pem").write_bytes(
                cert.public_bytes(serialization.Encoding.PEM)
            )
        except OSError as e:
            raise CertificateError(
                code="store_io_error",
                message=f"Failed to write certificate for {cn}: {e}",
                details={"store": str(self.personal_dir), "subject": cn},
            ) from e

        self._log_info(
            "Created self-signed certificate",
            {"subject": cn, "thumbprint": record.thumbprint, "not_after": record.not_after.isoformat()},
        )
        return record

    def delete(self, record: CertificateRecord) -> None:
        directory = self._dir_for(record.store_location)
        pem_path = directory / f"{record.thumbprint}.pem"
        if not pem_path.exists():
            raise CertificateNotFoundError(
                code="not_found",
                message=f"Certificate {record.thumbprint} not found",
                details={"store": str(directory), "thumbprint": record.thumbprint},
            )

        try:
            pem_path.unlink()
            (directory / f"{record.thumbprint}.key").unlink(missing_ok=True)
        except OSError as e:
            raise CertificateError(
                code="store_io_error",
                message=f"Failed to delete certificate {record.thumbprint}: {e}",
                details={"store": str(directory), "thumbprint": record.thumbprint},
            ) from e

        self._log_info(
            "Deleted certificate",
            {"subject": record.subject_name, "thumbprint": record.thumbprint,
             "store": record.store_location.value},
        )

    def exists_in_trust(self, thumbprint: str) -> bool:
        return (self.trust_dir / f"{thumbprint}.pem").exists()

    def install_to_trust(self, record: CertificateRecord) -> bool:
        if self.exists_in_trust(record.thumbprint):
            return False

        source = self.personal_dir / f"{record.thumbprint}.pem"
        if not source.exists():
            raise CertificateNotFoundError(
                code="not_found",
                message=f"Certificate {record.thumbprint} not found in personal store",
                details={"store": str(self.personal_dir), "thumbprint": record.thumbprint},
            )

        try:
            self.trust_dir.mkdir(parents=True, exist_ok=True)
            (self.trust_dir / f"{record.thumbprint}.pem").write_bytes(source.read_bytes())
        except OSError as e:
            raise CertificateError(
                code="store_io_error",
                message=f"Failed to install certificate into trust store: {e}",
                details={"store": str(self.trust_dir), "thumbprint": record.thumbprint},
            ) from e

        self._log_info(
            "Installed certificate into trust store",
            {"subject": record.subject_name, "thumbprint": record.thumbprint},
        )
        return True

    def _dir_for(self, location: StoreLocation) -> Path:
        if location == StoreLocation.TRUST:
            return self.trust_dir
        return self.personal_dir

    def _load(self, path: Path) -> x509.Certificate:
        try:
            return x509.load_pem_x509_certificate(path.read_bytes())
        except ValueError as e:
            raise CertificateError(
                code="corrupt_certificate",
                message=f"Unreadable certificate file: {path.name}",
                details={"path": str(path), "error": str(e)},
            ) from e

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "FileCertificateStore", message, data)


class WindowsCertificateStore(CertificateStore):
    """
    LocalMachine certificate stores driven through PowerShell.

    Personal is ``Cert:\\LocalMachine\\My`` and Trust is
    ``Cert:\\LocalMachine\\Root``.
    """

    PERSONAL_PATH = "Cert:\\LocalMachine\\My"
    TRUST_PATH = "Cert:\\LocalMachine\\Root"

    # Exit code the delete script uses for "already absent"
    NOT_FOUND_EXIT = 3

    _SELECT = (
        "Select-Object Thumbprint, "
        "@{n='NotAfter';e={$_.NotAfter.ToUniversalTime().ToString('yyyy-MM-ddTHH:mm:ssZ')}}"
    )

    def __init__(
        self,
        runner: CommandRunner,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._runner = runner
        self._validity_days = validity_days
        self._logger = logger

    def find_by_subject(self, cn: str) -> list[CertificateRecord]:
        script = (
            f"ConvertTo-Json -Compress -InputObject @("
            f"Get-ChildItem -Path '{_ps_quote(self.PERSONAL_PATH)}' "
            f"| Where-Object {{ $_.Subject -eq 'CN={_ps_quote(cn)}' }} "
            f"| {self._SELECT})"
        )
        rows = self._run_json(script, "find_by_subject", {"subject": cn})
        return [self._record(row, cn, StoreLocation.PERSONAL) for row in rows]

    def create(self, cn: str) -> CertificateRecord:
        script = (
            f"New-SelfSignedCertificate -DnsName '{_ps_quote(cn)}' "
            f"-CertStoreLocation '{_ps_quote(self.PERSONAL_PATH)}' "
            f"-NotAfter (Get-Date).AddDays({int(self._validity_days)}) "
            f"| {self._SELECT} | ConvertTo-Json -Compress"
        )
        rows = self._run_json(script, "create", {"subject": cn})
        if not rows:
            raise CertificateError(
                code="create_failed",
                message=f"New-SelfSignedCertificate returned no certificate for {cn}",
                details={"subject": cn},
            )
        record = self._record(rows[0], cn, StoreLocation.PERSONAL)
        self._log_info(
            "Created self-signed certificate",
            {"subject": cn, "thumbprint": record.thumbprint},
        )
        return record

    def delete(self, record: CertificateRecord) -> None:
        store_path = (
            self.TRUST_PATH if record.store_location == StoreLocation.TRUST else self.PERSONAL_PATH
        )
        remove = "Remove-Item -Path $p"
        if record.store_location == StoreLocation.PERSONAL:
            remove += " -DeleteKey"
        script = (
            f"$p = Join-Path '{_ps_quote(store_path)}' '{_ps_quote(record.thumbprint)}'; "
            f"if (-not (Test-Path $p)) {{ exit {self.NOT_FOUND_EXIT} }}; "
            f"{remove}"
        )
        result = self._runner.run(self._powershell(script))
        if result.returncode == self.NOT_FOUND_EXIT:
            raise CertificateNotFoundError(
                code="not_found",
                message=f"Certificate {record.thumbprint} not found",
                details={"store": store_path, "thumbprint": record.thumbprint},
            )
        if not result.ok:
            raise CertificateError(
                code="delete_failed",
                message=f"Failed to delete certificate {record.thumbprint}",
                details=result.describe(),
            )
        self._log_info(
            "Deleted certificate",
            {"subject": record.subject_name, "thumbprint": record.thumbprint,
             "store": record.store_location.value},
        )

    def exists_in_trust(self, thumbprint: str) -> bool:
        script = (
            f"Test-Path (Join-Path '{_ps_quote(self.TRUST_PATH)}' '{_ps_quote(thumbprint)}')"
        )
        result = self._runner.run(self._powershell(script))
        if not result.ok:
            raise CertificateError(
                code="trust_lookup_failed",
                message=f"Failed to query trust store for {thumbprint}",
                details=result.describe(),
            )
        return result.stdout.strip().lower() == "true"

    def install_to_trust(self, record: CertificateRecord) -> bool:
        if self.exists_in_trust(record.thumbprint):
            return False

        script = (
            f"$c = Get-Item -Path (Join-Path '{_ps_quote(self.PERSONAL_PATH)}' "
            f"'{_ps_quote(record.thumbprint)}'); "
            "$s = New-Object System.Security.Cryptography.X509Certificates.X509Store "
            "'Root','LocalMachine'; "
            "$s.Open('ReadWrite'); $s.Add($c); $s.Close()"
        )
        result = self._runner.run(self._powershell(script))
        if not result.ok:
            raise CertificateError(
                code="trust_install_failed",
                message=f"Failed to install {record.thumbprint} into trust store",
                details=result.describe(),
            )
        self._log_info(
            "Installed certificate into trust store",
            {"subject": record.subject_name, "thumbprint": record.thumbprint},
        )
        return True

    @staticmethod
    def _powershell(script: str) -> list[str]:
        return [
            "powershell.exe",
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            script,
        ]

    def _run_json(self, script: str, operation: str, context: dict) -> list[dict]:
        result = self._runner.run(self._powershell(script))
        if not result.ok:
            raise CertificateError(
                code=f"{operation}_failed",
                message=f"Certificate store {operation} failed",
                details={**context, **result.describe()},
            )
        if not result.stdout:
            return []
        try:
            parsed = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise CertificateError(
                code="parse_error",
                message=f"Unexpected PowerShell output from {operation}: {e}",
                details={**context, "stdout": result.stdout[:500]},
            ) from e
        if isinstance(parsed, dict):
            return [parsed]
        return list(parsed or [])

    @staticmethod
    def _record(row: dict, cn: str, location: StoreLocation) -> CertificateRecord:
        not_after = datetime.fromisoformat(row["NotAfter"].replace("Z", "+00:00"))
        return CertificateRecord(
            subject_name=cn,
            thumbprint=row["Thumbprint"].upper(),
            not_after=not_after,
            store_location=location,
        )

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "WindowsCertificateStore", message, data)


class MemoryCertificateStore(CertificateStore):
    """
    In-memory store.

    Enumeration follows insertion order. ``add()`` seeds pre-existing
    records, including duplicates and expired ones.
    """

    def __init__(
        self,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        clock: Optional[Clock] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._validity_days = validity_days
        self._clock = clock or utc_now
        self._logger = logger
        self._personal: dict[str, CertificateRecord] = {}
        self._trust: dict[str, CertificateRecord] = {}
        self._serial = itertools.count(1)

    @property
    def personal_records(self) -> list[CertificateRecord]:
        return list(self._personal.values())

    @property
    def trust_records(self) -> list[CertificateRecord]:
        return list(self._trust.values())

    def add(self, record: CertificateRecord) -> CertificateRecord:
        if record.store_location == StoreLocation.TRUST:
            self._trust[record.thumbprint] = record
        else:
            self._personal[record.thumbprint] = record
        return record

    def find_by_subject(self, cn: str) -> list[CertificateRecord]:
        return [r for r in self._personal.values() if r.subject_name == cn]

    def create(self, cn: str) -> CertificateRecord:
        serial = next(self._serial)
        thumbprint = hashlib.sha1(f"{cn}:{serial}".encode("utf-8")).hexdigest().upper()
        record = CertificateRecord(
            subject_name=cn,
            thumbprint=thumbprint,
            not_after=self._clock() + timedelta(days=self._validity_days),
            store_location=StoreLocation.PERSONAL,
        )
        self._personal[thumbprint] = record
        if self._logger:
            self._logger.log(
                LogLevel.INFO,
                "MemoryCertificateStore",
                "Created self-signed certificate",
                {"subject": cn, "thumbprint": thumbprint},
            )
        return record

    def delete(self, record: CertificateRecord) -> None:
        store = self._trust if record.store_location == StoreLocation.TRUST else self._personal
        if store.pop(record.thumbprint, None) is None:
            raise CertificateNotFoundError(
                code="not_found",
                message=f"Certificate {record.thumbprint} not found",
                details={"thumbprint": record.thumbprint, "store": record.store_location.value},
            )

    def exists_in_trust(self, thumbprint: str) -> bool:
        return thumbprint in self._trust

    def install_to_trust(self, record: CertificateRecord) -> bool:
        if self.exists_in_trust(record.thumbprint):
            return False
        source = self._personal.get(record.thumbprint)
        if source is None:
            raise CertificateNotFoundError(
                code="not_found",
                message=f"Certificate {record.thumbprint} not found in personal store",
                details={"thumbprint": record.thumbprint},
            )
        self._trust[record.thumbprint] = CertificateRecord(
            subject_name=source.subject_name,
            thumbprint=source.thumbprint,
            not_after=source.not_after,
            store_location=StoreLocation.TRUST,
        )
        return True


def _common_name(cert: x509.Certificate) -> Optional[str]:
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    return attributes[0].value


def _record_from_cert(cert: x509.Certificate, location: StoreLocation) -> CertificateRecord:
    return CertificateRecord(
        subject_name=_common_name(cert) or "",
        thumbprint=cert.fingerprint(hashes.SHA1()).hex().upper(),
        not_after=cert.not_valid_after_utc,
        store_location=location,
    )


def _ps_quote(text: str) -> str:
    return str(text).replace("'", "''")
