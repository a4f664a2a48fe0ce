"""
Site Provisioner - idempotent local IIS site provisioning.

This package converges a local IIS site to a JSON description: application
pool, HTTP/HTTPS bindings, one self-signed certificate per hostname, and
hosts file entries. Re-running it against an unchanged description leaves
the machine in the same state.
"""

__version__ = "0.1.0"
__author__ = "Site Provisioner Team"

from site_provisioner.exceptions import (
    ProvisionerError,
    ConfigError,
    HostsFileError,
    CertificateError,
    CertificateNotFoundError,
    HostApiError,
)
from site_provisioner.enums import (
    StoreLocation,
    BindingProtocol,
    CertificateAction,
    HostsAction,
    LogLevel,
    HostnameErrorCode,
)
from site_provisioner.models import (
    DesiredConfig,
    Binding,
    SiteStatus,
    CertificateRecord,
    HostsEntry,
    CertificateOutcome,
    BindingOutcome,
    RunResult,
)
from site_provisioner.hostnames import (
    HostnameValidator,
    HostnameValidationResult,
    HostnameValidationError,
    is_loopback_domain,
    site_url,
)
from site_provisioner.config import (
    HostsConfig,
    CertificateConfig,
    LoggingConfig,
    ProvisionerConfig,
    LoadedConfig,
    create_default_config,
    load_config_from_file,
    parse_desired_config,
)
from site_provisioner.audit_logger import (
    AuditLogger,
    LogEntry,
)
from site_provisioner.commands import (
    CommandRunner,
    CommandResult,
)
from site_provisioner.hosts_file import (
    HostsFileEditor,
)
from site_provisioner.certificate_store import (
    CertificateStore,
    FileCertificateStore,
    WindowsCertificateStore,
    MemoryCertificateStore,
)
from site_provisioner.host_admin import (
    HostAdminClient,
    AppCmdHostAdminClient,
    SimulatedHostAdminClient,
)
from site_provisioner.rationalizer import (
    CertificateRationalizer,
)
from site_provisioner.app_pool import (
    AppPoolManager,
)
from site_provisioner.site_manager import (
    SiteManager,
)
from site_provisioner.permissions import (
    FolderPermissionAssigner,
)
from site_provisioner.reconciler import (
    Reconciler,
)
from site_provisioner.self_test import (
    SelfTest,
    SelfTestResult,
    EndpointTestResult,
)
from site_provisioner.cli import (
    main as cli_main,
    create_parser,
)

__all__ = [
    # Exceptions
    "ProvisionerError",
    "ConfigError",
    "HostsFileError",
    "CertificateError",
    "CertificateNotFoundError",
    "HostApiError",
    # Enums
    "StoreLocation",
    "BindingProtocol",
    "CertificateAction",
    "HostsAction",
    "LogLevel",
    "HostnameErrorCode",
    # Models
    "DesiredConfig",
    "Binding",
    "SiteStatus",
    "CertificateRecord",
    "HostsEntry",
    "CertificateOutcome",
    "BindingOutcome",
    "RunResult",
    # Hostnames
    "HostnameValidator",
    "HostnameValidationResult",
    "HostnameValidationError",
    "is_loopback_domain",
    "site_url",
    # Configuration
    "HostsConfig",
    "CertificateConfig",
    "LoggingConfig",
    "ProvisionerConfig",
    "LoadedConfig",
    "create_default_config",
    "load_config_from_file",
    "parse_desired_config",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Commands
    "CommandRunner",
    "CommandResult",
    # Hosts File
    "HostsFileEditor",
    # Certificate Stores
    "CertificateStore",
    "FileCertificateStore",
    "WindowsCertificateStore",
    "MemoryCertificateStore",
    # Host Admin
    "HostAdminClient",
    "AppCmdHostAdminClient",
    "SimulatedHostAdminClient",
    # Provisioning
    "CertificateRationalizer",
    "AppPoolManager",
    "SiteManager",
    "FolderPermissionAssigner",
    "Reconciler",
    # Self-Test
    "SelfTest",
    "SelfTestResult",
    "EndpointTestResult",
    # CLI
    "cli_main",
    "create_parser",
]
