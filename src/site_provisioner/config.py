"""
Configuration for the site provisioner.

This module defines the provisioner's own settings (hosts file, certificate
store, logging) and loads the JSON site document into an immutable
DesiredConfig. Site document keys::

    {
      "IIS-Site-Name": "demo",
      "App-Pool-Name": "demoPool",
      "IIS-App-Pool-Dot-Net-Version": "v4.0",
      "bindings": ["demo.localtest.me", "demo.example.com"],
      "Web-Root": "C:/sites/demo",            (optional)
      "provisioner": { ... }                   (optional)
    }
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError
from .hostnames import DEFAULT_LOOPBACK_SUFFIX, HostnameValidator
from .models import DesiredConfig


DEFAULT_RUNTIME_VERSION = "v4.0"

CERTIFICATE_BACKENDS = ("file", "windows")

LOG_LEVEL_NAMES = ("debug", "info", "warn", "error")

OUTPUT_FORMATS = ("json", "text", "both")


def default_hosts_path() -> Path:
    if sys.platform == "win32":
        system_root = os.environ.get("SystemRoot", "C:\\Windows")
        return Path(system_root) / "System32" / "drivers" / "etc" / "hosts"
    return Path("/etc/hosts")


def default_store_path() -> Path:
    return Path.home() / ".site_provisioner" / "certificates"


def default_certificate_backend() -> str:
    return "windows" if sys.platform == "win32" else "file"


@dataclass
class HostsConfig:
    """Hosts file settings."""

    path: Path = field(default_factory=default_hosts_path)
    ip: str = "127.0.0.1"
    loopback_suffix: str = DEFAULT_LOOPBACK_SUFFIX


@dataclass
class CertificateConfig:
    """Certificate store and lifecycle settings."""

    backend: str = field(default_factory=default_certificate_backend)
    store_path: Path = field(default_factory=default_store_path)
    validity_days: int = 365
    renewal_threshold_days: int = 30
    key_size: int = 2048


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class ProvisionerConfig:
    """Main provisioner configuration combining all sub-configurations."""

    hosts: HostsConfig = field(default_factory=HostsConfig)
    certificates: CertificateConfig = field(default_factory=CertificateConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    simulation_mode: bool = False
    grant_permissions: bool = True


@dataclass
class LoadedConfig:
    """A parsed site document."""

    desired: DesiredConfig
    provisioner: ProvisionerConfig
    source: Optional[Path] = None


def create_default_config(
    simulation_mode: bool = False,
    hosts_path: Optional[Path] = None,
    store_path: Optional[Path] = None,
) -> ProvisionerConfig:
    """
    Create a default provisioner configuration.

    Args:
        simulation_mode: Enable simulation mode (no changes to the host)
        hosts_path: Hosts file to edit (defaults to the system hosts file)
        store_path: Directory for the file certificate store

    Returns:
        ProvisionerConfig with default settings
    """
    config = ProvisionerConfig(simulation_mode=simulation_mode)
    if hosts_path is not None:
        config.hosts.path = Path(hosts_path)
    if store_path is not None:
        config.certificates.store_path = Path(store_path)
    return config


def load_config_from_file(config_path: Path) -> LoadedConfig:
    """
    Load a site document from a JSON file.

    Args:
        config_path: Path to the site document

    Returns:
        LoadedConfig with the desired state and provisioner settings

    Raises:
        ConfigError: If the file is missing, unparsable, or invalid
    """
    config_path = Path(config_path)
    try:
        with open(config_path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(
            code="not_found",
            message=f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)},
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigError(
            code="parse_error",
            message=f"Failed to parse configuration: {e}",
            details={"file_path": str(config_path)},
        ) from e
    except OSError as e:
        raise ConfigError(
            code="io_error",
            message=f"Failed to read configuration: {e}",
            details={"file_path": str(config_path)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigError(
            code="invalid_root",
            message="Configuration root must be a JSON object",
            details={"file_path": str(config_path)},
        )

    base_dir = config_path.resolve().parent
    return LoadedConfig(
        desired=parse_desired_config(data, base_dir),
        provisioner=parse_provisioner_config(data.get("provisioner") or {}, base_dir),
        source=config_path,
    )


def parse_desired_config(data: dict, base_dir: Path) -> DesiredConfig:
    """
    Build a validated DesiredConfig from a site document.

    Bindings are normalized hostnames in document order; duplicates are
    rejected because they would produce duplicate site bindings.
    """
    site_name = _require_str(data, "IIS-Site-Name")
    app_pool_name = _require_str(data, "App-Pool-Name")
    runtime_version = _optional_str(
        data, "IIS-App-Pool-Dot-Net-Version", DEFAULT_RUNTIME_VERSION
    )

    raw_bindings = data.get("bindings")
    if not isinstance(raw_bindings, list) or not raw_bindings:
        raise ConfigError(
            code="missing_bindings",
            message="'bindings' must be a non-empty list of hostnames",
            details={"key": "bindings"},
        )

    validator = HostnameValidator()
    bindings: list[str] = []
    for raw in raw_bindings:
        if not isinstance(raw, str):
            raise ConfigError(
                code="invalid_binding",
                message=f"Binding must be a string: {raw!r}",
                details={"key": "bindings"},
            )
        hostname = validator.require(raw)
        if hostname in bindings:
            raise ConfigError(
                code="duplicate_binding",
                message=f"Binding listed more than once: {hostname}",
                details={"key": "bindings", "hostname": hostname},
            )
        bindings.append(hostname)

    web_root_value = data.get("Web-Root")
    if web_root_value is None:
        web_root = base_dir
    elif isinstance(web_root_value, str) and web_root_value.strip():
        web_root = Path(web_root_value)
        if not web_root.is_absolute():
            web_root = base_dir / web_root
    else:
        raise ConfigError(
            code="invalid_value",
            message="'Web-Root' must be a non-empty string",
            details={"key": "Web-Root"},
        )

    desired = DesiredConfig(
        site_name=site_name,
        app_pool_name=app_pool_name,
        runtime_version=runtime_version,
        bindings=tuple(bindings),
        web_root=web_root,
    )
    desired.validate()
    return desired


def parse_provisioner_config(data: dict, base_dir: Path) -> ProvisionerConfig:
    """Parse the optional ``provisioner`` section of a site document."""
    if not isinstance(data, dict):
        raise ConfigError(
            code="invalid_value",
            message="'provisioner' must be a JSON object",
            details={"key": "provisioner"},
        )

    hosts_data = _section(data, "hosts")
    hosts = HostsConfig()
    if hosts_data.get("path"):
        hosts.path = Path(_optional_str(hosts_data, "path", "", "provisioner.hosts.path"))
    hosts.ip = _optional_str(hosts_data, "ip", hosts.ip, "provisioner.hosts.ip")
    hosts.loopback_suffix = _optional_str(
        hosts_data, "loopback_suffix", hosts.loopback_suffix, "provisioner.hosts.loopback_suffix"
    )

    cert_data = _section(data, "certificates")
    certificates = CertificateConfig()
    certificates.backend = _choice(
        cert_data, "backend", certificates.backend, CERTIFICATE_BACKENDS,
        "provisioner.certificates.backend",
    )
    if cert_data.get("store_path"):
        store_path = Path(
            _optional_str(cert_data, "store_path", "", "provisioner.certificates.store_path")
        )
        certificates.store_path = store_path if store_path.is_absolute() else base_dir / store_path
    certificates.validity_days = _positive_int(
        cert_data, "validity_days", certificates.validity_days
    )
    certificates.renewal_threshold_days = _positive_int(
        cert_data, "renewal_threshold_days", certificates.renewal_threshold_days
    )
    certificates.key_size = _positive_int(cert_data, "key_size", certificates.key_size)

    logging_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=_choice(logging_data, "level", "info", LOG_LEVEL_NAMES,
                      "provisioner.logging.level"),
        output_format=_choice(logging_data, "output_format", "text", OUTPUT_FORMATS,
                              "provisioner.logging.output_format"),
    )

    return ProvisionerConfig(
        hosts=hosts,
        certificates=certificates,
        logging=logging_config,
        simulation_mode=bool(data.get("simulation_mode", False)),
        grant_permissions=bool(data.get("grant_permissions", True)),
    )


def _section(data: dict, key: str) -> dict:
    if key not in data:
        return {}
    value = data[key]
    if not isinstance(value, dict):
        raise ConfigError(
            code="invalid_value",
            message=f"'provisioner.{key}' must be a JSON object",
            details={"key": f"provisioner.{key}"},
        )
    return value


def _choice(data: dict, key: str, default: str, allowed: tuple, name: str) -> str:
    value = data.get(key, default)
    if value not in allowed:
        raise ConfigError(
            code="invalid_value",
            message=f"Unknown value for '{name}': {value}",
            details={"key": name, "value": value, "allowed": list(allowed)},
        )
    return value


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            code="missing_key",
            message=f"Missing required configuration key: {key}",
            details={"key": key},
        )
    return value.strip()


def _optional_str(data: dict, key: str, default: str, name: Optional[str] = None) -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        name = name or key
        raise ConfigError(
            code="invalid_value",
            message=f"'{name}' must be a non-empty string",
            details={"key": name},
        )
    return value.strip()


def _positive_int(data: dict, key: str, default: int) -> int:
    value: Any = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(
            code="invalid_value",
            message=f"'{key}' must be a positive integer",
            details={"key": key, "value": value},
        )
    return value
