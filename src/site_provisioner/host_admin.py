"""
Host-management clients for sites, application pools, and bindings.

The reconciler never talks to the web server directly; it goes through a
HostAdminClient so the whole engine can run against the in-memory
SimulatedHostAdminClient in tests and dry runs.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .audit_logger import AuditLogger
from .commands import CommandResult, CommandRunner
from .enums import BindingProtocol, LogLevel
from .exceptions import HostApiError
from .models import Binding


# SNI: the certificate is selected by host header, not by IP
SSL_FLAG_SNI = 1

# Application id IIS registers its own http.sys SSL bindings under
IIS_APP_ID = "{4dc3e181-e14b-4a21-b022-59fc669b0914}"


class HostAdminClient(ABC):
    """Operations the provisioner needs from the web-hosting layer."""

    @abstractmethod
    def site_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def app_pool_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def list_bindings(self, site_name: str) -> Optional[frozenset[Binding]]:
        """Return the site's bindings, or None if the site does not exist."""

    @abstractmethod
    def create_app_pool(self, name: str, runtime_version: str) -> None:
        ...

    @abstractmethod
    def delete_site(self, name: str) -> None:
        ...

    @abstractmethod
    def create_site(
        self, name: str, binding: Binding, physical_path: Path, app_pool_name: str
    ) -> None:
        """Create a site with a single binding, running under the given app pool."""

    @abstractmethod
    def add_binding(self, site_name: str, binding: Binding) -> None:
        ...

    @abstractmethod
    def attach_certificate(
        self, site_name: str, host_header: str, port: int, thumbprint: str
    ) -> None:
        """Bind a certificate to one host-header/port pair using SNI."""


class AppCmdHostAdminClient(HostAdminClient):
    """
    IIS client driving ``appcmd.exe`` and ``netsh http``.

    Every failed command raises HostApiError with the command line, return
    code and output in ``details``.
    """

    def __init__(
        self,
        runner: CommandRunner,
        appcmd_path: Optional[Path] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._runner = runner
        self._appcmd = str(appcmd_path or default_appcmd_path())
        self._logger = logger

    def site_exists(self, name: str) -> bool:
        return self._exists("site", name)

    def app_pool_exists(self, name: str) -> bool:
        return self._exists("apppool", name)

    def list_bindings(self, site_name: str) -> Optional[frozenset[Binding]]:
        if not self.site_exists(site_name):
            return None
        result = self._runner.run(
            [self._appcmd, "list", "site", f"/name:{site_name}", "/text:bindings"]
        )
        self._check(result, "list_bindings", site_name)
        return parse_bindings(result.stdout)

    def create_app_pool(self, name: str, runtime_version: str) -> None:
        result = self._runner.run(
            [self._appcmd, "add", "apppool", f"/name:{name}",
             f"/managedRuntimeVersion:{runtime_version}"]
        )
        self._check(result, "create_app_pool", name)
        self._log_info("Created app pool", {"app_pool": name, "runtime_version": runtime_version})

    def delete_site(self, name: str) -> None:
        result = self._runner.run([self._appcmd, "delete", "site", name])
        self._check(result, "delete_site", name)
        self._log_info("Deleted site", {"site": name})

    def create_site(
        self, name: str, binding: Binding, physical_path: Path, app_pool_name: str
    ) -> None:
        result = self._runner.run(
            [self._appcmd, "add", "site", f"/name:{name}",
             f"/bindings:{binding.protocol.value}/{binding.binding_information}",
             f"/physicalPath:{physical_path}"]
        )
        self._check(result, "create_site", name)

        result = self._runner.run(
            [self._appcmd, "set", "app", f"{name}/", f"/applicationPool:{app_pool_name}"]
        )
        self._check(result, "set_app_pool", name)
        self._log_info(
            "Created site",
            {"site": name, "binding": str(binding), "app_pool": app_pool_name,
             "physical_path": str(physical_path)},
        )

    def add_binding(self, site_name: str, binding: Binding) -> None:
        attributes = (
            f"protocol='{binding.protocol.value}',"
            f"bindingInformation='{binding.binding_information}'"
        )
        if binding.protocol == BindingProtocol.HTTPS:
            attributes += f",sslFlags='{SSL_FLAG_SNI}'"
        result = self._runner.run(
            [self._appcmd, "set", "site", f"/site.name:{site_name}",
             f"/+bindings.[{attributes}]"]
        )
        self._check(result, "add_binding", site_name)
        self._log_info("Added binding", {"site": site_name, "binding": str(binding),
                                         "protocol": binding.protocol.value})

    def attach_certificate(
        self, site_name: str, host_header: str, port: int, thumbprint: str
    ) -> None:
        hostnameport = f"hostnameport={host_header}:{port}"
        # Replaces any earlier SSL binding; absent is the normal case
        self._runner.run(["netsh", "http", "delete", "sslcert", hostnameport])

        result = self._runner.run(
            ["netsh", "http", "add", "sslcert", hostnameport,
             f"certhash={thumbprint}", f"appid={IIS_APP_ID}", "certstorename=MY"]
        )
        self._check(result, "attach_certificate", site_name)
        self._log_info(
            "Attached certificate",
            {"site": site_name, "host_header": host_header, "port": port,
             "thumbprint": thumbprint},
        )

    def _exists(self, kind: str, name: str) -> bool:
        result = self._runner.run([self._appcmd, "list", kind, f"/name:{name}"])
        if result.ok:
            return bool(result.stdout.strip())
        output = f"{result.stdout} {result.stderr}".strip().lower()
        if not output or "cannot find" in output:
            return False
        raise HostApiError(
            code=f"list_{kind}_failed",
            message=f"Failed to query {kind} '{name}'",
            details=result.describe(),
        )

    def _check(self, result: CommandResult, operation: str, target: str) -> None:
        if result.ok:
            return
        raise HostApiError(
            code=f"{operation}_failed",
            message=f"{operation} failed for '{target}': rc={result.returncode} "
                    f"{result.stderr or result.stdout}".strip(),
            details=result.describe(),
        )

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "AppCmdHostAdminClient", message, data)


@dataclass
class SimulatedSite:
    """A site held by the simulated client."""

    name: str
    physical_path: Path
    app_pool_name: str
    bindings: list[Binding] = field(default_factory=list)


class SimulatedHostAdminClient(HostAdminClient):
    """
    In-memory web host used by dry runs and tests.

    SSL bindings are keyed by ``host:port`` and outlive site deletion, as
    http.sys bindings do on a real host.
    """

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger
        self.app_pools: dict[str, str] = {}
        self.sites: dict[str, SimulatedSite] = {}
        self.ssl_bindings: dict[str, str] = {}
        self.calls: list[str] = []

    def site_exists(self, name: str) -> bool:
        return name in self.sites

    def app_pool_exists(self, name: str) -> bool:
        return name in self.app_pools

    def list_bindings(self, site_name: str) -> Optional[frozenset[Binding]]:
        site = self.sites.get(site_name)
        if site is None:
            return None
        return frozenset(site.bindings)

    def create_app_pool(self, name: str, runtime_version: str) -> None:
        self.calls.append(f"create_app_pool:{name}")
        if name in self.app_pools:
            raise HostApiError(
                code="create_app_pool_failed",
                message=f"App pool '{name}' already exists",
                details={"app_pool": name},
            )
        self.app_pools[name] = runtime_version

    def delete_site(self, name: str) -> None:
        self.calls.append(f"delete_site:{name}")
        if self.sites.pop(name, None) is None:
            raise HostApiError(
                code="delete_site_failed",
                message=f"Site '{name}' does not exist",
                details={"site": name},
            )

    def create_site(
        self, name: str, binding: Binding, physical_path: Path, app_pool_name: str
    ) -> None:
        self.calls.append(f"create_site:{name}")
        if name in self.sites:
            raise HostApiError(
                code="create_site_failed",
                message=f"Site '{name}' already exists",
                details={"site": name},
            )
        if app_pool_name not in self.app_pools:
            raise HostApiError(
                code="set_app_pool_failed",
                message=f"App pool '{app_pool_name}' does not exist",
                details={"site": name, "app_pool": app_pool_name},
            )
        self.sites[name] = SimulatedSite(
            name=name,
            physical_path=Path(physical_path),
            app_pool_name=app_pool_name,
            bindings=[binding],
        )

    def add_binding(self, site_name: str, binding: Binding) -> None:
        self.calls.append(f"add_binding:{site_name}:{binding.protocol.value}:{binding}")
        site = self._require_site(site_name, "add_binding")
        if binding in site.bindings:
            raise HostApiError(
                code="add_binding_failed",
                message=f"Binding {binding} already exists on '{site_name}'",
                details={"site": site_name, "binding": str(binding)},
            )
        site.bindings.append(binding)

    def attach_certificate(
        self, site_name: str, host_header: str, port: int, thumbprint: str
    ) -> None:
        self.calls.append(f"attach_certificate:{host_header}:{port}")
        site = self._require_site(site_name, "attach_certificate")
        if Binding(BindingProtocol.HTTPS, port, host_header) not in site.bindings:
            raise HostApiError(
                code="attach_certificate_failed",
                message=f"No HTTPS binding {host_header}:{port} on '{site_name}'",
                details={"site": site_name, "host_header": host_header, "port": port},
            )
        self.ssl_bindings[f"{host_header}:{port}"] = thumbprint

    def _require_site(self, site_name: str, operation: str) -> SimulatedSite:
        site = self.sites.get(site_name)
        if site is None:
            raise HostApiError(
                code=f"{operation}_failed",
                message=f"Site '{site_name}' does not exist",
                details={"site": site_name},
            )
        return site


def default_appcmd_path() -> Path:
    windir = os.environ.get("windir") or os.environ.get("SystemRoot") or "C:\\Windows"
    return Path(windir) / "System32" / "inetsrv" / "appcmd.exe"


def parse_bindings(text: str) -> frozenset[Binding]:
    """
    Parse appcmd's ``/text:bindings`` output.

    Example: ``http/*:80:demo.localtest.me,https/*:443:demo.localtest.me``.
    Bindings with protocols other than http/https are ignored.
    """
    bindings = set()
    for item in text.strip().split(","):
        item = item.strip()
        if not item or "/" not in item:
            continue
        protocol, information = item.split("/", 1)
        parts = information.split(":")
        if len(parts) < 3:
            continue
        try:
            proto = BindingProtocol(protocol.lower())
            port = int(parts[1])
        except ValueError:
            continue
        bindings.add(Binding(proto, port, ":".join(parts[2:])))
    return frozenset(bindings)
