"""
Folder permission assignment for the web root.

Grants modify rights, inherited by files and subfolders, to the identities
that serve the site: the account running the provisioner, the IIS worker
process group, and the app pool's virtual account.
"""

import getpass
import os
from pathlib import Path
from typing import Optional

from .audit_logger import AuditLogger
from .commands import CommandRunner
from .enums import LogLevel
from .exceptions import HostApiError


IIS_WORKER_GROUP = "IIS_IUSRS"


def process_account() -> str:
    domain = os.environ.get("USERDOMAIN")
    user = os.environ.get("USERNAME") or getpass.getuser()
    return f"{domain}\\{user}" if domain else user


def app_pool_identity(app_pool_name: str) -> str:
    return f"IIS AppPool\\{app_pool_name}"


class FolderPermissionAssigner:
    """Grants recursive modify rights on a folder with ``icacls``."""

    def __init__(
        self, runner: CommandRunner, logger: Optional[AuditLogger] = None
    ) -> None:
        self._runner = runner
        self._logger = logger

    def identities(self, app_pool_name: str) -> list[str]:
        return [process_account(), IIS_WORKER_GROUP, app_pool_identity(app_pool_name)]

    def grant(self, root: Path, app_pool_name: str) -> None:
        """
        Grant modify rights on ``root`` to every serving identity.

        Raises:
            HostApiError: If icacls rejects a grant
        """
        for identity in self.identities(app_pool_name):
            result = self._runner.run(
                ["icacls", str(root), "/grant", f"{identity}:(OI)(CI)M", "/T", "/Q"]
            )
            if not result.ok:
                raise HostApiError(
                    code="grant_permissions_failed",
                    message=f"Failed to grant modify rights on {root} to {identity}",
                    details=result.describe(),
                )
            if self._logger:
                self._logger.log(
                    LogLevel.INFO,
                    "FolderPermissionAssigner",
                    "Granted modify rights",
                    {"path": str(root), "identity": identity, "dry_run": self._runner.dry_run},
                )
