"""Application pool provisioning."""

from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .host_admin import HostAdminClient


class AppPoolManager:
    """
    Ensures an application pool exists.

    An existing pool is never modified, so a changed runtime version in the
    configuration only takes effect for newly created pools.
    """

    def __init__(
        self, host_admin: HostAdminClient, logger: Optional[AuditLogger] = None
    ) -> None:
        self._host_admin = host_admin
        self._logger = logger

    def ensure(self, name: str, runtime_version: str) -> bool:
        """
        Create the app pool with the given managed runtime if it is missing.

        Returns:
            True if the pool was created, False if it already existed
        """
        if self._host_admin.app_pool_exists(name):
            self._log("App pool exists, leaving as-is", {"app_pool": name})
            return False

        self._host_admin.create_app_pool(name, runtime_version)
        self._log("App pool created", {"app_pool": name, "runtime_version": runtime_version})
        return True

    def _log(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "AppPoolManager", message, data)
