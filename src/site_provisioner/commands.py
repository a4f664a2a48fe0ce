"""
Subprocess runner shared by the host-management, certificate, and
permission adapters.
"""

import subprocess
from dataclasses import dataclass
from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> dict:
        return {
            "command": " ".join(self.args),
            "returncode": self.returncode,
            "stderr": self.stderr,
            "stdout": self.stdout[:2000],
        }


class CommandRunner:
    """
    Runs external commands synchronously.

    In dry-run mode nothing is executed and every command reports success
    with empty output.

    Commands run without a time limit unless one is given.
    """

    def __init__(
        self,
        timeout: Optional[int] = None,
        dry_run: bool = False,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._timeout = timeout
        self._dry_run = dry_run
        self._logger = logger

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def timeout(self) -> Optional[int]:
        return self._timeout

    def run(self, args: list[str], timeout: Optional[int] = None) -> CommandResult:
        """
        Run a command and capture its output.

        A timeout is reported as return code 124, the same way the
        ``timeout`` utility does.
        """
        if self._logger:
            self._logger.log(
                LogLevel.DEBUG,
                "CommandRunner",
                "Running command",
                {"command": " ".join(args), "dry_run": self._dry_run},
            )

        if self._dry_run:
            return CommandResult(args=list(args), returncode=0, stdout="", stderr="")

        try:
            cp = subprocess.run(
                args,
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout or self._timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(args=list(args), returncode=124, stdout="", stderr="timeout")
        except OSError as e:
            return CommandResult(args=list(args), returncode=127, stdout="", stderr=str(e))

        return CommandResult(
            args=list(args),
            returncode=cp.returncode,
            stdout=cp.stdout.strip(),
            stderr=cp.stderr.strip(),
        )
