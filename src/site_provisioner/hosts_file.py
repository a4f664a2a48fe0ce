"""
Hosts file editing.

Line-level, idempotent edits of the local name-resolution override file.
A line counts as a hostname mapping only when it splits into exactly two
whitespace-separated fields. Lines whose first non-blank character is
``#`` are comments and never count as mappings. Lines with a trailing
inline comment split into three or more fields and are therefore never
matched or removed; this is accepted behavior, not something to correct
here.
"""

import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import HostsFileError
from .models import HostsEntry


FIELD_SEPARATOR = re.compile(r"[ \t]+")

ENCODING = "ascii"

COMMENT_PREFIX = "#"


class HostsFileEditor:
    """
    Adds and removes ip/hostname mappings in a hosts file.

    The file is process-wide shared state; this editor is the only writer
    used by the provisioner, and concurrent runs are not supported.
    """

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger

    def remove(self, file_path: Path, hostname: str) -> bool:
        """
        Drop every two-field mapping whose hostname field equals ``hostname``.

        Surviving lines keep their content and order. When nothing matches,
        the file is left untouched.

        Returns:
            True if at least one line was removed

        Raises:
            HostsFileError: If the file cannot be read or rewritten
        """
        file_path = Path(file_path)
        lines = self._read_lines(file_path)

        kept = [line for line in lines if not self._is_mapping_for(line, hostname)]
        if len(kept) == len(lines):
            return False

        self._write_lines(file_path, kept)
        self._log_info(
            "Removed hosts entries",
            {"file": str(file_path), "hostname": hostname, "removed": len(lines) - len(kept)},
        )
        return True

    def add(self, file_path: Path, ip: str, hostname: str) -> HostsEntry:
        """
        Map ``hostname`` to ``ip``, replacing any previous two-field mapping.

        Raises:
            HostsFileError: If the file cannot be read or rewritten
        """
        file_path = Path(file_path)
        self.remove(file_path, hostname)

        entry = HostsEntry(ip=ip, hostname=hostname)
        lines = self._read_lines(file_path)
        if lines and not lines[-1].endswith(("\n", "\r")):
            lines[-1] = lines[-1] + os.linesep
        lines.append(entry.to_line() + os.linesep)
        self._write_lines(file_path, lines)

        self._log_info(
            "Added hosts entry",
            {"file": str(file_path), "ip": ip, "hostname": hostname},
        )
        return entry

    def entries(self, file_path: Path) -> list[HostsEntry]:
        """Return every two-field mapping in file order."""
        result = []
        for line in self._read_lines(Path(file_path)):
            fields = self._split(line)
            if len(fields) == 2:
                result.append(HostsEntry(ip=fields[0], hostname=fields[1]))
        return result

    @staticmethod
    def _split(line: str) -> list[str]:
        stripped = line.strip("\r\n").strip(" \t")
        if not stripped or stripped.startswith(COMMENT_PREFIX):
            return []
        return FIELD_SEPARATOR.split(stripped)

    def _is_mapping_for(self, line: str, hostname: str) -> bool:
        fields = self._split(line)
        return len(fields) == 2 and fields[1] == hostname

    def _read_lines(self, file_path: Path) -> list[str]:
        try:
            # newline="" keeps the original line endings on rewrite
            with open(file_path, "r", encoding=ENCODING, newline="") as f:
                return f.readlines()
        except FileNotFoundError as e:
            raise HostsFileError(
                code="not_found",
                message=f"Hosts file not found: {file_path}",
                details={"file_path": str(file_path)},
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise HostsFileError(
                code="read_error",
                message=f"Failed to read hosts file: {e}",
                details={"file_path": str(file_path)},
            ) from e

    def _write_lines(self, file_path: Path, lines: list[str]) -> None:
        directory = file_path.parent
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=".hosts-", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding=ENCODING, newline="") as f:
                f.writelines(lines)
            shutil.copymode(file_path, tmp_name)
            os.replace(tmp_name, file_path)
            tmp_name = None
        except (OSError, UnicodeEncodeError) as e:
            raise HostsFileError(
                code="write_error",
                message=f"Failed to write hosts file: {e}",
                details={"file_path": str(file_path)},
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "HostsFileEditor", message, data)
