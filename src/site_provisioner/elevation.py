"""
Administrative privilege checks.

Editing the hosts file, the machine certificate stores and IIS all need an
elevated process. The CLI re-launches itself elevated when it is not.
"""

import os
import subprocess
import sys
from typing import Optional


def is_elevated() -> bool:
    """Return True when the current process has administrative rights."""
    if sys.platform == "win32":
        import ctypes

        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except OSError:
            return False
    return os.geteuid() == 0


def relaunch_elevated(argv: Optional[list[str]] = None) -> int:
    """
    Start this program again with administrative rights.

    On Windows the UAC prompt opens a new console and this process returns
    immediately. Elsewhere the command runs under ``sudo`` and its exit code
    is returned.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    command = [sys.executable, "-m", "site_provisioner", *argv]

    if sys.platform == "win32":
        import ctypes

        params = subprocess.list2cmdline(command[1:])
        rc = ctypes.windll.shell32.ShellExecuteW(None, "runas", command[0], params, None, 1)
        # ShellExecuteW returns a value greater than 32 on success
        return 0 if rc > 32 else 1

    return subprocess.call(["sudo", *command])
