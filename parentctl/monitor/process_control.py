"""OS process enumeration and control.

Thin wrapper over psutil plus the platform's kill-by-name utility
(taskkill on Windows, pkill elsewhere).
"""

import logging
import subprocess
import sys

import psutil

from parentctl.models.events import ProcessInfo

logger = logging.getLogger(__name__)

# Linux keeps only this many characters of a process name (TASK_COMM_LEN - 1)
LINUX_COMM_LENGTH = 15


def command_line_of(info: dict) -> str:
    """Best-effort full command line from a psutil info dict."""
    cmdline = info.get("cmdline") or []
    if cmdline:
        return " ".join(cmdline)
    return info.get("exe") or info.get("name") or ""


class ProcessControl:
    """Lists, terminates and force-kills OS processes."""

    def __init__(self, kill_timeout: float = 10.0) -> None:
        """Initialize process control.

        Args:
            kill_timeout: Seconds to wait for the kill-by-name utility
        """
        self.kill_timeout = kill_timeout

    def snapshot(self) -> list[ProcessInfo]:
        """Return all live processes with a non-empty command line."""
        processes = []
        for proc in psutil.process_iter(attrs=["pid", "name", "exe", "cmdline"]):
            command_line = command_line_of(proc.info)
            if command_line.strip():
                processes.append(
                    ProcessInfo(
                        pid=proc.info["pid"],
                        command_line=command_line,
                        name=proc.info.get("name") or "",
                    )
                )
        return processes

    def terminate(self, pid: int) -> bool:
        """Request graceful termination.

        Returns:
            True if the request was delivered or the process is already gone
        """
        try:
            psutil.Process(pid).terminate()
            return True
        except psutil.NoSuchProcess:
            return True
        except psutil.AccessDenied:
            logger.warning(f"Access denied terminating pid={pid}")
            return False

    def is_alive(self, pid: int) -> bool:
        try:
            proc = psutil.Process(pid)
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists but cannot be inspected
            return True

    def kill_by_name(self, exe_name: str) -> bool:
        """Force-kill every process with the given executable name.

        Returns:
            True if the kill utility exited with status 0
        """
        if sys.platform == "win32":
            cmd = ["taskkill", "/F", "/IM", exe_name]
        elif sys.platform.startswith("linux"):
            cmd = ["pkill", "-KILL", "-x", exe_name[:LINUX_COMM_LENGTH]]
        else:
            cmd = ["pkill", "-KILL", "-x", exe_name]

        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self.kill_timeout, check=False)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Kill by name failed for {exe_name}: {e}")
            return False

        if result.returncode != 0:
            logger.debug(f"{cmd[0]} exited with {result.returncode} for {exe_name}")
        return result.returncode == 0
