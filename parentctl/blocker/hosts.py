"""Hosts-file website blocker.

Owns a marker-delimited block in the system hosts file and rewrites it from
the enabled SiteRules. Content outside the markers is never touched.

Example of the managed block:
    # BEGIN PARENTAL_CONTROL
    127.0.0.1 youtube.com
    ::1 youtube.com
    127.0.0.1 www.youtube.com
    ::1 www.youtube.com
    # END PARENTAL_CONTROL
"""

import logging
import os
import shutil
import sys
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from parentctl.models.rules import SiteRule

logger = logging.getLogger(__name__)

START_MARKER = "# BEGIN PARENTAL_CONTROL"
END_MARKER = "# END PARENTAL_CONTROL"

# One redirect per loopback address family
LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")

BACKUP_NAME = "hosts.parental.bak"


def get_default_hosts_path() -> Path:
    """Get the system hosts file path."""
    if sys.platform == "win32":
        system_root = os.environ.get("SystemRoot", r"C:\Windows")
        return Path(system_root) / "System32" / "drivers" / "etc" / "hosts"
    return Path("/etc/hosts")


def collect_hosts(sites: Iterable[SiteRule]) -> list[str]:
    """Unique hostnames to block, in rule order, from enabled sites only."""
    seen: set[str] = set()
    hosts: list[str] = []
    for site in sites:
        if not site.enabled:
            continue
        for host in site.hosts_for_blocking():
            if host not in seen:
                seen.add(host)
                hosts.append(host)
    return hosts


def strip_managed_block(lines: list[str]) -> tuple[list[str], bool]:
    """Remove the marker block (markers inclusive) and any orphaned markers.

    Args:
        lines: Hosts file lines without line terminators

    Returns:
        Tuple of (remaining lines, whether anything was removed)
    """
    start = _find_marker(lines, START_MARKER)
    end = _find_marker(lines, END_MARKER, start + 1) if start >= 0 else -1

    removed = False
    if start >= 0 and end > start:
        lines = lines[:start] + lines[end + 1:]
        removed = True

    # A lone marker left by a crashed or hand-edited write would break pairing
    kept = [line for line in lines if line.strip() not in (START_MARKER, END_MARKER)]
    if len(kept) != len(lines):
        logger.warning("Removed orphaned parental control marker from hosts file")
        removed = True

    return kept, removed


def build_block(hosts: list[str]) -> list[str]:
    """Build the managed block lines for the given hostnames."""
    block = [START_MARKER]
    for host in hosts:
        for address in LOOPBACK_ADDRESSES:
            block.append(f"{address} {host}")
    block.append(END_MARKER)
    return block


def _find_marker(lines: list[str], marker: str, start: int = 0) -> int:
    for index in range(start, len(lines)):
        if lines[index].strip() == marker:
            return index
    return -1


class HostsBlocker:
    """Reconciles the hosts file with the current site rules."""

    def __init__(self, hosts_path: Optional[Path] = None, backup_path: Optional[Path] = None) -> None:
        """Initialize the blocker.

        Args:
            hosts_path: Hosts file to manage (default: system hosts file)
            backup_path: Where to keep a pristine copy (default: beside hosts)
        """
        self.hosts_path = Path(hosts_path) if hosts_path else get_default_hosts_path()
        self.backup_path = Path(backup_path) if backup_path else self.hosts_path.with_name(BACKUP_NAME)

    def apply(self, sites: Iterable[SiteRule]) -> int:
        """Rewrite the managed block from the enabled sites.

        Idempotent: the same site set always yields the same file content.

        Args:
            sites: All site rules; disabled ones are ignored

        Returns:
            Number of unique hostnames blocked

        Raises:
            OSError: If the hosts file cannot be read, backed up or written
        """
        self._ensure_backup()

        lines, _ = strip_managed_block(self._read_lines())
        hosts = collect_hosts(sites)
        lines.extend(build_block(hosts))

        self._write_lines(lines)
        logger.info(f"Hosts file updated for {len(hosts)} domains")
        return len(hosts)

    def remove_all(self, sites: Optional[Iterable[SiteRule]] = None) -> bool:
        """Remove the managed block if present.

        Args:
            sites: Accepted for symmetry with apply(); the whole block is removed

        Returns:
            True if the file was changed

        Raises:
            OSError: If the hosts file exists but cannot be read or written
        """
        if not self.hosts_path.exists():
            return False

        lines, removed = strip_managed_block(self._read_lines())
        if not removed:
            return False

        self._write_lines(lines)
        logger.info("Parental control section removed from hosts file")
        return True

    def blocked_hosts(self) -> list[str]:
        """Hostnames currently listed inside the managed block."""
        if not self.hosts_path.exists():
            return []

        lines = self._read_lines()
        start = _find_marker(lines, START_MARKER)
        end = _find_marker(lines, END_MARKER, start + 1) if start >= 0 else -1
        if start < 0 or end < 0:
            return []

        hosts: list[str] = []
        for line in lines[start + 1:end]:
            parts = line.split()
            if len(parts) == 2 and parts[1] not in hosts:
                hosts.append(parts[1])
        return hosts

    def _ensure_backup(self) -> None:
        """Copy the original hosts file once, before the first modification."""
        if self.backup_path.exists():
            return
        shutil.copy2(self.hosts_path, self.backup_path)
        logger.info(f"Backed up hosts file to {self.backup_path}")

    def _read_lines(self) -> list[str]:
        return self.hosts_path.read_text(encoding="utf-8").splitlines()

    def _write_lines(self, lines: list[str]) -> None:
        """Write to a temp file beside the hosts file, then replace it."""
        content = "\n".join(lines) + "\n"
        directory = self.hosts_path.parent

        fd, tmp_name = tempfile.mkstemp(prefix=".hosts.", suffix=".tmp", dir=directory)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            shutil.copymode(self.hosts_path, tmp_path)
            tmp_path.replace(self.hosts_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
