"""Website blocking through the system hosts file."""

from parentctl.blocker.hosts import END_MARKER, START_MARKER, HostsBlocker

__all__ = ["HostsBlocker", "START_MARKER", "END_MARKER"]
