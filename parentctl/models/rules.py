"""Rule data models for parentctl.

A BlockRule guards one executable; a SiteRule guards one web domain.
"""

import ntpath
import re
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

# Characters allowed in a normalized hostname
HOST_INVALID_CHARS = re.compile(r"[^a-z0-9.-]")


class RuleMode(str, Enum):
    """How the monitor should treat a rule."""

    DISABLED = "disabled"
    IMMEDIATE_BLOCK = "immediate_block"
    SCHEDULED_WITH_LIMIT = "scheduled_with_limit"
    SCHEDULED_UNLIMITED = "scheduled_unlimited"


def new_rule_id() -> str:
    """Generate a fresh opaque rule id."""
    return str(uuid.uuid4())


@dataclass
class BlockRule:
    """Policy record for one guarded executable.

    Attributes:
        id: Stable unique id, created once
        display_name: Human-readable name shown in listings
        exe_name: Bare executable name (e.g., "chrome.exe")
        exe_path: Absolute executable path
        enabled: Disabled rules are never evaluated by the monitor
        daily_limit_minutes: Daily runtime budget, 0 means no budget
        usage_millis_today: Runtime accumulated on usage_date
        usage_date: Calendar day the usage applies to
        allowed_intervals: Comma-separated "HH:MM-HH:MM" ranges, empty = any time
        immediate_block: Terminate regardless of schedule and usage
    """

    display_name: str = ""
    exe_name: str = ""
    exe_path: str = ""
    enabled: bool = True
    daily_limit_minutes: int = 0
    usage_millis_today: int = 0
    usage_date: Optional[date] = None
    allowed_intervals: str = ""
    immediate_block: bool = False
    id: str = field(default_factory=new_rule_id)

    def __post_init__(self) -> None:
        self.daily_limit_minutes = max(0, int(self.daily_limit_minutes))
        self.usage_millis_today = max(0, int(self.usage_millis_today))
        if self.exe_path and not self.exe_name:
            self.exe_name = executable_basename(self.exe_path)

    def set_exe_path(self, exe_path: str) -> None:
        """Set the path matcher, deriving exe_name when it is empty."""
        self.exe_path = exe_path
        if exe_path and not self.exe_name:
            self.exe_name = executable_basename(exe_path)

    @property
    def mode(self) -> RuleMode:
        if not self.enabled:
            return RuleMode.DISABLED
        if self.immediate_block:
            return RuleMode.IMMEDIATE_BLOCK
        if self.daily_limit_minutes > 0:
            return RuleMode.SCHEDULED_WITH_LIMIT
        return RuleMode.SCHEDULED_UNLIMITED

    @property
    def usage_minutes_today(self) -> float:
        return self.usage_millis_today / 60000

    @property
    def is_actionable(self) -> bool:
        """True if at least one matcher is configured."""
        return bool(self.exe_name.strip() or self.exe_path.strip())

    @property
    def friendly_name(self) -> str:
        if self.display_name.strip():
            return self.display_name
        if self.exe_name.strip():
            return self.exe_name
        return "unknown application"

    @property
    def usage_summary(self) -> str:
        if self.daily_limit_minutes > 0:
            return f"{self.usage_minutes_today:.1f} / {self.daily_limit_minutes} min"
        return f"{self.usage_minutes_today:.1f} min"

    @property
    def schedule_summary(self) -> str:
        return self.allowed_intervals.strip() or "Any time"

    def __str__(self) -> str:
        return f"{self.display_name} ({self.exe_name})"


@dataclass
class SiteRule:
    """Policy record for one blocked web domain.

    Attributes:
        title: Short description
        url_pattern: Raw URL or domain as entered ("https://example.com/x")
        enabled: Only enabled sites are written to the hosts file
    """

    title: str = ""
    url_pattern: str = ""
    enabled: bool = True
    id: str = field(default_factory=new_rule_id)

    @property
    def host(self) -> Optional[str]:
        return extract_host(self.url_pattern)

    @property
    def display_domain(self) -> str:
        return self.host or self.url_pattern

    def hosts_for_blocking(self) -> list[str]:
        """Return the host plus its www.-toggled sibling.

        Returns:
            Two hostnames, or an empty list if the pattern has no usable host
        """
        host = self.host
        if not host:
            return []
        if host.startswith("www."):
            return [host, host[4:]]
        return [host, "www." + host]


def extract_host(value: Optional[str]) -> Optional[str]:
    """Normalize a URL or domain pattern to a bare hostname.

    Strips scheme, path/query and port, lowercases, and drops characters
    outside [a-z0-9.-].

    Args:
        value: Raw URL or domain

    Returns:
        Hostname, or None if nothing usable remains
    """
    if value is None or not value.strip():
        return None

    normalized = value.strip().lower()
    if normalized.startswith("http://") or normalized.startswith("https://"):
        normalized = normalized.split("://", 1)[1]

    # Path and query
    for sep in ("/", "?", "#"):
        normalized = normalized.split(sep, 1)[0]

    # Port
    normalized = normalized.split(":", 1)[0]

    normalized = HOST_INVALID_CHARS.sub("", normalized)
    return normalized or None


def executable_basename(path: str) -> str:
    """File name of a Windows or POSIX executable path."""
    # ntpath splits on both separators
    return ntpath.basename(path.strip().strip('"'))
