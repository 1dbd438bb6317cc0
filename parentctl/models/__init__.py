"""Data models for parentctl rules and enforcement events."""

from parentctl.models.events import (
    EnforcementEvent,
    ProcessInfo,
    TerminationOutcome,
)
from parentctl.models.rules import (
    BlockRule,
    RuleMode,
    SiteRule,
    extract_host,
)

__all__ = [
    "BlockRule",
    "RuleMode",
    "SiteRule",
    "extract_host",
    "EnforcementEvent",
    "ProcessInfo",
    "TerminationOutcome",
]
