"""Enforcement event models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TerminationOutcome(str, Enum):
    """Result of trying to stop a guarded process."""

    GRACEFUL = "graceful"  # Process exited after a polite terminate request
    FORCED = "forced"  # Process was killed by name after the grace period
    FAILED = "failed"  # Process survived (e.g., insufficient privilege)


@dataclass(frozen=True)
class ProcessInfo:
    """A live OS process as seen by one snapshot."""

    pid: int
    command_line: str
    name: str = ""


@dataclass(frozen=True)
class EnforcementEvent:
    """One termination attempt made by the monitor."""

    rule_id: str
    rule_name: str
    pid: int
    exe_name: str
    command_line: str
    outcome: TerminationOutcome
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def succeeded(self) -> bool:
        return self.outcome != TerminationOutcome.FAILED

    @property
    def summary(self) -> str:
        if self.outcome == TerminationOutcome.GRACEFUL:
            verb = "terminated"
        elif self.outcome == TerminationOutcome.FORCED:
            verb = "force-killed"
        else:
            verb = "could not terminate"
        return f"{self.rule_name}: {verb} {self.exe_name} (pid={self.pid}, {self.reason})"
