"""Password protection for policy changes."""

from parentctl.security.credentials import CredentialGuard, GuardOutcome, GuardResult

__all__ = [
    "CredentialGuard",
    "GuardOutcome",
    "GuardResult",
]
