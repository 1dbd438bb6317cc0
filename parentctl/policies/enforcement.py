"""Enforcement policy: maps a matched rule and the current time to a decision.

Given a live process that matches a rule:
1. Disabled rules are never enforced
2. Immediate-block rules always block
3. Outside the allowed schedule, block (even within a usage budget)
4. Inside the schedule with no daily limit, block
5. Inside the schedule with a daily limit, track usage and block once reached
"""

from datetime import datetime
from enum import Enum

from parentctl.models.rules import BlockRule, RuleMode
from parentctl.policies.schedule import limit_reached, schedule_allowed


class Decision(str, Enum):
    """What the monitor should do with a matched process."""

    ALLOW = "allow"
    BLOCK = "block"
    TRACK = "track"  # Accrue usage, then block if the limit is reached


def decide(rule: BlockRule, now: datetime) -> Decision:
    """Decide how to treat a live process matched by `rule`.

    Usage must already be reset for today (see reset_usage_if_stale).

    Args:
        rule: Matched rule
        now: Current local time

    Returns:
        Decision for this tick
    """
    mode = rule.mode

    if mode == RuleMode.DISABLED:
        return Decision.ALLOW
    if mode == RuleMode.IMMEDIATE_BLOCK:
        return Decision.BLOCK
    if not schedule_allowed(rule, now):
        return Decision.BLOCK
    if mode == RuleMode.SCHEDULED_UNLIMITED:
        return Decision.BLOCK
    return Decision.TRACK


def block_reason(rule: BlockRule, now: datetime) -> str:
    """Human-readable reason for a block decision, used in logs and events."""
    if rule.mode == RuleMode.IMMEDIATE_BLOCK:
        return "immediate block"
    if not schedule_allowed(rule, now):
        return f"outside allowed hours ({rule.schedule_summary})"
    if rule.mode == RuleMode.SCHEDULED_UNLIMITED:
        return "blocked"
    if limit_reached(rule):
        return f"daily limit reached ({rule.usage_summary})"
    return "blocked"
