"""Schedule, usage and enforcement policy for parentctl."""

from parentctl.policies.enforcement import Decision, decide
from parentctl.policies.rule_book import RuleBook
from parentctl.policies.schedule import (
    has_daily_limit,
    limit_reached,
    matches_executable,
    reset_usage_if_stale,
    schedule_allowed,
)

__all__ = [
    "Decision",
    "decide",
    "RuleBook",
    "has_daily_limit",
    "limit_reached",
    "matches_executable",
    "reset_usage_if_stale",
    "schedule_allowed",
]
