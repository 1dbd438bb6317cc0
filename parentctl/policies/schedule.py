"""Time-window, usage-budget and executable matching logic.

Pure functions over a BlockRule and a point in time. No I/O.
"""

import ntpath
import os
import posixpath
import re
from datetime import date, datetime, time
from typing import Iterator, Optional, Union

from parentctl.models.rules import BlockRule

# "HH:MM", 24-hour
TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time_of_day(value: str) -> Optional[time]:
    """Parse "HH:MM" into a time, or None if malformed."""
    match = TIME_PATTERN.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def parse_interval(value: str) -> Optional[tuple[time, time]]:
    """Parse "HH:MM-HH:MM" into (start, end), or None if malformed."""
    bounds = value.split("-")
    if len(bounds) != 2:
        return None
    start = parse_time_of_day(bounds[0])
    end = parse_time_of_day(bounds[1])
    if start is None or end is None:
        return None
    return (start, end)


def iter_intervals(allowed_intervals: str) -> Iterator[str]:
    """Yield the non-empty comma-separated interval strings."""
    for part in allowed_intervals.split(","):
        part = part.strip()
        if part:
            yield part


def interval_matches(interval: str, now: time) -> bool:
    """Check one "HH:MM-HH:MM" interval against a time of day.

    Equal bounds mean the whole day. A start after the end is an overnight
    window. Malformed intervals never match.
    """
    parsed = parse_interval(interval)
    if parsed is None:
        return False

    start, end = parsed
    if start == end:
        return True
    if start < end:
        return start <= now <= end
    # Overnight, e.g. 22:00-06:00
    return now >= start or now <= end


def schedule_allowed(rule: BlockRule, now: Union[datetime, time]) -> bool:
    """Check whether the rule's schedule permits running at `now`.

    Evaluated at minute resolution, so 17:00:45 is still inside "09:00-17:00".

    Args:
        rule: Rule to check
        now: Current instant or time of day

    Returns:
        True if no intervals are configured or any interval matches
    """
    if not rule.allowed_intervals or not rule.allowed_intervals.strip():
        return True

    current = now.time() if isinstance(now, datetime) else now
    current = current.replace(second=0, microsecond=0)

    return any(interval_matches(interval, current) for interval in iter_intervals(rule.allowed_intervals))


def reset_usage_if_stale(rule: BlockRule, today: date) -> bool:
    """Zero the rule's usage if it belongs to another day.

    Must run before any read or accumulation of usage.

    Returns:
        True if the usage was reset
    """
    if rule.usage_date is None or rule.usage_date != today:
        rule.usage_millis_today = 0
        rule.usage_date = today
        return True
    return False


def add_usage(rule: BlockRule, millis: int, today: date) -> None:
    """Accumulate runtime onto the rule for `today`."""
    reset_usage_if_stale(rule, today)
    rule.usage_millis_today += max(0, int(millis))


def has_daily_limit(rule: BlockRule) -> bool:
    return rule.daily_limit_minutes > 0


def limit_reached(rule: BlockRule) -> bool:
    """True once today's usage meets or exceeds the daily limit."""
    return has_daily_limit(rule) and rule.usage_minutes_today >= rule.daily_limit_minutes


def normalize_exe_path(path: str) -> str:
    """Absolute, normalized, lowercase form of an executable path.

    Windows-style paths (drive letter or UNC) are normalized with ntpath
    on every platform so rules stay portable.
    """
    path = path.strip().strip('"')
    if ntpath.splitdrive(path)[0]:
        return ntpath.normpath(path).lower()
    if os.name == "nt":
        return ntpath.normpath(ntpath.abspath(path)).lower()
    return posixpath.normpath(posixpath.abspath(path)).lower()


def _command_heads(command_line: str) -> Iterator[str]:
    """Yield the command line and every whitespace-delimited prefix of it.

    A command line like 'C:\\Program Files\\App\\app.exe --flag' yields
    'c:\\program', 'c:\\program files\\app\\app.exe' and the full string,
    so an executable path containing spaces can still be found.
    """
    text = command_line.strip()
    for index, char in enumerate(text):
        if char.isspace() and index > 0 and not text[index - 1].isspace():
            yield text[:index].strip('"')
    yield text.strip('"')
    yield text


def _ends_with_name(candidate: str, name: str) -> bool:
    return candidate == name or candidate.endswith("\\" + name) or candidate.endswith("/" + name)


def matches_executable(rule: BlockRule, command_line: Optional[str]) -> bool:
    """Check whether a process command line belongs to the rule's executable.

    A configured path is compared by equality or suffix against the
    normalized candidate. Otherwise a bare name must equal the candidate or
    end it right after a path separator, so "notchrome.exe" never matches a
    rule for "chrome.exe".

    Args:
        rule: Rule holding the matchers
        command_line: Full command line of a live process

    Returns:
        True on match; False if no matcher is set or the candidate is empty
    """
    if command_line is None or not command_line.strip():
        return False

    heads = [head.lower() for head in _command_heads(command_line)]

    if rule.exe_path and rule.exe_path.strip():
        normalized = normalize_exe_path(rule.exe_path)
        if any(head == normalized or head.endswith(normalized) for head in heads):
            return True

    if rule.exe_name and rule.exe_name.strip():
        name = rule.exe_name.strip().lower()
        return any(_ends_with_name(head, name) for head in heads)

    return False
