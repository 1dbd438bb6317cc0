"""Flat-file storage for app and site rules.

One record per line, pipe-delimited, tagged by type:

    APP|id|displayName|exeName|enabled|exePath|dailyLimit|usageMillis|usageDate|allowedIntervals|immediateBlock
    WEB|id|title|urlPattern|enabled

Untagged 4-field lines (id|displayName|exeName|enabled) from older versions
load as apps. Short or unknown records are skipped.
"""

import logging
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Optional

from parentctl.models.rules import BlockRule, SiteRule
from parentctl.policies.schedule import reset_usage_if_stale

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "blocked_apps.txt"

APP_TAG = "APP"
WEB_TAG = "WEB"


def sanitize(value: Optional[str]) -> str:
    """Make a field value safe for the line-oriented, pipe-delimited format."""
    if value is None:
        return ""
    return value.replace("\r", " ").replace("\n", " ").replace("|", " ")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def _parse_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


class RuleStore:
    """Loads and saves rule lists to a single record file."""

    def __init__(self, data_dir: Path) -> None:
        """Initialize the store.

        Args:
            data_dir: Per-user configuration directory
        """
        self.data_dir = Path(data_dir).expanduser()
        self.data_file = self.data_dir / DATA_FILE_NAME

    def load(self, today: Optional[date] = None) -> tuple[list[BlockRule], list[SiteRule]]:
        """Load all rules.

        Args:
            today: Day used to reset stale usage (default: today)

        Returns:
            Tuple of (app rules, site rules); empty lists if no file exists

        Raises:
            OSError: If the file exists but cannot be read
        """
        today = today or date.today()
        rules: list[BlockRule] = []
        sites: list[SiteRule] = []

        if not self.data_file.exists():
            return rules, sites

        with open(self.data_file, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.rstrip("\r\n")
                if not line.strip():
                    continue
                parts = line.split("|")

                if parts[0] == WEB_TAG:
                    site = self._parse_site(parts)
                    if site:
                        sites.append(site)
                    else:
                        logger.debug(f"Skipping short WEB record at line {line_number}")
                    continue

                rule = self._parse_app(parts)
                if rule:
                    reset_usage_if_stale(rule, today)
                    rules.append(rule)
                else:
                    logger.debug(f"Skipping unparseable record at line {line_number}")

        logger.info(f"Loaded {len(rules)} app rules and {len(sites)} site rules from {self.data_file}")
        return rules, sites

    def save(self, rules: list[BlockRule], sites: list[SiteRule], today: Optional[date] = None) -> None:
        """Save all rules, replacing the file atomically.

        Raises:
            OSError: If the file cannot be written
        """
        today = today or date.today()
        lines = []
        for rule in rules:
            reset_usage_if_stale(rule, today)
            lines.append("|".join([
                APP_TAG,
                sanitize(rule.id),
                sanitize(rule.display_name),
                sanitize(rule.exe_name),
                "true" if rule.enabled else "false",
                sanitize(rule.exe_path),
                str(rule.daily_limit_minutes),
                str(rule.usage_millis_today),
                rule.usage_date.isoformat() if rule.usage_date else "",
                sanitize(rule.allowed_intervals),
                "true" if rule.immediate_block else "false",
            ]))
        for site in sites:
            lines.append("|".join([
                WEB_TAG,
                sanitize(site.id),
                sanitize(site.title),
                sanitize(site.url_pattern),
                "true" if site.enabled else "false",
            ]))

        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".blocked_apps.", suffix=".tmp", dir=self.data_dir)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                for line in lines:
                    f.write(line + "\n")
            tmp_path.replace(self.data_file)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.debug(f"Saved {len(rules)} app rules and {len(sites)} site rules")

    def _parse_app(self, parts: list[str]) -> Optional[BlockRule]:
        if parts[0] == APP_TAG:
            if len(parts) < 5:
                return None
            rule = BlockRule(
                id=parts[1],
                display_name=parts[2],
                exe_name=parts[3],
                enabled=_parse_bool(parts[4]),
            )
            if len(parts) > 5:
                rule.set_exe_path(parts[5])
            if len(parts) > 6:
                rule.daily_limit_minutes = max(0, _parse_int(parts[6]))
            if len(parts) > 7:
                rule.usage_millis_today = max(0, _parse_int(parts[7]))
            if len(parts) > 8:
                rule.usage_date = _parse_date(parts[8])
            if len(parts) > 9:
                rule.allowed_intervals = parts[9]
            if len(parts) > 10:
                rule.immediate_block = _parse_bool(parts[10])
            return rule

        # Legacy: id|displayName|exeName|enabled
        if len(parts) < 4:
            return None
        return BlockRule(
            id=parts[0],
            display_name=parts[1],
            exe_name=parts[2],
            enabled=_parse_bool(parts[3]),
        )

    def _parse_site(self, parts: list[str]) -> Optional[SiteRule]:
        if len(parts) < 5:
            return None
        return SiteRule(
            id=parts[1],
            title=parts[2],
            url_pattern=parts[3],
            enabled=_parse_bool(parts[4]),
        )
