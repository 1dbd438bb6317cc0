"""Tests for rule models and the enforcement decision."""

from datetime import datetime

from parentctl.models.rules import BlockRule, RuleMode, SiteRule, extract_host
from parentctl.policies.enforcement import Decision, block_reason, decide


class TestRuleMode:
    """Tests for mode derivation."""

    def test_disabled_wins(self) -> None:
        rule = BlockRule(exe_name="x.exe", enabled=False, immediate_block=True, daily_limit_minutes=30)
        assert rule.mode == RuleMode.DISABLED

    def test_immediate(self) -> None:
        rule = BlockRule(exe_name="x.exe", immediate_block=True, daily_limit_minutes=30)
        assert rule.mode == RuleMode.IMMEDIATE_BLOCK

    def test_with_limit(self) -> None:
        assert BlockRule(exe_name="x.exe", daily_limit_minutes=30).mode == RuleMode.SCHEDULED_WITH_LIMIT

    def test_unlimited(self) -> None:
        assert BlockRule(exe_name="x.exe").mode == RuleMode.SCHEDULED_UNLIMITED


class TestBlockRule:
    """Tests for BlockRule field handling."""

    def test_negative_values_clamped(self) -> None:
        rule = BlockRule(exe_name="x.exe", daily_limit_minutes=-5, usage_millis_today=-1)
        assert rule.daily_limit_minutes == 0
        assert rule.usage_millis_today == 0

    def test_exe_name_derived_from_path(self) -> None:
        assert BlockRule(exe_path=r"C:\Games\Fortnite.exe").exe_name == "Fortnite.exe"
        assert BlockRule(exe_path="/usr/bin/steam").exe_name == "steam"

    def test_explicit_exe_name_kept(self) -> None:
        rule = BlockRule(exe_name="custom.exe", exe_path=r"C:\Games\Fortnite.exe")
        assert rule.exe_name == "custom.exe"

    def test_ids_unique(self) -> None:
        assert BlockRule().id != BlockRule().id

    def test_friendly_name_fallbacks(self) -> None:
        assert BlockRule(display_name="Roblox", exe_name="r.exe").friendly_name == "Roblox"
        assert BlockRule(exe_name="r.exe").friendly_name == "r.exe"
        assert BlockRule().friendly_name == "unknown application"

    def test_actionable(self) -> None:
        assert BlockRule(exe_name="r.exe").is_actionable
        assert not BlockRule(display_name="Nothing").is_actionable

    def test_usage_summary(self) -> None:
        rule = BlockRule(exe_name="r.exe", daily_limit_minutes=60, usage_millis_today=90_000)
        assert rule.usage_summary == "1.5 / 60 min"


class TestExtractHost:
    """Tests for URL to host normalization."""

    def test_full_url(self) -> None:
        assert extract_host("https://WWW.YouTube.com:443/watch?v=1") == "www.youtube.com"

    def test_bare_domain(self) -> None:
        assert extract_host("example.org") == "example.org"

    def test_invalid_characters_dropped(self) -> None:
        assert extract_host("exa mple_.com") == "example.com"

    def test_empty(self) -> None:
        assert extract_host("") is None
        assert extract_host(None) is None
        assert extract_host("https:///path") is None


class TestSiteRule:
    """Tests for host expansion."""

    def test_adds_www_sibling(self) -> None:
        site = SiteRule(url_pattern="https://youtube.com/")
        assert site.hosts_for_blocking() == ["youtube.com", "www.youtube.com"]

    def test_strips_www_sibling(self) -> None:
        site = SiteRule(url_pattern="www.tiktok.com")
        assert site.hosts_for_blocking() == ["www.tiktok.com", "tiktok.com"]

    def test_unusable_pattern(self) -> None:
        assert SiteRule(url_pattern="///").hosts_for_blocking() == []


class TestDecide:
    """Tests for the enforcement decision table."""

    NOON = datetime(2024, 5, 10, 12, 0)

    def test_disabled_allows(self) -> None:
        assert decide(BlockRule(exe_name="x.exe", enabled=False), self.NOON) == Decision.ALLOW

    def test_immediate_blocks_inside_schedule(self) -> None:
        rule = BlockRule(exe_name="x.exe", immediate_block=True, allowed_intervals="00:00-23:59")
        assert decide(rule, self.NOON) == Decision.BLOCK

    def test_outside_schedule_blocks_even_with_budget(self) -> None:
        rule = BlockRule(exe_name="x.exe", daily_limit_minutes=60, allowed_intervals="18:00-20:00")
        assert decide(rule, self.NOON) == Decision.BLOCK
        assert "outside allowed hours" in block_reason(rule, self.NOON)

    def test_unlimited_inside_schedule_blocks(self) -> None:
        rule = BlockRule(exe_name="x.exe", allowed_intervals="09:00-17:00")
        assert decide(rule, self.NOON) == Decision.BLOCK

    def test_limited_inside_schedule_tracks(self) -> None:
        rule = BlockRule(exe_name="x.exe", daily_limit_minutes=60)
        assert decide(rule, self.NOON) == Decision.TRACK

    def test_limit_reason(self) -> None:
        rule = BlockRule(exe_name="x.exe", daily_limit_minutes=1, usage_millis_today=60_000)
        assert block_reason(rule, self.NOON).startswith("daily limit reached")
