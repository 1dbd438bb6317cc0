"""In-memory owner of the rule lists and of the lock shared with the monitor."""

import logging
import threading
from typing import Optional, Protocol

from parentctl.models.events import EnforcementEvent
from parentctl.models.rules import BlockRule, SiteRule

logger = logging.getLogger(__name__)

# BlockRule fields owned by the user; usage fields are owned by the monitor
POLICY_FIELDS = (
    "display_name",
    "exe_name",
    "exe_path",
    "enabled",
    "daily_limit_minutes",
    "allowed_intervals",
    "immediate_block",
)


def _site_state(sites: list[SiteRule]) -> list[tuple[str, str, bool]]:
    return [(site.id, site.url_pattern, site.enabled) for site in sites]


class ImmediateBlocker(Protocol):
    """The part of ProcessMonitor the rule book drives."""

    @property
    def is_running(self) -> bool: ...

    def start(self) -> None: ...

    def block_now(self, rule: Optional[BlockRule]) -> list[EnforcementEvent]: ...


class RuleBook:
    """Holds app and site rules and serializes every mutation.

    The monitor receives `rules` and `lock` by reference; all changes made
    here take the same lock so a tick never sees a half-edited rule.
    """

    def __init__(
        self,
        rules: Optional[list[BlockRule]] = None,
        sites: Optional[list[SiteRule]] = None,
    ) -> None:
        self.rules: list[BlockRule] = rules if rules is not None else []
        self.sites: list[SiteRule] = sites if sites is not None else []
        self.lock = threading.RLock()

    def get_rule(self, key: str) -> Optional[BlockRule]:
        """Look up an app rule by id, id prefix, display name or exe name.

        Args:
            key: Identifier typed by the user

        Returns:
            The single matching rule, or None if none or several match
        """
        with self.lock:
            return self._lookup(self.rules, key, lambda r: (r.display_name, r.exe_name))

    def get_site(self, key: str) -> Optional[SiteRule]:
        """Look up a site rule by id, id prefix, title or domain."""
        with self.lock:
            return self._lookup(self.sites, key, lambda s: (s.title, s.display_domain))

    def add_rule(self, rule: BlockRule) -> BlockRule:
        with self.lock:
            self.rules.append(rule)
        logger.info(f"Added app rule: {rule.friendly_name}")
        return rule

    def add_site(self, site: SiteRule) -> SiteRule:
        with self.lock:
            self.sites.append(site)
        logger.info(f"Added site rule: {site.display_domain}")
        return site

    def remove_rule(self, rule: BlockRule) -> bool:
        with self.lock:
            if rule not in self.rules:
                return False
            self.rules.remove(rule)
        logger.info(f"Removed app rule: {rule.friendly_name}")
        return True

    def remove_site(self, site: SiteRule) -> bool:
        with self.lock:
            if site not in self.sites:
                return False
            self.sites.remove(site)
        logger.info(f"Removed site rule: {site.display_domain}")
        return True

    def update_rule(self, rule: BlockRule, **changes: object) -> BlockRule:
        """Apply field changes to a rule under the lock.

        Raises:
            AttributeError: If a field name is unknown
        """
        with self.lock:
            for name, value in changes.items():
                if not hasattr(rule, name):
                    raise AttributeError(f"BlockRule has no field '{name}'")
                if name == "exe_path":
                    rule.set_exe_path(str(value))
                elif name == "daily_limit_minutes":
                    rule.daily_limit_minutes = max(0, int(value))  # type: ignore[call-overload]
                else:
                    setattr(rule, name, value)
        return rule

    def block_app(self, rule: BlockRule) -> None:
        """Enable a rule and flag it for immediate blocking."""
        with self.lock:
            rule.enabled = True
            rule.immediate_block = True
        logger.info(f"App blocked: {rule.friendly_name}")

    def unblock_app(self, rule: BlockRule) -> bool:
        """Disable a rule and clear its immediate flag.

        Returns:
            False if the rule was already unblocked
        """
        with self.lock:
            if not rule.enabled and not rule.immediate_block:
                return False
            rule.enabled = False
            rule.immediate_block = False
        logger.info(f"App unblocked: {rule.friendly_name}")
        return True

    def set_site_enabled(self, site: SiteRule, enabled: bool) -> bool:
        """Returns False if the site already had this state."""
        with self.lock:
            if site.enabled == enabled:
                return False
            site.enabled = enabled
        return True

    def reload(self, rules: list[BlockRule], sites: list[SiteRule]) -> bool:
        """Adopt a freshly loaded rule list while keeping in-memory usage.

        Rules are matched by id. Surviving rule objects are updated in place
        and the lists are replaced by slice assignment, so a monitor holding
        `self.rules` sees the change on its next tick.

        Args:
            rules: App rules as persisted by another command
            sites: Site rules as persisted by another command

        Returns:
            True if the site list changed
        """
        with self.lock:
            current = {rule.id: rule for rule in self.rules}
            merged = []
            for loaded in rules:
                rule = current.get(loaded.id)
                if rule is None:
                    merged.append(loaded)
                    continue
                for name in POLICY_FIELDS:
                    setattr(rule, name, getattr(loaded, name))
                merged.append(rule)

            sites_changed = _site_state(self.sites) != _site_state(sites)
            self.rules[:] = merged
            self.sites[:] = sites

        loaded_ids = {rule.id for rule in merged}
        added = sum(1 for rule_id in loaded_ids if rule_id not in current)
        removed = sum(1 for rule_id in current if rule_id not in loaded_ids)
        if added or removed:
            logger.info(f"Rule list reloaded: {added} added, {removed} removed")
        return sites_changed

    def immediate_rules(self) -> list[BlockRule]:
        with self.lock:
            return [rule for rule in self.rules if rule.immediate_block]

    def apply_immediate_blocks(self, monitor: ImmediateBlocker) -> list[EnforcementEvent]:
        """Start the monitor if needed and sweep every immediate-block rule.

        Call after any mutation of the rule list.

        Returns:
            Termination events from the sweeps
        """
        flagged = self.immediate_rules()
        if not flagged:
            return []

        if not monitor.is_running:
            monitor.start()
            logger.info("Monitoring started automatically for immediate blocks")

        events: list[EnforcementEvent] = []
        for rule in flagged:
            events.extend(monitor.block_now(rule))
        return events

    @staticmethod
    def _lookup(items, key, names):
        key_lower = key.strip().lower()
        if not key_lower:
            return None

        for item in items:
            if item.id == key:
                return item

        matches = [
            item for item in items
            if item.id.lower().startswith(key_lower)
            or any(name and name.lower() == key_lower for name in names(item))
        ]
        return matches[0] if len(matches) == 1 else None
