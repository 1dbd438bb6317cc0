"""Rule persistence."""

from parentctl.storage.rule_store import RuleStore

__all__ = ["RuleStore"]
