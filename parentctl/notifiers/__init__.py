"""Notifiers package for sending enforcement events to external services."""

from parentctl.notifiers.slack import SlackConfig, SlackNotifier

__all__ = ["SlackConfig", "SlackNotifier"]
