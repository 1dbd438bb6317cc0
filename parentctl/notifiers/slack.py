"""Slack webhook notifier for enforcement events."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from parentctl.models.events import EnforcementEvent, TerminationOutcome

logger = logging.getLogger(__name__)

# Slack color codes by outcome
OUTCOME_COLORS = {
    TerminationOutcome.GRACEFUL: "#2196F3",  # blue
    TerminationOutcome.FORCED: "#FF9800",    # orange
    TerminationOutcome.FAILED: "#F44336",    # red
}


@dataclass
class SlackConfig:
    """Configuration for Slack notifier."""
    webhook_url: str
    failures_only: bool = False
    enabled: bool = True
    timeout: float = 10.0


class SlackNotifier:
    """Posts enforcement events to a Slack incoming webhook.

    Called from the monitor thread, so it uses a synchronous client.
    """

    def __init__(self, config: SlackConfig) -> None:
        self.config = config
        self._client: Optional[httpx.Client] = None

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(timeout=self.config.timeout)
        return self._client

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()

    def _should_notify(self, event: EnforcementEvent) -> bool:
        if self.config.failures_only:
            return event.outcome == TerminationOutcome.FAILED
        return True

    def _format_message(self, event: EnforcementEvent) -> dict:
        """Format event as Slack message with attachment."""
        fields = [
            {"title": "Outcome", "value": event.outcome.value, "short": True},
            {"title": "Executable", "value": f"`{event.exe_name}`", "short": True},
            {"title": "PID", "value": str(event.pid), "short": True},
            {"title": "Reason", "value": event.reason, "short": True},
        ]

        attachment = {
            "color": OUTCOME_COLORS.get(event.outcome, "#808080"),
            "title": f"Parental control: {event.rule_name}",
            "text": event.summary,
            "fields": fields,
            "footer": "parentctl",
            "ts": int(event.timestamp.timestamp()),
        }

        return {"attachments": [attachment]}

    def send_event(self, event: EnforcementEvent) -> bool:
        """Send event to Slack. Returns True if sent successfully."""
        if not self.config.enabled:
            return False

        if not self._should_notify(event):
            logger.debug(f"Skipping Slack notification for {event.outcome.value} event")
            return False

        try:
            client = self._get_client()
            payload = self._format_message(event)

            resp = client.post(self.config.webhook_url, json=payload)

            if resp.status_code == 200:
                logger.debug(f"Slack notification sent for {event.rule_name}")
                return True
            else:
                logger.warning(f"Slack webhook failed: {resp.status_code} - {resp.text}")
                return False

        except httpx.TimeoutException:
            logger.warning("Slack webhook timeout")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Slack webhook error: {e}")
            return False
