"""Tests for the Slack notifier using a mock HTTP transport."""

import json

import httpx

from parentctl.models.events import EnforcementEvent, TerminationOutcome
from parentctl.notifiers.slack import SlackConfig, SlackNotifier

WEBHOOK = "https://hooks.slack.com/services/T/B/X"


def make_event(outcome: TerminationOutcome = TerminationOutcome.GRACEFUL) -> EnforcementEvent:
    return EnforcementEvent(
        rule_id="r1",
        rule_name="Minecraft",
        pid=4242,
        exe_name="javaw.exe",
        command_line=r"C:\Games\javaw.exe",
        outcome=outcome,
        reason="outside allowed hours (16:00-18:00)",
    )


def make_notifier(config: SlackConfig, status: int = 200) -> tuple[SlackNotifier, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, text="ok")

    notifier = SlackNotifier(config)
    notifier._client = httpx.Client(transport=httpx.MockTransport(handler))
    return notifier, requests


class TestSlackNotifier:
    """Tests for event delivery and filtering."""

    def test_sends_attachment(self) -> None:
        notifier, requests = make_notifier(SlackConfig(webhook_url=WEBHOOK))

        assert notifier.send_event(make_event())

        assert len(requests) == 1
        assert str(requests[0].url) == WEBHOOK
        attachment = json.loads(requests[0].content)["attachments"][0]
        assert attachment["title"] == "Parental control: Minecraft"
        assert "javaw.exe" in attachment["text"]

    def test_failures_only_skips_success(self) -> None:
        notifier, requests = make_notifier(SlackConfig(webhook_url=WEBHOOK, failures_only=True))

        assert not notifier.send_event(make_event(TerminationOutcome.FORCED))
        assert notifier.send_event(make_event(TerminationOutcome.FAILED))
        assert len(requests) == 1

    def test_disabled(self) -> None:
        notifier, requests = make_notifier(SlackConfig(webhook_url=WEBHOOK, enabled=False))
        assert not notifier.send_event(make_event())
        assert requests == []

    def test_http_error_status(self) -> None:
        notifier, _ = make_notifier(SlackConfig(webhook_url=WEBHOOK), status=500)
        assert not notifier.send_event(make_event())

    def test_close(self) -> None:
        notifier, _ = make_notifier(SlackConfig(webhook_url=WEBHOOK))
        notifier.close()
        assert notifier._client.is_closed
