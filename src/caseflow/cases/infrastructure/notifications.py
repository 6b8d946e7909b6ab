"""
Case Notifications
==================

Slack subscriber for case lifecycle events.
"""

from typing import Any, Dict, FrozenSet, Optional

from caseflow.cases.domain import CaseEvent
from caseflow.config import ActivityType
from caseflow.shared.infrastructure.logging import get_logger
from caseflow.shared.infrastructure.slack import SlackClient

logger = get_logger(__name__)

NOTIFIED_EVENTS: FrozenSet[ActivityType] = frozenset({
    ActivityType.CREATED,
    ActivityType.REOPENED,
    ActivityType.MERGED,
    ActivityType.SLA_BREACHED,
})

_HEADERS = {
    ActivityType.CREATED: ":rotating_light: Case Created",
    ActivityType.REOPENED: ":repeat: Case Reopened",
    ActivityType.MERGED: ":twisted_rightwards_arrows: Case Merged",
    ActivityType.SLA_BREACHED: ":red_circle: SLA Breached",
}


class SlackCaseNotifier:
    """Posts selected case events to Slack."""

    def __init__(
        self,
        client: SlackClient,
        case_url_template: Optional[str] = None,
        events: FrozenSet[ActivityType] = NOTIFIED_EVENTS
    ):
        self._client = client
        self._case_url_template = case_url_template
        self._events = events

    async def __call__(self, event: CaseEvent) -> None:
        if event.event_type not in self._events or not self._client.enabled:
            return

        sent = await self._client.send(self._build_message(event))
        if not sent:
            logger.warning(
                "Case notification not delivered",
                extra={"case_number": event.case_number, "event_type": event.event_type.value}
            )

    def _build_message(self, event: CaseEvent) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        details = event.details
        case_ref = event.case_number
        if self._case_url_template:
            case_ref = f"<{self._case_url_template.format(case_id=event.case_id)}|{event.case_number}>"

        fields = [
            {"type": "mrkdwn", "text": f"*Case:*\n{case_ref}"},
            {"type": "mrkdwn", "text": f"*Severity:*\n{str(details.get('severity', '')).title()}"},
            {"type": "mrkdwn", "text": f"*Status:*\n{details.get('status', '')}"},
            {"type": "mrkdwn", "text": f"*Actor:*\n{event.actor}"},
        ]
        if details.get("sla_deadline"):
            fields.append({"type": "mrkdwn", "text": f"*SLA Deadline:*\n{details['sla_deadline']}"})

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": _HEADERS.get(event.event_type, event.event_type.value),
                    "emoji": True
                }
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": details.get("title") or event.case_number}
            },
            {"type": "section", "fields": fields},
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"{event.event_type.value} at {event.timestamp.isoformat()}"}
                ]
            },
        ]
        return {"text": f"{event.case_number}: {event.event_type.value}", "blocks": blocks}
