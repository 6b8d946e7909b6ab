"""
SLA Application Services
=========================

Periodic breach sweep over active cases.

The ``sla_breached`` flag itself is derived on every read; the sweep only
makes sure each breached case produces exactly one SLA_BREACHED activity
and event, tracked by ``sla_breach_notified_at``.
"""

from datetime import datetime, timezone
from typing import List, Optional

from caseflow.cases.application import ICaseRepository
from caseflow.cases.domain import CaseActivity, CaseEvent
from caseflow.config import ActivityType, SYSTEM_ACTOR
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SLABreachSweepService:
    """
    Marks newly breached cases.

    Does not commit; returns the events to publish after the caller's
    commit.
    """

    def __init__(self, cases: ICaseRepository, batch_size: int = 500):
        self._cases = cases
        self._batch_size = batch_size

    async def sweep(self, now: Optional[datetime] = None) -> List[CaseEvent]:
        now = now or datetime.now(timezone.utc)
        breached = await self._cases.list_breached(now, self._batch_size)

        events: List[CaseEvent] = []
        for case in breached:
            if case.sla_breach_notified_at is not None:
                continue

            case.sla_breach_notified_at = now
            await self._cases.save(case)

            overdue_minutes = int((now - case.sla_deadline).total_seconds() // 60)
            await self._cases.add_activity(CaseActivity(
                case_id=case.id,
                activity_type=ActivityType.SLA_BREACHED,
                actor=SYSTEM_ACTOR,
                description=f"SLA deadline {case.sla_deadline.isoformat()} passed",
                performed_at=now,
                field_name="sla_deadline",
                new_value=case.sla_deadline.isoformat(),
            ))
            events.append(CaseEvent(
                case_id=case.id,
                case_number=case.case_number,
                event_type=ActivityType.SLA_BREACHED,
                actor=SYSTEM_ACTOR,
                timestamp=now,
                details={
                    "status": case.status.value,
                    "severity": case.severity.value,
                    "title": case.title,
                    "sla_deadline": case.sla_deadline.isoformat(),
                    "overdue_minutes": overdue_minutes,
                    "assigned_user_ids": list(case.assigned_user_ids),
                },
            ))

        if events:
            logger.info("SLA breaches detected", extra={"breached_count": len(events)})
        return events
