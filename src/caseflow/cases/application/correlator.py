"""
Case Correlator
===============

Decides what an incoming alert event means for the case store.

    duplicate FIRING replay            -> IGNORE (DUPLICATE)
    RESOLVED, active case exists       -> RESOLVE_CANDIDATE(case)
    RESOLVED, no active case           -> IGNORE (NO_ACTIVE_CASE)
    FIRING, active case exists         -> ATTACH_TO_CASE(case)
    FIRING, no active case             -> CREATE_CASE

The correlator only reads; acting on the decision is the lifecycle
manager's job.
"""

from datetime import timedelta

from caseflow.alerts.application import DUPLICATE_REASON, AlertHistoryService
from caseflow.alerts.domain import AlertEvent
from caseflow.cases.application.interfaces import ICaseRepository
from caseflow.cases.domain import CorrelationDecision
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

NO_ACTIVE_CASE_REASON = "NO_ACTIVE_CASE"


class CaseCorrelator:
    """Correlates alert events against alert history and active cases."""

    def __init__(
        self,
        history: AlertHistoryService,
        cases: ICaseRepository,
        duplicate_window: timedelta
    ):
        self._history = history
        self._cases = cases
        self._duplicate_window = duplicate_window

    async def correlate(self, event: AlertEvent) -> CorrelationDecision:
        if await self._history.is_duplicate(
            event.fingerprint, event.status, self._duplicate_window, now=event.received_at
        ):
            logger.info(
                "Duplicate alert ignored",
                extra={"fingerprint": event.fingerprint, "status": event.status.value}
            )
            return CorrelationDecision.ignore(DUPLICATE_REASON)

        case = await self._cases.find_active_by_fingerprint(event.fingerprint)

        if event.is_resolved:
            if case is None:
                logger.info(
                    "Resolved alert has no active case",
                    extra={"fingerprint": event.fingerprint}
                )
                return CorrelationDecision.ignore(NO_ACTIVE_CASE_REASON)
            return CorrelationDecision.resolve_candidate(case.id)

        if case is not None:
            return CorrelationDecision.attach(case.id)
        return CorrelationDecision.create()
