"""
Alert Application Services
==========================

The alert history store: every inbound alert event is recorded before any
correlation happens, and the store answers the replay question used to
absorb webhook retries.

Following SOLID principles:
- Single Responsibility: history only, correlation lives in the cases module
- Dependency Inversion: depends on IAlertHistoryRepository, not SQLAlchemy
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from caseflow.alerts.domain import AlertEvent, AlertHistoryRecord
from caseflow.config import AlertStatus, ProcessingState
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Reason recorded on IGNORE decisions that were replays
DUPLICATE_REASON = "DUPLICATE"


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAlertHistoryRepository(ABC):
    """Interface for alert history data access (append-only)."""

    @abstractmethod
    async def add(self, event: AlertEvent) -> AlertHistoryRecord:
        """Persist a new history record in RECEIVED state."""

    @abstractmethod
    async def set_outcome(
        self,
        record_id: int,
        state: ProcessingState,
        decision: Optional[str] = None,
        reason: Optional[str] = None,
        case_id: Optional[int] = None
    ) -> None:
        """Write the processing outcome columns of a record."""

    @abstractmethod
    async def last_processed(
        self,
        fingerprint: str,
        exclude_reason: Optional[str] = None
    ) -> Optional[AlertHistoryRecord]:
        """Most recent record whose correlation outcome was applied."""

    @abstractmethod
    async def list_for_fingerprint(
        self,
        fingerprint: str,
        limit: int = 100,
        offset: int = 0
    ) -> List[AlertHistoryRecord]:
        """History for one fingerprint, newest first."""


# ========== Application Services ==========

class AlertHistoryService:
    """
    Alert History Store.

    Duplicate rule: a FIRING event is a replay when the last *processed*
    event for the same fingerprint is FIRING (no RESOLVED in between) and
    was received within the replay window. Records still in RECEIVED or
    FAILED state are ignored, so a notifier retry after a 5xx is handled
    as a fresh delivery.
    """

    def __init__(self, repository: IAlertHistoryRepository):
        self._repo = repository

    async def record(self, event: AlertEvent) -> AlertHistoryRecord:
        record = await self._repo.add(event)
        logger.info(
            "Alert event recorded",
            extra={
                "history_id": record.id,
                "fingerprint": event.fingerprint,
                "alert_status": event.status.value,
                "severity": event.severity.value,
            }
        )
        return record

    async def is_duplicate(
        self,
        fingerprint: str,
        status: AlertStatus,
        within: timedelta,
        now: Optional[datetime] = None
    ) -> bool:
        if status != AlertStatus.FIRING or within <= timedelta(0):
            return False

        previous = await self._repo.last_processed(fingerprint, exclude_reason=DUPLICATE_REASON)
        if previous is None or previous.event.status != AlertStatus.FIRING:
            return False

        now = now or datetime.now(timezone.utc)
        return previous.event.received_at >= now - within

    async def mark(
        self,
        record: AlertHistoryRecord,
        state: ProcessingState,
        decision: Optional[str] = None,
        reason: Optional[str] = None,
        case_id: Optional[int] = None
    ) -> None:
        await self._repo.set_outcome(record.id, state, decision, reason, case_id)
        record.processing_state = state
        record.decision = decision
        record.reason = reason
        record.case_id = case_id

    async def history(
        self,
        fingerprint: str,
        limit: int = 100,
        offset: int = 0
    ) -> List[AlertHistoryRecord]:
        return await self._repo.list_for_fingerprint(fingerprint, limit, offset)

    async def last_event_for(self, fingerprint: str) -> Optional[AlertEvent]:
        """Most recently received event for the fingerprint, whatever its outcome."""
        records = await self._repo.list_for_fingerprint(fingerprint, limit=1)
        return records[0].event if records else None
