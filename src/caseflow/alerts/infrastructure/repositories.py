"""
Alert Infrastructure Repositories
=================================

SQLAlchemy implementation of the alert history repository.
"""

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from caseflow.alerts.application import IAlertHistoryRepository
from caseflow.alerts.domain import AlertEvent, AlertHistoryRecord
from caseflow.alerts.infrastructure.models import AlertHistoryModel
from caseflow.config import AlertStatus, ProcessingState, Severity
from caseflow.core import RepositoryException

_PROCESSED_STATES = (ProcessingState.PROCESSED.value, ProcessingState.UNCORRELATED.value)


def _to_record(model: AlertHistoryModel) -> AlertHistoryRecord:
    event = AlertEvent(
        fingerprint=model.fingerprint,
        status=AlertStatus(model.status),
        severity=Severity(model.severity),
        title=model.title,
        description=model.description or "",
        labels=model.labels or {},
        annotations=model.annotations or {},
        starts_at=model.starts_at,
        ends_at=model.ends_at,
        rule_id=model.rule_id,
        rule_name=model.rule_name,
        category=model.category,
        generator_url=model.generator_url,
        receiver=model.receiver,
        raw_payload=model.raw_payload or "",
        received_at=model.received_at,
    )
    return AlertHistoryRecord(
        id=model.id,
        event=event,
        processing_state=ProcessingState(model.processing_state),
        decision=model.decision,
        reason=model.reason,
        case_id=model.case_id,
    )


class SQLAlchemyAlertHistoryRepository(IAlertHistoryRepository):
    """
    SQLAlchemy implementation of the alert history repository.

    Never deletes rows and never rewrites the event columns.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, event: AlertEvent) -> AlertHistoryRecord:
        model = AlertHistoryModel(
            fingerprint=event.fingerprint,
            status=event.status.value,
            severity=event.severity.value,
            rule_id=event.rule_id,
            rule_name=event.rule_name,
            category=event.category,
            title=event.title,
            description=event.description,
            labels=dict(event.labels),
            annotations=dict(event.annotations),
            generator_url=event.generator_url,
            receiver=event.receiver,
            raw_payload=event.raw_payload,
            starts_at=event.starts_at,
            ends_at=event.ends_at,
            received_at=event.received_at,
            processing_state=ProcessingState.RECEIVED.value,
        )
        self._session.add(model)
        await self._session.flush()

        return AlertHistoryRecord(id=model.id, event=event)

    async def set_outcome(
        self,
        record_id: int,
        state: ProcessingState,
        decision: Optional[str] = None,
        reason: Optional[str] = None,
        case_id: Optional[int] = None
    ) -> None:
        stmt = (
            update(AlertHistoryModel)
            .where(AlertHistoryModel.id == record_id)
            .values(
                processing_state=state.value,
                decision=decision,
                reason=reason,
                case_id=case_id,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise RepositoryException(f"Alert history record {record_id} not found")

    async def last_processed(
        self,
        fingerprint: str,
        exclude_reason: Optional[str] = None
    ) -> Optional[AlertHistoryRecord]:
        stmt = select(AlertHistoryModel).where(
            AlertHistoryModel.fingerprint == fingerprint,
            AlertHistoryModel.processing_state.in_(_PROCESSED_STATES),
        )
        if exclude_reason:
            stmt = stmt.where(
                (AlertHistoryModel.reason.is_(None)) | (AlertHistoryModel.reason != exclude_reason)
            )
        stmt = stmt.order_by(
            AlertHistoryModel.received_at.desc(), AlertHistoryModel.id.desc()
        ).limit(1)

        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_record(model) if model else None

    async def list_for_fingerprint(
        self,
        fingerprint: str,
        limit: int = 100,
        offset: int = 0
    ) -> List[AlertHistoryRecord]:
        stmt = (
            select(AlertHistoryModel)
            .where(AlertHistoryModel.fingerprint == fingerprint)
            .order_by(AlertHistoryModel.received_at.desc(), AlertHistoryModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return [_to_record(m) for m in result.scalars().all()]
