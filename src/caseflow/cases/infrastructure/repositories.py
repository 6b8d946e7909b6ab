"""
Case Infrastructure Repositories
================================

SQLAlchemy implementations of the case repository interfaces.

Repositories flush but never commit; the caller owns the transaction.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from caseflow.cases.application.interfaces import (
    IAssignmentPointerRepository,
    ICaseNumberGenerator,
    ICaseRepository,
)
from caseflow.cases.domain import Case, CaseActivity
from caseflow.cases.infrastructure.models import (
    AssignmentPointerModel,
    CaseActivityModel,
    CaseFingerprintModel,
    CaseModel,
    CaseNumberCounterModel,
)
from caseflow.config import (
    ACTIVE_STATUSES,
    ActivityType,
    CaseStatus,
    Severity,
    SLA_STOPPED_STATUSES,
    TERMINAL_STATUSES,
)
from caseflow.core import (
    ActiveCaseConflictException,
    ConcurrentUpdateException,
    RepositoryException,
)
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_TERMINAL = [s.value for s in TERMINAL_STATUSES]
_ACTIVE = [s.value for s in ACTIVE_STATUSES]
_SLA_RUNNING = [s.value for s in CaseStatus if s not in SLA_STOPPED_STATUSES]


def _to_entity(model: CaseModel) -> Case:
    return Case(
        id=model.id,
        case_number=model.case_number,
        status=CaseStatus(model.status),
        severity=Severity(model.severity),
        title=model.title,
        description=model.description or "",
        primary_alert_fingerprint=model.primary_alert_fingerprint,
        related_fingerprints=[fp.fingerprint for fp in model.fingerprints],
        assigned_user_ids=[int(u) for u in model.assigned_user_ids or []],
        assigned_team_ids=[int(t) for t in model.assigned_team_ids or []],
        rule_id=model.rule_id,
        rule_name=model.rule_name,
        category=model.category,
        alert_count=model.alert_count,
        last_alert_at=model.last_alert_at,
        resolution_candidate=model.resolution_candidate,
        sla_deadline=model.sla_deadline,
        sla_breach_notified_at=model.sla_breach_notified_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
        assigned_at=model.assigned_at,
        resolved_at=model.resolved_at,
        closed_at=model.closed_at,
    )


def _to_activity(model: CaseActivityModel) -> CaseActivity:
    return CaseActivity(
        id=model.id,
        case_id=model.case_id,
        activity_type=ActivityType(model.activity_type),
        actor=model.actor,
        description=model.description or "",
        performed_at=model.performed_at,
        field_name=model.field_name,
        old_value=model.old_value,
        new_value=model.new_value,
    )


def _apply(model: CaseModel, case: Case) -> None:
    """Copy mutable entity state onto the row."""
    model.status = case.status.value
    model.severity = case.severity.value
    model.title = case.title
    model.description = case.description
    model.active_fingerprint = case.primary_alert_fingerprint if case.is_active else None
    model.rule_id = case.rule_id
    model.rule_name = case.rule_name
    model.category = case.category
    model.assigned_user_ids = list(case.assigned_user_ids)
    model.assigned_team_ids = list(case.assigned_team_ids)
    model.assigned_at = case.assigned_at
    model.alert_count = case.alert_count
    model.last_alert_at = case.last_alert_at
    model.resolution_candidate = case.resolution_candidate
    model.sla_deadline = case.sla_deadline
    model.sla_breach_notified_at = case.sla_breach_notified_at
    model.updated_at = case.updated_at
    model.resolved_at = case.resolved_at
    model.closed_at = case.closed_at

    known = {fp.fingerprint for fp in model.fingerprints}
    for fingerprint in case.related_fingerprints:
        if fingerprint not in known:
            model.fingerprints.append(CaseFingerprintModel(fingerprint=fingerprint))
            known.add(fingerprint)


class SQLAlchemyCaseRepository(ICaseRepository):
    """SQLAlchemy implementation of case repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, case_id: int, for_update: bool = False) -> Optional[Case]:
        stmt = select(CaseModel).where(CaseModel.id == case_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def get_by_number(self, case_number: str) -> Optional[Case]:
        result = await self._session.execute(
            select(CaseModel).where(CaseModel.case_number == case_number)
        )
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def find_active_by_fingerprint(self, fingerprint: str) -> Optional[Case]:
        related = select(CaseFingerprintModel.case_id).where(
            CaseFingerprintModel.fingerprint == fingerprint
        )
        stmt = (
            select(CaseModel)
            .where(
                CaseModel.status.not_in(_TERMINAL),
                or_(
                    CaseModel.primary_alert_fingerprint == fingerprint,
                    CaseModel.id.in_(related),
                ),
            )
            .order_by(CaseModel.created_at.desc(), CaseModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def add(self, case: Case) -> Case:
        model = CaseModel(
            case_number=case.case_number,
            primary_alert_fingerprint=case.primary_alert_fingerprint,
            created_at=case.created_at,
            fingerprints=[],
        )
        _apply(model, case)
        self._session.add(model)
        await self._flush(case)

        case.id = model.id
        return case

    async def save(self, case: Case) -> Case:
        if case.id is None:
            raise RepositoryException("Cannot save a case that was never added")

        model = await self._session.get(CaseModel, case.id)
        if model is None:
            raise RepositoryException(f"Case {case.id} not found", {"case_id": case.id})

        _apply(model, case)
        await self._flush(case)
        return case

    async def _flush(self, case: Case) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            if "active_fingerprint" in str(e.orig):
                logger.info(
                    "Active case conflict",
                    extra={"fingerprint": case.primary_alert_fingerprint}
                )
                raise ActiveCaseConflictException(case.primary_alert_fingerprint) from e
            raise RepositoryException(f"Failed to persist case: {e.orig}") from e

    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Case]:
        stmt = select(CaseModel)

        if filters.get("status"):
            stmt = stmt.where(CaseModel.status == CaseStatus(filters["status"]).value)
        if filters.get("severity"):
            stmt = stmt.where(CaseModel.severity == Severity(filters["severity"]).value)
        if filters.get("active_only"):
            stmt = stmt.where(CaseModel.status.not_in(_TERMINAL))
        if filters.get("fingerprint"):
            fingerprint = filters["fingerprint"]
            related = select(CaseFingerprintModel.case_id).where(
                CaseFingerprintModel.fingerprint == fingerprint
            )
            stmt = stmt.where(or_(
                CaseModel.primary_alert_fingerprint == fingerprint,
                CaseModel.id.in_(related),
            ))

        stmt = stmt.order_by(CaseModel.created_at.desc(), CaseModel.id.desc())

        user_id = filters.get("assigned_user_id")
        if user_id is None:
            result = await self._session.execute(stmt.limit(limit).offset(offset))
            return [_to_entity(m) for m in result.scalars().all()]

        # JSON membership isn't portable across dialects; filter in Python
        result = await self._session.execute(stmt)
        matching = [
            _to_entity(m) for m in result.scalars().all()
            if int(user_id) in [int(u) for u in m.assigned_user_ids or []]
        ]
        return matching[offset:offset + limit]

    async def count_active_by_user(self, user_ids: Iterable[int]) -> Dict[int, int]:
        counts = {int(u): 0 for u in user_ids}
        if not counts:
            return counts

        result = await self._session.execute(
            select(CaseModel.assigned_user_ids).where(CaseModel.status.in_(_ACTIVE))
        )
        for assigned in result.scalars().all():
            for user_id in assigned or []:
                if int(user_id) in counts:
                    counts[int(user_id)] += 1
        return counts

    async def list_breached(self, now: datetime, limit: int = 500) -> List[Case]:
        stmt = (
            select(CaseModel)
            .where(
                CaseModel.status.in_(_SLA_RUNNING),
                CaseModel.sla_deadline < now,
            )
            .order_by(CaseModel.sla_deadline.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def add_activity(self, activity: CaseActivity) -> CaseActivity:
        model = CaseActivityModel(
            case_id=activity.case_id,
            activity_type=activity.activity_type.value,
            field_name=activity.field_name,
            old_value=activity.old_value,
            new_value=activity.new_value,
            actor=activity.actor,
            description=activity.description,
            performed_at=activity.performed_at,
        )
        self._session.add(model)
        await self._session.flush()
        activity.id = model.id
        return activity

    async def list_activities(self, case_id: int) -> List[CaseActivity]:
        stmt = (
            select(CaseActivityModel)
            .where(CaseActivityModel.case_id == case_id)
            .order_by(CaseActivityModel.performed_at.asc(), CaseActivityModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [_to_activity(m) for m in result.scalars().all()]


class SQLAlchemyAssignmentPointerRepository(IAssignmentPointerRepository):
    """Round-robin pointers keyed by assignment rule name."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_last(self, rule_name: str) -> Optional[int]:
        model = await self._session.get(AssignmentPointerModel, rule_name)
        return int(model.last_user_id) if model else None

    async def set_last(self, rule_name: str, user_id: int) -> None:
        model = await self._session.get(AssignmentPointerModel, rule_name)
        if model is None:
            model = AssignmentPointerModel(rule_name=rule_name, last_user_id=user_id)
            self._session.add(model)
        else:
            model.last_user_id = user_id
        model.updated_at = datetime.now(timezone.utc)

        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConcurrentUpdateException(
                f"Assignment pointer for {rule_name} changed concurrently"
            ) from e


class SQLAlchemyCaseNumberGenerator(ICaseNumberGenerator):
    """
    CASE-YYYY-NNNN from a locked per-year counter row.

    The first case of a year inserts the row; a concurrent first insert
    surfaces as ConcurrentUpdateException and the unit of work is retried.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def next_case_number(self, at: datetime) -> str:
        year = at.year
        result = await self._session.execute(
            select(CaseNumberCounterModel)
            .where(CaseNumberCounterModel.year == year)
            .with_for_update()
        )
        counter = result.scalar_one_or_none()

        if counter is None:
            counter = CaseNumberCounterModel(year=year, last_value=1)
            self._session.add(counter)
        else:
            counter.last_value += 1

        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConcurrentUpdateException(f"Case number counter for {year} created concurrently") from e

        return f"CASE-{year}-{counter.last_value:04d}"
