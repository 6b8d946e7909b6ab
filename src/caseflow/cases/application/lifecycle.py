"""
Case Lifecycle Manager
======================

Owns the case state machine. Every status change goes through
Case.transition_to() and appends an immutable CaseActivity row; each
activity also yields a CaseEvent for subscribers.

Methods here never commit. The caller owns the transaction and publishes
the returned events only after its commit succeeded.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from caseflow.alerts.domain import AlertEvent
from caseflow.cases.application.interfaces import ICaseNumberGenerator, ICaseRepository
from caseflow.cases.domain import AssignmentResult, Case, CaseActivity, CaseEvent, can_transition
from caseflow.config import (
    ActivityType,
    CaseStatus,
    ResolvePolicy,
    SYSTEM_ACTOR,
    TERMINAL_STATUSES,
)
from caseflow.core import (
    ActiveCaseConflictException,
    CaseImmutableException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from caseflow.shared.infrastructure.logging import get_logger
from caseflow.sla.domain import SLACalculator

logger = get_logger(__name__)

_REOPEN_TRANSITIONS = {
    (CaseStatus.RESOLVED, CaseStatus.IN_PROGRESS),
    (CaseStatus.CANCELLED, CaseStatus.OPEN),
}


def _ids(values: Sequence[int]) -> str:
    return ",".join(str(v) for v in values)


class CaseLifecycleService:
    """
    Case creation, transitions, assignment, alert attachment, resolution
    flagging and merging.
    """

    def __init__(self, cases: ICaseRepository, numbers: Optional[ICaseNumberGenerator] = None):
        self._cases = cases
        self._numbers = numbers

    # ========== Creation ==========

    def draft_case(
        self,
        event: AlertEvent,
        sla_minutes: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> Case:
        """
        Unsaved case for a FIRING event, SLA deadline already computed.

        The SLA clock starts when the alert started firing, or on receipt
        when the alert carries no start time.
        """
        now = now or datetime.now(timezone.utc)
        sla_start = event.starts_at or event.received_at
        return Case(
            case_number="",
            title=event.title,
            description=event.description,
            severity=event.severity,
            primary_alert_fingerprint=event.fingerprint,
            sla_deadline=SLACalculator.compute_deadline(event.severity, sla_start, sla_minutes),
            created_at=now,
            updated_at=now,
            rule_id=event.rule_id,
            rule_name=event.rule_name,
            category=event.category,
            alert_count=1,
            last_alert_at=event.received_at,
        )

    async def create_case(
        self,
        draft: Case,
        assignment: AssignmentResult,
        actor: str = SYSTEM_ACTOR
    ) -> Tuple[Case, List[CaseEvent]]:
        """
        Persist a drafted case in OPEN, then move it to ASSIGNED when the
        assignment is non-empty.
        """
        if self._numbers is None:
            raise RuntimeError("Case number generator not configured")

        now = draft.created_at
        draft.status = CaseStatus.OPEN
        draft.case_number = await self._numbers.next_case_number(now)
        case = await self._cases.add(draft)

        events = [await self._record(
            case, ActivityType.CREATED, actor,
            f"Case created from alert {case.primary_alert_fingerprint}",
            at=now,
            field_name="status",
            new_value=CaseStatus.OPEN.value,
            details={
                "severity": case.severity.value,
                "fingerprint": case.primary_alert_fingerprint,
                "sla_deadline": case.sla_deadline.isoformat(),
            },
        )]

        if not assignment.is_empty:
            events.extend(await self._apply_assignment(case, assignment, actor, now))

        logger.info(
            "Case created",
            extra={
                "case_id": case.id,
                "case_number": case.case_number,
                "fingerprint": case.primary_alert_fingerprint,
                "status": case.status.value,
                "assigned_user_ids": case.assigned_user_ids,
            }
        )
        return case, events

    # ========== Transitions ==========

    async def transition(
        self,
        case: Case,
        to_status: CaseStatus,
        actor: str,
        note: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> List[CaseEvent]:
        """
        Apply a status change from the transition table.

        Raises:
            InvalidTransitionException: transition not allowed, case untouched
            ActiveCaseConflictException: reopening would give a fingerprint
                a second active case
        """
        at = at or datetime.now(timezone.utc)
        if (
            case.status in TERMINAL_STATUSES
            and to_status not in TERMINAL_STATUSES
            and can_transition(case.status, to_status)
        ):
            await self._ensure_fingerprints_free(case)
        previous = case.transition_to(to_status, at)
        await self._cases.save(case)

        activity_type = (
            ActivityType.REOPENED if (previous, to_status) in _REOPEN_TRANSITIONS
            else ActivityType.STATUS_CHANGE
        )
        description = f"Status changed from {previous.value} to {to_status.value}"
        if note:
            description = f"{description}: {note}"

        event = await self._record(
            case, activity_type, actor, description,
            at=at,
            field_name="status",
            old_value=previous.value,
            new_value=to_status.value,
        )
        logger.info(
            "Case status changed",
            extra={
                "case_number": case.case_number,
                "from_status": previous.value,
                "to_status": to_status.value,
                "actor": actor,
            }
        )
        return [event]

    async def transition_by_id(
        self,
        case_id: int,
        to_status: CaseStatus,
        actor: str,
        note: Optional[str] = None
    ) -> Tuple[Case, List[CaseEvent]]:
        case = await self._require(case_id, for_update=True)
        events = await self.transition(case, to_status, actor, note)
        return case, events

    # ========== Assignment ==========

    async def assign(
        self,
        case_id: int,
        assignment: AssignmentResult,
        actor: str
    ) -> Tuple[Case, List[CaseEvent]]:
        """Manual (re-)assignment; moves OPEN cases to ASSIGNED."""
        if assignment.is_empty:
            raise ValidationException("Assignment must name at least one user or team")

        case = await self._require(case_id, for_update=True)
        self._ensure_mutable(case)
        events = await self._apply_assignment(case, assignment, actor, datetime.now(timezone.utc))
        return case, events

    async def _apply_assignment(
        self,
        case: Case,
        assignment: AssignmentResult,
        actor: str,
        at: datetime
    ) -> List[CaseEvent]:
        old_users = list(case.assigned_user_ids)
        case.assigned_user_ids = list(assignment.user_ids)
        case.assigned_team_ids = list(assignment.team_ids)
        case.assigned_at = at
        case.updated_at = at

        events: List[CaseEvent] = []
        if case.status == CaseStatus.OPEN:
            previous = case.transition_to(CaseStatus.ASSIGNED, at)
            events.append(await self._record(
                case, ActivityType.STATUS_CHANGE, actor,
                f"Status changed from {previous.value} to {CaseStatus.ASSIGNED.value}",
                at=at,
                field_name="status",
                old_value=previous.value,
                new_value=CaseStatus.ASSIGNED.value,
            ))

        await self._cases.save(case)
        events.insert(0, await self._record(
            case, ActivityType.ASSIGNED, actor,
            "Case assigned",
            at=at,
            field_name="assigned_user_ids",
            old_value=_ids(old_users) or None,
            new_value=_ids(case.assigned_user_ids) or None,
            details={
                "user_ids": list(assignment.user_ids),
                "team_ids": list(assignment.team_ids),
            },
        ))
        return events

    # ========== Alert correlation ==========

    async def attach_alert(
        self,
        case: Case,
        event: AlertEvent,
        actor: str = SYSTEM_ACTOR
    ) -> List[CaseEvent]:
        """
        Correlate a repeat FIRING alert into the case.

        A RESOLVED case is reopened to IN_PROGRESS; no other status change
        happens implicitly.
        """
        at = event.received_at
        events: List[CaseEvent] = []

        if case.status == CaseStatus.RESOLVED:
            events.extend(await self.transition(
                case, CaseStatus.IN_PROGRESS, actor, note="alert fired again", at=at
            ))
        self._ensure_mutable(case)

        added = case.add_related_fingerprint(event.fingerprint)
        case.alert_count += 1
        case.last_alert_at = event.received_at
        case.resolution_candidate = False
        case.updated_at = at
        await self._cases.save(case)

        events.append(await self._record(
            case, ActivityType.ALERT_ATTACHED, actor,
            f"Alert {event.fingerprint} attached",
            at=at,
            field_name="alert_count",
            old_value=str(case.alert_count - 1),
            new_value=str(case.alert_count),
            details={"fingerprint": event.fingerprint, "new_fingerprint": added},
        ))
        return events

    async def flag_resolution(
        self,
        case: Case,
        event: AlertEvent,
        policy: ResolvePolicy,
        actor: str = SYSTEM_ACTOR
    ) -> List[CaseEvent]:
        """
        Signal that the underlying alert resolved.

        ``flag`` marks the case as a resolution candidate for a human to
        confirm. ``auto_resolve`` also moves it to RESOLVED when the
        transition table allows it from the current status.
        """
        at = event.received_at
        self._ensure_mutable(case)

        case.resolution_candidate = True
        case.updated_at = at
        await self._cases.save(case)

        events = [await self._record(
            case, ActivityType.ALERT_RESOLVED, actor,
            f"Alert {event.fingerprint} resolved; case flagged for resolution",
            at=at,
            field_name="resolution_candidate",
            old_value=None,
            new_value="true",
            details={"fingerprint": event.fingerprint, "policy": policy.value},
        )]

        if policy == ResolvePolicy.AUTO_RESOLVE:
            if can_transition(case.status, CaseStatus.RESOLVED):
                events.extend(await self.transition(
                    case, CaseStatus.RESOLVED, actor, note="alert resolved", at=at
                ))
            elif case.status != CaseStatus.RESOLVED:
                logger.info(
                    "Auto-resolve not allowed from current status, case flagged only",
                    extra={"case_number": case.case_number, "status": case.status.value}
                )
        return events

    # ========== Merge ==========

    async def merge(
        self,
        target_id: int,
        source_id: int,
        actor: str
    ) -> Tuple[Case, List[CaseEvent]]:
        """
        Fold ``source`` into ``target``.

        The source's fingerprints join the target's related set and the
        source is cancelled, so it must currently allow -> CANCELLED.
        """
        if target_id == source_id:
            raise ValidationException("A case cannot be merged into itself")

        target = await self._require(target_id, for_update=True)
        source = await self._require(source_id, for_update=True)
        self._ensure_mutable(target)
        if not can_transition(source.status, CaseStatus.CANCELLED):
            raise InvalidTransitionException(
                source.case_number, source.status.value, CaseStatus.CANCELLED.value
            )

        at = datetime.now(timezone.utc)
        events = await self.transition(
            source, CaseStatus.CANCELLED, actor, note=f"merged into {target.case_number}", at=at
        )
        events.append(await self._record(
            source, ActivityType.MERGED, actor,
            f"Merged into {target.case_number}",
            at=at,
            field_name="merged_into",
            new_value=target.case_number,
        ))

        moved = [fp for fp in source.fingerprints if target.add_related_fingerprint(fp)]
        target.alert_count += source.alert_count
        target.updated_at = at
        await self._cases.save(target)

        events.append(await self._record(
            target, ActivityType.MERGED, actor,
            f"Merged {source.case_number} into this case",
            at=at,
            field_name="related_fingerprints",
            new_value=",".join(moved) or None,
            details={"source_case_number": source.case_number, "fingerprints": moved},
        ))
        return target, events

    # ========== Helpers ==========

    async def _require(self, case_id: int, for_update: bool = False) -> Case:
        case = await self._cases.get(case_id, for_update=for_update)
        if case is None:
            raise ResourceNotFoundException("Case", str(case_id))
        return case

    @staticmethod
    def _ensure_mutable(case: Case) -> None:
        if case.status in TERMINAL_STATUSES:
            raise CaseImmutableException(case.case_number, case.status.value)

    async def _ensure_fingerprints_free(self, case: Case) -> None:
        for fingerprint in case.fingerprints:
            owner = await self._cases.find_active_by_fingerprint(fingerprint)
            if owner is not None and owner.id != case.id:
                raise ActiveCaseConflictException(
                    fingerprint,
                    {"fingerprint": fingerprint, "case_number": owner.case_number}
                )

    async def _record(
        self,
        case: Case,
        activity_type: ActivityType,
        actor: str,
        description: str,
        at: datetime,
        field_name: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> CaseEvent:
        await self._cases.add_activity(CaseActivity(
            case_id=case.id,
            activity_type=activity_type,
            actor=actor,
            description=description,
            performed_at=at,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
        ))
        return CaseEvent(
            case_id=case.id,
            case_number=case.case_number,
            event_type=activity_type,
            actor=actor,
            timestamp=at,
            details={
                "status": case.status.value,
                "severity": case.severity.value,
                "title": case.title,
                **(details or {}),
            },
        )
