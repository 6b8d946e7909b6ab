"""
Alert Ingestion Pipeline
========================

Drives one normalised alert event through the system:

    record history -> correlate -> [create | attach | flag resolution] -> publish

Transactions:
    1. The history record is committed on its own, so every delivery is
       kept even when processing fails.
    2. Correlation, the case write and the history outcome commit together.
       A lost race on the active-fingerprint constraint or the case number
       counter rolls back and re-runs the unit of work, which then sees the
       winner's case and attaches to it.
    3. Events are published only after the commit.

Any other failure marks the history record FAILED and propagates.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.alerts.application import AlertHistoryService
from caseflow.alerts.domain import AlertEvent, AlertHistoryRecord
from caseflow.alerts.infrastructure import SQLAlchemyAlertHistoryRepository
from caseflow.cases.application import (
    AssignmentResolver,
    CaseCorrelator,
    CaseLifecycleService,
    ICaseEventPublisher,
    NO_ACTIVE_CASE_REASON,
)
from caseflow.cases.domain import (
    Case,
    CaseEvent,
    CorrelationAction,
    CorrelationDecision,
    match_rule,
)
from caseflow.cases.infrastructure import (
    NullCaseEventPublisher,
    SQLAlchemyAssignmentPointerRepository,
    SQLAlchemyCaseNumberGenerator,
    SQLAlchemyCaseRepository,
)
from caseflow.config import ProcessingState, ResolvePolicy
from caseflow.config.policy import PolicyConfig
from caseflow.core import (
    CaseImmutableException,
    ConcurrentUpdateException,
    DomainException,
    InvalidTransitionException,
    PersistenceTimeoutException,
    RepositoryException,
)
from caseflow.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

MAX_ATTEMPTS = 3

_UNCORRELATED_REASONS = {
    InvalidTransitionException: "INVALID_TRANSITION",
    CaseImmutableException: "CASE_IMMUTABLE",
}


@dataclass
class IngestionOutcome:
    """What happened to one alert event."""
    event: AlertEvent
    decision: CorrelationDecision
    history_id: Optional[int] = None
    case: Optional[Case] = None
    events: List[CaseEvent] = field(default_factory=list)

    @property
    def action(self) -> CorrelationAction:
        return self.decision.action

    @property
    def touched_case(self) -> bool:
        """A case was created or an alert attached to one."""
        return self.action in (CorrelationAction.CREATE_CASE, CorrelationAction.ATTACH_TO_CASE)


class AlertIngestionService:
    """
    Alert ingestion with bounded time and retry on lost races.

    ``policy_provider`` is read once per event; the snapshot is used for
    the whole unit of work.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy_provider: Callable[[], PolicyConfig],
        publisher: Optional[ICaseEventPublisher] = None,
        duplicate_window: timedelta = timedelta(minutes=5),
        resolve_policy: ResolvePolicy = ResolvePolicy.FLAG,
        timeout_seconds: float = 15.0,
        max_attempts: int = MAX_ATTEMPTS
    ):
        self._session_factory = session_factory
        self._policy_provider = policy_provider
        self._publisher = publisher or NullCaseEventPublisher()
        self._duplicate_window = duplicate_window
        self._resolve_policy = resolve_policy
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts

    async def ingest_batch(self, events: List[AlertEvent]) -> List[IngestionOutcome]:
        """
        Ingest every event of one delivery.

        Each event gets its own transactions. All events are attempted;
        the first failure is raised afterwards.
        """
        outcomes: List[IngestionOutcome] = []
        first_error: Optional[Exception] = None

        for event in events:
            try:
                outcomes.append(await self.ingest(event))
            except Exception as e:
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error
        return outcomes

    async def ingest(self, event: AlertEvent) -> IngestionOutcome:
        policy = self._policy_provider()

        with log_latency(logger, "alert_ingestion", fingerprint=event.fingerprint):
            record = await self._bounded(self._record(event), event)
            try:
                outcome, events = await self._bounded(self._process(record, policy), event)
            except Exception as e:
                await self._mark_failed(record, e)
                raise

        await self._publisher.publish(events)
        return outcome

    async def _bounded(self, coro, event: AlertEvent):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.error(
                "Alert ingestion timed out",
                extra={"fingerprint": event.fingerprint, "timeout_seconds": self._timeout}
            )
            raise PersistenceTimeoutException(
                f"Alert processing exceeded {self._timeout}s",
                {"fingerprint": event.fingerprint}
            ) from e

    async def _record(self, event: AlertEvent) -> AlertHistoryRecord:
        async with self._session_factory() as session:
            record = await AlertHistoryService(SQLAlchemyAlertHistoryRepository(session)).record(event)
            await session.commit()
        return record

    async def _process(
        self,
        record: AlertHistoryRecord,
        policy: PolicyConfig
    ) -> Tuple[IngestionOutcome, List[CaseEvent]]:
        for attempt in range(1, self._max_attempts + 1):
            async with self._session_factory() as session:
                try:
                    outcome = await self._apply(session, record, policy)
                    await session.commit()
                    return outcome, outcome.events
                except ConcurrentUpdateException as e:
                    await session.rollback()
                    if attempt >= self._max_attempts:
                        # exhausted conflicts must reach Grafana as a retryable 5xx
                        raise RepositoryException(
                            "Alert processing kept conflicting with concurrent updates",
                            {**e.details, "attempts": attempt}
                        ) from e
                    logger.info(
                        "Concurrent update, retrying",
                        extra={
                            "fingerprint": record.event.fingerprint,
                            "attempt": attempt,
                            "error": e.message,
                        }
                    )
                except DomainException as e:
                    await session.rollback()
                    return await self._uncorrelated(session, record, e), []

        raise RepositoryException("Alert processing exhausted its attempts")

    async def _apply(
        self,
        session: AsyncSession,
        record: AlertHistoryRecord,
        policy: PolicyConfig
    ) -> IngestionOutcome:
        event = record.event
        history = AlertHistoryService(SQLAlchemyAlertHistoryRepository(session))
        cases = SQLAlchemyCaseRepository(session)
        lifecycle = CaseLifecycleService(cases, SQLAlchemyCaseNumberGenerator(session))

        decision = await CaseCorrelator(history, cases, self._duplicate_window).correlate(event)
        case: Optional[Case] = None
        events: List[CaseEvent] = []

        if decision.action == CorrelationAction.CREATE_CASE:
            draft = lifecycle.draft_case(event, policy.sla.sla_minutes, now=event.received_at)
            rule = match_rule(policy.assignment_rules, event.rule_id, event.category, event.severity)
            resolver = AssignmentResolver(cases, SQLAlchemyAssignmentPointerRepository(session))
            assignment = await resolver.resolve_assignee(draft, rule, policy.assignee_pool)
            case, events = await lifecycle.create_case(draft, assignment)

        elif decision.action == CorrelationAction.ATTACH_TO_CASE:
            case = await self._locked_case(cases, decision.case_id)
            events = await lifecycle.attach_alert(case, event)

        elif decision.action == CorrelationAction.RESOLVE_CANDIDATE:
            case = await self._locked_case(cases, decision.case_id)
            events = await lifecycle.flag_resolution(case, event, self._resolve_policy)

        state = (
            ProcessingState.UNCORRELATED if decision.reason == NO_ACTIVE_CASE_REASON
            else ProcessingState.PROCESSED
        )
        await history.mark(
            record,
            state,
            decision=decision.action.value,
            reason=decision.reason,
            case_id=case.id if case else None,
        )

        logger.info(
            "Alert correlated",
            extra={
                "fingerprint": event.fingerprint,
                "alert_status": event.status.value,
                "decision": decision.action.value,
                "reason": decision.reason,
                "case_number": case.case_number if case else None,
            }
        )
        return IngestionOutcome(
            event=event,
            decision=decision,
            history_id=record.id,
            case=case,
            events=events,
        )

    @staticmethod
    async def _locked_case(cases: SQLAlchemyCaseRepository, case_id: int) -> Case:
        case = await cases.get(case_id, for_update=True)
        if case is None or not case.is_active:
            # closed between correlation and lock
            raise ConcurrentUpdateException(f"Case {case_id} changed during correlation")
        return case

    async def _uncorrelated(
        self,
        session: AsyncSession,
        record: AlertHistoryRecord,
        error: DomainException
    ) -> IngestionOutcome:
        reason = _UNCORRELATED_REASONS.get(type(error), "DOMAIN_RULE")
        logger.warning(
            "Alert could not be applied to its case",
            extra={"fingerprint": record.event.fingerprint, "error": error.message}
        )
        await AlertHistoryService(SQLAlchemyAlertHistoryRepository(session)).mark(
            record, ProcessingState.UNCORRELATED, decision=CorrelationAction.IGNORE.value, reason=reason
        )
        await session.commit()
        return IngestionOutcome(
            event=record.event,
            decision=CorrelationDecision.ignore(reason),
            history_id=record.id,
        )

    async def _mark_failed(self, record: AlertHistoryRecord, error: Exception) -> None:
        try:
            async with self._session_factory() as session:
                await AlertHistoryService(SQLAlchemyAlertHistoryRepository(session)).mark(
                    record, ProcessingState.FAILED, reason=type(error).__name__[:100]
                )
                await session.commit()
        except (SQLAlchemyError, RepositoryException) as e:
            logger.error(
                "Could not mark alert history record as FAILED",
                extra={"history_id": record.id, "error": str(e)}
            )
