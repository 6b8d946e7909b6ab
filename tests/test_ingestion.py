import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from caseflow.alerts.application import AlertHistoryService
from caseflow.alerts.infrastructure import AlertHistoryModel, SQLAlchemyAlertHistoryRepository
from caseflow.cases.domain import CorrelationAction
from caseflow.cases.infrastructure import CaseModel, SQLAlchemyCaseRepository
from caseflow.cases.ingestion import AlertIngestionService
from caseflow.config import AlertStatus, CaseStatus, ProcessingState, ResolvePolicy
from caseflow.core import ConcurrentUpdateException, PersistenceTimeoutException, RepositoryException
from tests.conftest import T0, RecordingPublisher, make_event


def service(session_factory, policy, window=timedelta(0), **kwargs):
    return AlertIngestionService(
        session_factory=session_factory,
        policy_provider=lambda: policy,
        duplicate_window=window,
        **kwargs
    )


async def case_count(session_factory):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(CaseModel))


async def history(session_factory, fingerprint):
    async with session_factory() as session:
        result = await session.execute(
            select(AlertHistoryModel)
            .where(AlertHistoryModel.fingerprint == fingerprint)
            .order_by(AlertHistoryModel.id)
        )
        return list(result.scalars().all())


async def load_case(session_factory, case_id):
    async with session_factory() as session:
        return await SQLAlchemyCaseRepository(session).get(case_id)


async def start_work(session_factory, case_id):
    """Move an auto-assigned case to IN_PROGRESS."""
    async with session_factory() as session:
        repo = SQLAlchemyCaseRepository(session)
        case = await repo.get(case_id)
        case.transition_to(CaseStatus.IN_PROGRESS)
        await repo.save(case)
        await session.commit()


async def test_first_firing_creates_case(session_factory, policy):
    outcome = await service(session_factory, policy).ingest(make_event())

    assert outcome.action == CorrelationAction.CREATE_CASE
    assert outcome.case.case_number == "CASE-2025-0001"
    assert outcome.case.sla_deadline == T0 + timedelta(minutes=15)
    [record] = await history(session_factory, "fp-1")
    assert record.processing_state == ProcessingState.PROCESSED.value
    assert record.decision == CorrelationAction.CREATE_CASE.value
    assert record.case_id == outcome.case.id


async def test_repeat_firing_attaches(session_factory, policy):
    svc = service(session_factory, policy)
    created = await svc.ingest(make_event())
    attached = await svc.ingest(make_event(received_at=T0 + timedelta(minutes=1)))

    assert attached.action == CorrelationAction.ATTACH_TO_CASE
    assert attached.case.id == created.case.id
    assert attached.case.alert_count == 2
    assert await case_count(session_factory) == 1


async def test_replay_within_window_is_ignored(session_factory, policy):
    svc = service(session_factory, policy, window=timedelta(minutes=5))
    created = await svc.ingest(make_event())
    replay = await svc.ingest(make_event(received_at=T0 + timedelta(seconds=30)))

    assert replay.action == CorrelationAction.IGNORE
    assert replay.decision.reason == "DUPLICATE"
    assert (await load_case(session_factory, created.case.id)).alert_count == 1
    states = [r.processing_state for r in await history(session_factory, "fp-1")]
    assert states == [ProcessingState.PROCESSED.value, ProcessingState.PROCESSED.value]


async def test_repeat_after_window_attaches(session_factory, policy):
    svc = service(session_factory, policy, window=timedelta(minutes=5))
    await svc.ingest(make_event())
    later = await svc.ingest(make_event(received_at=T0 + timedelta(minutes=6)))

    assert later.action == CorrelationAction.ATTACH_TO_CASE


async def test_resolved_without_case_is_uncorrelated(session_factory, policy):
    outcome = await service(session_factory, policy).ingest(make_event(status=AlertStatus.RESOLVED))

    assert outcome.action == CorrelationAction.IGNORE
    assert outcome.decision.reason == "NO_ACTIVE_CASE"
    assert await case_count(session_factory) == 0
    [record] = await history(session_factory, "fp-1")
    assert record.processing_state == ProcessingState.UNCORRELATED.value


@pytest.mark.parametrize("resolve_policy,expected", [
    (ResolvePolicy.FLAG, CaseStatus.IN_PROGRESS),
    (ResolvePolicy.AUTO_RESOLVE, CaseStatus.RESOLVED),
])
async def test_resolved_flags_case(session_factory, policy, resolve_policy, expected):
    svc = service(session_factory, policy, resolve_policy=resolve_policy)
    created = await svc.ingest(make_event())
    await start_work(session_factory, created.case.id)
    outcome = await svc.ingest(make_event(status=AlertStatus.RESOLVED, received_at=T0 + timedelta(minutes=2)))

    assert outcome.action == CorrelationAction.RESOLVE_CANDIDATE
    case = await load_case(session_factory, created.case.id)
    assert case.resolution_candidate is True
    assert case.status == expected


@pytest.mark.parametrize("resolve_policy", [ResolvePolicy.FLAG, ResolvePolicy.AUTO_RESOLVE])
async def test_refire_after_resolve_reuses_case(session_factory, policy, resolve_policy):
    svc = service(session_factory, policy, window=timedelta(minutes=5), resolve_policy=resolve_policy)
    created = await svc.ingest(make_event())
    await start_work(session_factory, created.case.id)

    await svc.ingest(make_event(status=AlertStatus.RESOLVED, received_at=T0 + timedelta(minutes=1)))
    refire = await svc.ingest(make_event(received_at=T0 + timedelta(minutes=2)))

    # the RESOLVED in between means this is not a replay, even inside the window
    assert refire.action == CorrelationAction.ATTACH_TO_CASE
    assert refire.case.id == created.case.id
    assert refire.case.status == CaseStatus.IN_PROGRESS
    assert refire.case.resolution_candidate is False
    assert await case_count(session_factory) == 1


async def test_new_case_after_close(session_factory, policy):
    svc = service(session_factory, policy)
    created = await svc.ingest(make_event())
    async with session_factory() as session:
        repo = SQLAlchemyCaseRepository(session)
        case = await repo.get(created.case.id)
        case.status = CaseStatus.CANCELLED
        await repo.save(case)
        await session.commit()

    outcome = await svc.ingest(make_event(received_at=T0 + timedelta(hours=1)))

    assert outcome.action == CorrelationAction.CREATE_CASE
    assert outcome.case.id != created.case.id
    assert outcome.case.case_number == "CASE-2025-0002"


async def test_lost_creation_race_retries_and_attaches(session_factory, policy, monkeypatch):
    svc = service(session_factory, policy)
    await svc.ingest(make_event())

    original = SQLAlchemyCaseRepository.find_active_by_fingerprint
    calls = {"n": 0}

    async def stale_first_read(self, fingerprint):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return await original(self, fingerprint)

    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", stale_first_read)

    outcome = await svc.ingest(make_event(received_at=T0 + timedelta(minutes=1)))

    assert calls["n"] == 2
    assert outcome.action == CorrelationAction.ATTACH_TO_CASE
    assert outcome.case.alert_count == 2
    assert await case_count(session_factory) == 1


async def test_unexpected_failure_marks_history_failed(session_factory, policy, monkeypatch):
    async def broken(self, fingerprint):
        raise RepositoryException("database went away")

    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", broken)

    with pytest.raises(RepositoryException):
        await service(session_factory, policy).ingest(make_event())

    [record] = await history(session_factory, "fp-1")
    assert record.processing_state == ProcessingState.FAILED.value
    assert record.reason == "RepositoryException"


async def test_failed_delivery_is_not_treated_as_replay(session_factory, policy, monkeypatch):
    original = SQLAlchemyCaseRepository.find_active_by_fingerprint

    async def broken(self, fingerprint):
        raise RepositoryException("database went away")

    svc = service(session_factory, policy, window=timedelta(minutes=5))
    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", broken)
    with pytest.raises(RepositoryException):
        await svc.ingest(make_event())

    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", original)
    retry = await svc.ingest(make_event(received_at=T0 + timedelta(seconds=10)))

    assert retry.action == CorrelationAction.CREATE_CASE


async def test_timeout_raises_persistence_timeout(session_factory, policy, monkeypatch):
    async def slow(self, fingerprint):
        await asyncio.sleep(5)

    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", slow)

    with pytest.raises(PersistenceTimeoutException):
        await service(session_factory, policy, timeout_seconds=0.5).ingest(make_event())

    [record] = await history(session_factory, "fp-1")
    assert record.processing_state == ProcessingState.FAILED.value
    assert record.reason == "PersistenceTimeoutException"


async def test_batch_processes_every_event_then_raises(session_factory, policy, monkeypatch):
    original = SQLAlchemyCaseRepository.find_active_by_fingerprint

    async def fail_for_bad(self, fingerprint):
        if fingerprint == "bad":
            raise RepositoryException("boom")
        return await original(self, fingerprint)

    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", fail_for_bad)

    with pytest.raises(RepositoryException):
        await service(session_factory, policy).ingest_batch([make_event("bad"), make_event("good")])

    assert await case_count(session_factory) == 1


async def test_events_published_after_commit(session_factory, policy):
    publisher = RecordingPublisher()
    svc = service(session_factory, policy, publisher=publisher)

    await svc.ingest(make_event())
    await svc.ingest(make_event(received_at=T0 + timedelta(minutes=1)))

    assert publisher.types() == ["CREATED", "ASSIGNED", "STATUS_CHANGE", "ALERT_ATTACHED"]


async def test_round_robin_rule_assigns_and_advances(session_factory, policy):
    svc = service(session_factory, policy)
    billing = {"alertname": "X", "category": "billing"}

    first = await svc.ingest(make_event("fp-a", labels=billing, category="billing"))
    second = await svc.ingest(make_event("fp-b", labels=billing, category="billing"))

    assert first.case.status == CaseStatus.ASSIGNED
    assert first.case.assigned_user_ids == [1]
    assert first.case.assigned_team_ids == [10]
    assert second.case.assigned_user_ids == [2]


async def test_no_rule_falls_back_to_pool(session_factory, policy):
    outcome = await service(session_factory, policy).ingest(make_event(category="network"))

    assert outcome.case.status == CaseStatus.ASSIGNED
    assert outcome.case.assigned_user_ids == [1]


async def test_last_event_for_returns_latest_delivery(session_factory, policy):
    svc = service(session_factory, policy)
    await svc.ingest(make_event())
    await svc.ingest(make_event(status=AlertStatus.RESOLVED, received_at=T0 + timedelta(minutes=3)))

    async with session_factory() as session:
        store = AlertHistoryService(SQLAlchemyAlertHistoryRepository(session))
        latest = await store.last_event_for("fp-1")
        missing = await store.last_event_for("unknown")

    assert latest.status == AlertStatus.RESOLVED
    assert latest.received_at == T0 + timedelta(minutes=3)
    assert missing is None


async def test_exhausted_conflicts_surface_as_repository_error(session_factory, policy, monkeypatch):
    svc = service(session_factory, policy)
    await svc.ingest(make_event())

    async def never_sees_winner(self, fingerprint):
        return None

    monkeypatch.setattr(SQLAlchemyCaseRepository, "find_active_by_fingerprint", never_sees_winner)

    with pytest.raises(RepositoryException) as excinfo:
        await svc.ingest(make_event(received_at=T0 + timedelta(minutes=1)))

    assert not isinstance(excinfo.value, ConcurrentUpdateException)
    assert excinfo.value.details["attempts"] == 3
    assert await case_count(session_factory) == 1
    records = await history(session_factory, "fp-1")
    assert records[-1].processing_state == ProcessingState.FAILED.value
    assert records[-1].reason == "RepositoryException"


async def test_oversized_alert_fields_are_stored(session_factory, policy):
    fingerprint = "f" * 300
    svc = service(session_factory, policy)
    long_fields = {"rule_name": "r" * 400, "category": "c" * 400, "receiver": "x" * 400, "title": "t" * 600}

    created = await svc.ingest(make_event(fingerprint, **long_fields))
    attached = await svc.ingest(make_event(fingerprint, received_at=T0 + timedelta(minutes=1), **long_fields))

    assert attached.action == CorrelationAction.ATTACH_TO_CASE
    [first, _] = await history(session_factory, fingerprint)
    assert first.fingerprint == fingerprint
    assert len(first.rule_name) == 255
    assert len(first.receiver) == 255
    assert len(first.title) == 500
    case = await load_case(session_factory, created.case.id)
    assert case.primary_alert_fingerprint == fingerprint
    assert len(case.category) == 255


async def test_concurrent_identical_firings_share_one_case(session_factory, policy):
    svc = service(session_factory, policy)
    events = [make_event(received_at=T0 + timedelta(seconds=i)) for i in range(5)]

    outcomes = await asyncio.gather(*(svc.ingest(e) for e in events))

    assert await case_count(session_factory) == 1
    actions = sorted(o.action.value for o in outcomes)
    assert actions == ["ATTACH_TO_CASE"] * 4 + ["CREATE_CASE"]
    assert len({o.case.id for o in outcomes}) == 1
