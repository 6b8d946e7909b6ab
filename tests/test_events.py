import json
from datetime import timedelta

import httpx
import pytest

from caseflow.cases.application import CaseLifecycleService
from caseflow.cases.domain import AssignmentResult, CaseEvent
from caseflow.cases.infrastructure import (
    CaseEventPublisher,
    SlackCaseNotifier,
    SQLAlchemyCaseNumberGenerator,
    SQLAlchemyCaseRepository,
)
from caseflow.config import ActivityType, CaseStatus, Severity
from caseflow.shared.infrastructure.grafana import GrafanaOTLPExporter
from caseflow.shared.infrastructure.slack import CircuitBreaker, CircuitState, SlackClient
from caseflow.sla.application import SLABreachSweepService
from caseflow.sla.infrastructure import build_sweep_job
from tests.conftest import T0, RecordingPublisher, make_event


def case_event(event_type=ActivityType.CREATED, **details):
    return CaseEvent(
        case_id=1,
        case_number="CASE-2025-0001",
        event_type=event_type,
        actor="system",
        timestamp=T0,
        details={"status": "OPEN", "severity": "CRITICAL", "title": "Drop rate 12%", **details},
    )


class SlackStub:
    """httpx handler recording posted JSON bodies."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return httpx.Response(self.status_code, text="ok")


def slack_client(stub):
    return SlackClient(
        webhook_url="https://hooks.slack.test/T000/B000",
        channel="#cases",
        timeout=1.0,
        backoff_base=0,
        transport=httpx.MockTransport(stub),
    )


# ========== Publisher ==========

async def test_failing_subscriber_does_not_stop_others():
    received = []

    async def broken(event):
        raise RuntimeError("subscriber down")

    async def recorder(event):
        received.append(event.event_type)

    publisher = CaseEventPublisher()
    publisher.subscribe(broken)
    publisher.subscribe(recorder)

    await publisher.publish([case_event(), case_event(ActivityType.ASSIGNED)])

    assert received == [ActivityType.CREATED, ActivityType.ASSIGNED]


# ========== Slack ==========

async def test_notifier_posts_block_kit_message():
    stub = SlackStub()
    client = slack_client(stub)
    notifier = SlackCaseNotifier(client, case_url_template="https://cases.example.com/{case_id}")

    await notifier(case_event(sla_deadline="2025-01-02T10:15:00+00:00"))
    await client.close()

    [body] = stub.bodies
    assert body["channel"] == "#cases"
    assert body["text"] == "CASE-2025-0001: CREATED"
    assert body["blocks"][0]["type"] == "header"
    fields = json.dumps(body["blocks"])
    assert "https://cases.example.com/1" in fields
    assert "2025-01-02T10:15:00+00:00" in fields


async def test_notifier_skips_unselected_events():
    stub = SlackStub()
    client = slack_client(stub)

    await SlackCaseNotifier(client)(case_event(ActivityType.ALERT_ATTACHED))
    await client.close()

    assert stub.bodies == []


async def test_send_retries_then_reports_failure():
    stub = SlackStub(status_code=500)
    client = slack_client(stub)

    assert await client.send({"text": "hi"}, max_retries=3) is False
    await client.close()

    assert len(stub.bodies) == 3


async def test_circuit_opens_after_repeated_failures():
    stub = SlackStub(status_code=500)
    client = slack_client(stub)

    for _ in range(client.circuit_breaker.failure_threshold):
        await client.send({"text": "hi"}, max_retries=1)
    calls = len(stub.bodies)

    assert client.circuit_breaker.state == CircuitState.OPEN
    assert await client.send({"text": "hi"}) is False
    assert len(stub.bodies) == calls
    await client.close()


def test_circuit_half_opens_after_recovery_timeout():
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0)
    breaker.record_failure()
    assert breaker.allow_request()

    breaker.record_failure()
    assert breaker.state == CircuitState.HALF_OPEN
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


async def test_disabled_client_sends_nothing():
    client = SlackClient(webhook_url="", transport=httpx.MockTransport(SlackStub()))
    assert not client.enabled
    assert await client.send({"text": "hi"}) is False


# ========== SLA breach sweep ==========

@pytest.fixture
async def cases(session):
    lifecycle = CaseLifecycleService(SQLAlchemyCaseRepository(session), SQLAlchemyCaseNumberGenerator(session))

    async def create(fingerprint, severity=Severity.CRITICAL, assignment=AssignmentResult.empty()):
        event = make_event(fingerprint, severity=severity)
        case, _ = await lifecycle.create_case(lifecycle.draft_case(event, now=T0), assignment)
        return case

    create.lifecycle = lifecycle
    return create


async def test_sweep_reports_each_breach_once(session, cases):
    overdue = await cases("fp-overdue", Severity.CRITICAL)
    await cases("fp-fine", Severity.LOW)
    sweeper = SLABreachSweepService(SQLAlchemyCaseRepository(session))
    now = T0 + timedelta(hours=1)

    events = await sweeper.sweep(now)

    assert [e.case_id for e in events] == [overdue.id]
    assert events[0].event_type == ActivityType.SLA_BREACHED
    assert events[0].details["overdue_minutes"] == 45
    assert await sweeper.sweep(now + timedelta(minutes=5)) == []

    activities = await SQLAlchemyCaseRepository(session).list_activities(overdue.id)
    assert activities[-1].activity_type == ActivityType.SLA_BREACHED


async def test_sweep_ignores_stopped_clock(session, cases):
    case = await cases("fp-done", assignment=AssignmentResult((1,)))
    await cases.lifecycle.transition(case, CaseStatus.IN_PROGRESS, "alice", at=T0)
    await cases.lifecycle.transition(case, CaseStatus.RESOLVED, "alice", at=T0)

    assert await SLABreachSweepService(SQLAlchemyCaseRepository(session)).sweep(T0 + timedelta(days=1)) == []


async def test_sweep_job_commits_and_publishes(session_factory):
    async with session_factory() as session:
        lifecycle = CaseLifecycleService(
            SQLAlchemyCaseRepository(session), SQLAlchemyCaseNumberGenerator(session)
        )
        event = make_event("fp-job")
        await lifecycle.create_case(lifecycle.draft_case(event, now=T0), AssignmentResult.empty())
        await session.commit()

    publisher = RecordingPublisher()
    job = build_sweep_job(session_factory, publisher)

    assert await job() == 1
    assert await job() == 0
    assert publisher.types() == ["SLA_BREACHED"]


# ========== Grafana metrics ==========

async def test_exporter_posts_otlp_metrics():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    exporter = GrafanaOTLPExporter(
        host="https://otlp.grafana.test",
        api_key="key",
        instance_id="42",
        transport=httpx.MockTransport(handler),
    )

    ok = await exporter.export_ingestion_metrics(
        {"CREATE_CASE": 2, "IGNORE": 1}, latency_ms=12, endpoint="/webhooks/grafana/alert", status_code=201
    )

    assert ok is True
    [request] = requests
    assert str(request.url) == "https://otlp.grafana.test/otlp/v1/metrics"
    assert request.headers["Authorization"].startswith("Basic ")
    metrics = json.loads(request.content)["resourceMetrics"][0]["scopeMetrics"][0]["metrics"]
    assert [m["name"] for m in metrics] == ["alert_ingestion_total", "alert_ingestion_latency_ms"]
    assert [p["asInt"] for p in metrics[0]["gauge"]["dataPoints"]] == [2, 1]


async def test_exporter_reports_rejected_export():
    exporter = GrafanaOTLPExporter(
        host="https://otlp.grafana.test/otlp/v1/metrics",
        api_key="key",
        instance_id="42",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, text="denied")),
    )

    assert await exporter.export_ingestion_metrics({}, 1, "/webhooks/grafana/alert", 200) is False
