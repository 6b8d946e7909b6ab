"""Shared fixtures: file-backed SQLite per test, event/case builders, app client."""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SLA_SWEEP_INTERVAL"] = "0"
os.environ.pop("GRAFANA_WEBHOOK_SECRET", None)
os.environ.pop("SLACK_WEBHOOK_URL", None)

from datetime import datetime, timedelta, timezone  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import List  # noqa: E402

import pytest  # noqa: E402
import yaml  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from caseflow.alerts.domain import AlertEvent  # noqa: E402
from caseflow.cases.domain import Case, CaseEvent  # noqa: E402
from caseflow.config import AlertStatus, CaseStatus, Settings, Severity  # noqa: E402
from caseflow.config.policy import PolicyConfig  # noqa: E402
from caseflow.infrastructure.database import (  # noqa: E402
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)

T0 = datetime(2025, 1, 2, 10, 0, tzinfo=timezone.utc)

DEFAULT_POLICY = {
    "sla_minutes": {"CRITICAL": 15, "HIGH": 60, "MEDIUM": 240, "LOW": 480},
    "assignment_rules": [
        {
            "name": "billing-rr",
            "category": "billing",
            "strategy": "ROUND_ROBIN",
            "user_ids": [1, 2, 3],
            "team_ids": [10],
        },
    ],
    "assignee_pool": [
        {"id": 1, "name": "alice"},
        {"id": 2, "name": "bob"},
    ],
}


def make_event(
    fingerprint: str = "fp-1",
    status: AlertStatus = AlertStatus.FIRING,
    severity: Severity = Severity.CRITICAL,
    received_at: datetime = T0,
    starts_at: datetime = T0,
    **kwargs
) -> AlertEvent:
    return AlertEvent(
        fingerprint=fingerprint,
        status=status,
        severity=severity,
        title=kwargs.pop("title", f"Alert {fingerprint}"),
        labels=kwargs.pop("labels", {"alertname": "HighCallDropRate"}),
        starts_at=starts_at,
        received_at=received_at,
        **kwargs
    )


def make_case(
    fingerprint: str = "fp-1",
    status: CaseStatus = CaseStatus.OPEN,
    severity: Severity = Severity.HIGH,
    **kwargs
) -> Case:
    return Case(
        case_number=kwargs.pop("case_number", "CASE-2025-0001"),
        title=kwargs.pop("title", "Test case"),
        severity=severity,
        primary_alert_fingerprint=fingerprint,
        sla_deadline=kwargs.pop("sla_deadline", T0 + timedelta(hours=1)),
        created_at=kwargs.pop("created_at", T0),
        updated_at=kwargs.pop("updated_at", T0),
        status=status,
        **kwargs
    )


class RecordingPublisher:
    """Collects published events."""

    def __init__(self):
        self.events: List[CaseEvent] = []

    async def publish(self, events):
        self.events.extend(events)

    def types(self):
        return [e.event_type.value for e in self.events]


@pytest.fixture
def policy() -> PolicyConfig:
    return PolicyConfig(**DEFAULT_POLICY)


@pytest.fixture
async def session_factory(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'caseflow.db'}")
    await create_tables()
    yield get_session_maker()
    await close_database()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


def write_policy(path: Path, policy: dict) -> Path:
    path.write_text(yaml.safe_dump(policy))
    return path


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        policy_config_path=write_policy(tmp_path / "casetools.yaml", DEFAULT_POLICY),
        sla_sweep_interval=0,
        duplicate_window_minutes=5,
        grafana_webhook_secret=None,
        slack_webhook_url=None,
    )


@pytest.fixture
def client(app_settings):
    from caseflow.main import create_app

    with TestClient(create_app(app_settings)) as test_client:
        yield test_client
