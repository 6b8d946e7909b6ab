from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest

from caseflow.alerts.application import AlertPayloadNormalizer
from caseflow.config import AlertStatus, Severity
from caseflow.core import MalformedPayloadException

NOW = datetime(2025, 1, 2, 12, 0, tzinfo=timezone.utc)

normalizer = AlertPayloadNormalizer()


def batched(*alerts, status="firing"):
    return {"receiver": "casetools", "status": status, "alerts": list(alerts)}


def test_batched_alert():
    body = batched({
        "status": "firing",
        "labels": {"alertname": "HighCallDropRate", "severity": "critical", "__alert_rule_uid__": "r-1"},
        "annotations": {"summary": "Drop rate 12%", "description": "cell 42"},
        "fingerprint": "abc123",
        "startsAt": "2025-01-02T10:00:00Z",
        "endsAt": "0001-01-01T00:00:00Z",
    })

    [event] = normalizer.normalize(body, received_at=NOW)

    assert event.fingerprint == "abc123"
    assert event.status == AlertStatus.FIRING
    assert event.severity == Severity.CRITICAL
    assert event.title == "Drop rate 12%"
    assert event.description == "cell 42"
    assert event.rule_id == "r-1"
    assert event.rule_name == "HighCallDropRate"
    assert event.category == "HighCallDropRate"
    assert event.starts_at == datetime(2025, 1, 2, 10, 0, tzinfo=timezone.utc)
    assert event.ends_at is None
    assert event.received_at == NOW
    assert event.receiver == "casetools"


def test_alert_status_overrides_group_status():
    body = batched(
        {"status": "resolved", "fingerprint": "a"},
        {"fingerprint": "b", "labels": {"alertname": "X"}},
        status="firing",
    )

    first, second = normalizer.normalize(body, received_at=NOW)

    assert first.status == AlertStatus.RESOLVED
    assert second.status == AlertStatus.FIRING


def test_title_falls_back_to_rule_name_then_fingerprint():
    [named] = normalizer.normalize(batched({"status": "firing", "labels": {"alertname": "DiskFull"}}))
    [bare] = normalizer.normalize(batched({"status": "firing", "fingerprint": "fp-9"}))

    assert named.title == "DiskFull"
    assert bare.title == "Alert: fp-9"


def test_unknown_severity_defaults_to_medium():
    [event] = normalizer.normalize(batched({"status": "firing", "labels": {"alertname": "X", "severity": "sev9"}}))
    assert event.severity == Severity.MEDIUM


def test_legacy_payload():
    body = {
        "alertName": "BillingLag",
        "alertId": "legacy-42",
        "severity": "high",
        "message": "Billing lag above 10 minutes",
        "labels": '{"team": "billing"}',
    }

    [event] = normalizer.normalize(body, received_at=NOW)

    assert event.fingerprint == "legacy-42"
    assert event.status == AlertStatus.FIRING
    assert event.severity == Severity.HIGH
    assert event.title == "BillingLag"
    assert event.description == "Billing lag above 10 minutes"
    assert dict(event.labels) == {"team": "billing"}


@pytest.mark.parametrize("body", [
    {},
    {"alerts": []},
    {"status": "firing"},
    [],
    "not an object",
])
def test_empty_or_shapeless_body_rejected(body):
    with pytest.raises(MalformedPayloadException):
        normalizer.normalize(body)


def test_alert_without_labels_or_fingerprint_rejected():
    with pytest.raises(MalformedPayloadException):
        normalizer.normalize(batched({"status": "firing", "annotations": {"summary": "?"}}))


def test_unrecognised_status_rejected():
    with pytest.raises(MalformedPayloadException):
        normalizer.normalize(batched({"status": "pending", "fingerprint": "x"}))


def test_events_are_immutable():
    [event] = normalizer.normalize(batched({"status": "firing", "labels": {"alertname": "X"}}))
    with pytest.raises(FrozenInstanceError):
        event.status = AlertStatus.RESOLVED
    with pytest.raises(TypeError):
        event.labels["alertname"] = "Y"
