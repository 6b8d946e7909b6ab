from datetime import datetime, timedelta, timezone

import pytest

from caseflow.cases.domain import ALLOWED_TRANSITIONS, allowed_targets, can_transition
from caseflow.config import CaseStatus, Severity
from caseflow.core import InvalidTransitionException
from caseflow.sla.domain import SLACalculator, SLAConfig
from tests.conftest import T0, make_case


@pytest.mark.parametrize("severity,minutes", [
    (Severity.CRITICAL, 15),
    (Severity.HIGH, 60),
    (Severity.MEDIUM, 240),
    (Severity.LOW, 480),
])
def test_default_deadlines(severity, minutes):
    assert SLACalculator.compute_deadline(severity, T0) == T0 + timedelta(minutes=minutes)


def test_configured_minutes_override_defaults():
    table = SLAConfig(sla_minutes={"critical": 5, "HIGH": 30}).sla_minutes
    assert SLACalculator.compute_deadline(Severity.CRITICAL, T0, table) == T0 + timedelta(minutes=5)
    assert SLACalculator.compute_deadline("high", T0, table) == T0 + timedelta(minutes=30)
    assert SLACalculator.compute_deadline(Severity.MEDIUM, T0, table) == T0 + timedelta(minutes=240)


@pytest.mark.parametrize("value", [0, -10, "soon", None, True])
def test_broken_entry_falls_back_to_low(value):
    table = {"CRITICAL": value, "LOW": 300}
    assert SLACalculator.minutes_for(Severity.CRITICAL, table) == 300


def test_unknown_severity_gets_low_duration():
    assert SLACalculator.minutes_for("SEV0") == 480
    assert SLACalculator.minutes_for(None, {"LOW": 120}) == 120


def test_non_mapping_table_is_ignored():
    assert SLAConfig(sla_minutes=["CRITICAL", 5]).sla_minutes == {}


def test_is_breached_only_while_clock_runs():
    deadline = T0 + timedelta(minutes=15)
    later = deadline + timedelta(seconds=1)

    assert SLACalculator.is_breached(deadline, CaseStatus.IN_PROGRESS, later)
    assert not SLACalculator.is_breached(deadline, CaseStatus.IN_PROGRESS, deadline)
    for stopped in (CaseStatus.RESOLVED, CaseStatus.CLOSED, CaseStatus.CANCELLED):
        assert not SLACalculator.is_breached(deadline, stopped, later)


def test_remaining_seconds_never_negative():
    assert SLACalculator.remaining_seconds(T0, T0 + timedelta(hours=1)) == 0.0
    assert SLACalculator.remaining_seconds(T0 + timedelta(minutes=1), T0) == 60.0


# ========== Transition table ==========

def test_closed_is_final():
    assert allowed_targets(CaseStatus.CLOSED) == frozenset()
    assert all(not can_transition(CaseStatus.CLOSED, s) for s in CaseStatus)


@pytest.mark.parametrize("source,target", [
    (CaseStatus.OPEN, CaseStatus.ASSIGNED),
    (CaseStatus.ASSIGNED, CaseStatus.IN_PROGRESS),
    (CaseStatus.IN_PROGRESS, CaseStatus.RESOLVED),
    (CaseStatus.PENDING_VENDOR, CaseStatus.RESOLVED),
    (CaseStatus.RESOLVED, CaseStatus.CLOSED),
    (CaseStatus.RESOLVED, CaseStatus.IN_PROGRESS),
    (CaseStatus.CANCELLED, CaseStatus.OPEN),
])
def test_allowed(source, target):
    assert can_transition(source, target)


@pytest.mark.parametrize("source,target", [
    (CaseStatus.OPEN, CaseStatus.RESOLVED),
    (CaseStatus.OPEN, CaseStatus.CLOSED),
    (CaseStatus.ASSIGNED, CaseStatus.RESOLVED),
    (CaseStatus.IN_PROGRESS, CaseStatus.CANCELLED),
    (CaseStatus.RESOLVED, CaseStatus.OPEN),
])
def test_rejected(source, target):
    assert not can_transition(source, target)


def test_every_status_has_an_entry():
    assert set(ALLOWED_TRANSITIONS) == set(CaseStatus)


# ========== Case entity ==========

def test_transition_stamps_resolved_and_reopen_clears():
    case = make_case(status=CaseStatus.IN_PROGRESS, resolution_candidate=True)
    at = T0 + timedelta(minutes=30)

    assert case.transition_to(CaseStatus.RESOLVED, at) == CaseStatus.IN_PROGRESS
    assert case.resolved_at == at
    assert case.is_active

    case.transition_to(CaseStatus.IN_PROGRESS, at + timedelta(minutes=5))
    assert case.resolved_at is None
    assert case.resolution_candidate is False


def test_invalid_transition_leaves_case_untouched():
    case = make_case(status=CaseStatus.OPEN)
    with pytest.raises(InvalidTransitionException):
        case.transition_to(CaseStatus.CLOSED)
    assert case.status == CaseStatus.OPEN
    assert case.closed_at is None


def test_sla_breach_is_derived():
    case = make_case(sla_deadline=T0)
    now = T0 + timedelta(minutes=1)
    assert case.is_sla_breached(now)

    case.status = CaseStatus.RESOLVED
    assert not case.is_sla_breached(now)


def test_related_fingerprints():
    case = make_case(fingerprint="primary")
    assert not case.add_related_fingerprint("primary")
    assert case.add_related_fingerprint("other")
    assert not case.add_related_fingerprint("other")
    assert case.fingerprints == ["primary", "other"]
    assert case.correlates_with("other")


def test_default_deadline_is_timezone_aware():
    deadline = SLACalculator.compute_deadline(Severity.HIGH, datetime(2025, 3, 1, tzinfo=timezone.utc))
    assert deadline.tzinfo is not None
