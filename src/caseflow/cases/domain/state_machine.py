"""
Case State Machine
==================

Allowed case status transitions. Anything not listed here is rejected.
"""

from typing import FrozenSet, Mapping

from caseflow.config import CaseStatus

ALLOWED_TRANSITIONS: Mapping[CaseStatus, FrozenSet[CaseStatus]] = {
    CaseStatus.OPEN: frozenset({CaseStatus.ASSIGNED, CaseStatus.CANCELLED}),
    CaseStatus.ASSIGNED: frozenset({
        CaseStatus.IN_PROGRESS,
        CaseStatus.PENDING_CUSTOMER,
        CaseStatus.PENDING_VENDOR,
        CaseStatus.CANCELLED,
    }),
    CaseStatus.IN_PROGRESS: frozenset({
        CaseStatus.PENDING_CUSTOMER,
        CaseStatus.PENDING_VENDOR,
        CaseStatus.RESOLVED,
    }),
    CaseStatus.PENDING_CUSTOMER: frozenset({CaseStatus.IN_PROGRESS, CaseStatus.RESOLVED}),
    CaseStatus.PENDING_VENDOR: frozenset({CaseStatus.IN_PROGRESS, CaseStatus.RESOLVED}),
    CaseStatus.RESOLVED: frozenset({CaseStatus.CLOSED, CaseStatus.IN_PROGRESS}),
    CaseStatus.CLOSED: frozenset(),
    # manual reopen only
    CaseStatus.CANCELLED: frozenset({CaseStatus.OPEN}),
}


def can_transition(from_status: CaseStatus, to_status: CaseStatus) -> bool:
    """Check whether ``from_status -> to_status`` is in the transition table."""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def allowed_targets(from_status: CaseStatus) -> FrozenSet[CaseStatus]:
    return ALLOWED_TRANSITIONS.get(from_status, frozenset())
