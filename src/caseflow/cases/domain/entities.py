"""
Case Domain Entities
====================

Pure Python domain entities for case management.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from caseflow.cases.domain.state_machine import can_transition
from caseflow.config import (
    ActivityType,
    CaseStatus,
    Severity,
    SLA_STOPPED_STATUSES,
    TERMINAL_STATUSES,
)
from caseflow.core import InvalidTransitionException


@dataclass
class Case:
    """
    Unit of human work tracked against one or more correlated alerts.

    Status only changes through transition_to(), which enforces the
    transition table and stamps resolved/closed timestamps.
    """

    # Core attributes
    case_number: str
    title: str
    severity: Severity
    primary_alert_fingerprint: str
    sla_deadline: datetime
    created_at: datetime
    updated_at: datetime

    id: Optional[int] = None
    status: CaseStatus = CaseStatus.OPEN
    description: str = ""
    related_fingerprints: List[str] = field(default_factory=list)
    assigned_user_ids: List[int] = field(default_factory=list)
    assigned_team_ids: List[int] = field(default_factory=list)

    # Rule reference
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    category: Optional[str] = None

    # Alert tracking
    alert_count: int = 1
    last_alert_at: Optional[datetime] = None
    resolution_candidate: bool = False

    # Timestamps
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    sla_breach_notified_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        """Active means any status other than CLOSED/CANCELLED (RESOLVED included)."""
        return self.status not in TERMINAL_STATUSES

    @property
    def fingerprints(self) -> List[str]:
        return [self.primary_alert_fingerprint, *self.related_fingerprints]

    def correlates_with(self, fingerprint: str) -> bool:
        return fingerprint == self.primary_alert_fingerprint or fingerprint in self.related_fingerprints

    def is_sla_breached(self, now: Optional[datetime] = None) -> bool:
        """Derived on every read, never stored."""
        now = now or datetime.now(timezone.utc)
        return now > self.sla_deadline and self.status not in SLA_STOPPED_STATUSES

    def transition_to(self, new_status: CaseStatus, at: Optional[datetime] = None) -> CaseStatus:
        """
        Apply a status transition.

        Returns:
            The previous status

        Raises:
            InvalidTransitionException: transition not allowed; case untouched
        """
        if not can_transition(self.status, new_status):
            raise InvalidTransitionException(self.case_number, self.status.value, new_status.value)

        at = at or datetime.now(timezone.utc)
        previous = self.status
        self.status = new_status
        self.updated_at = at

        if new_status == CaseStatus.RESOLVED:
            self.resolved_at = at
        elif new_status in TERMINAL_STATUSES:
            self.closed_at = at
        elif previous == CaseStatus.RESOLVED:
            # reopen
            self.resolved_at = None
            self.resolution_candidate = False
        elif previous == CaseStatus.CANCELLED:
            self.closed_at = None

        return previous

    def add_related_fingerprint(self, fingerprint: str) -> bool:
        if self.correlates_with(fingerprint):
            return False
        self.related_fingerprints.append(fingerprint)
        return True


@dataclass
class CaseActivity:
    """Immutable audit trail entry for a case."""

    case_id: int
    activity_type: ActivityType
    actor: str
    description: str
    performed_at: datetime
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class CaseEvent:
    """Lifecycle event handed to notification subscribers after commit."""

    case_id: int
    case_number: str
    event_type: ActivityType
    actor: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
