"""
Case Application DTOs
=====================

Data Transfer Objects for the case API layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from caseflow.cases.domain import Case, CaseActivity, allowed_targets
from caseflow.config import ActivityType, CaseStatus, Severity


# ========== Request DTOs ==========

class TransitionRequest(BaseModel):
    """Manual status change."""
    to_status: CaseStatus = Field(..., description="Target status")
    actor: str = Field(..., min_length=1, description="User performing the change")
    note: Optional[str] = Field(None, max_length=2000, description="Free-text reason")


class AssignRequest(BaseModel):
    """Manual (re-)assignment; at least one user or team id is required."""
    user_ids: List[int] = Field(default_factory=list)
    team_ids: List[int] = Field(default_factory=list)
    actor: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def require_assignee(self) -> "AssignRequest":
        if not self.user_ids and not self.team_ids:
            raise ValueError("user_ids or team_ids must not both be empty")
        return self


class MergeRequest(BaseModel):
    """Fold ``source_case_id`` into the case in the path."""
    source_case_id: int = Field(..., ge=1)
    actor: str = Field(..., min_length=1)


class CaseQueryDTO(BaseModel):
    """Query parameters for the case list."""
    status: Optional[CaseStatus] = None
    severity: Optional[Severity] = None
    assigned_user_id: Optional[int] = None
    fingerprint: Optional[str] = None
    active_only: bool = False
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    def filters(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"limit", "offset"}, exclude_none=True)


# ========== Response DTOs ==========

class CaseResponse(BaseModel):
    """A case as returned by the API; sla_breached is computed at read time."""
    id: int
    case_number: str
    status: CaseStatus
    severity: Severity
    title: str
    description: str = ""
    primary_alert_fingerprint: str
    related_fingerprints: List[str] = Field(default_factory=list)
    assigned_user_ids: List[int] = Field(default_factory=list)
    assigned_team_ids: List[int] = Field(default_factory=list)
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    category: Optional[str] = None
    alert_count: int
    last_alert_at: Optional[datetime] = None
    resolution_candidate: bool = False
    sla_deadline: datetime
    sla_breached: bool
    allowed_transitions: List[CaseStatus] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, case: Case, now: Optional[datetime] = None) -> "CaseResponse":
        now = now or datetime.now(timezone.utc)
        return cls(
            id=case.id,
            case_number=case.case_number,
            status=case.status,
            severity=case.severity,
            title=case.title,
            description=case.description,
            primary_alert_fingerprint=case.primary_alert_fingerprint,
            related_fingerprints=list(case.related_fingerprints),
            assigned_user_ids=list(case.assigned_user_ids),
            assigned_team_ids=list(case.assigned_team_ids),
            rule_id=case.rule_id,
            rule_name=case.rule_name,
            category=case.category,
            alert_count=case.alert_count,
            last_alert_at=case.last_alert_at,
            resolution_candidate=case.resolution_candidate,
            sla_deadline=case.sla_deadline,
            sla_breached=case.is_sla_breached(now),
            allowed_transitions=sorted(allowed_targets(case.status), key=lambda s: s.value),
            created_at=case.created_at,
            updated_at=case.updated_at,
            assigned_at=case.assigned_at,
            resolved_at=case.resolved_at,
            closed_at=case.closed_at,
        )


class CaseListResponse(BaseModel):
    cases: List[CaseResponse]
    count: int = Field(..., description="Number of cases in this page")


class ActivityResponse(BaseModel):
    """One audit trail entry."""
    id: int
    case_id: int
    activity_type: ActivityType
    actor: str
    description: str
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_at: datetime

    @classmethod
    def from_entity(cls, activity: CaseActivity) -> "ActivityResponse":
        return cls(
            id=activity.id,
            case_id=activity.case_id,
            activity_type=activity.activity_type,
            actor=activity.actor,
            description=activity.description,
            field_name=activity.field_name,
            old_value=activity.old_value,
            new_value=activity.new_value,
            performed_at=activity.performed_at,
        )


class SLABreachResponse(BaseModel):
    """Active case past its SLA deadline."""
    case_id: int
    case_number: str
    severity: Severity
    status: CaseStatus
    sla_deadline: datetime
    overdue_seconds: float
    assigned_user_ids: List[int] = Field(default_factory=list)
