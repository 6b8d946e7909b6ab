"""
Case Value Objects
==================

Immutable value objects for correlation and assignment.

Value objects are defined by their attributes rather than an identity.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from caseflow.config import AssignmentStrategy, Severity


class CorrelationAction(str, Enum):
    """What the correlator decided to do with an alert event."""
    CREATE_CASE = "CREATE_CASE"
    ATTACH_TO_CASE = "ATTACH_TO_CASE"
    RESOLVE_CANDIDATE = "RESOLVE_CANDIDATE"
    IGNORE = "IGNORE"


@dataclass(frozen=True)
class CorrelationDecision:
    """Correlator output: an action plus the target case when there is one."""

    action: CorrelationAction
    case_id: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def create(cls) -> "CorrelationDecision":
        return cls(CorrelationAction.CREATE_CASE)

    @classmethod
    def attach(cls, case_id: int) -> "CorrelationDecision":
        return cls(CorrelationAction.ATTACH_TO_CASE, case_id)

    @classmethod
    def resolve_candidate(cls, case_id: int) -> "CorrelationDecision":
        return cls(CorrelationAction.RESOLVE_CANDIDATE, case_id)

    @classmethod
    def ignore(cls, reason: str) -> "CorrelationDecision":
        return cls(CorrelationAction.IGNORE, reason=reason)


@dataclass(frozen=True)
class AssignmentResult:
    """Recommended assignees; empty means the case stays OPEN."""

    user_ids: Tuple[int, ...] = ()
    team_ids: Tuple[int, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.user_ids and not self.team_ids

    @classmethod
    def empty(cls) -> "AssignmentResult":
        return cls()


class AssignmentRule(BaseModel):
    """
    Maps a rule / category / severity selector to candidate assignees.

    Empty selectors match anything.
    """
    name: str = Field(..., min_length=1, description="Rule name, also the round-robin pointer key")
    rule_id: Optional[str] = Field(None, description="Grafana rule UID selector")
    category: Optional[str] = Field(None, description="Category selector")
    severity: Optional[Severity] = Field(None, description="Severity selector")
    strategy: AssignmentStrategy = Field(default=AssignmentStrategy.MANUAL)
    user_ids: List[int] = Field(default_factory=list, description="Ordered candidate users")
    team_ids: List[int] = Field(default_factory=list, description="Candidate teams")
    active: bool = True

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def matches(
        self,
        rule_id: Optional[str],
        category: Optional[str],
        severity: Optional[Severity]
    ) -> bool:
        if not self.active:
            return False
        if self.rule_id and self.rule_id != rule_id:
            return False
        if self.category and (category or "").lower() != self.category.lower():
            return False
        if self.severity and self.severity != severity:
            return False
        return True


class PoolMember(BaseModel):
    """A user in the assignee pool used by the no-rule fallback."""
    id: int
    name: Optional[str] = None
    available: bool = Field(default=True, description="Available for auto-assignment")
    max_active_cases: Optional[int] = Field(None, ge=1, description="Capacity cap, unlimited if unset")


def match_rule(
    rules: List[AssignmentRule],
    rule_id: Optional[str],
    category: Optional[str],
    severity: Optional[Severity]
) -> Optional[AssignmentRule]:
    """First active rule whose non-empty selectors all match."""
    for rule in rules:
        if rule.matches(rule_id, category, severity):
            return rule
    return None
