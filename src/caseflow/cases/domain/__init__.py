"""
Case Domain Layer
=================

Case entity, activity trail, lifecycle events, the transition table and
correlation/assignment value objects.
"""

from caseflow.cases.domain.entities import Case, CaseActivity, CaseEvent
from caseflow.cases.domain.state_machine import (
    ALLOWED_TRANSITIONS,
    allowed_targets,
    can_transition,
)
from caseflow.cases.domain.value_objects import (
    AssignmentResult,
    AssignmentRule,
    CorrelationAction,
    CorrelationDecision,
    PoolMember,
    match_rule,
)

__all__ = [
    "Case",
    "CaseActivity",
    "CaseEvent",
    "ALLOWED_TRANSITIONS",
    "allowed_targets",
    "can_transition",
    "AssignmentResult",
    "AssignmentRule",
    "CorrelationAction",
    "CorrelationDecision",
    "PoolMember",
    "match_rule",
]
