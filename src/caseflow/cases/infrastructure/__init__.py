"""
Case Infrastructure Layer
=========================

Contains:
- ORM models
- Repository implementations
- Event publisher and Slack notifier
"""

from caseflow.cases.infrastructure.events import CaseEventPublisher, NullCaseEventPublisher
from caseflow.cases.infrastructure.models import (
    ACTIVE_FINGERPRINT_CONSTRAINT,
    AssignmentPointerModel,
    CaseActivityModel,
    CaseFingerprintModel,
    CaseModel,
    CaseNumberCounterModel,
)
from caseflow.cases.infrastructure.notifications import SlackCaseNotifier
from caseflow.cases.infrastructure.repositories import (
    SQLAlchemyAssignmentPointerRepository,
    SQLAlchemyCaseNumberGenerator,
    SQLAlchemyCaseRepository,
)

__all__ = [
    # Models
    "ACTIVE_FINGERPRINT_CONSTRAINT",
    "AssignmentPointerModel",
    "CaseActivityModel",
    "CaseFingerprintModel",
    "CaseModel",
    "CaseNumberCounterModel",
    # Repositories
    "SQLAlchemyAssignmentPointerRepository",
    "SQLAlchemyCaseNumberGenerator",
    "SQLAlchemyCaseRepository",
    # Events
    "CaseEventPublisher",
    "NullCaseEventPublisher",
    "SlackCaseNotifier",
]
