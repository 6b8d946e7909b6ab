"""
Case Application Layer
======================

Contains:
- DTOs: case API request/response models
- Correlator: alert event -> correlation decision
- Assignment resolver: rule strategies and pool fallback
- Lifecycle manager: creation, transitions, assignment, attach, merge
- Query service: read side of the case API
- Repository interfaces (Dependency Inversion)
"""

from caseflow.cases.application.assignment import AssignmentResolver
from caseflow.cases.application.correlator import CaseCorrelator, NO_ACTIVE_CASE_REASON
from caseflow.cases.application.dto import (
    TransitionRequest,
    AssignRequest,
    MergeRequest,
    CaseQueryDTO,
    CaseResponse,
    CaseListResponse,
    ActivityResponse,
    SLABreachResponse,
)
from caseflow.cases.application.interfaces import (
    ICaseRepository,
    IAssignmentPointerRepository,
    ICaseNumberGenerator,
    ICaseEventPublisher,
)
from caseflow.cases.application.lifecycle import CaseLifecycleService
from caseflow.cases.application.services import CaseQueryService

__all__ = [
    # DTOs
    "TransitionRequest",
    "AssignRequest",
    "MergeRequest",
    "CaseQueryDTO",
    "CaseResponse",
    "CaseListResponse",
    "ActivityResponse",
    "SLABreachResponse",
    # Services
    "AssignmentResolver",
    "CaseCorrelator",
    "NO_ACTIVE_CASE_REASON",
    "CaseLifecycleService",
    "CaseQueryService",
    # Repository Interfaces
    "ICaseRepository",
    "IAssignmentPointerRepository",
    "ICaseNumberGenerator",
    "ICaseEventPublisher",
]
