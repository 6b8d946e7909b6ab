"""
Case Controllers (API Routes)
=============================

Case read endpoints, manual transitions, assignment and merge.

Writes commit before events are published, so subscribers never see a
change that could still roll back.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from caseflow.cases.application import (
    ActivityResponse,
    AssignRequest,
    CaseLifecycleService,
    CaseListResponse,
    CaseQueryDTO,
    CaseQueryService,
    CaseResponse,
    ICaseEventPublisher,
    MergeRequest,
    TransitionRequest,
)
from caseflow.cases.domain import AssignmentResult
from caseflow.cases.infrastructure import (
    NullCaseEventPublisher,
    SQLAlchemyCaseNumberGenerator,
    SQLAlchemyCaseRepository,
)
from caseflow.config import CaseStatus, Severity
from caseflow.infrastructure.database import get_session
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/cases", tags=["Cases"])


# ========== Dependencies ==========

async def get_query_service(session: AsyncSession = Depends(get_session)) -> CaseQueryService:
    return CaseQueryService(SQLAlchemyCaseRepository(session))


async def get_lifecycle_service(session: AsyncSession = Depends(get_session)) -> CaseLifecycleService:
    return CaseLifecycleService(SQLAlchemyCaseRepository(session), SQLAlchemyCaseNumberGenerator(session))


def get_publisher(request: Request) -> ICaseEventPublisher:
    return getattr(request.app.state, "case_event_publisher", None) or NullCaseEventPublisher()


# ========== Route Handlers ==========

@router.get("", response_model=CaseListResponse, summary="List cases")
async def list_cases(
    status: Optional[CaseStatus] = Query(None, description="Filter by status"),
    severity: Optional[Severity] = Query(None, description="Filter by severity"),
    assigned_user_id: Optional[int] = Query(None, description="Filter by assignee"),
    fingerprint: Optional[str] = Query(None, description="Primary or related alert fingerprint"),
    active_only: bool = Query(False, description="Exclude CLOSED and CANCELLED"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: CaseQueryService = Depends(get_query_service)
):
    query = CaseQueryDTO(
        status=status,
        severity=severity,
        assigned_user_id=assigned_user_id,
        fingerprint=fingerprint,
        active_only=active_only,
        limit=limit,
        offset=offset,
    )
    cases = await service.list(query)
    return CaseListResponse(cases=[CaseResponse.from_entity(c) for c in cases], count=len(cases))


@router.get("/by-number/{case_number}", response_model=CaseResponse, summary="Get case by number")
async def get_case_by_number(
    case_number: str,
    service: CaseQueryService = Depends(get_query_service)
):
    return CaseResponse.from_entity(await service.get_by_number(case_number))


@router.get("/{case_id}", response_model=CaseResponse, summary="Get case")
async def get_case(
    case_id: int,
    service: CaseQueryService = Depends(get_query_service)
):
    return CaseResponse.from_entity(await service.get(case_id))


@router.get("/{case_id}/activities", response_model=List[ActivityResponse], summary="Case audit trail")
async def get_case_activities(
    case_id: int,
    service: CaseQueryService = Depends(get_query_service)
):
    activities = await service.activities(case_id)
    return [ActivityResponse.from_entity(a) for a in activities]


@router.post(
    "/{case_id}/transitions",
    response_model=CaseResponse,
    summary="Change case status",
    description="""
    Apply a manual status change.

    Allowed transitions:
    - OPEN -> ASSIGNED, CANCELLED
    - ASSIGNED -> IN_PROGRESS, PENDING_CUSTOMER, PENDING_VENDOR, CANCELLED
    - IN_PROGRESS -> PENDING_CUSTOMER, PENDING_VENDOR, RESOLVED
    - PENDING_CUSTOMER / PENDING_VENDOR -> IN_PROGRESS, RESOLVED
    - RESOLVED -> CLOSED, IN_PROGRESS
    - CANCELLED -> OPEN

    Anything else returns `409`.
    """,
    responses={404: {"description": "Case not found"}, 409: {"description": "Transition not allowed"}}
)
async def transition_case(
    case_id: int,
    request: TransitionRequest,
    session: AsyncSession = Depends(get_session),
    lifecycle: CaseLifecycleService = Depends(get_lifecycle_service),
    publisher: ICaseEventPublisher = Depends(get_publisher)
):
    case, events = await lifecycle.transition_by_id(case_id, request.to_status, request.actor, request.note)
    await session.commit()
    await publisher.publish(events)
    return CaseResponse.from_entity(case)


@router.post(
    "/{case_id}/assign",
    response_model=CaseResponse,
    summary="Assign case",
    description="Manual (re-)assignment. An OPEN case moves to ASSIGNED.",
    responses={404: {"description": "Case not found"}, 409: {"description": "Case is closed or cancelled"}}
)
async def assign_case(
    case_id: int,
    request: AssignRequest,
    session: AsyncSession = Depends(get_session),
    lifecycle: CaseLifecycleService = Depends(get_lifecycle_service),
    publisher: ICaseEventPublisher = Depends(get_publisher)
):
    assignment = AssignmentResult(tuple(request.user_ids), tuple(request.team_ids))
    case, events = await lifecycle.assign(case_id, assignment, request.actor)
    await session.commit()
    await publisher.publish(events)
    return CaseResponse.from_entity(case)


@router.post(
    "/{case_id}/merge",
    response_model=CaseResponse,
    summary="Merge a case into this one",
    description="""
    Fold `source_case_id` into the case in the path: its fingerprints join
    this case's related set, alert counts are summed and the source is
    CANCELLED. The source must be OPEN or ASSIGNED.
    """,
    responses={404: {"description": "Case not found"}, 409: {"description": "Merge not allowed"}}
)
async def merge_case(
    case_id: int,
    request: MergeRequest,
    session: AsyncSession = Depends(get_session),
    lifecycle: CaseLifecycleService = Depends(get_lifecycle_service),
    publisher: ICaseEventPublisher = Depends(get_publisher)
):
    case, events = await lifecycle.merge(case_id, request.source_case_id, request.actor)
    await session.commit()
    await publisher.publish(events)
    return CaseResponse.from_entity(case)
