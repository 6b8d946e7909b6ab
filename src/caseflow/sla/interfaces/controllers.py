"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA monitoring endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from caseflow.cases.application import CaseQueryService, SLABreachResponse
from caseflow.cases.interfaces.controllers import get_query_service

sla_router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


@sla_router.get(
    "/breaches",
    response_model=List[SLABreachResponse],
    summary="Cases past their SLA deadline",
    description="""
    Active cases whose SLA deadline has passed, most overdue first.

    RESOLVED, CLOSED and CANCELLED cases never appear: their SLA clock has
    stopped.
    """
)
async def list_breaches(
    limit: int = Query(500, ge=1, le=1000),
    service: CaseQueryService = Depends(get_query_service)
):
    return await service.breaches(limit=limit)
