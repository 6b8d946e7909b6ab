"""
Case Query Service
==================

Read side of the case API: lookups, listing, audit trail and SLA breaches.
"""

from datetime import datetime, timezone
from typing import List, Optional

from caseflow.cases.application.dto import CaseQueryDTO, SLABreachResponse
from caseflow.cases.application.interfaces import ICaseRepository
from caseflow.cases.domain import Case, CaseActivity
from caseflow.core import ResourceNotFoundException


class CaseQueryService:
    def __init__(self, cases: ICaseRepository):
        self._cases = cases

    async def get(self, case_id: int) -> Case:
        case = await self._cases.get(case_id)
        if case is None:
            raise ResourceNotFoundException("Case", str(case_id))
        return case

    async def get_by_number(self, case_number: str) -> Case:
        case = await self._cases.get_by_number(case_number)
        if case is None:
            raise ResourceNotFoundException("Case", case_number)
        return case

    async def list(self, query: CaseQueryDTO) -> List[Case]:
        return await self._cases.list(query.filters(), query.limit, query.offset)

    async def activities(self, case_id: int) -> List[CaseActivity]:
        await self.get(case_id)
        return await self._cases.list_activities(case_id)

    async def breaches(
        self,
        now: Optional[datetime] = None,
        limit: int = 500
    ) -> List[SLABreachResponse]:
        """Active cases whose SLA deadline has passed, most overdue first."""
        now = now or datetime.now(timezone.utc)
        cases = await self._cases.list_breached(now, limit)
        return [
            SLABreachResponse(
                case_id=case.id,
                case_number=case.case_number,
                severity=case.severity,
                status=case.status,
                sla_deadline=case.sla_deadline,
                overdue_seconds=(now - case.sla_deadline).total_seconds(),
                assigned_user_ids=list(case.assigned_user_ids),
            )
            for case in sorted(cases, key=lambda c: c.sla_deadline)
        ]
