"""
Assignment Resolver
===================

Picks assignees for a newly drafted case from the matched assignment rule,
or from the available assignee pool when no rule matches.

Strategies:
    MANUAL / TEAM_BASED: the rule's static users and teams
    ROUND_ROBIN: next eligible user after the persisted per-rule pointer
    LOAD_BASED: eligible user with the fewest active cases, ties to lowest id

A user is eligible when they are marked available in the pool (users the
pool doesn't list count as available) and below their capacity cap.
"""

from typing import Dict, List, Optional, Sequence

from caseflow.cases.application.interfaces import IAssignmentPointerRepository, ICaseRepository
from caseflow.cases.domain import AssignmentResult, AssignmentRule, Case, PoolMember
from caseflow.config import AssignmentStrategy
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class AssignmentResolver:
    """Recommends user and team ids for a case."""

    def __init__(self, cases: ICaseRepository, pointers: IAssignmentPointerRepository):
        self._cases = cases
        self._pointers = pointers

    async def resolve_assignee(
        self,
        case: Case,
        rule: Optional[AssignmentRule],
        pool: Sequence[PoolMember] = ()
    ) -> AssignmentResult:
        """
        Resolve assignees for a case.

        Returns an empty result (case stays OPEN) when nothing applies.
        """
        if rule is None:
            result = await self._least_loaded_from_pool(pool)
        elif rule.strategy in (AssignmentStrategy.MANUAL, AssignmentStrategy.TEAM_BASED):
            result = AssignmentResult(tuple(rule.user_ids), tuple(rule.team_ids))
        elif rule.strategy == AssignmentStrategy.ROUND_ROBIN:
            result = await self._round_robin(rule, pool)
        else:
            result = await self._least_loaded(rule, pool)

        logger.debug(
            "Assignment resolved",
            extra={
                "fingerprint": case.primary_alert_fingerprint,
                "rule": rule.name if rule else None,
                "strategy": rule.strategy.value if rule else None,
                "user_ids": list(result.user_ids),
                "team_ids": list(result.team_ids),
            }
        )
        return result

    async def _round_robin(self, rule: AssignmentRule, pool: Sequence[PoolMember]) -> AssignmentResult:
        candidates = await self._eligible(rule.user_ids, pool)
        if not candidates:
            return AssignmentResult(team_ids=tuple(rule.team_ids))

        last = await self._pointers.get_last(rule.name)
        if last in candidates:
            chosen = candidates[(candidates.index(last) + 1) % len(candidates)]
        elif last in rule.user_ids:
            # last user dropped out; continue from the next one in rule order
            start = rule.user_ids.index(last)
            following = [u for u in rule.user_ids[start + 1:] + rule.user_ids[:start] if u in candidates]
            chosen = following[0]
        else:
            chosen = candidates[0]

        await self._pointers.set_last(rule.name, chosen)
        return AssignmentResult((chosen,), tuple(rule.team_ids))

    async def _least_loaded(self, rule: AssignmentRule, pool: Sequence[PoolMember]) -> AssignmentResult:
        candidates = await self._eligible(rule.user_ids, pool)
        if not candidates:
            return AssignmentResult(team_ids=tuple(rule.team_ids))

        chosen = await self._pick_least_loaded(candidates)
        return AssignmentResult((chosen,), tuple(rule.team_ids))

    async def _least_loaded_from_pool(self, pool: Sequence[PoolMember]) -> AssignmentResult:
        members = [m.id for m in pool if m.available]
        if not members:
            return AssignmentResult.empty()

        candidates = await self._eligible(members, pool)
        if not candidates:
            return AssignmentResult.empty()
        return AssignmentResult((await self._pick_least_loaded(candidates),))

    async def _pick_least_loaded(self, candidates: List[int]) -> int:
        loads = await self._cases.count_active_by_user(candidates)
        return min(candidates, key=lambda user_id: (loads.get(user_id, 0), user_id))

    async def _eligible(self, user_ids: Sequence[int], pool: Sequence[PoolMember]) -> List[int]:
        """Available users in rule order, minus those at capacity."""
        members: Dict[int, PoolMember] = {m.id: m for m in pool}
        available = [
            user_id for user_id in dict.fromkeys(user_ids)
            if user_id not in members or members[user_id].available
        ]

        capped = [u for u in available if u in members and members[u].max_active_cases]
        if not capped:
            return available

        loads = await self._cases.count_active_by_user(capped)
        return [
            u for u in available
            if u not in capped or loads.get(u, 0) < members[u].max_active_cases
        ]
