from typing import Dict, Optional

import pytest

from caseflow.cases.application import AssignmentResolver, IAssignmentPointerRepository
from caseflow.cases.domain import AssignmentRule, PoolMember, match_rule
from caseflow.config import AssignmentStrategy, Severity
from tests.conftest import make_case


class FakeLoads:
    """Only count_active_by_user is used by the resolver."""

    def __init__(self, loads: Optional[Dict[int, int]] = None):
        self.loads = loads or {}

    async def count_active_by_user(self, user_ids):
        return {u: self.loads.get(u, 0) for u in user_ids}


class FakePointers(IAssignmentPointerRepository):
    def __init__(self, last: Optional[Dict[str, int]] = None):
        self.last = dict(last or {})

    async def get_last(self, rule_name):
        return self.last.get(rule_name)

    async def set_last(self, rule_name, user_id):
        self.last[rule_name] = user_id


def rule(strategy, user_ids=(1, 2, 3), team_ids=(10,), **kwargs):
    return AssignmentRule(
        name=kwargs.pop("name", "r"),
        strategy=strategy,
        user_ids=list(user_ids),
        team_ids=list(team_ids),
        **kwargs
    )


async def test_round_robin_rotates_through_rule_users():
    pointers = FakePointers()
    resolver = AssignmentResolver(FakeLoads(), pointers)
    rr = rule(AssignmentStrategy.ROUND_ROBIN)

    picks = [(await resolver.resolve_assignee(make_case(), rr)).user_ids for _ in range(4)]

    assert picks == [(1,), (2,), (3,), (1,)]
    assert pointers.last == {"r": 1}


async def test_round_robin_skips_unavailable_and_continues_after_dropped_user():
    pool = [PoolMember(id=1), PoolMember(id=2, available=False), PoolMember(id=3)]
    resolver = AssignmentResolver(FakeLoads(), FakePointers({"r": 2}))

    result = await resolver.resolve_assignee(make_case(), rule(AssignmentStrategy.ROUND_ROBIN), pool)

    assert result.user_ids == (3,)
    assert result.team_ids == (10,)


async def test_round_robin_respects_capacity():
    pool = [PoolMember(id=1, max_active_cases=2), PoolMember(id=2), PoolMember(id=3)]
    resolver = AssignmentResolver(FakeLoads({1: 2}), FakePointers({"r": 3}))

    result = await resolver.resolve_assignee(make_case(), rule(AssignmentStrategy.ROUND_ROBIN), pool)

    assert result.user_ids == (2,)


async def test_no_eligible_user_falls_back_to_teams():
    pool = [PoolMember(id=u, available=False) for u in (1, 2, 3)]
    resolver = AssignmentResolver(FakeLoads(), FakePointers())

    result = await resolver.resolve_assignee(make_case(), rule(AssignmentStrategy.ROUND_ROBIN), pool)

    assert result.user_ids == ()
    assert result.team_ids == (10,)
    assert not result.is_empty


async def test_load_based_picks_least_loaded_lowest_id_on_tie():
    resolver = AssignmentResolver(FakeLoads({1: 4, 2: 1, 3: 1}), FakePointers())

    result = await resolver.resolve_assignee(make_case(), rule(AssignmentStrategy.LOAD_BASED))

    assert result.user_ids == (2,)


@pytest.mark.parametrize("strategy", [AssignmentStrategy.MANUAL, AssignmentStrategy.TEAM_BASED])
async def test_static_strategies_return_rule_members(strategy):
    resolver = AssignmentResolver(FakeLoads(), FakePointers())

    result = await resolver.resolve_assignee(make_case(), rule(strategy, user_ids=(7,), team_ids=(20, 21)))

    assert result.user_ids == (7,)
    assert result.team_ids == (20, 21)


async def test_no_rule_uses_least_loaded_available_pool_member():
    pool = [PoolMember(id=1), PoolMember(id=2), PoolMember(id=3, available=False)]
    resolver = AssignmentResolver(FakeLoads({1: 3, 2: 0, 3: 0}), FakePointers())

    result = await resolver.resolve_assignee(make_case(), None, pool)

    assert result.user_ids == (2,)
    assert result.team_ids == ()


async def test_no_rule_and_empty_pool_leaves_case_unassigned():
    resolver = AssignmentResolver(FakeLoads(), FakePointers())
    assert (await resolver.resolve_assignee(make_case(), None, [])).is_empty


def test_match_rule_selectors():
    rules = [
        rule(AssignmentStrategy.MANUAL, name="inactive", category="billing", active=False),
        rule(AssignmentStrategy.MANUAL, name="by-uid", rule_id="uid-1"),
        rule(AssignmentStrategy.MANUAL, name="billing-critical", category="Billing", severity="critical"),
        rule(AssignmentStrategy.MANUAL, name="catch-all"),
    ]

    assert match_rule(rules, "uid-1", "billing", Severity.CRITICAL).name == "by-uid"
    assert match_rule(rules, None, "billing", Severity.CRITICAL).name == "billing-critical"
    assert match_rule(rules, None, "billing", Severity.LOW).name == "catch-all"
    assert match_rule(rules[:3], None, "network", Severity.LOW) is None
