"""
Case Repository Interfaces
==========================

Abstractions the case services depend on (Dependency Inversion).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from caseflow.cases.domain import Case, CaseActivity, CaseEvent


class ICaseRepository(ABC):
    """Interface for case data access."""

    @abstractmethod
    async def get(self, case_id: int, for_update: bool = False) -> Optional[Case]:
        """Get case by id."""

    @abstractmethod
    async def get_by_number(self, case_number: str) -> Optional[Case]:
        """Get case by its external case number."""

    @abstractmethod
    async def find_active_by_fingerprint(self, fingerprint: str) -> Optional[Case]:
        """Non-terminal case whose primary or related fingerprints include the given one."""

    @abstractmethod
    async def add(self, case: Case) -> Case:
        """
        Insert a new case.

        Raises:
            ActiveCaseConflictException: another active case holds the fingerprint
        """

    @abstractmethod
    async def save(self, case: Case) -> Case:
        """Persist changes to an existing case."""

    @abstractmethod
    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Case]:
        """List cases with filters, newest first."""

    @abstractmethod
    async def count_active_by_user(self, user_ids: Iterable[int]) -> Dict[int, int]:
        """Active case count per user (users without cases map to 0)."""

    @abstractmethod
    async def list_breached(self, now: datetime, limit: int = 500) -> List[Case]:
        """Cases past their SLA deadline whose SLA clock is still running."""

    @abstractmethod
    async def add_activity(self, activity: CaseActivity) -> CaseActivity:
        """Append an audit trail entry."""

    @abstractmethod
    async def list_activities(self, case_id: int) -> List[CaseActivity]:
        """Audit trail of a case, oldest first."""


class IAssignmentPointerRepository(ABC):
    """Persisted round-robin pointer per assignment rule."""

    @abstractmethod
    async def get_last(self, rule_name: str) -> Optional[int]:
        """Last user assigned by the rule, if any."""

    @abstractmethod
    async def set_last(self, rule_name: str, user_id: int) -> None:
        """Move the pointer."""


class ICaseNumberGenerator(ABC):
    """Unique, monotonic per-year case numbers."""

    @abstractmethod
    async def next_case_number(self, at: datetime) -> str:
        """Next CASE-YYYY-NNNN number for the year of ``at``."""


class ICaseEventPublisher(ABC):
    """Fan-out of committed lifecycle events."""

    @abstractmethod
    async def publish(self, events: List[CaseEvent]) -> None:
        """Deliver events to subscribers; must not raise."""
