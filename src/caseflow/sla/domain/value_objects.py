"""
SLA Value Objects
=================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from caseflow.config import Severity, SLA_STOPPED_STATUSES, CaseStatus

DEFAULT_SLA_MINUTES: Mapping[Severity, int] = {
    Severity.CRITICAL: 15,
    Severity.HIGH: 60,
    Severity.MEDIUM: 240,
    Severity.LOW: 480,
}


class SLAConfig(BaseModel):
    """
    Minutes-per-severity table loaded from the policy YAML.

    Entries are kept as given; SLACalculator decides what is usable so a
    bad entry degrades to the LOW duration instead of failing the load.
    """
    sla_minutes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Resolution SLA in minutes by severity"
    )

    @field_validator("sla_minutes", mode="before")
    @classmethod
    def normalize_keys(cls, v: Any) -> Dict[str, Any]:
        """Upper-case severity keys; anything that is not a mapping becomes {}."""
        if not isinstance(v, Mapping):
            return {}
        return {str(k).strip().upper(): value for k, value in v.items()}


def _valid_minutes(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return None
    return minutes if minutes > 0 else None


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class: never raises, unknown severities and broken
    table entries fall back to the LOW duration (longer deadline).
    """

    @staticmethod
    def minutes_for(severity: Any, sla_minutes: Optional[Mapping[str, Any]] = None) -> int:
        table = sla_minutes or {}
        low_minutes = _valid_minutes(table.get(Severity.LOW.value)) or DEFAULT_SLA_MINUTES[Severity.LOW]

        key = severity.value if isinstance(severity, Severity) else str(severity or "").strip().upper()
        if key not in Severity.__members__:
            return low_minutes

        if key in table:
            return _valid_minutes(table[key]) or low_minutes
        return DEFAULT_SLA_MINUTES[Severity(key)]

    @staticmethod
    def compute_deadline(
        severity: Any,
        created_at: datetime,
        sla_minutes: Optional[Mapping[str, Any]] = None
    ) -> datetime:
        """
        Calculate the SLA deadline for a case.

        Args:
            severity: Case severity (enum or string)
            created_at: SLA clock start
            sla_minutes: Configured minutes-per-severity table

        Returns:
            created_at + configured minutes
        """
        return created_at + timedelta(minutes=SLACalculator.minutes_for(severity, sla_minutes))

    @staticmethod
    def is_breached(deadline: datetime, status: CaseStatus, now: datetime) -> bool:
        return now > deadline and status not in SLA_STOPPED_STATUSES

    @staticmethod
    def remaining_seconds(deadline: datetime, now: datetime) -> float:
        return max(0.0, (deadline - now).total_seconds())
