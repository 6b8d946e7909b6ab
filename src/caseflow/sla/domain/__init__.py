"""
SLA Domain Layer
================

Domain layer for SLA computation.

Contains:
- Value Objects: SLAConfig (minutes-per-severity table)
- Domain Services: Stateless deadline logic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from caseflow.sla.domain.value_objects import (
    DEFAULT_SLA_MINUTES,
    SLACalculator,
    SLAConfig,
)

__all__ = [
    "DEFAULT_SLA_MINUTES",
    "SLACalculator",
    "SLAConfig",
]
