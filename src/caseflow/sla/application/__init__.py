"""
SLA Application Layer
======================

Contains:
- Services: SLA breach sweep over active cases

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from caseflow.sla.application.services import SLABreachSweepService

__all__ = [
    "SLABreachSweepService",
]
