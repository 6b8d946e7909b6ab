"""
SLA Infrastructure Layer
=========================

- Scheduler: APScheduler wrapper and the breach sweep job
"""

from caseflow.sla.infrastructure.scheduler import SLAScheduler, build_sweep_job

__all__ = [
    "SLAScheduler",
    "build_sweep_job",
]
