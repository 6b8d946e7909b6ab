"""
Caseflow
========

Grafana alert-to-case correlation service.

Bounded contexts:
- alerts: webhook ingestion, fingerprinting and alert history
- cases: correlation, assignment and the case lifecycle state machine
- sla: deadline computation and breach sweeps
"""

__version__ = "1.0.0"
