"""
Alert Interfaces Layer
======================

FastAPI routers for the Grafana webhook and alert history.
"""

from caseflow.alerts.interfaces.controllers import history_router, router as webhook_router

__all__ = ["webhook_router", "history_router"]
