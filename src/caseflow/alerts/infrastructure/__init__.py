"""
Alert Infrastructure Layer
==========================

Database model and repository for the alert history table.
"""

from caseflow.alerts.infrastructure.models import AlertHistoryModel
from caseflow.alerts.infrastructure.repositories import SQLAlchemyAlertHistoryRepository

__all__ = [
    "AlertHistoryModel",
    "SQLAlchemyAlertHistoryRepository",
]
