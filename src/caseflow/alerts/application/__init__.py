"""
Alert Application Layer
=======================

Contains:
- DTOs: Grafana webhook request/response models
- Normalizer: batched/legacy payload to AlertEvent
- Services: alert history store and its repository interface

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from caseflow.alerts.application.dto import (
    GrafanaAlertDTO,
    GrafanaWebhookRequest,
    CaseInfo,
    AlertOutcome,
    WebhookResponse,
    AlertHistoryResponse,
)
from caseflow.alerts.application.normalizer import AlertPayloadNormalizer
from caseflow.alerts.application.services import (
    AlertHistoryService,
    IAlertHistoryRepository,
    DUPLICATE_REASON,
)

__all__ = [
    # DTOs
    "GrafanaAlertDTO",
    "GrafanaWebhookRequest",
    "CaseInfo",
    "AlertOutcome",
    "WebhookResponse",
    "AlertHistoryResponse",
    # Services
    "AlertPayloadNormalizer",
    "AlertHistoryService",
    "DUPLICATE_REASON",
    # Repository Interfaces
    "IAlertHistoryRepository",
]
