"""
Alert Application DTOs
======================

Pydantic models for the Grafana webhook boundary.

Grafana's alertmanager-compatible notifier sends a batched body with
``alerts[]``; older integrations post a flattened single alert with
top-level ``alertName``/``severity``/``fingerprint``. Both shapes are
accepted by GrafanaWebhookRequest and told apart by the normalizer.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ========== Inbound (Grafana) ==========

class GrafanaAlertDTO(BaseModel):
    """One entry of the batched ``alerts[]`` array."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    status: Optional[str] = Field(None, description="firing | resolved")
    labels: Dict[str, Any] = Field(default_factory=dict)
    annotations: Dict[str, Any] = Field(default_factory=dict)
    starts_at: Optional[datetime] = Field(None, alias="startsAt")
    ends_at: Optional[datetime] = Field(None, alias="endsAt")
    generator_url: Optional[str] = Field(None, alias="generatorURL")
    fingerprint: Optional[str] = None
    values: Optional[Dict[str, Any]] = None


class GrafanaWebhookRequest(BaseModel):
    """Webhook body, batched or legacy single-alert shape."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    receiver: Optional[str] = None
    status: Optional[str] = None
    alerts: List[GrafanaAlertDTO] = Field(default_factory=list)
    group_labels: Dict[str, Any] = Field(default_factory=dict, alias="groupLabels")
    common_labels: Dict[str, Any] = Field(default_factory=dict, alias="commonLabels")
    common_annotations: Dict[str, Any] = Field(default_factory=dict, alias="commonAnnotations")
    external_url: Optional[str] = Field(None, alias="externalURL")
    version: Optional[str] = None
    group_key: Optional[str] = Field(None, alias="groupKey")
    truncated_alerts: Optional[int] = Field(None, alias="truncatedAlerts")

    # Legacy flattened single-alert fields
    alert_name: Optional[str] = Field(None, alias="alertName")
    alert_id: Optional[str] = Field(None, alias="alertId")
    fingerprint: Optional[str] = None
    severity: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None
    description: Optional[str] = None
    labels: Optional[Union[Dict[str, Any], str]] = None
    annotations: Optional[Dict[str, Any]] = None
    starts_at: Optional[datetime] = Field(None, alias="startsAt")
    ends_at: Optional[datetime] = Field(None, alias="endsAt")
    generator_url: Optional[str] = Field(None, alias="generatorURL")
    rule_id: Optional[str] = Field(None, alias="ruleId")
    rule_name: Optional[str] = Field(None, alias="ruleName")

    @property
    def is_batched(self) -> bool:
        return bool(self.alerts)

    @property
    def is_legacy(self) -> bool:
        return not self.alerts and bool(self.alert_name or self.fingerprint or self.alert_id)


# ========== Outbound ==========

class CaseInfo(BaseModel):
    """Case touched by a webhook delivery."""
    case_id: int
    case_number: str
    alert_fingerprint: str
    status: str
    decision: str = Field(..., description="CREATE_CASE | ATTACH_TO_CASE | RESOLVE_CANDIDATE")
    assigned_user_ids: List[int] = Field(default_factory=list)
    created_at: datetime


class AlertOutcome(BaseModel):
    """Per-alert processing outcome."""
    fingerprint: str
    decision: str
    case_id: Optional[int] = None
    reason: Optional[str] = None


class WebhookResponse(BaseModel):
    """Response body of the Grafana webhook endpoints."""
    success: bool = True
    message: str
    cases: List[CaseInfo] = Field(default_factory=list)
    outcomes: List[AlertOutcome] = Field(default_factory=list)
    processing_time_ms: Optional[int] = None
    error: Optional[str] = None
    timestamp: datetime


class AlertHistoryResponse(BaseModel):
    """Single alert history entry."""
    id: int
    fingerprint: str
    status: str
    severity: str
    title: str
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    received_at: datetime
    processing_state: str
    decision: Optional[str] = None
    case_id: Optional[int] = None
