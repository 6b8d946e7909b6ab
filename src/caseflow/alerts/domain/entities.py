"""
Alert Domain Entities
=====================

Canonical representation of a single inbound alert notification.

Every payload shape accepted by the webhook endpoint is normalised into an
AlertEvent before it reaches the correlator. Events are immutable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from caseflow.config import AlertStatus, ProcessingState, Severity


@dataclass(frozen=True)
class AlertEvent:
    """
    A single FIRING or RESOLVED notification for one alert instance.

    labels/annotations are exposed as read-only mappings.
    """

    fingerprint: str
    status: AlertStatus
    severity: Severity
    title: str
    description: str = ""
    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    category: Optional[str] = None
    generator_url: Optional[str] = None
    receiver: Optional[str] = None
    raw_payload: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.fingerprint:
            raise ValueError("fingerprint must not be empty")
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))
        object.__setattr__(self, "annotations", MappingProxyType(dict(self.annotations)))

    @property
    def is_firing(self) -> bool:
        return self.status == AlertStatus.FIRING

    @property
    def is_resolved(self) -> bool:
        return self.status == AlertStatus.RESOLVED


@dataclass
class AlertHistoryRecord:
    """
    Persisted form of an AlertEvent.

    The event itself never changes; only the processing outcome
    (state, decision, case) is written once correlation completes.
    """

    id: int
    event: AlertEvent
    processing_state: ProcessingState = ProcessingState.RECEIVED
    decision: Optional[str] = None
    reason: Optional[str] = None
    case_id: Optional[int] = None
