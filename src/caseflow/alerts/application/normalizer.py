"""
Alert Payload Normalizer
========================

Turns a decoded webhook body into canonical AlertEvents.

Variant detection lives here and only here: the correlator never sees
Grafana's wire shapes.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from caseflow.alerts.application.dto import GrafanaAlertDTO, GrafanaWebhookRequest
from caseflow.alerts.domain import (
    AlertEvent,
    FingerprintResolver,
    RuleUidResolver,
    coerce_mapping,
    parse_severity,
    resolve_category,
)
from caseflow.config import AlertStatus
from caseflow.core import MalformedPayloadException
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_STATUS_MAP = {
    "firing": AlertStatus.FIRING,
    "alerting": AlertStatus.FIRING,
    "resolved": AlertStatus.RESOLVED,
    "ok": AlertStatus.RESOLVED,
}


def _stringify(mapping: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    if not mapping:
        return {}
    return {str(k): "" if v is None else str(v) for k, v in mapping.items()}


def _normalize_time(value: Optional[datetime]) -> Optional[datetime]:
    """UTC-aware timestamp; Grafana's zero time (year 1) means 'unset'."""
    if value is None or value.year <= 1:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_status(*candidates: Optional[str]) -> Optional[AlertStatus]:
    for candidate in candidates:
        if candidate:
            return _STATUS_MAP.get(candidate.strip().lower())
    return None


class AlertPayloadNormalizer:
    """
    Normalizes batched and legacy Grafana payloads.

    Raises MalformedPayloadException when the body carries no alert, an
    alert has no usable status, or an alert has neither labels nor a
    fingerprint to identify it.
    """

    def __init__(self, fingerprint_resolver: Optional[FingerprintResolver] = None):
        self._fingerprints = fingerprint_resolver or FingerprintResolver()

    def normalize(
        self,
        body: Any,
        received_at: Optional[datetime] = None
    ) -> List[AlertEvent]:
        received_at = received_at or datetime.now(timezone.utc)

        if not isinstance(body, dict):
            raise MalformedPayloadException("Webhook body must be a JSON object")

        try:
            request = GrafanaWebhookRequest.model_validate(body)
        except ValidationError as e:
            raise MalformedPayloadException(
                "Webhook body does not match a Grafana alert payload",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

        if request.is_batched:
            raw_alerts = body.get("alerts") or []
            events = [
                self._from_batched(request, alert, raw, received_at)
                for alert, raw in zip(request.alerts, raw_alerts)
            ]
        elif request.is_legacy:
            events = [self._from_legacy(request, body, received_at)]
        else:
            raise MalformedPayloadException("Webhook body contains no alerts")

        logger.debug(
            "Webhook payload normalized",
            extra={"shape": "batched" if request.is_batched else "legacy", "alert_count": len(events)}
        )
        return events

    def _from_batched(
        self,
        request: GrafanaWebhookRequest,
        alert: GrafanaAlertDTO,
        raw: Mapping[str, Any],
        received_at: datetime
    ) -> AlertEvent:
        status = _parse_status(alert.status, request.status)
        if status is None:
            raise MalformedPayloadException(
                "Alert has no recognisable status",
                {"status": alert.status or request.status}
            )
        if not alert.labels and not (alert.fingerprint and alert.fingerprint.strip()):
            raise MalformedPayloadException("Alert has neither labels nor fingerprint")

        labels = _stringify(alert.labels)
        annotations = _stringify(alert.annotations)
        fingerprint = self._fingerprints.resolve(raw)
        rule_name = labels.get("alertname") or labels.get("rule_name")

        return AlertEvent(
            fingerprint=fingerprint,
            status=status,
            severity=parse_severity(labels.get("severity"), labels.get("priority")),
            title=annotations.get("summary") or annotations.get("title") or rule_name
            or f"Alert: {fingerprint}",
            description=annotations.get("description", ""),
            labels=labels,
            annotations=annotations,
            starts_at=_normalize_time(alert.starts_at),
            ends_at=_normalize_time(alert.ends_at),
            rule_id=RuleUidResolver.resolve(labels, alert.generator_url),
            rule_name=rule_name,
            category=resolve_category(labels),
            generator_url=alert.generator_url,
            receiver=request.receiver,
            raw_payload=json.dumps(raw, default=str, sort_keys=True),
            received_at=received_at,
        )

    def _from_legacy(
        self,
        request: GrafanaWebhookRequest,
        body: Mapping[str, Any],
        received_at: datetime
    ) -> AlertEvent:
        status = _parse_status(request.status) if request.status else AlertStatus.FIRING
        if status is None:
            raise MalformedPayloadException(
                "Alert has no recognisable status", {"status": request.status}
            )

        labels = _stringify(coerce_mapping(request.labels))
        annotations = _stringify(request.annotations)
        raw = dict(body)
        if not raw.get("fingerprint") and request.alert_id:
            raw["fingerprint"] = request.alert_id
        fingerprint = self._fingerprints.resolve(raw)
        rule_name = request.rule_name or request.alert_name or labels.get("alertname")

        return AlertEvent(
            fingerprint=fingerprint,
            status=status,
            severity=parse_severity(labels.get("severity"), labels.get("priority"), request.severity),
            title=request.title or annotations.get("summary") or rule_name or f"Alert: {fingerprint}",
            description=request.description or request.message or annotations.get("description", ""),
            labels=labels,
            annotations=annotations,
            starts_at=_normalize_time(request.starts_at),
            ends_at=_normalize_time(request.ends_at),
            rule_id=request.rule_id or RuleUidResolver.resolve(labels, request.generator_url),
            rule_name=rule_name,
            category=resolve_category(labels) if labels else (request.alert_name or "OTHER"),
            generator_url=request.generator_url,
            receiver=request.receiver,
            raw_payload=json.dumps(body, default=str, sort_keys=True),
            received_at=received_at,
        )
