"""
Alert Controllers (API Routes)
==============================

Grafana webhook endpoints and alert history lookup.

Controllers are thin - they delegate to the ingestion pipeline.
"""

import hashlib
import hmac
import json
import time
from collections import Counter
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from caseflow.alerts.application import (
    AlertHistoryResponse,
    AlertHistoryService,
    AlertOutcome,
    AlertPayloadNormalizer,
    CaseInfo,
    WebhookResponse,
)
from caseflow.alerts.infrastructure import SQLAlchemyAlertHistoryRepository
from caseflow.cases.domain import CorrelationAction
from caseflow.cases.ingestion import AlertIngestionService, IngestionOutcome
from caseflow.config import Settings
from caseflow.core import MalformedPayloadException
from caseflow.infrastructure.database import get_session
from caseflow.shared.infrastructure.grafana import GrafanaOTLPExporter
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
history_router = APIRouter(prefix="/alerts", tags=["Alerts"])

SIGNATURE_HEADER = "X-Grafana-Signature"

_normalizer = AlertPayloadNormalizer()


# ========== Example payloads for Swagger ==========

GRAFANA_ALERT_EXAMPLE = {
    "receiver": "casetools",
    "status": "firing",
    "alerts": [
        {
            "status": "firing",
            "labels": {
                "alertname": "HighErrorRate",
                "severity": "critical",
                "service": "billing",
                "__alert_rule_uid__": "abc123"
            },
            "annotations": {
                "summary": "Error rate above 5%",
                "description": "billing-api 5xx ratio is 7.2%"
            },
            "startsAt": "2024-01-15T10:00:00Z",
            "endsAt": "0001-01-01T00:00:00Z",
            "generatorURL": "https://grafana.example.com/alerting/grafana/abc123/view",
            "fingerprint": "c1a2b3d4e5f60718"
        }
    ]
}


# ========== Dependencies ==========

def get_ingestion_service(request: Request) -> AlertIngestionService:
    return request.app.state.ingestion_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_exporter(request: Request) -> Optional[GrafanaOTLPExporter]:
    return getattr(request.app.state, "grafana_exporter", None)


def verify_signature(body: bytes, header: Optional[str], secret: Optional[str]) -> bool:
    """
    HMAC-SHA256 check of the raw body against ``sha256=<hex>``.

    Always true when no secret is configured.
    """
    if not secret:
        return True
    if not header:
        return False

    provided = header.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, provided.lower())


def _case_info(outcome: IngestionOutcome) -> CaseInfo:
    case = outcome.case
    return CaseInfo(
        case_id=case.id,
        case_number=case.case_number,
        alert_fingerprint=outcome.event.fingerprint,
        status=case.status.value,
        decision=outcome.action.value,
        assigned_user_ids=list(case.assigned_user_ids),
        created_at=case.created_at,
    )


def _build_response(outcomes: List[IngestionOutcome], elapsed_ms: int) -> WebhookResponse:
    created = sum(1 for o in outcomes if o.action == CorrelationAction.CREATE_CASE)
    attached = sum(1 for o in outcomes if o.action == CorrelationAction.ATTACH_TO_CASE)
    ignored = len(outcomes) - created - attached

    return WebhookResponse(
        success=True,
        message=f"{len(outcomes)} alert(s) processed: {created} created, {attached} attached, {ignored} other",
        cases=[_case_info(o) for o in outcomes if o.case is not None],
        outcomes=[
            AlertOutcome(
                fingerprint=o.event.fingerprint,
                decision=o.action.value,
                case_id=o.case.id if o.case else None,
                reason=o.decision.reason,
            )
            for o in outcomes
        ],
        processing_time_ms=elapsed_ms,
        timestamp=datetime.now(timezone.utc),
    )


# ========== Route Handlers ==========

@router.post(
    "/grafana/alert",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Receive Grafana alert notifications",
    description="""
    Receive a Grafana / Alertmanager webhook delivery.

    Accepts the batched alertmanager shape (`alerts: [...]`) and the flat
    legacy shape (`alertName`, `severity`, `labels`, ...).

    **Status codes**:
    - `201`: at least one case was created or had an alert attached
    - `200`: everything was ignored, a duplicate, or a resolve signal
    - `400`: malformed payload
    - `401`: signature mismatch (when `GRAFANA_WEBHOOK_SECRET` is set)
    - `503`: persistence failure or timeout; Grafana should retry
    """,
    responses={
        200: {"description": "No case created or attached"},
        400: {"description": "Malformed payload"},
        401: {"description": "Invalid signature"},
        503: {"description": "Persistence failure or timeout"},
    },
    openapi_extra={
        "requestBody": {"content": {"application/json": {"example": GRAFANA_ALERT_EXAMPLE}}}
    }
)
async def receive_grafana_alert(
    request: Request,
    background_tasks: BackgroundTasks,
    service: AlertIngestionService = Depends(get_ingestion_service),
    app_settings: Settings = Depends(get_app_settings),
    exporter: Optional[GrafanaOTLPExporter] = Depends(get_exporter)
):
    start_time = time.perf_counter()
    received_at = datetime.now(timezone.utc)
    body = await request.body()

    if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), app_settings.grafana_webhook_secret):
        logger.warning("Webhook signature mismatch", extra={"path": request.url.path})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPayloadException("Webhook body is not valid JSON") from e

    events = _normalizer.normalize(payload, received_at=received_at)
    outcomes = await service.ingest_batch(events)

    elapsed_ms = int((time.perf_counter() - start_time) * 1000)
    response = _build_response(outcomes, elapsed_ms)
    status_code = (
        status.HTTP_201_CREATED if any(o.touched_case for o in outcomes)
        else status.HTTP_200_OK
    )

    logger.info(
        "Webhook processed",
        extra={
            "alert_count": len(outcomes),
            "status_code": status_code,
            "processing_time_ms": elapsed_ms,
        }
    )

    if exporter is not None and exporter.is_enabled():
        background_tasks.add_task(
            exporter.export_ingestion_metrics,
            decisions=dict(Counter(o.action.value for o in outcomes)),
            latency_ms=elapsed_ms,
            endpoint=request.url.path,
            status_code=status_code,
        )

    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(mode="json"),
        background=background_tasks,
    )


@router.post(
    "/grafana/resolved",
    response_model=WebhookResponse,
    summary="Receive Grafana resolved notifications",
    description="Alias of `/webhooks/grafana/alert`; the per-alert status decides what happens."
)
async def receive_grafana_resolved(
    request: Request,
    background_tasks: BackgroundTasks,
    service: AlertIngestionService = Depends(get_ingestion_service),
    app_settings: Settings = Depends(get_app_settings),
    exporter: Optional[GrafanaOTLPExporter] = Depends(get_exporter)
):
    return await receive_grafana_alert(request, background_tasks, service, app_settings, exporter)


@router.get("/health", summary="Webhook endpoint health")
async def webhook_health():
    return {
        "status": "healthy",
        "service": "grafana-webhook",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@history_router.get(
    "/history/{fingerprint}",
    response_model=List[AlertHistoryResponse],
    summary="Alert history for a fingerprint",
    description="Every recorded delivery for the fingerprint, newest first, with its processing outcome."
)
async def get_alert_history(
    fingerprint: str,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session)
):
    service = AlertHistoryService(SQLAlchemyAlertHistoryRepository(session))
    records = await service.history(fingerprint, limit, offset)
    return [
        AlertHistoryResponse(
            id=record.id,
            fingerprint=record.event.fingerprint,
            status=record.event.status.value,
            severity=record.event.severity.value,
            title=record.event.title,
            rule_id=record.event.rule_id,
            rule_name=record.event.rule_name,
            labels=dict(record.event.labels),
            starts_at=record.event.starts_at,
            ends_at=record.event.ends_at,
            received_at=record.event.received_at,
            processing_state=record.processing_state.value,
            decision=record.decision,
            case_id=record.case_id,
        )
        for record in records
    ]
