"""
Grafana OTLP Metrics Exporter
==============================

Pushes webhook ingestion metrics to Grafana Cloud via OTLP.

Metrics exported:
- alert_ingestion_total: alerts per correlation decision
- alert_ingestion_latency_ms: webhook processing latency in milliseconds
"""

import base64
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

from caseflow.config import settings
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _attributes(values: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return [{"key": key, "value": {"stringValue": str(value)}} for key, value in values.items()]


class GrafanaOTLPExporter:
    """
    Export ingestion metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) format for metrics.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-eu-west-0.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._transport = transport
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info("Grafana OTLP exporter not configured - metrics will not be exported")

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    async def export_ingestion_metrics(
        self,
        decisions: Mapping[str, int],
        latency_ms: int,
        endpoint: str,
        status_code: int
    ) -> bool:
        """
        Export one webhook delivery's outcome counts and latency.

        Args:
            decisions: Alert count per correlation decision (CREATE_CASE, IGNORE, ...)
            latency_ms: Webhook processing latency
            endpoint: Webhook path
            status_code: HTTP status returned to Grafana

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        timestamp_ns = int(time.time() * 1_000_000_000)
        common = {"endpoint": endpoint, "status_code": status_code, "service": settings.app_name}

        metrics = [
            {
                "name": "alert_ingestion_total",
                "unit": "1",
                "description": "Alerts processed per correlation decision",
                "gauge": {
                    "dataPoints": [
                        {
                            "asInt": count,
                            "timeUnixNano": timestamp_ns,
                            "attributes": _attributes({**common, "decision": decision})
                        }
                        for decision, count in decisions.items()
                    ]
                }
            },
            {
                "name": "alert_ingestion_latency_ms",
                "unit": "ms",
                "description": "Webhook processing latency in milliseconds",
                "gauge": {
                    "dataPoints": [
                        {
                            "asInt": latency_ms,
                            "timeUnixNano": timestamp_ns,
                            "attributes": _attributes(common)
                        }
                    ]
                }
            },
        ]
        return await self._send(metrics)

    async def _send(self, metrics: List[Dict[str, Any]]) -> bool:
        payload = {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": _attributes({
                            "service.name": settings.app_name,
                            "service.version": settings.app_version,
                            "deployment.environment": settings.environment,
                        })
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            logger.debug("Metrics exported to Grafana", extra={"metrics_count": len(metrics)})
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False

