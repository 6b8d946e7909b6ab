"""
Alert Domain Layer
==================

Pure alert concepts: the canonical AlertEvent, fingerprint derivation and
Grafana label conventions. No infrastructure dependencies.
"""

from caseflow.alerts.domain.entities import AlertEvent, AlertHistoryRecord
from caseflow.alerts.domain.fingerprint import (
    FingerprintResolver,
    VOLATILE_LABELS,
    coerce_mapping,
)
from caseflow.alerts.domain.value_objects import (
    RuleUidResolver,
    parse_severity,
    resolve_category,
)

__all__ = [
    "AlertEvent",
    "AlertHistoryRecord",
    "FingerprintResolver",
    "VOLATILE_LABELS",
    "coerce_mapping",
    "RuleUidResolver",
    "parse_severity",
    "resolve_category",
]
