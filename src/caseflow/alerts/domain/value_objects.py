"""
Alert Value Objects
===================

Small pure helpers that read Grafana-specific conventions out of an alert:
rule UID, severity and category.
"""

from typing import Mapping, Optional
from urllib.parse import parse_qs, urlparse

from caseflow.config import Severity

RULE_UID_LABELS = ("rule_id", "__alert_rule_uid__", "alertuid", "rule_uid")

_GRAFANA_RULE_PATH = "/alerting/grafana/"

# Grafana-style severities outside the four canonical levels
_SEVERITY_ALIASES = {
    "P1": Severity.CRITICAL,
    "P2": Severity.HIGH,
    "P3": Severity.MEDIUM,
    "P4": Severity.LOW,
    "ERROR": Severity.HIGH,
    "WARNING": Severity.MEDIUM,
    "WARN": Severity.MEDIUM,
    "INFO": Severity.LOW,
}


class RuleUidResolver:
    """
    Extracts the Grafana rule UID from an alert.

    Checks well-known labels first, then the generator URL
    (``/alerting/grafana/<uid>/view`` or ``?ruleUID=<uid>``).
    """

    @staticmethod
    def resolve(labels: Mapping[str, str], generator_url: Optional[str]) -> Optional[str]:
        for key in RULE_UID_LABELS:
            value = labels.get(key)
            if value and str(value).strip():
                return str(value)
        return RuleUidResolver.from_generator_url(generator_url)

    @staticmethod
    def from_generator_url(generator_url: Optional[str]) -> Optional[str]:
        if not generator_url:
            return None

        parsed = urlparse(generator_url)
        if _GRAFANA_RULE_PATH in parsed.path:
            remainder = parsed.path.split(_GRAFANA_RULE_PATH, 1)[1]
            uid = remainder.split("/", 1)[0]
            if uid:
                return uid

        query = parse_qs(parsed.query)
        for key in ("ruleUID", "uid"):
            values = query.get(key)
            if values and values[0]:
                return values[0]
        return None


def parse_severity(*candidates: Optional[str]) -> Severity:
    """
    First recognisable severity among the candidates, MEDIUM otherwise.

    Candidates are tried in order, e.g. labels.severity, labels.priority,
    then the legacy top-level severity.
    """
    for candidate in candidates:
        if not candidate:
            continue
        value = str(candidate).strip().upper()
        if value in Severity.__members__:
            return Severity[value]
        if value in _SEVERITY_ALIASES:
            return _SEVERITY_ALIASES[value]
    return Severity.MEDIUM


def resolve_category(labels: Mapping[str, str]) -> str:
    """Category used by assignment rules: ``category`` label, else the alert name."""
    return labels.get("category") or labels.get("alertname") or "OTHER"
