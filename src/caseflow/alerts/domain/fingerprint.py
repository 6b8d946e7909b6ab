"""
Alert Fingerprint Resolver
==========================

Derives the stable deduplication key for an inbound alert.

Resolution order:
1. Explicit ``fingerprint`` supplied by the alerting system, used verbatim
2. SHA-256 over the canonical (sorted) label set, volatile labels removed
3. SHA-256 over rule name + title truncated to 100 characters

The resolver is pure and total: it never raises and never returns an
empty string.
"""

import hashlib
import json
import re
from typing import Any, Mapping, Optional

# Labels whose values change between notifications of the same condition
VOLATILE_LABELS = frozenset({
    "__timestamp__",
    "__value__",
    "__value_string__",
    "__values__",
    "timestamp",
})

# Epoch (seconds or millis) or compact ISO timestamp glued to a label value,
# e.g. "db-01:9100@1735812000" or "db-01-20250102T100000Z"
_TIMESTAMP_SUFFIX = re.compile(r"[@_\-.](\d{10}|\d{13}|\d{8}T\d{6}Z?)$")

TITLE_FALLBACK_LENGTH = 100


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def coerce_mapping(value: Any) -> Mapping[str, Any]:
    """Label/annotation mapping from a dict or a JSON-encoded string; {} otherwise."""
    if isinstance(value, Mapping):
        return value
    if isinstance(value, str) and value.strip().startswith("{"):
        # legacy payloads ship labels as a JSON-encoded string
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, Mapping) else {}
    return {}


def _first_text(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


class FingerprintResolver:
    """Stateless fingerprint derivation for raw alert payloads."""

    def resolve(self, payload: Mapping[str, Any]) -> str:
        """
        Resolve the fingerprint for a single raw alert.

        Args:
            payload: One alert as received (an ``alerts[]`` entry or the
                flat legacy body)

        Returns:
            Non-empty fingerprint string
        """
        if not isinstance(payload, Mapping):
            payload = {}

        explicit = payload.get("fingerprint")
        if isinstance(explicit, str) and explicit.strip():
            return explicit

        labels = self.stable_labels(payload.get("labels"))
        if labels:
            canonical = json.dumps(sorted(labels.items()), separators=(",", ":"), ensure_ascii=False)
            return _digest(canonical)

        return self._fallback(payload)

    @staticmethod
    def stable_labels(raw_labels: Any) -> dict[str, str]:
        """Label set with volatile keys dropped and timestamp suffixes stripped."""
        stable: dict[str, str] = {}
        for key, value in coerce_mapping(raw_labels).items():
            key = str(key)
            if key in VOLATILE_LABELS:
                continue
            text = "" if value is None else str(value)
            if key == "instance":
                text = _TIMESTAMP_SUFFIX.sub("", text)
            stable[key] = text
        return stable

    @staticmethod
    def _fallback(payload: Mapping[str, Any]) -> str:
        labels = coerce_mapping(payload.get("labels"))
        annotations = coerce_mapping(payload.get("annotations"))

        rule_name = _first_text(
            payload.get("ruleName"),
            payload.get("alertName"),
            labels.get("alertname"),
        ) or ""
        title = _first_text(
            payload.get("title"),
            annotations.get("summary"),
            annotations.get("title"),
            payload.get("message"),
        ) or ""

        return _digest(f"{rule_name}|{title[:TITLE_FALLBACK_LENGTH]}")
