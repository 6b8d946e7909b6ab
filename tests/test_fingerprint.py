import hashlib
import json

from caseflow.alerts.domain import FingerprintResolver, RuleUidResolver, parse_severity, resolve_category
from caseflow.config import Severity

resolver = FingerprintResolver()


def test_explicit_fingerprint_used_verbatim():
    assert resolver.resolve({"fingerprint": "abc123", "labels": {"a": "b"}}) == "abc123"


def test_blank_fingerprint_falls_back_to_labels():
    by_labels = resolver.resolve({"labels": {"alertname": "X"}})
    assert resolver.resolve({"fingerprint": "  ", "labels": {"alertname": "X"}}) == by_labels


def test_label_hash_ignores_key_order():
    a = resolver.resolve({"labels": {"alertname": "HighCPU", "host": "db-01"}})
    b = resolver.resolve({"labels": {"host": "db-01", "alertname": "HighCPU"}})
    assert a == b
    expected = hashlib.sha256(
        json.dumps([["alertname", "HighCPU"], ["host", "db-01"]], separators=(",", ":")).encode()
    ).hexdigest()
    assert a == expected


def test_volatile_labels_do_not_change_fingerprint():
    base = resolver.resolve({"labels": {"alertname": "HighCPU"}})
    noisy = resolver.resolve({"labels": {"alertname": "HighCPU", "__value__": "97.2", "timestamp": "1735812000"}})
    assert base == noisy


def test_instance_timestamp_suffix_stripped():
    a = resolver.resolve({"labels": {"alertname": "Down", "instance": "db-01:9100@1735812000"}})
    b = resolver.resolve({"labels": {"alertname": "Down", "instance": "db-01:9100@1735812999"}})
    c = resolver.resolve({"labels": {"alertname": "Down", "instance": "db-01:9100"}})
    assert a == b == c


def test_labels_as_json_string():
    as_dict = resolver.resolve({"labels": {"alertname": "X", "env": "prod"}})
    as_text = resolver.resolve({"labels": json.dumps({"env": "prod", "alertname": "X"})})
    assert as_dict == as_text


def test_fallback_uses_rule_name_and_truncated_title():
    title = "t" * 150
    fp = resolver.resolve({"ruleName": "Billing", "title": title})
    assert fp == hashlib.sha256(f"Billing|{'t' * 100}".encode()).hexdigest()
    assert fp == resolver.resolve({"ruleName": "Billing", "title": title + "ignored tail"})


def test_never_empty():
    assert resolver.resolve({})
    assert resolver.resolve(None)
    assert resolver.resolve({"labels": "not json"})


def test_parse_severity_candidates_and_aliases():
    assert parse_severity("critical") == Severity.CRITICAL
    assert parse_severity(None, "P2") == Severity.HIGH
    assert parse_severity("warning") == Severity.MEDIUM
    assert parse_severity("bogus", "") == Severity.MEDIUM
    assert parse_severity("low", "critical") == Severity.LOW


def test_rule_uid_from_labels_and_generator_url():
    assert RuleUidResolver.resolve({"__alert_rule_uid__": "uid-1"}, None) == "uid-1"
    assert RuleUidResolver.resolve({}, "https://g.example.com/alerting/grafana/abc123/view") == "abc123"
    assert RuleUidResolver.resolve({}, "https://g.example.com/alerting/list?ruleUID=xyz") == "xyz"
    assert RuleUidResolver.resolve({}, None) is None


def test_category_resolution():
    assert resolve_category({"category": "billing", "alertname": "X"}) == "billing"
    assert resolve_category({"alertname": "X"}) == "X"
    assert resolve_category({}) == "OTHER"
