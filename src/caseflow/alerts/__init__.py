"""
Alerts Module
=============

Bounded Context for inbound Grafana alerts.

Responsibilities:
- Normalise webhook payloads into alert events
- Resolve stable fingerprints
- Keep the append-only alert history and answer the replay question
"""
