"""
Infrastructure Layer
=====================

Low-level technical concerns shared by all bounded contexts:
- Structured logging setup
- Outbound HTTP clients (Slack, Grafana OTLP)
"""
