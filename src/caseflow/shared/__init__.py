"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Alert Ingestion, Case Management and SLA).

Architecture Pattern: Modular Monolith
- Each module (alerts, cases, sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add correlation or lifecycle logic to the shared kernel.
"""

__version__ = "1.0.0"
