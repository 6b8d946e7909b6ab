"""
SLA Module
==========

Bounded Context for case service level agreements.

Responsibilities:
- Compute case deadlines from severity and the configured minutes table
- Derive the breached flag on read
- Sweep active cases and emit one SLA_BREACHED event per breached case
- Expose the breached-case listing
"""

__version__ = "1.0.0"
