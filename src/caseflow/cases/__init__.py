"""
Cases Module
============

Case correlation, assignment, lifecycle and the alert ingestion pipeline.
"""
