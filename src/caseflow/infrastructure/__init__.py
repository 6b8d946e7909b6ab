"""
Infrastructure Package
======================

Technical building blocks shared by every bounded context (database engine
and session management).
"""
