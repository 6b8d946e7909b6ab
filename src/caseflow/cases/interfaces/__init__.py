"""
Case Interfaces Layer
=====================

FastAPI router for the case API.
"""

from caseflow.cases.interfaces.controllers import router as cases_router

__all__ = ["cases_router"]
