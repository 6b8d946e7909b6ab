"""
Shared API
==========

Middleware and exception handlers used by every router.
"""

from caseflow.shared.api.middleware import (
    CORRELATION_HEADER,
    CorrelationIDMiddleware,
    LoggingMiddleware,
    global_exception_handler,
    register_exception_handlers,
)

__all__ = [
    "CORRELATION_HEADER",
    "CorrelationIDMiddleware",
    "LoggingMiddleware",
    "global_exception_handler",
    "register_exception_handlers",
]
