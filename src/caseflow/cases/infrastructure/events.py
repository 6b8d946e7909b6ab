"""
Case Event Publisher
====================

In-process fan-out of committed case lifecycle events.

Subscribers are async callables taking a CaseEvent. A failing subscriber
is logged and skipped; publishing never fails the operation that
produced the events.
"""

from typing import Awaitable, Callable, List

from caseflow.cases.application.interfaces import ICaseEventPublisher
from caseflow.cases.domain import CaseEvent
from caseflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CaseEventHandler = Callable[[CaseEvent], Awaitable[None]]


class CaseEventPublisher(ICaseEventPublisher):
    def __init__(self):
        self._subscribers: List[CaseEventHandler] = []

    def subscribe(self, handler: CaseEventHandler) -> None:
        self._subscribers.append(handler)

    async def publish(self, events: List[CaseEvent]) -> None:
        for event in events:
            logger.info(
                "Case event",
                extra={
                    "case_id": event.case_id,
                    "case_number": event.case_number,
                    "event_type": event.event_type.value,
                    "actor": event.actor,
                }
            )
            for handler in self._subscribers:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(
                        "Case event subscriber failed",
                        extra={
                            "case_number": event.case_number,
                            "event_type": event.event_type.value,
                            "subscriber": getattr(handler, "__qualname__", repr(handler)),
                            "error": str(e),
                        },
                        exc_info=True
                    )


class NullCaseEventPublisher(ICaseEventPublisher):
    """Publisher used when no subscribers are wired (tests, scripts)."""

    async def publish(self, events: List[CaseEvent]) -> None:
        return None
