"""
Alert Infrastructure Models
===========================

SQLAlchemy ORM model for the append-only alert history table.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from caseflow.config import ProcessingState
from caseflow.infrastructure.database import Base, BigIntId, ClippedString, JSONType, UTCDateTime


class AlertHistoryModel(Base):
    """
    Database model for AlertHistoryRecord.

    Maps to the 'alert_history' table. Payload columns are written once;
    only processing_state/decision/reason/case_id change afterwards.
    """
    __tablename__ = "alert_history"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)

    # Event identity
    fingerprint: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)

    # Rule reference
    rule_id: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)
    rule_name: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)

    # Content
    title: Mapped[str] = mapped_column(ClippedString(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    labels: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    annotations: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    generator_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receiver: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)
    raw_payload: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timestamps
    starts_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    received_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    # Processing outcome
    processing_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProcessingState.RECEIVED.value
    )
    decision: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    case_id: Mapped[Optional[int]] = mapped_column(BigIntId, nullable=True)

    __table_args__ = (
        Index("ix_alert_history_fingerprint_received", "fingerprint", "received_at"),
        Index("ix_alert_history_case_id", "case_id"),
    )
