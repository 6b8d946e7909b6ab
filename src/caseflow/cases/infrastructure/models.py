"""
Case Infrastructure Models
==========================

SQLAlchemy ORM models for the case module.

``cases.active_fingerprint`` mirrors the primary fingerprint while the case
is non-terminal and is NULL once it is CLOSED or CANCELLED. Its unique
constraint is what serialises concurrent case creation per fingerprint.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseflow.config import CaseStatus
from caseflow.infrastructure.database import Base, BigIntId, ClippedString, JSONType, UTCDateTime

ACTIVE_FINGERPRINT_CONSTRAINT = "uq_cases_active_fingerprint"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaseModel(Base):
    """
    Database model for Case entity.

    Maps to the 'cases' table.
    """
    __tablename__ = "cases"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    case_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    # State
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=CaseStatus.OPEN.value)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(ClippedString(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Correlation
    primary_alert_fingerprint: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    active_fingerprint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fingerprints: Mapped[List["CaseFingerprintModel"]] = relationship(
        back_populates="case",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CaseFingerprintModel.id",
    )

    # Rule reference
    rule_id: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)
    rule_name: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(ClippedString(255), nullable=True)

    # Assignment
    assigned_user_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    assigned_team_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Alert tracking
    alert_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_alert_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolution_candidate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # SLA
    sla_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    sla_breach_notified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("active_fingerprint", name=ACTIVE_FINGERPRINT_CONSTRAINT),
        Index("ix_cases_status", "status"),
    )


class CaseFingerprintModel(Base):
    """Related (non-primary) fingerprints correlated into a case."""
    __tablename__ = "case_fingerprints"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    case_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    fingerprint: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    added_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    case: Mapped[CaseModel] = relationship(back_populates="fingerprints")

    __table_args__ = (
        UniqueConstraint("case_id", "fingerprint", name="uq_case_fingerprints_case_fp"),
    )


class CaseActivityModel(Base):
    """
    Database model for CaseActivity.

    Maps to the 'case_activities' table. Rows are never updated.
    """
    __tablename__ = "case_activities"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    case_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor: Mapped[str] = mapped_column(ClippedString(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    performed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class CaseNumberCounterModel(Base):
    """One row per year; ``last_value`` is the last issued sequence number."""
    __tablename__ = "case_number_counters"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AssignmentPointerModel(Base):
    """Round-robin pointer per assignment rule."""
    __tablename__ = "assignment_pointers"

    rule_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_user_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
