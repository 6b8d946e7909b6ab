"""
Configuration Module
====================

Application settings and domain constants for the case correlation service.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="caseflow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/casetools",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    db_pool_timeout_seconds: float = Field(
        default=5.0,
        description="Seconds to wait for a pooled connection",
        gt=0
    )
    db_command_timeout_seconds: float = Field(
        default=10.0,
        description="Per-statement timeout passed to the driver",
        gt=0
    )

    # ========== Ingestion ==========
    ingest_timeout_seconds: float = Field(
        default=15.0,
        description="Upper bound for processing a single alert end-to-end",
        gt=0
    )
    duplicate_window_minutes: int = Field(
        default=5,
        description="Replay window for FIRING duplicates (webhook retries)",
        ge=0
    )
    resolve_policy: str = Field(
        default="flag",
        description="What a RESOLVED alert does to its case: flag | auto_resolve"
    )
    grafana_webhook_secret: Optional[str] = Field(
        default=None,
        description="Shared secret for X-Grafana-Signature validation"
    )

    # ========== Policy Configuration ==========
    policy_config_path: Path = Field(
        default=Path("casetools.yaml"),
        description="Path to SLA / assignment policy YAML file"
    )
    sla_sweep_interval: int = Field(
        default=60,
        description="Seconds between SLA breach sweeps (0 disables)",
        ge=0
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for case notifications"
    )
    slack_channel: str = Field(
        default="#revenue-assurance-cases",
        description="Slack channel for case notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("resolve_policy")
    @classmethod
    def validate_resolve_policy(cls, v: str) -> str:
        """Ensure resolve policy is a known value."""
        v = v.lower()
        if v not in {ResolvePolicy.FLAG.value, ResolvePolicy.AUTO_RESOLVE.value}:
            raise ValueError("resolve_policy must be 'flag' or 'auto_resolve'")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class Severity(str, Enum):
    """Alert and case severity levels."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AlertStatus(str, Enum):
    """Status reported by the alerting system for a single alert."""
    FIRING = "FIRING"
    RESOLVED = "RESOLVED"


class CaseStatus(str, Enum):
    """Case lifecycle states."""
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_CUSTOMER = "PENDING_CUSTOMER"
    PENDING_VENDOR = "PENDING_VENDOR"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class AssignmentStrategy(str, Enum):
    """How an assignment rule picks assignees."""
    MANUAL = "MANUAL"
    ROUND_ROBIN = "ROUND_ROBIN"
    LOAD_BASED = "LOAD_BASED"
    TEAM_BASED = "TEAM_BASED"


class ActivityType(str, Enum):
    """Audit trail entry types."""
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    STATUS_CHANGE = "STATUS_CHANGE"
    ALERT_ATTACHED = "ALERT_ATTACHED"
    ALERT_RESOLVED = "ALERT_RESOLVED"
    REOPENED = "REOPENED"
    MERGED = "MERGED"
    SLA_BREACHED = "SLA_BREACHED"


class ProcessingState(str, Enum):
    """Outcome of correlating a recorded alert event."""
    RECEIVED = "RECEIVED"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"
    UNCORRELATED = "UNCORRELATED"


class ResolvePolicy(str, Enum):
    """Policy applied when a RESOLVED alert reaches an active case."""
    FLAG = "flag"
    AUTO_RESOLVE = "auto_resolve"


# Actor recorded on transitions driven by the ingestion pipeline
SYSTEM_ACTOR = "system"

# ========== Lists for validation ==========

TERMINAL_STATUSES = frozenset({CaseStatus.CLOSED, CaseStatus.CANCELLED})
SLA_STOPPED_STATUSES = frozenset({CaseStatus.RESOLVED, CaseStatus.CLOSED, CaseStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(s for s in CaseStatus if s not in TERMINAL_STATUSES)

# Global settings instance
settings = get_settings()
