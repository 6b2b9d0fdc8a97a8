"""
Audit Models for FinMate

Every reconciliation pass emits audit events so a zeroed or empty dashboard
section can be traced back to the fetch or rate lookup that caused it.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Reconciliation pass
    RECONCILIATION_STARTED = "reconciliation_started"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    STALE_RESPONSE_DISCARDED = "stale_response_discarded"

    # Identity
    NOT_AUTHENTICATED = "not_authenticated"

    # Collaborators
    FETCH_FAILED = "fetch_failed"
    RATE_UNAVAILABLE = "rate_unavailable"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # What is this about? (e.g. 'table', 'user', 'fx')
    entity_type: Optional[str] = None
    entity_id: Optional[str] = Field(
        default=None,
        description="Table name, user id or currency pair"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties together all events of one reconciliation pass"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.fetch_failed("goals", "timeout", correlation_id)
    """

    @staticmethod
    def reconciliation_started(
        user_id: str,
        month: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_STARTED,
            severity=AuditSeverity.DEBUG,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Reconciliation started for {month}",
            details={"month": month},
        )

    @staticmethod
    def reconciliation_completed(
        user_id: str,
        counts: dict[str, int],
        warnings: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_COMPLETED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Reconciliation completed with {warnings} warnings",
            details={"counts": counts, "warnings": warnings},
        )

    @staticmethod
    def stale_response_discarded(
        key: str,
        token: int,
        current: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_RESPONSE_DISCARDED,
            severity=AuditSeverity.DEBUG,
            entity_type="fetch",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Discarded stale response for {key} (generation {token} < {current})",
            details={"generation": token, "current_generation": current},
        )

    @staticmethod
    def not_authenticated(
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOT_AUTHENTICATED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            correlation_id=correlation_id,
            description="Reconciliation aborted: no authenticated user",
        )

    @staticmethod
    def fetch_failed(
        table: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        primary: bool = False
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.ERROR if primary else AuditSeverity.WARNING,
            entity_type="table",
            entity_id=table,
            correlation_id=correlation_id,
            description=f"Fetch failed for table {table}",
            error_message=error_message,
            details={"primary": primary},
        )

    @staticmethod
    def rate_unavailable(
        pair: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type="fx",
            entity_id=pair,
            correlation_id=correlation_id,
            description=f"Exchange rate {pair} unavailable; amounts left unconverted",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
