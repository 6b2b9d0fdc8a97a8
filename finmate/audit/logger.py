"""
Audit Logger

DESIGN DECISION: Every reconciliation pass is logged, and so is every soft
failure inside it. A dashboard section that renders as zero or empty is
otherwise indistinguishable from "no data".

The audit logger:
- Is async to not block the reconciliation pass
- Gracefully handles failures (never breaks reconciliation if logging fails)
- Supports correlation IDs to trace all events of one pass
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finmate.models.audit import AuditEvent, AuditEventBuilder
from finmate.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through a stdlib handler at ``level``."""
    logging.basicConfig(format="%(message)s", level=level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finmate.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_reconciliation_started(
        self,
        user_id: str,
        month: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_started(
            user_id=user_id,
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_completed(
        self,
        user_id: str,
        counts: dict[str, int],
        warnings: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_completed(
            user_id=user_id,
            counts=counts,
            warnings=warnings,
            correlation_id=correlation_id,
        ))

    async def log_stale_response_discarded(
        self,
        key: str,
        token: int,
        current: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.stale_response_discarded(
            key=key,
            token=token,
            current=current,
            correlation_id=correlation_id,
        ))

    async def log_not_authenticated(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.not_authenticated(
            correlation_id=correlation_id,
        ))

    async def log_fetch_failed(
        self,
        table: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        primary: bool = False,
    ) -> None:
        """Log a table fetch that degraded (or, if primary, failed) a section."""
        await self.log(AuditEventBuilder.fetch_failed(
            table=table,
            error_message=error_message,
            correlation_id=correlation_id,
            primary=primary,
        ))

    async def log_rate_unavailable(
        self,
        pair: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rate_unavailable(
            pair=pair,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a reconciliation pass and pass it through
    every fetch the pass makes.
    """
    return uuid4()
