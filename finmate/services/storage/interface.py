"""
Abstract Storage Interfaces

DESIGN DECISION: The reconciliation engine never talks to a backend directly.
It asks a row source for "the rows of table X for user Y matching these
filters" and gets back loosely-typed dicts. This allows us to:
1. Keep Google Sheets (or swap in a relational backend) without touching the engine
2. Use in-memory rows for testing
3. Keep schema drift (variant column names) a problem of the engine's
   normalizer, not of every backend

The interface is intentionally simple - we're not building a query language.
Equality, range and membership filters cover every fetch the dashboard makes.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from finmate.models.audit import AuditEvent
from finmate.models.records import Record
from finmate.services.storage.filters import RowFilter


class RowSourceInterface(ABC):
    """
    Abstract interface for fetching raw row sets.

    Any backend (Google Sheets, PostgREST, SQL, etc.) must implement this.
    """

    @abstractmethod
    async def fetch_rows(
        self,
        table: str,
        user_id: Optional[str] = None,
        filters: Sequence[RowFilter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Record]:
        """
        Fetch rows from a table or view.

        Args:
            table: Table or view name
            user_id: Restrict to rows whose ``user_id`` equals this value
            filters: Additional filters, all of which must match
            limit: Maximum number of rows to return
            order_by: Column to sort by before applying the limit
            descending: Sort direction for ``order_by``

        Returns:
            Rows in backend order (or ``order_by`` order). Keys are not
            guaranteed to be present; values may be numbers, strings or None.

        Raises:
            FetchFailedError: If the table cannot be read
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class FetchFailedError(StorageError):
    """A table or view could not be read."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"{table}: {message}")


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
