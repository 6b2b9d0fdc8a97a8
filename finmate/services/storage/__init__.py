"""
Storage Services Package

Provides the abstract row-source interface and concrete implementations.
Google Sheets is the live backend; the in-memory source backs tests and
fixture runs.
"""

from finmate.services.storage.filters import RowFilter, apply_filters
from finmate.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    FetchFailedError,
    RowSourceInterface,
    StorageError,
)
from finmate.services.storage.memory import InMemoryRowSource
from finmate.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRowSource,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RowSourceInterface",
    # Filters
    "RowFilter",
    "apply_filters",
    # Exceptions
    "ConnectionError",
    "FetchFailedError",
    "StorageError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRowSource",
    "InMemoryRowSource",
]
