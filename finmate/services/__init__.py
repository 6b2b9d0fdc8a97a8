"""Services package."""

from finmate.services.fx import (
    ExchangeRateService,
    RateCache,
    RateUnavailableError,
)
from finmate.services.identity import (
    IdentityProviderInterface,
    NotAuthenticatedError,
    StaticIdentityProvider,
)
from finmate.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    FetchFailedError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRowSource,
    InMemoryRowSource,
    RowFilter,
    RowSourceInterface,
    StorageError,
)

__all__ = [
    # FX
    "ExchangeRateService",
    "RateCache",
    "RateUnavailableError",
    # Identity
    "IdentityProviderInterface",
    "NotAuthenticatedError",
    "StaticIdentityProvider",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "FetchFailedError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRowSource",
    "InMemoryRowSource",
    "RowFilter",
    "RowSourceInterface",
    "StorageError",
]
