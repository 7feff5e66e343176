"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
Ships an in-memory backend and a Google Sheets backend; both are swappable.
"""

from finledger.services.storage.interface import (
    AuditStorageInterface,
    AuthenticationError,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    RecordRejectedError,
    StorageError,
)
from finledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from finledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "AuthenticationError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "RecordRejectedError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
