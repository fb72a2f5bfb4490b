"""
Storage Services Package

Provides the abstract ledger sync interface and its implementations.
Google Sheets is the production backend; the in-memory adapter serves
tests and offline use.
"""

from tripsplit.services.storage.interface import (
    ConnectionError,
    LedgerSyncAdapter,
    NotFoundError,
    StorageError,
    TransportError,
)
from tripsplit.services.storage.dispatch import (
    DispatchReceipt,
    WriteDispatcher,
    WriteOperation,
)
from tripsplit.services.storage.memory import InMemoryLedgerAdapter
from tripsplit.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerAdapter,
)

__all__ = [
    # Interfaces
    "LedgerSyncAdapter",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    "TransportError",
    # Dispatch
    "DispatchReceipt",
    "WriteDispatcher",
    "WriteOperation",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsLedgerAdapter",
    "InMemoryLedgerAdapter",
]
