"""Services package."""

from tripsplit.services.storage import (
    ConnectionError,
    DispatchReceipt,
    GoogleSheetsClient,
    GoogleSheetsLedgerAdapter,
    InMemoryLedgerAdapter,
    LedgerSyncAdapter,
    NotFoundError,
    StorageError,
    TransportError,
    WriteDispatcher,
    WriteOperation,
)

__all__ = [
    # Storage services
    "ConnectionError",
    "DispatchReceipt",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerAdapter",
    "InMemoryLedgerAdapter",
    "LedgerSyncAdapter",
    "NotFoundError",
    "StorageError",
    "TransportError",
    "WriteDispatcher",
    "WriteOperation",
]
