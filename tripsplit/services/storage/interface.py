"""
Abstract Ledger Sync Interface

DESIGN DECISION: The sync adapter is the only component allowed to do
network I/O. Defining it as an abstract interface allows us to:
1. Swap the spreadsheet backend without touching the engine
2. Use in-memory storage for testing
3. Keep allocation and settlement logic free of I/O

Reads are awaited. Writes are fire-and-forget: the backend gives no
acknowledgment we can rely on, so nothing above this interface may
treat a completed write call as proof the row was stored.

Records carry member display names, not ids. Row indexes are positions
in the backend and shift when earlier rows are deleted; the next full
reload replaces them.
"""

from abc import ABC, abstractmethod

from tripsplit.engine.errors import ErrorKind
from tripsplit.models.ledger import LedgerInfo, RawTransactionRecord


class LedgerSyncAdapter(ABC):
    """
    Abstract interface for ledger synchronization.

    Any backend (Google Sheets, a web endpoint, memory) must
    implement these methods.
    """

    @abstractmethod
    async def list_transactions(self, ledger_ref: str) -> list[RawTransactionRecord]:
        """
        Read every transaction row of a ledger.

        Args:
            ledger_ref: Reference of the ledger (spreadsheet id or URL)

        Returns:
            Raw records, each with its row index

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def create_transaction(self, ledger_ref: str, record: RawTransactionRecord) -> None:
        """
        Append a transaction row.

        No return value is relied upon; completion is not acknowledgment.
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        ledger_ref: str,
        row_index: int,
        record: RawTransactionRecord,
    ) -> None:
        """
        Overwrite the row at a known position.

        Raises:
            NotFoundError: If there is no row at that position
        """
        pass

    @abstractmethod
    async def delete_transaction(self, ledger_ref: str, row_index: int) -> None:
        """Delete the row at a known position."""
        pass

    @abstractmethod
    async def list_ledgers(self, management_ref: str) -> list[LedgerInfo]:
        """
        List available ledgers.

        Args:
            management_ref: Reference of the management spreadsheet

        Returns:
            Ledger metadata (id, name, endpoint, currency, rate, member names)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class TransportError(StorageError):
    """A read still failed after every retry."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message)
