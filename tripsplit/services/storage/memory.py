"""
In-Memory Ledger Adapter

Keeps ledgers as lists of rows with the same row-index rules as the
spreadsheet: the first data row is 2 and deleting a row shifts the
rows below it. Used by tests and by sessions running offline.
"""

from typing import Iterable, Optional

from tripsplit.models.ledger import LedgerInfo, RawTransactionRecord
from tripsplit.services.storage.interface import LedgerSyncAdapter, NotFoundError

FIRST_DATA_ROW = 2


class InMemoryLedgerAdapter(LedgerSyncAdapter):
    """List-backed implementation of the ledger sync interface."""

    def __init__(self, ledgers: Optional[dict[str, list[LedgerInfo]]] = None):
        self._rows: dict[str, list[list[str]]] = {}
        self._ledgers = ledgers or {}

    def seed(self, ledger_ref: str, records: Iterable[RawTransactionRecord]) -> None:
        """Replace a ledger's rows."""
        self._rows[ledger_ref] = [record.to_row() for record in records]

    def rows(self, ledger_ref: str) -> list[list[str]]:
        return [list(row) for row in self._rows.get(ledger_ref, [])]

    def _position(self, ledger_ref: str, row_index: int) -> int:
        position = row_index - FIRST_DATA_ROW
        if position < 0 or position >= len(self._rows.get(ledger_ref, [])):
            raise NotFoundError(f"No transaction row at {row_index}")
        return position

    async def list_transactions(self, ledger_ref: str) -> list[RawTransactionRecord]:
        return [
            RawTransactionRecord.from_row(row, row_index=idx)
            for idx, row in enumerate(self._rows.get(ledger_ref, []), start=FIRST_DATA_ROW)
        ]

    async def create_transaction(self, ledger_ref: str, record: RawTransactionRecord) -> None:
        self._rows.setdefault(ledger_ref, []).append(record.to_row())

    async def update_transaction(
        self,
        ledger_ref: str,
        row_index: int,
        record: RawTransactionRecord,
    ) -> None:
        position = self._position(ledger_ref, row_index)
        self._rows[ledger_ref][position] = record.to_row()

    async def delete_transaction(self, ledger_ref: str, row_index: int) -> None:
        position = self._position(ledger_ref, row_index)
        del self._rows[ledger_ref][position]

    async def list_ledgers(self, management_ref: str) -> list[LedgerInfo]:
        return list(self._ledgers.get(management_ref, []))
