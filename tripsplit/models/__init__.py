"""
Data Models Package

This package contains all Pydantic models used in TripSplit.
All data flowing through the ledger must conform to these schemas.
"""

from tripsplit.models.ledger import (
    RECORD_COLUMNS,
    SPLIT_FLAG_NO,
    SPLIT_FLAG_YES,
    AccountType,
    Category,
    LedgerInfo,
    Member,
    RawTransactionRecord,
    Transaction,
    TransactionDraft,
    Transfer,
    new_local_id,
)
from tripsplit.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "RECORD_COLUMNS",
    "SPLIT_FLAG_NO",
    "SPLIT_FLAG_YES",
    "AccountType",
    "Category",
    "LedgerInfo",
    "Member",
    "RawTransactionRecord",
    "Transaction",
    "TransactionDraft",
    "Transfer",
    "new_local_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
