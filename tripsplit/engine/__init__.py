"""
Split-Ledger Reconciliation Engine

Pure, synchronous computations: allocation of one transaction,
aggregation of many, and the persisted allocation string format.
"""

from tripsplit.engine.allocation import (
    AllocationMode,
    AllocationModel,
    AllocationState,
    ConfirmedAllocation,
    EntryCurrency,
    Share,
    allocate_equal,
    classify,
    classify_transaction,
    state_for_transaction,
)
from tripsplit.engine.codec import (
    SplitCodec,
    SplitEntry,
    decode_participants,
    encode_participants,
)
from tripsplit.engine.errors import (
    EmptyAllocationError,
    ErrorKind,
    LedgerError,
    MemberError,
    UnbalancedAllocationError,
)
from tripsplit.engine.records import (
    merge_roster,
    names_in_records,
    normalize_date,
    record_to_transaction,
    transaction_to_record,
)
from tripsplit.engine.settlement import (
    SettlementAggregator,
    SettlementSummary,
    suggest_transfers,
)

__all__ = [
    # Allocation
    "AllocationMode",
    "AllocationModel",
    "AllocationState",
    "ConfirmedAllocation",
    "EntryCurrency",
    "Share",
    "allocate_equal",
    "classify",
    "classify_transaction",
    "state_for_transaction",
    # Codec
    "SplitCodec",
    "SplitEntry",
    "decode_participants",
    "encode_participants",
    # Errors
    "EmptyAllocationError",
    "ErrorKind",
    "LedgerError",
    "MemberError",
    "UnbalancedAllocationError",
    # Records
    "merge_roster",
    "names_in_records",
    "normalize_date",
    "record_to_transaction",
    "transaction_to_record",
    # Settlement
    "SettlementAggregator",
    "SettlementSummary",
    "suggest_transfers",
]
