"""
Ledger Engine Errors

Allocation problems are raised at the point where the user would
confirm an action, before anything is mutated or persisted. Problems
with stored data (dangling member ids, unparseable numbers) are never
raised; they are logged and degraded around.
"""

from decimal import Decimal
from enum import Enum


class ErrorKind(str, Enum):
    """Classification shared by raised errors and logged degradations."""
    TRANSPORT = "TransportError"
    EMPTY_ALLOCATION = "EmptyAllocation"
    UNBALANCED_ALLOCATION = "UnbalancedAllocation"
    DANGLING_REFERENCE = "DanglingReference"
    MALFORMED_PERSISTED_RECORD = "MalformedPersistedRecord"


class LedgerError(Exception):
    """Base exception for ledger engine errors."""

    kind: ErrorKind

    def __init__(self, message: str, kind: ErrorKind):
        self.kind = kind
        super().__init__(message)


class EmptyAllocationError(LedgerError):
    """Confirmation attempted with no participant holding a share."""

    def __init__(self, message: str = "No participant holds a positive share"):
        super().__init__(message, ErrorKind.EMPTY_ALLOCATION)


class UnbalancedAllocationError(LedgerError):
    """Confirmation attempted while the unallocated remainder exceeds tolerance."""

    def __init__(self, remainder: Decimal, tolerance: Decimal, currency: str):
        self.remainder = remainder
        self.tolerance = tolerance
        self.currency = currency
        super().__init__(
            f"Unallocated remainder {remainder} {currency} exceeds tolerance {tolerance}",
            ErrorKind.UNBALANCED_ALLOCATION,
        )


class MemberError(Exception):
    """A roster change that would break the member rules."""
    pass
