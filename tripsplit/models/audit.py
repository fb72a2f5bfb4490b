"""
Audit Models for TripSplit

Every change to the ledger is logged for audit purposes.
This provides:
1. Traceability of edits and deletions
2. Debugging information when a sync goes wrong
3. A record of rejected allocations

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Members
    MEMBER_ADDED = "member_added"
    MEMBER_RENAMED = "member_renamed"
    MEMBER_REMOVED = "member_removed"

    # Allocation
    ALLOCATION_REJECTED = "allocation_rejected"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Sync
    LEDGER_LOADED = "ledger_loaded"
    LEDGER_LOAD_FAILED = "ledger_load_failed"
    LEDGER_SWITCHED = "ledger_switched"
    WRITE_DISPATCH_FAILED = "write_dispatch_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'member', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one confirm-and-sync flow)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction_id, merchant, amount)
        event = AuditEventBuilder.ledger_load_failed(ledger_ref, error_message)
    """

    @staticmethod
    def member_added(member_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            entity_type="member",
            entity_id=member_id,
            description=f"Member added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def member_renamed(member_id: str, old_name: str, new_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_RENAMED,
            severity=AuditSeverity.WARNING,
            entity_type="member",
            entity_id=member_id,
            description=f"Member renamed: {old_name} -> {new_name}",
            details={
                "old_name": old_name,
                "new_name": new_name,
                # Persisted rows reference members by name
                "historical_rows_resolve": False,
            },
            is_user_action=True,
        )

    @staticmethod
    def member_removed(member_id: str, name: str, active_member_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            entity_type="member",
            entity_id=member_id,
            description=f"Member removed: {name}",
            details={"name": name, "active_member_id": active_member_id},
            is_user_action=True,
        )

    @staticmethod
    def allocation_rejected(
        kind: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="allocation",
            correlation_id=correlation_id,
            description=f"Allocation rejected: {kind}",
            error_message=message,
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        transaction_id: str,
        merchant: str,
        home_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {merchant} - {home_amount}",
            details={"merchant": merchant, "home_amount": home_amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        row_index: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction updated",
            details={"row_index": row_index, "synced": row_index is not None},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        row_index: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={"row_index": row_index, "synced": row_index is not None},
            is_user_action=True,
        )

    @staticmethod
    def ledger_loaded(
        ledger_ref: str,
        transaction_count: int,
        member_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            entity_type="ledger",
            entity_id=ledger_ref,
            description=f"Ledger loaded with {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "member_count": member_count,
            },
        )

    @staticmethod
    def ledger_load_failed(
        ledger_ref: str,
        error_message: str,
        attempts: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            entity_id=ledger_ref,
            description=f"Ledger failed to load after {attempts} attempts",
            error_message=error_message,
            details={"attempts": attempts},
        )

    @staticmethod
    def ledger_switched(ledger_id: str, name: str, currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_SWITCHED,
            entity_type="ledger",
            entity_id=ledger_id,
            description=f"Switched to ledger: {name}",
            details={"currency": currency},
            is_user_action=True,
        )

    @staticmethod
    def write_dispatch_failed(
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_DISPATCH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Write dispatch failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
