"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Traceability of who changed what
2. Debugging capability for sync problems
3. A visible record of rejected allocations

The audit logger:
- Is async so it can sit inside the session flows
- Never raises (a logging failure must not break a ledger action)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from tripsplit.models.audit import AuditEvent, AuditEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Writes every event as a structured log line and keeps the most
    recent events in memory for display.
    """

    def __init__(self, history_size: int = 200):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to keep in memory.
        """
        self._logger = structlog.get_logger("tripsplit.audit")
        self._history: list[AuditEvent] = []
        self._history_size = history_size

    @property
    def recent_events(self) -> list[AuditEvent]:
        """Recent events, newest first."""
        return list(reversed(self._history))

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written.
        """
        self._history.append(event)
        del self._history[:-self._history_size]

        log_dict = event.to_log_dict()
        try:
            if event.severity.value == "error":
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True

    async def log_member_added(self, member_id: str, name: str) -> None:
        await self.log(AuditEventBuilder.member_added(member_id, name))

    async def log_member_renamed(self, member_id: str, old_name: str, new_name: str) -> None:
        await self.log(AuditEventBuilder.member_renamed(member_id, old_name, new_name))

    async def log_member_removed(
        self,
        member_id: str,
        name: str,
        active_member_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.member_removed(member_id, name, active_member_id))

    async def log_allocation_rejected(
        self,
        kind: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.allocation_rejected(kind, message, correlation_id))

    async def log_transaction_created(
        self,
        transaction_id: str,
        merchant: str,
        home_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            merchant=merchant,
            home_amount=home_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: str,
        row_index: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id, row_index, correlation_id
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        row_index: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id, row_index, correlation_id
        ))

    async def log_ledger_loaded(
        self,
        ledger_ref: str,
        transaction_count: int,
        member_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_loaded(
            ledger_ref, transaction_count, member_count
        ))

    async def log_ledger_load_failed(
        self,
        ledger_ref: str,
        error_message: str,
        attempts: int,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_load_failed(
            ledger_ref, error_message, attempts
        ))

    async def log_ledger_switched(self, ledger_id: str, name: str, currency: str) -> None:
        await self.log(AuditEventBuilder.ledger_switched(ledger_id, name, currency))

    async def log_write_dispatch_failed(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.write_dispatch_failed(
            operation, error_message, entity_id
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., confirming a draft).
    """
    return uuid4()
