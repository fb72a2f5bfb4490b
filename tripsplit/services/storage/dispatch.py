"""
Write Dispatch

Writes to the ledger backend are issued as background tasks and never
awaited for success. A DispatchReceipt records that a write was handed
to the transport; it deliberately has no notion of the backend having
stored anything.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger(__name__)


class WriteOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DispatchReceipt(BaseModel):
    """Proof of dispatch, not of durability."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    operation: WriteOperation
    ledger_ref: str
    transaction_id: str
    row_index: Optional[int] = None
    dispatched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    task: Optional[Any] = Field(default=None, exclude=True, repr=False)


FailureHandler = Callable[[DispatchReceipt, BaseException], Awaitable[None]]


class WriteDispatcher:
    """
    Runs write coroutines in the background.

    A failing write is reported once through `on_failure` and then
    forgotten; local state is not rolled back.
    """

    def __init__(self, on_failure: Optional[FailureHandler] = None):
        self._on_failure = on_failure
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(
        self,
        operation: WriteOperation,
        ledger_ref: str,
        transaction_id: str,
        write: Awaitable[None],
        row_index: Optional[int] = None,
    ) -> DispatchReceipt:
        """Schedule a write on the running loop and return immediately."""
        receipt = DispatchReceipt(
            operation=operation,
            ledger_ref=ledger_ref,
            transaction_id=transaction_id,
            row_index=row_index,
        )
        task = asyncio.ensure_future(self._run(receipt, write))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        receipt.task = task
        return receipt

    async def _run(self, receipt: DispatchReceipt, write: Awaitable[None]) -> None:
        try:
            await write
        except Exception as e:
            logger.error(
                "write_dispatch_failed",
                operation=receipt.operation.value,
                transaction_id=receipt.transaction_id,
                row_index=receipt.row_index,
                error=str(e),
            )
            if self._on_failure is not None:
                await self._on_failure(receipt, e)

    async def drain(self) -> None:
        """Wait for every dispatched write to finish (used on shutdown and in tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
