"""
Ledger Session Orchestrator

This module ties the engine to the sync adapter and defines the
end-to-end flows:
1. Entry (draft -> allocation -> confirm -> dispatch create)
2. Edit and delete (re-validate -> replace/remove -> dispatch write)
3. Reload (fetch with retries -> decode -> replace local state)

DESIGN DECISION: The session is the single logical writer.
- No transaction is committed before its allocation is confirmed
- Local state changes only after a write was dispatched
- Writes are never awaited for durability; a reload is the only
  way to see what the backend actually holds
- A reload replaces local transactions wholesale (last reload wins)
"""

from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed

from tripsplit.audit import AuditLogger, create_correlation_id
from tripsplit.config import LedgerSettings, SyncSettings, get_settings
from tripsplit.engine import (
    AllocationModel,
    AllocationState,
    ConfirmedAllocation,
    LedgerError,
    MemberError,
    SettlementAggregator,
    SettlementSummary,
    SplitCodec,
    merge_roster,
    names_in_records,
    record_to_transaction,
    state_for_transaction,
    suggest_transfers,
    transaction_to_record,
)
from tripsplit.engine.allocation import AllocationMode
from tripsplit.engine.numeric import ZERO, round_home, to_decimal
from tripsplit.engine.roster import find_member, id_for_name
from tripsplit.models.ledger import (
    AccountType,
    Category,
    LedgerInfo,
    Member,
    Transaction,
    TransactionDraft,
    Transfer,
)
from tripsplit.services.storage import (
    DispatchReceipt,
    InMemoryLedgerAdapter,
    LedgerSyncAdapter,
    NotFoundError,
    TransportError,
    WriteDispatcher,
    WriteOperation,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_MERCHANT = "未知店家"
DEFAULT_ITEM = "未命名項目"


class LedgerSession:
    """
    Holds one ledger's members and transactions and runs every flow
    that changes them.
    """

    def __init__(
        self,
        adapter: Optional[LedgerSyncAdapter] = None,
        ledger_ref: str = "",
        members: Optional[list[Member]] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        sync_settings: Optional[SyncSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        ledger_settings = ledger_settings or get_settings().ledger
        self._sync_settings = sync_settings or get_settings().sync

        self._adapter = adapter
        self._ledger_ref = ledger_ref
        self._active_ledger: Optional[LedgerInfo] = None
        self._home_currency = ledger_settings.home_currency
        self._default_currency = ledger_settings.default_currency
        self._exchange_rate = ledger_settings.exchange_rate

        self._members: list[Member] = list(members or [])
        self._active_member_id = self._members[0].id if self._members else ""
        self._transactions: list[Transaction] = []
        self._sync_errors: list[str] = []

        self._allocation = AllocationModel(ledger_settings.balance_tolerance)
        self._codec = SplitCodec(self._home_currency)
        self._aggregator = SettlementAggregator()
        self._audit = audit_logger or AuditLogger()
        self._dispatcher = WriteDispatcher(on_failure=self._on_write_failed)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def members(self) -> list[Member]:
        return list(self._members)

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    @property
    def active_member_id(self) -> str:
        return self._active_member_id

    @property
    def active_ledger(self) -> Optional[LedgerInfo]:
        return self._active_ledger

    @property
    def ledger_ref(self) -> str:
        return self._ledger_ref

    @property
    def home_currency(self) -> str:
        return self._home_currency

    @property
    def default_currency(self) -> str:
        return self._default_currency

    @property
    def exchange_rate(self) -> Decimal:
        return self._exchange_rate

    @property
    def allocation_model(self) -> AllocationModel:
        return self._allocation

    @property
    def codec(self) -> SplitCodec:
        return self._codec

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    @property
    def sync_errors(self) -> list[str]:
        """One message per failed write, oldest first."""
        return list(self._sync_errors)

    def set_exchange_rate(self, rate: Decimal) -> None:
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValueError("Exchange rate must be positive")
        self._exchange_rate = rate

    def get_transaction(self, transaction_id: str) -> Transaction:
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        raise NotFoundError(f"Transaction not found: {transaction_id}")

    # =========================================================================
    # MEMBERS
    # =========================================================================

    async def add_member(self, name: str) -> Member:
        """Add a member; names must be unique because rows store names."""
        name = name.strip()
        if not name:
            raise MemberError("Member name cannot be empty")
        if id_for_name(self._members, name) is not None:
            raise MemberError(f"A member named {name!r} already exists")

        member = Member(name=name)
        self._members.append(member)
        if not self._active_member_id:
            self._active_member_id = member.id
        await self._audit.log_member_added(member.id, member.name)
        return member

    async def rename_member(self, member_id: str, new_name: str) -> Member:
        """
        Rename a member.

        Rows already persisted keep the old name and will no longer
        resolve to this member on the next reload.
        """
        member = find_member(self._members, member_id)
        if member is None:
            raise MemberError(f"Member not found: {member_id}")
        new_name = new_name.strip()
        if not new_name:
            raise MemberError("Member name cannot be empty")
        existing = id_for_name(self._members, new_name)
        if existing is not None and existing != member_id:
            raise MemberError(f"A member named {new_name!r} already exists")

        renamed = member.model_copy(update={"name": new_name})
        self._members = [renamed if m.id == member_id else m for m in self._members]
        await self._audit.log_member_renamed(member_id, member.name, new_name)
        return renamed

    async def remove_member(self, member_id: str) -> None:
        """
        Remove a member, keeping at least one on the roster.

        Removing the active member makes the first remaining member active.
        """
        member = find_member(self._members, member_id)
        if member is None:
            raise MemberError(f"Member not found: {member_id}")
        if len(self._members) <= 1:
            raise MemberError("The last member cannot be removed")

        self._members = [m for m in self._members if m.id != member_id]
        if self._active_member_id == member_id:
            self._active_member_id = self._members[0].id
        await self._audit.log_member_removed(member_id, member.name, self._active_member_id)

    def set_active_member(self, member_id: str) -> None:
        if find_member(self._members, member_id) is None:
            raise MemberError(f"Member not found: {member_id}")
        self._active_member_id = member_id

    # =========================================================================
    # ENTRY FLOW
    # =========================================================================

    def draft_from_input(self, data: dict[str, Any], source: str = "text") -> TransactionDraft:
        """
        Normalize extracted expense data into a draft.

        `data` uses the extraction keys: merchant, item, amount,
        currency, category, date. Everyone participates and the
        active member pays.
        """
        currency = str(data.get("currency") or self._default_currency).strip().upper()
        amount = max(to_decimal(data.get("amount")), ZERO)
        if currency == self._home_currency:
            home_amount = amount
        else:
            home_amount = round_home(amount * self._exchange_rate)

        raw_date = str(data.get("date") or date.today().isoformat())
        payer_id = self._active_member_id or (self._members[0].id if self._members else "")

        return TransactionDraft(
            source=source,
            merchant=str(data.get("merchant") or DEFAULT_MERCHANT),
            item=str(data.get("item") or DEFAULT_ITEM),
            original_amount=amount,
            currency=currency,
            category=Category.parse(data.get("category")),
            date=raw_date.split("T")[0],
            home_amount=home_amount,
            payer_id=payer_id,
            is_split=True,
            split_with=[m.id for m in self._members],
            account_type=AccountType.PUBLIC,
            exchange_rate=self._exchange_rate,
        )

    def draft_allocation(self, draft: TransactionDraft) -> AllocationState:
        """Initial (equal) allocation of a draft."""
        if draft.is_split:
            participants = draft.split_with
        else:
            participants = [draft.payer_id] if draft.payer_id else []
        fallback = Decimal("1") if draft.currency == self._home_currency else draft.exchange_rate
        return AllocationState(
            currency=draft.currency,
            home_currency=self._home_currency,
            original_total=draft.original_amount,
            home_total=draft.home_amount,
            participant_ids=participants,
            fallback_rate=fallback,
            explicit_type=draft.account_type,
        )

    async def _confirm_allocation(self, state: AllocationState) -> ConfirmedAllocation:
        try:
            return self._allocation.confirm(state)
        except LedgerError as e:
            await self._audit.log_allocation_rejected(e.kind.value, str(e))
            raise

    async def confirm_transaction(
        self,
        draft: TransactionDraft,
        allocation: Optional[AllocationState] = None,
    ) -> tuple[Transaction, Optional[DispatchReceipt]]:
        """
        Confirm a draft and commit it to the ledger.

        The allocation's totals are authoritative over the draft's
        (they may have been corrected while allocating).

        Raises:
            EmptyAllocationError, UnbalancedAllocationError: Nothing is committed
            MemberError: The draft has no payer
        """
        correlation_id = create_correlation_id()
        payer_id = draft.payer_id or self._active_member_id
        if not payer_id:
            raise MemberError("A payer is required")
        draft = draft.model_copy(update={"payer_id": payer_id})
        state = allocation or self.draft_allocation(draft)

        category = draft.category
        if draft.is_split:
            confirmed = await self._confirm_allocation(state)
        else:
            confirmed = ConfirmedAllocation(
                mode=AllocationMode.EQUAL,
                participant_ids=[payer_id],
                account_type=AccountType.PRIVATE,
            )
            if category == Category.MISC:
                category = Category.PERSONAL

        transaction = Transaction(
            date=(draft.date or date.today().isoformat()).split("T")[0],
            merchant=draft.merchant or DEFAULT_MERCHANT,
            item=draft.item or DEFAULT_ITEM,
            category=category,
            account_type=confirmed.account_type,
            payer_id=payer_id,
            currency=draft.currency,
            original_amount=state.original_total,
            home_amount=state.home_total,
            exchange_rate=draft.exchange_rate,
            is_split=draft.is_split,
            split_with=confirmed.participant_ids,
            custom_splits=confirmed.custom_splits,
            custom_original_splits=confirmed.custom_original_splits,
        )

        receipt = None
        if self._can_sync():
            record = transaction_to_record(transaction, self._members, self._codec)
            receipt = self._dispatcher.dispatch(
                WriteOperation.CREATE,
                self._ledger_ref,
                transaction.id,
                self._adapter.create_transaction(self._ledger_ref, record),
            )

        self._transactions.insert(0, transaction)
        await self._audit.log_transaction_created(
            transaction_id=transaction.id,
            merchant=transaction.merchant,
            home_amount=str(transaction.home_amount),
            correlation_id=correlation_id,
        )
        return transaction, receipt

    # =========================================================================
    # EDIT / DELETE FLOWS
    # =========================================================================

    async def edit_transaction(
        self,
        transaction: Transaction,
        allocation: Optional[AllocationState] = None,
    ) -> tuple[Transaction, Optional[DispatchReceipt]]:
        """
        Replace a transaction after re-running the allocation checks.

        With an `allocation`, its participants, shares and totals are
        applied to the edited transaction. The update is only sent to
        the backend once the row index is known.
        """
        self.get_transaction(transaction.id)
        correlation_id = create_correlation_id()

        if allocation is not None:
            confirmed = await self._confirm_allocation(allocation)
            transaction = transaction.model_copy(update={
                "original_amount": allocation.original_total,
                "home_amount": allocation.home_total,
                "split_with": confirmed.participant_ids,
                "custom_splits": confirmed.custom_splits,
                "custom_original_splits": confirmed.custom_original_splits,
                "account_type": confirmed.account_type,
            })
        elif transaction.is_split:
            # Home shares follow the edited totals
            confirmed = await self._confirm_allocation(
                state_for_transaction(transaction, self._home_currency)
            )
            transaction = transaction.model_copy(update={
                "split_with": confirmed.participant_ids,
                "custom_splits": confirmed.custom_splits,
                "custom_original_splits": confirmed.custom_original_splits,
                "account_type": confirmed.account_type,
            })
        # Re-run field validation on the edited copy
        transaction = Transaction.model_validate(transaction.model_dump())

        receipt = None
        if self._can_sync() and transaction.row_index is not None:
            record = transaction_to_record(transaction, self._members, self._codec)
            receipt = self._dispatcher.dispatch(
                WriteOperation.UPDATE,
                self._ledger_ref,
                transaction.id,
                self._adapter.update_transaction(self._ledger_ref, transaction.row_index, record),
                row_index=transaction.row_index,
            )

        self._transactions = [
            transaction if t.id == transaction.id else t for t in self._transactions
        ]
        await self._audit.log_transaction_updated(
            transaction.id, transaction.row_index, correlation_id
        )
        return transaction, receipt

    async def delete_transaction(self, transaction_id: str) -> Optional[DispatchReceipt]:
        """Remove a transaction locally and dispatch a delete keyed by row index."""
        transaction = self.get_transaction(transaction_id)

        receipt = None
        if self._can_sync() and transaction.row_index is not None:
            receipt = self._dispatcher.dispatch(
                WriteOperation.DELETE,
                self._ledger_ref,
                transaction.id,
                self._adapter.delete_transaction(self._ledger_ref, transaction.row_index),
                row_index=transaction.row_index,
            )

        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        await self._audit.log_transaction_deleted(transaction.id, transaction.row_index)
        return receipt

    # =========================================================================
    # SYNC FLOWS
    # =========================================================================

    def _can_sync(self) -> bool:
        return self._adapter is not None and bool(self._ledger_ref)

    async def _read_with_retry(
        self,
        read: Callable[[], Awaitable[T]],
        ref: str,
    ) -> T:
        """Await a read, retrying at a fixed interval, then raise TransportError."""
        attempts = self._sync_settings.read_attempts
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_fixed(self._sync_settings.read_retry_wait_seconds),
                reraise=True,
            ):
                with attempt:
                    result = await read()
        except Exception as e:
            await self._audit.log_ledger_load_failed(ref, str(e), attempts)
            raise TransportError(f"Ledger failed to load: {e}", attempts=attempts) from e
        return result

    async def refresh(self) -> list[Transaction]:
        """
        Reload the ledger from the backend.

        The remote snapshot replaces every local transaction, including
        unsynced local edits. Names not yet on the roster become new
        members. On failure local state is left unchanged.

        Raises:
            TransportError: The read failed after every retry
        """
        if not self._can_sync():
            return self.transactions

        ledger_ref = self._ledger_ref
        records = await self._read_with_retry(
            lambda: self._adapter.list_transactions(ledger_ref),
            ledger_ref,
        )

        members = merge_roster(self._members, names_in_records(records))
        transactions = [
            record_to_transaction(
                record,
                members,
                self._codec,
                default_rate=self._exchange_rate,
                default_currency=self._default_currency,
            )
            for record in records
        ]

        self._members = members
        self._transactions = transactions
        if not self._active_member_id and members:
            self._active_member_id = members[0].id
        await self._audit.log_ledger_loaded(ledger_ref, len(transactions), len(members))
        return self.transactions

    async def load_ledgers(self, management_ref: str) -> list[LedgerInfo]:
        if self._adapter is None:
            return []
        return await self._read_with_retry(
            lambda: self._adapter.list_ledgers(management_ref),
            management_ref,
        )

    async def switch_ledger(self, ledger: LedgerInfo, refresh: bool = True) -> list[Transaction]:
        """
        Make another ledger active.

        The ledger's currency, rate and member names replace the current
        ones; members keep their ids when their names match.
        """
        self._active_ledger = ledger
        self._ledger_ref = ledger.url or ledger.id
        if ledger.currency:
            self._default_currency = ledger.currency
        if ledger.exchange_rate > 0:
            self._exchange_rate = ledger.exchange_rate
        if ledger.members:
            roster = []
            for name in ledger.members:
                member_id = id_for_name(self._members, name)
                roster.append(
                    find_member(self._members, member_id) if member_id else Member(name=name)
                )
            self._members = roster
        if find_member(self._members, self._active_member_id) is None:
            self._active_member_id = self._members[0].id if self._members else ""
        self._transactions = []
        await self._audit.log_ledger_switched(ledger.id, ledger.name, self._default_currency)

        if refresh:
            return await self.refresh()
        return self.transactions

    async def _on_write_failed(self, receipt: DispatchReceipt, error: BaseException) -> None:
        message = f"{receipt.operation.value} failed for {receipt.transaction_id}: {error}"
        self._sync_errors.append(message)
        await self._audit.log_write_dispatch_failed(
            receipt.operation.value, str(error), receipt.transaction_id
        )

    async def drain(self) -> None:
        """Wait for dispatched writes to finish."""
        await self._dispatcher.drain()

    # =========================================================================
    # VIEWS
    # =========================================================================

    def filter_transactions(
        self,
        category: Optional[Category] = None,
        member_id: Optional[str] = None,
        query: str = "",
    ) -> list[Transaction]:
        """
        Transactions matching every given filter, newest date first.

        A member matches as payer or as a participant of a split.
        """
        query = query.strip().lower()
        matches = []
        for t in self._transactions:
            if category is not None and t.category != category:
                continue
            if member_id is not None and member_id != t.payer_id and member_id not in t.participants:
                continue
            if query and query not in t.item.lower() and query not in t.merchant.lower():
                continue
            matches.append(t)
        return sorted(matches, key=lambda t: t.date, reverse=True)

    def summary(self) -> SettlementSummary:
        return self._aggregator.aggregate(self._transactions, self._members)

    def transfers(self) -> list[Transfer]:
        return suggest_transfers(self.summary().balances)


def create_session(use_storage: bool = True) -> LedgerSession:
    """
    Factory function to create a ledger session.

    Args:
        use_storage: Whether to connect the Google Sheets backend.
                     Falls back to in-memory storage when it is not
                     configured.
    """
    adapter: LedgerSyncAdapter
    if use_storage:
        try:
            from tripsplit.services.storage import GoogleSheetsLedgerAdapter
            adapter = GoogleSheetsLedgerAdapter()
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            adapter = InMemoryLedgerAdapter()
    else:
        adapter = InMemoryLedgerAdapter()

    return LedgerSession(adapter=adapter)
