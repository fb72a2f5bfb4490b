"""
Record Mapping

Turns Transactions into the raw rows the spreadsheet stores and back.

Loading never fails on bad data: an unparseable number becomes 0 and
an unknown name stays a raw name, so one broken row cannot block the
rest of the ledger from loading.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from tripsplit.engine.allocation import classify_transaction
from tripsplit.engine.codec import SplitCodec, decode_participants, encode_participants
from tripsplit.engine.errors import ErrorKind
from tripsplit.engine.numeric import ZERO, round_home, try_decimal
from tripsplit.engine.roster import display_name, id_for_name
from tripsplit.models.ledger import (
    SPLIT_FLAG_NO,
    SPLIT_FLAG_YES,
    AccountType,
    Category,
    Member,
    RawTransactionRecord,
    Transaction,
    new_local_id,
)

logger = structlog.get_logger(__name__)


def normalize_date(value: str) -> str:
    """
    Reduce a stored date to YYYY-MM-DD.

    ISO timestamps are converted to local time first so a date stored
    as midnight UTC does not move to the previous day.
    """
    value = (value or "").strip()
    if not value:
        return ""
    if "T" in value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value.split("T")[0]
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone()
        return parsed.strftime("%Y-%m-%d")
    return value.split(" ")[0]


def _amount(record: RawTransactionRecord, field: str) -> Decimal:
    raw = getattr(record, field)
    value = try_decimal(raw)
    if value is None:
        if raw.strip():
            logger.warning(
                "record_field_unparseable",
                kind=ErrorKind.MALFORMED_PERSISTED_RECORD.value,
                row_index=record.row_index,
                field=field,
                value=raw,
            )
        return ZERO
    return value


def transaction_to_record(
    transaction: Transaction,
    members: Iterable[Member],
    codec: SplitCodec,
) -> RawTransactionRecord:
    """Build the row written for a transaction (names, not ids)."""
    members = list(members)
    return RawTransactionRecord(
        rowIndex=transaction.row_index,
        date=transaction.date.split("T")[0],
        merchant=transaction.merchant,
        item=transaction.item,
        category=transaction.category.value,
        accountType=transaction.account_type.value,
        payer=display_name(members, transaction.payer_id),
        currency=transaction.currency,
        originalAmount=str(transaction.original_amount),
        homeAmount=str(transaction.home_amount),
        isSplit=SPLIT_FLAG_YES if transaction.is_split else SPLIT_FLAG_NO,
        splitWith=encode_participants(transaction.split_with, members),
        splits=codec.encode(transaction, members),
        exchangeRate=str(transaction.exchange_rate),
    )


def names_in_records(records: Iterable[RawTransactionRecord]) -> list[str]:
    """Every payer and participant name mentioned, in first-seen order."""
    names = []
    for record in records:
        for name in [record.payer.strip(), *decode_participants(record.split_with)]:
            if name and name not in names:
                names.append(name)
    return names


def merge_roster(members: Iterable[Member], names: Iterable[str]) -> list[Member]:
    """Existing members plus a new member for every name not yet on the roster."""
    roster = list(members)
    for name in names:
        if id_for_name(roster, name) is None:
            roster.append(Member(id=new_local_id(), name=name))
    return roster


def _restore_splits(
    transaction: Transaction,
    record: RawTransactionRecord,
    members: list[Member],
    codec: SplitCodec,
) -> Transaction:
    """Custom splits survive a reload only when they differ from an even division."""
    entries = [
        e for e in codec.decode_entries(record.splits, members)
        if e.member_id in transaction.participants
    ]
    if not entries:
        return transaction

    equal_share = round_home(transaction.home_amount / len(transaction.participants))
    custom = {e.member_id: e.home for e in entries}
    is_equal = (
        set(custom) == set(transaction.participants)
        and all(share == equal_share for share in custom.values())
    )
    if is_equal:
        return transaction

    original = None
    if all(e.origin is not None for e in entries):
        original = {e.member_id: e.origin for e in entries}
    return transaction.model_copy(update={
        "custom_splits": custom,
        "custom_original_splits": original,
    })


def record_to_transaction(
    record: RawTransactionRecord,
    members: Iterable[Member],
    codec: SplitCodec,
    default_rate: Decimal,
    default_currency: Optional[str] = None,
) -> Transaction:
    """
    Build a Transaction from a stored row.

    Names resolve to member ids; the payer falls back to the first
    member when unknown, unresolved participants are dropped.
    """
    members = list(members)
    original_amount = _amount(record, "original_amount")
    home_amount = _amount(record, "home_amount")

    payer_id = id_for_name(members, record.payer.strip())
    if payer_id is None:
        payer_id = members[0].id if members else record.payer.strip()
    split_with = [
        member_id
        for member_id in (
            id_for_name(members, name) for name in decode_participants(record.split_with)
        )
        if member_id
    ]

    if original_amount > 0:
        rate = home_amount / original_amount
    else:
        rate = try_decimal(record.exchange_rate) or default_rate

    try:
        account_type = AccountType(record.account_type.strip())
    except ValueError:
        account_type = AccountType.PUBLIC

    currency = record.currency.strip() or default_currency or codec.home_currency
    transaction = Transaction(
        id=f"sheet-{record.row_index}" if record.row_index is not None else new_local_id(),
        row_index=record.row_index,
        date=normalize_date(record.date),
        merchant=record.merchant,
        item=record.item,
        category=Category.parse(record.category),
        account_type=account_type,
        payer_id=payer_id,
        currency=currency,
        original_amount=original_amount,
        home_amount=home_amount,
        exchange_rate=rate,
        is_split=record.is_split.strip() == SPLIT_FLAG_YES,
        split_with=split_with,
    )
    if transaction.participants:
        transaction = _restore_splits(transaction, record, members, codec)
        transaction = transaction.model_copy(
            update={"account_type": classify_transaction(transaction)}
        )
    return transaction
