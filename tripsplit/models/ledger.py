"""
Core Data Models for TripSplit

These models define the schemas for everything the ledger stores or
exchanges with the spreadsheet backend. They are designed to:
1. Enforce type safety at runtime
2. Keep the persisted string values in one place
3. Be serializable for storage and logging

DESIGN DECISION: Money is Decimal everywhere. Per-member shares are
never rounded inside the models; rounding happens where amounts are
displayed or written out.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def new_local_id() -> str:
    """Short locally generated token for members and transactions."""
    return uuid4().hex[:9]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Category(str, Enum):
    """
    Expense categories.

    The values are the strings persisted in the spreadsheet.
    """
    LODGING = "住宿"
    TRANSPORT = "交通"
    TICKETS = "門票"
    DINING = "用餐"
    MISC = "雜項"
    INSURANCE = "保險"
    PERSONAL = "個人消費"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Category":
        """Map a raw category string to a category, falling back to MISC."""
        try:
            return cls((value or "").strip())
        except ValueError:
            return cls.MISC


class AccountType(str, Enum):
    """Public (shared-cost) or private (single participant) transaction."""
    PUBLIC = "公帳"
    PRIVATE = "私帳"


# Persisted values of the split flag column
SPLIT_FLAG_YES = "是"
SPLIT_FLAG_NO = "否"


# =============================================================================
# MEMBERS AND LEDGERS
# =============================================================================

class Member(BaseModel):
    """
    A ledger member.

    The id is stable; the name is what the spreadsheet stores, so
    renaming a member breaks resolution of older persisted rows.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_local_id,
        min_length=1,
        description="Unique, stable member id"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, also the key used in the persisted format"
    )


class LedgerInfo(BaseModel):
    """Ledger metadata as listed by the management spreadsheet."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    url: str = Field(
        default="",
        description="Sync endpoint / reference used to read and write transactions"
    )
    source_url: Optional[str] = Field(
        default=None,
        description="Link to the original spreadsheet"
    )
    currency: str = Field(default="")
    exchange_rate: Decimal = Field(default=Decimal("1"), ge=0)
    members: list[str] = Field(
        default_factory=list,
        description="Member display names"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _clean_ids(ids: list[str]) -> list[str]:
    """Drop blank ids and duplicates, keeping first-seen order."""
    seen = []
    for member_id in ids:
        member_id = (member_id or "").strip()
        if member_id and member_id not in seen:
            seen.append(member_id)
    return seen


class Transaction(BaseModel):
    """
    A confirmed ledger transaction.

    `split_with` is an ordered set of participant ids. In custom
    allocation mode `custom_splits` (home currency) and
    `custom_original_splits` (origin currency) hold per-member shares;
    in equal mode both are None and shares are computed on demand.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: str = Field(default_factory=new_local_id)
    row_index: Optional[int] = Field(
        default=None,
        description="Position in external storage, absent until first persist"
    )

    # Descriptive fields
    date: str = Field(default="", description="YYYY-MM-DD")
    merchant: str = Field(default="")
    item: str = Field(default="", description="Free text, may span multiple lines")
    category: Category = Field(default=Category.MISC)
    account_type: AccountType = Field(default=AccountType.PUBLIC)

    # Money
    payer_id: str = Field(..., description="Member who fronted the money")
    currency: str = Field(..., min_length=1)
    original_amount: Decimal = Field(default=Decimal("0"))
    home_amount: Decimal = Field(default=Decimal("0"))
    exchange_rate: Decimal = Field(
        default=Decimal("1"),
        description="Global rate when created (informational only)"
    )

    # Allocation
    is_split: bool = Field(default=True)
    split_with: list[str] = Field(default_factory=list)
    custom_splits: Optional[dict[str, Decimal]] = None
    custom_original_splits: Optional[dict[str, Decimal]] = None

    @field_validator('split_with')
    @classmethod
    def clean_split_with(cls, v: list[str]) -> list[str]:
        return _clean_ids(v)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def participants(self) -> list[str]:
        """Effective participants (empty when the amount is not shared)."""
        return self.split_with if self.is_split else []

    @property
    def effective_rate(self) -> Decimal:
        """home_amount / original_amount, or the stored rate when there is no origin amount."""
        if self.original_amount > 0:
            return self.home_amount / self.original_amount
        return self.exchange_rate

    @property
    def is_custom(self) -> bool:
        return self.custom_splits is not None

    def home_share(self, member_id: str) -> Decimal:
        """Unrounded home-currency share of one participant."""
        participants = self.participants
        if member_id not in participants:
            return Decimal("0")
        if self.custom_splits is not None:
            return self.custom_splits.get(member_id, Decimal("0"))
        return self.home_amount / len(participants)

    def origin_share(self, member_id: str) -> Decimal:
        """Unrounded origin-currency share of one participant."""
        participants = self.participants
        if member_id not in participants:
            return Decimal("0")
        if self.custom_original_splits is not None and member_id in self.custom_original_splits:
            return self.custom_original_splits[member_id]
        if self.custom_splits is not None:
            # Proportional to the home-currency share
            if self.home_amount <= 0:
                return Decimal("0")
            home = self.custom_splits.get(member_id, Decimal("0"))
            return home * self.original_amount / self.home_amount
        return self.original_amount / len(participants)


class TransactionDraft(BaseModel):
    """
    A transaction being entered, before its allocation is confirmed.

    Drafts are never persisted. `account_type` is the caller's last
    explicit choice and only survives confirmation when there is no
    participant list to derive the type from.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: str = Field(default="")
    merchant: str = Field(default="")
    item: str = Field(default="")
    category: Category = Field(default=Category.MISC)
    account_type: AccountType = Field(default=AccountType.PUBLIC)
    payer_id: str = Field(default="")
    currency: str = Field(..., min_length=1)
    original_amount: Decimal = Field(default=Decimal("0"), ge=0)
    home_amount: Decimal = Field(default=Decimal("0"), ge=0)
    exchange_rate: Decimal = Field(default=Decimal("1"), gt=0)
    is_split: bool = Field(default=True)
    split_with: list[str] = Field(default_factory=list)
    source: Optional[str] = Field(
        default=None,
        pattern="^(text|image|manual)$",
        description="Where the draft came from"
    )

    @field_validator('split_with')
    @classmethod
    def clean_split_with(cls, v: list[str]) -> list[str]:
        return _clean_ids(v)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


# =============================================================================
# EXTERNAL RECORD SHAPE
# =============================================================================

# Column order of a persisted transaction row
RECORD_COLUMNS = [
    "date",
    "merchant",
    "item",
    "category",
    "accountType",
    "payer",
    "currency",
    "originalAmount",
    "homeAmount",
    "isSplit",
    "splitWith",
    "splits",
    "exchangeRate",
]


class RawTransactionRecord(BaseModel):
    """
    A transaction exactly as the spreadsheet holds it.

    Every field except the row index is kept as raw text; numeric
    parsing happens when the record is mapped to a Transaction.
    """
    model_config = ConfigDict(populate_by_name=True)

    row_index: Optional[int] = Field(default=None, alias="rowIndex")
    date: str = ""
    merchant: str = ""
    item: str = ""
    category: str = ""
    account_type: str = Field(default="", alias="accountType")
    payer: str = Field(default="", description="Payer display name")
    currency: str = ""
    original_amount: str = Field(default="", alias="originalAmount")
    home_amount: str = Field(default="", alias="homeAmount")
    is_split: str = Field(default="", alias="isSplit")
    split_with: str = Field(
        default="",
        alias="splitWith",
        description="Comma-separated participant display names"
    )
    splits: str = Field(default="", description="Encoded per-member allocation")
    exchange_rate: str = Field(default="", alias="exchangeRate")

    @field_validator(
        'date', 'merchant', 'item', 'category', 'account_type', 'payer',
        'currency', 'original_amount', 'home_amount', 'is_split',
        'split_with', 'splits', 'exchange_rate',
        mode='before',
    )
    @classmethod
    def coerce_text(cls, v):
        """Spreadsheet cells arrive as numbers, booleans or None too."""
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    def to_row(self) -> list[str]:
        """Values in RECORD_COLUMNS order."""
        data = self.model_dump(by_alias=True)
        return [data[column] for column in RECORD_COLUMNS]

    @classmethod
    def from_row(cls, row: list, row_index: Optional[int] = None) -> "RawTransactionRecord":
        """Build a record from a positional row; missing trailing cells are blank."""
        values = {
            column: (row[i] if i < len(row) else "")
            for i, column in enumerate(RECORD_COLUMNS)
        }
        return cls(rowIndex=row_index, **values)


# =============================================================================
# SETTLEMENT RESULTS
# =============================================================================

class Transfer(BaseModel):
    """One suggested payment that settles part of the ledger."""

    from_id: str = Field(..., description="Debtor member id")
    to_id: str = Field(..., description="Creditor member id")
    amount: Decimal = Field(..., gt=0, description="Home-currency amount, whole units")
