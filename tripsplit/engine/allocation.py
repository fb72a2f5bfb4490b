"""
Allocation Model

Splits one transaction's total across its participants in two
currencies at once and decides whether the result is balanced enough
to confirm.

DESIGN DECISION: An AllocationState stores origin-currency shares plus
the two totals. The effective rate (home total / origin total) and
every home-currency share are derived when read, so the two currencies
cannot drift apart. Every operation returns a new state built through
`_reconcile`, the single place where changes are validated.

The public/private classification is a property of the state, never a
field someone can set out of step with the shares.
"""

from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tripsplit.config import get_settings
from tripsplit.engine.errors import EmptyAllocationError, UnbalancedAllocationError
from tripsplit.engine.numeric import ZERO, round_home, safe_divide, within_tolerance
from tripsplit.models.ledger import AccountType, Transaction


class AllocationMode(str, Enum):
    """How the total is divided."""
    EQUAL = "equal"    # even division, computed on demand
    CUSTOM = "custom"  # explicit per-member shares


class EntryCurrency(str, Enum):
    """Which currency the user is currently typing shares in."""
    ORIGIN = "origin"
    HOME = "home"


class Share(NamedTuple):
    home: Decimal
    origin: Decimal


class AllocationState(BaseModel):
    """
    Allocation of one transaction, as it is being edited.

    Only `origin_shares` is stored per member; home-currency shares
    are `round(origin_share * effective_rate)`.
    """
    model_config = ConfigDict(frozen=True)

    currency: str = Field(..., min_length=1, description="Origin currency code")
    home_currency: str = Field(..., min_length=1)
    original_total: Decimal = Field(..., ge=0)
    home_total: Decimal = Field(..., ge=0)
    participant_ids: list[str] = Field(default_factory=list)
    mode: AllocationMode = Field(default=AllocationMode.EQUAL)
    origin_shares: dict[str, Decimal] = Field(default_factory=dict)
    entry_currency: EntryCurrency = Field(default=EntryCurrency.ORIGIN)
    fallback_rate: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        description="Rate used while the origin total is zero"
    )
    explicit_type: AccountType = Field(
        default=AccountType.PUBLIC,
        description="Caller's last explicit choice, used when there are no participants"
    )

    @field_validator('currency', 'home_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('participant_ids')
    @classmethod
    def clean_participants(cls, v: list[str]) -> list[str]:
        cleaned = []
        for member_id in v:
            member_id = (member_id or "").strip()
            if member_id and member_id not in cleaned:
                cleaned.append(member_id)
        return cleaned

    @field_validator('origin_shares')
    @classmethod
    def non_negative_shares(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        for member_id, amount in v.items():
            if amount < 0:
                raise ValueError(f"Share for {member_id} cannot be negative")
        return v

    @property
    def effective_rate(self) -> Decimal:
        if self.original_total > 0:
            return self.home_total / self.original_total
        return self.fallback_rate

    @property
    def entry_currency_code(self) -> str:
        if self.entry_currency == EntryCurrency.HOME:
            return self.home_currency
        return self.currency

    def origin_share(self, member_id: str) -> Decimal:
        if member_id not in self.participant_ids:
            return ZERO
        if self.mode == AllocationMode.CUSTOM:
            return self.origin_shares.get(member_id, ZERO)
        return self.original_total / len(self.participant_ids)

    def home_share(self, member_id: str) -> Decimal:
        """Home-currency share; rounded in custom mode, nominal in equal mode."""
        if member_id not in self.participant_ids:
            return ZERO
        if self.mode == AllocationMode.CUSTOM:
            return round_home(self.origin_share(member_id) * self.effective_rate)
        return self.home_total / len(self.participant_ids)

    def shares(self) -> dict[str, Share]:
        return {
            member_id: Share(self.home_share(member_id), self.origin_share(member_id))
            for member_id in self.participant_ids
        }

    @property
    def allocated_ids(self) -> list[str]:
        """Participants with a positive allocation."""
        if self.mode == AllocationMode.EQUAL:
            return list(self.participant_ids)
        return [m for m in self.participant_ids if self.origin_shares.get(m, ZERO) > 0]

    @property
    def account_type(self) -> AccountType:
        return classify(self)


class ConfirmedAllocation(BaseModel):
    """An allocation that passed confirmation, ready to go on a Transaction."""

    mode: AllocationMode
    participant_ids: list[str]
    custom_splits: Optional[dict[str, Decimal]] = None
    custom_original_splits: Optional[dict[str, Decimal]] = None
    account_type: AccountType


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify(state: AllocationState) -> AccountType:
    """
    PRIVATE when exactly one participant holds a positive allocation.

    With no participants at all the state did not come through the
    split path, so the caller's explicit choice stands.
    """
    if not state.participant_ids:
        return state.explicit_type
    allocated = state.allocated_ids
    if not allocated:
        return state.explicit_type
    return AccountType.PRIVATE if len(allocated) == 1 else AccountType.PUBLIC


def classify_transaction(transaction: Transaction) -> AccountType:
    """Same rule as `classify`, applied to a stored transaction."""
    participants = transaction.participants
    if not participants:
        return transaction.account_type
    if transaction.custom_splits is not None:
        allocated = [
            m for m in participants
            if transaction.custom_splits.get(m, ZERO) > 0
        ]
        if not allocated:
            return transaction.account_type
    else:
        allocated = participants
    return AccountType.PRIVATE if len(allocated) == 1 else AccountType.PUBLIC


# =============================================================================
# STATE CONSTRUCTION
# =============================================================================

def _reconcile(state: AllocationState, **changes) -> AllocationState:
    """
    Apply changes and re-validate.

    Members holding a custom share are always participants, and
    members that left the participant list lose their share.
    """
    data = state.model_dump()
    data.update(changes)

    participants = list(data["participant_ids"])
    shares = dict(data["origin_shares"])
    if data["mode"] == AllocationMode.CUSTOM:
        for member_id in shares:
            if member_id not in participants:
                participants.append(member_id)
        shares = {m: shares.get(m, ZERO) for m in participants}
    else:
        shares = {}
    data["participant_ids"] = participants
    data["origin_shares"] = shares
    return AllocationState.model_validate(data)


def allocate_equal(
    total_home: Decimal,
    total_origin: Decimal,
    participant_ids: list[str],
) -> dict[str, Share]:
    """
    Nominal equal shares, for display and aggregation only.

    These are never persisted per member.
    """
    if not participant_ids:
        raise ValueError("Equal allocation needs at least one participant")
    count = len(participant_ids)
    return {
        member_id: Share(total_home / count, total_origin / count)
        for member_id in participant_ids
    }


def state_for_transaction(
    transaction: Transaction,
    home_currency: str,
) -> AllocationState:
    """Rebuild the editable allocation of a stored transaction."""
    mode = AllocationMode.EQUAL
    origin_shares: dict[str, Decimal] = {}
    if transaction.custom_splits is not None:
        mode = AllocationMode.CUSTOM
        origin_shares = {
            m: transaction.origin_share(m) for m in transaction.participants
        }
    fallback = transaction.exchange_rate if transaction.exchange_rate > 0 else Decimal("1")
    state = AllocationState(
        currency=transaction.currency,
        home_currency=home_currency,
        original_total=max(transaction.original_amount, ZERO),
        home_total=max(transaction.home_amount, ZERO),
        participant_ids=transaction.participants,
        fallback_rate=fallback,
        explicit_type=transaction.account_type,
    )
    return _reconcile(state, mode=mode, origin_shares=origin_shares)


# =============================================================================
# ALLOCATION MODEL
# =============================================================================

class AllocationModel:
    """
    Operations on an AllocationState.

    Every method is pure: it returns a new state and leaves the given
    one untouched. `confirm` is the only method that raises for an
    unusable allocation.
    """

    def __init__(self, tolerance: Optional[Decimal] = None):
        """
        Args:
            tolerance: Largest remainder still considered balanced.
                       Defaults to the configured ledger tolerance.
        """
        if tolerance is None:
            tolerance = get_settings().ledger.balance_tolerance
        self._tolerance = Decimal(str(tolerance))

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def allocate_equal(
        self,
        total_home: Decimal,
        total_origin: Decimal,
        participant_ids: list[str],
    ) -> dict[str, Share]:
        return allocate_equal(total_home, total_origin, participant_ids)

    def use_equal(self, state: AllocationState) -> AllocationState:
        """Drop custom shares and divide evenly again."""
        return _reconcile(state, mode=AllocationMode.EQUAL, origin_shares={})

    def toggle_participant(self, state: AllocationState, member_id: str) -> AllocationState:
        participants = list(state.participant_ids)
        shares = dict(state.origin_shares)
        if member_id in participants:
            participants.remove(member_id)
            shares.pop(member_id, None)
        else:
            participants.append(member_id)
        return _reconcile(state, participant_ids=participants, origin_shares=shares)

    def set_custom_share(
        self,
        state: AllocationState,
        member_id: str,
        amount: Decimal,
        entry_currency: EntryCurrency,
    ) -> AllocationState:
        """
        Set one member's share in the currency the user typed it in.

        The first custom share switches the state to custom mode with
        every other participant at zero. A home-currency entry is
        stored as `amount / effective_rate` in the origin currency.
        """
        amount = Decimal(str(amount))
        if amount < 0:
            raise ValueError("Share cannot be negative")

        shares = dict(state.origin_shares) if state.mode == AllocationMode.CUSTOM else {}
        if entry_currency == EntryCurrency.HOME:
            shares[member_id] = safe_divide(amount, state.effective_rate)
        else:
            shares[member_id] = amount
        return _reconcile(
            state,
            mode=AllocationMode.CUSTOM,
            origin_shares=shares,
            entry_currency=entry_currency,
        )

    def change_original_total(
        self,
        state: AllocationState,
        new_original_total: Decimal,
    ) -> AllocationState:
        """
        Change the origin-currency total at the current rate.

        The home total follows as `round(new_total * rate)`, or equals the
        new total when the origin currency is the home currency.
        """
        new_original_total = Decimal(str(new_original_total))
        if state.currency == state.home_currency:
            new_home_total = new_original_total
        else:
            new_home_total = round_home(new_original_total * state.effective_rate)
        return _reconcile(
            state,
            original_total=new_original_total,
            home_total=new_home_total,
        )

    def rebase_total(self, state: AllocationState, new_home_total: Decimal) -> AllocationState:
        """
        Correct the home-currency total by hand.

        The effective rate becomes `new_home_total / original_total`;
        origin-currency shares stay fixed and home shares re-derive
        from the new rate.
        """
        return _reconcile(state, home_total=Decimal(str(new_home_total)))

    def remainder(
        self,
        state: AllocationState,
        entry_currency: Optional[EntryCurrency] = None,
    ) -> Decimal:
        """Unallocated amount (total - sum of shares) in the entry currency."""
        if state.mode == AllocationMode.EQUAL:
            return ZERO
        entry_currency = entry_currency or state.entry_currency
        if entry_currency == EntryCurrency.HOME:
            allocated = sum(
                (state.home_share(m) for m in state.participant_ids), ZERO
            )
            return state.home_total - allocated
        allocated = sum(
            (state.origin_share(m) for m in state.participant_ids), ZERO
        )
        return state.original_total - allocated

    def check_balanced(
        self,
        state: AllocationState,
        tolerance: Optional[Decimal] = None,
    ) -> bool:
        tolerance = self._tolerance if tolerance is None else Decimal(str(tolerance))
        return within_tolerance(self.remainder(state), tolerance)

    def fill_remainder(self, state: AllocationState, member_id: str) -> AllocationState:
        """Give the whole unallocated remainder to one member."""
        if state.mode == AllocationMode.EQUAL:
            state = _reconcile(state, mode=AllocationMode.CUSTOM, origin_shares={})
        remainder = self.remainder(state)
        if remainder == 0:
            return state

        if state.entry_currency == EntryCurrency.HOME:
            target = state.home_share(member_id) + remainder
        else:
            target = state.origin_share(member_id) + remainder
        return self.set_custom_share(
            state,
            member_id,
            max(target, ZERO),
            state.entry_currency,
        )

    def confirm(self, state: AllocationState) -> ConfirmedAllocation:
        """
        Validate the allocation for confirmation.

        Raises:
            EmptyAllocationError: No participant, or no positive custom share
            UnbalancedAllocationError: Remainder not within tolerance
        """
        if not state.participant_ids:
            raise EmptyAllocationError("No participants selected")

        if state.mode == AllocationMode.EQUAL:
            return ConfirmedAllocation(
                mode=AllocationMode.EQUAL,
                participant_ids=list(state.participant_ids),
                account_type=classify(state),
            )

        allocated = state.allocated_ids
        if not allocated:
            raise EmptyAllocationError()
        remainder = self.remainder(state)
        if not within_tolerance(remainder, self._tolerance):
            raise UnbalancedAllocationError(
                remainder=remainder,
                tolerance=self._tolerance,
                currency=state.entry_currency_code,
            )

        return ConfirmedAllocation(
            mode=AllocationMode.CUSTOM,
            participant_ids=allocated,
            custom_splits={m: state.home_share(m) for m in allocated},
            custom_original_splits={m: state.origin_share(m) for m in allocated},
            account_type=classify(state),
        )
