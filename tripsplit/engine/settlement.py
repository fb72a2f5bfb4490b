"""
Settlement Aggregation

Folds a list of transactions into per-member consumption and net
balances. Stateless: the result depends only on the transactions and
the member roster, never on the order of the transactions.

Sign convention: a positive balance is owed money (net creditor), a
negative balance owes money (net debtor).

DESIGN DECISION: Nothing is rounded while aggregating. Shares are
summed exactly as Fractions, converted to Decimal once per member,
and only rounded by the `rounded_*` helpers at the presentation
boundary.
"""

from decimal import Decimal
from fractions import Fraction
from typing import Iterable

import structlog
from pydantic import BaseModel, Field

from tripsplit.engine.errors import ErrorKind
from tripsplit.engine.numeric import ZERO, round_home
from tripsplit.models.ledger import Member, Transaction, Transfer

logger = structlog.get_logger(__name__)


def to_decimal(value: Fraction) -> Decimal:
    """Decimal nearest to an exact Fraction, in the current context."""
    return Decimal(value.numerator) / Decimal(value.denominator)


class SettlementSummary(BaseModel):
    """Balances and consumption for every member."""

    balances: dict[str, Decimal] = Field(default_factory=dict)
    consumption: dict[str, Decimal] = Field(default_factory=dict)
    total_expense: Decimal = Field(
        default=ZERO,
        description="Sum of home amounts over all transactions"
    )
    unresolved_ids: list[str] = Field(
        default_factory=list,
        description="Ids referenced by transactions but missing from the roster"
    )

    def balance_of(self, member_id: str) -> Decimal:
        return self.balances.get(member_id, ZERO)

    def consumption_of(self, member_id: str) -> Decimal:
        return self.consumption.get(member_id, ZERO)

    def rounded_balances(self) -> dict[str, Decimal]:
        return {m: round_home(amount) for m, amount in self.balances.items()}

    def rounded_consumption(self) -> dict[str, Decimal]:
        return {m: round_home(amount) for m, amount in self.consumption.items()}


class SettlementAggregator:
    """
    Computes a SettlementSummary from transactions and members.

    By default a split transaction is divided evenly among its
    participants, whatever custom shares it carries. With
    `use_custom_shares=True` stored custom shares are folded instead,
    and the payer is credited with the sum actually debited.
    """

    def __init__(self, use_custom_shares: bool = False):
        self._use_custom_shares = use_custom_shares

    def aggregate(
        self,
        transactions: Iterable[Transaction],
        members: Iterable[Member],
    ) -> SettlementSummary:
        balances: dict[str, Fraction] = {}
        consumption: dict[str, Fraction] = {}
        for member in members:
            balances[member.id] = Fraction(0)
            consumption[member.id] = Fraction(0)
        known = set(balances)
        unresolved: set[str] = set()
        total = Fraction(0)

        def touch(member_id: str) -> None:
            # Dangling references get their own entry so the ledger stays zero-sum
            if member_id not in balances:
                balances[member_id] = Fraction(0)
                consumption[member_id] = Fraction(0)
            if member_id not in known:
                unresolved.add(member_id)

        for transaction in transactions:
            home_amount = Fraction(transaction.home_amount)
            total += home_amount
            payer = transaction.payer_id
            participants = transaction.participants
            touch(payer)

            if not participants:
                consumption[payer] += home_amount
                continue

            shares = self._shares(transaction, participants)
            for member_id, share in shares.items():
                touch(member_id)
                balances[member_id] -= share
                consumption[member_id] += share
            if self._use_custom_shares and transaction.custom_splits is not None:
                balances[payer] += sum(shares.values(), Fraction(0))
            else:
                balances[payer] += home_amount

        if unresolved:
            logger.warning(
                "settlement_unresolved_members",
                kind=ErrorKind.DANGLING_REFERENCE.value,
                member_ids=sorted(unresolved),
            )

        return SettlementSummary(
            balances={m: to_decimal(v) for m, v in balances.items()},
            consumption={m: to_decimal(v) for m, v in consumption.items()},
            total_expense=to_decimal(total),
            unresolved_ids=sorted(unresolved),
        )

    def _shares(self, transaction: Transaction, participants: list[str]) -> dict[str, Fraction]:
        if self._use_custom_shares and transaction.custom_splits is not None:
            return {m: Fraction(transaction.home_share(m)) for m in participants}
        share = Fraction(transaction.home_amount) / len(participants)
        return {m: share for m in participants}


def suggest_transfers(balances: dict[str, Decimal]) -> list[Transfer]:
    """
    Greedy settlement plan: the largest debtor pays the largest creditor.

    Balances are rounded to whole home units first; members within
    one unit of zero are treated as settled.
    """
    debtors = sorted(
        ([m, -round_home(b)] for m, b in balances.items() if round_home(b) < 0),
        key=lambda entry: (-entry[1], entry[0]),
    )
    creditors = sorted(
        ([m, round_home(b)] for m, b in balances.items() if round_home(b) > 0),
        key=lambda entry: (-entry[1], entry[0]),
    )

    transfers = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        debtor, creditor = debtors[i], creditors[j]
        amount = min(debtor[1], creditor[1])
        if amount > 0:
            transfers.append(Transfer(from_id=debtor[0], to_id=creditor[0], amount=amount))
        debtor[1] -= amount
        creditor[1] -= amount
        if debtor[1] <= 0:
            i += 1
        if creditor[1] <= 0:
            j += 1
    return transfers
