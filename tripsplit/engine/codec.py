"""
Split Codec

Converts a transaction's per-member allocation to and from the string
stored in the spreadsheet:

    Name1:Amt1(OrigAmt1);Name2:Amt2(OrigAmt2)

Each entry is a display name, the home-currency share in whole units
and, when the transaction currency differs from the home currency, the
origin-currency share in parentheses.

KNOWN LIMITATION: members are keyed by display name. Renaming a member
or giving two members the same name breaks decoding of older strings;
unmatched names come back as synthetic ids rather than being guessed.
"""

from decimal import Decimal
from typing import Iterable, NamedTuple, Optional

import structlog

from tripsplit.config import get_settings
from tripsplit.engine.errors import ErrorKind
from tripsplit.engine.numeric import ZERO, format_home, format_origin, try_decimal
from tripsplit.engine.roster import display_name, id_for_name
from tripsplit.models.ledger import Member, Transaction

logger = structlog.get_logger(__name__)

ENTRY_SEPARATOR = ";"
NAME_SEPARATOR = ":"
PARTICIPANT_SEPARATOR = ","


class SplitEntry(NamedTuple):
    """One decoded `Name:Home(Origin)` entry."""
    name: str
    member_id: str
    home: Decimal
    origin: Optional[Decimal]


def _parse_share(text: str, name: str) -> Decimal:
    value = try_decimal(text)
    if value is None:
        logger.warning(
            "split_share_unparseable",
            kind=ErrorKind.MALFORMED_PERSISTED_RECORD.value,
            name=name,
            value=text,
        )
        return ZERO
    return value


class SplitCodec:
    """Encoder/decoder for the persisted allocation string."""

    def __init__(self, home_currency: Optional[str] = None):
        if home_currency is None:
            home_currency = get_settings().ledger.home_currency
        self._home_currency = home_currency.strip().upper()

    @property
    def home_currency(self) -> str:
        return self._home_currency

    def encode(self, transaction: Transaction, members: Iterable[Member]) -> str:
        """Serialize the allocation; empty when the transaction is not split."""
        participants = transaction.participants
        if not participants:
            return ""
        members = list(members)

        with_origin = (
            transaction.currency != self._home_currency
            and transaction.home_amount > 0
        )
        entries = []
        for member_id in participants:
            name = display_name(members, member_id)
            entry = f"{name}{NAME_SEPARATOR}{format_home(transaction.home_share(member_id))}"
            if with_origin:
                entry += f"({format_origin(transaction.origin_share(member_id))})"
            entries.append(entry)
        return ENTRY_SEPARATOR.join(entries)

    def decode_entries(self, serialized: str, members: Iterable[Member]) -> list[SplitEntry]:
        """Parse every well-formed entry, keeping the origin share when present."""
        members = list(members)
        entries = []
        for chunk in (serialized or "").split(ENTRY_SEPARATOR):
            if NAME_SEPARATOR not in chunk:
                continue
            name, _, amounts = chunk.partition(NAME_SEPARATOR)
            name = name.strip()
            if not name:
                continue

            home_text, paren, rest = amounts.partition("(")
            origin = None
            if paren:
                origin_text = rest.split(")", 1)[0]
                origin = _parse_share(origin_text, name)

            member_id = id_for_name(members, name)
            if member_id is None:
                logger.info("split_name_unmatched", name=name)
                member_id = name
            entries.append(SplitEntry(
                name=name,
                member_id=member_id,
                home=_parse_share(home_text, name),
                origin=origin,
            ))
        return entries

    def decode(self, serialized: str, members: Iterable[Member]) -> dict[str, Decimal]:
        """Mapping of member id to home-currency share."""
        return {
            entry.member_id: entry.home
            for entry in self.decode_entries(serialized, members)
        }


def encode_participants(member_ids: Iterable[str], members: Iterable[Member]) -> str:
    """Comma-separated display names (raw id when unresolved)."""
    members = list(members)
    names = [display_name(members, m) for m in member_ids if m and m.strip()]
    return f"{PARTICIPANT_SEPARATOR} ".join(names)


def decode_participants(serialized: str) -> list[str]:
    """Display names from a comma-separated list, trimmed, blanks dropped."""
    names = []
    for name in (serialized or "").split(PARTICIPANT_SEPARATOR):
        name = name.strip()
        if name:
            names.append(name)
    return names
