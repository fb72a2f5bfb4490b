"""
Member roster lookups.

Persisted data refers to members by display name, in-memory data by
id. Neither lookup raises: an unknown id is shown as itself, and an
unknown name is kept as a synthetic id.
"""

from typing import Iterable, Optional

import structlog

from tripsplit.engine.errors import ErrorKind
from tripsplit.models.ledger import Member

logger = structlog.get_logger(__name__)


def find_member(members: Iterable[Member], member_id: str) -> Optional[Member]:
    for member in members:
        if member.id == member_id:
            return member
    return None


def display_name(members: Iterable[Member], member_id: str) -> str:
    """Display name for an id, or the raw id when it is not in the roster."""
    member = find_member(members, member_id)
    if member is None:
        logger.warning(
            "member_unresolved",
            kind=ErrorKind.DANGLING_REFERENCE.value,
            member_id=member_id,
        )
        return member_id
    return member.name


def id_for_name(members: Iterable[Member], name: str) -> Optional[str]:
    """First member whose display name matches exactly."""
    for member in members:
        if member.name == name:
            return member.id
    return None
