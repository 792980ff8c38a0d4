"""Compare-and-update helpers for the prize slot counters.

Every change to ``allocated_slots`` or ``forfeited_slots`` goes through one of
these statements. Each is conditional on the counters still leaving room, so
an overfill can never be written no matter how callers interleave; the
``slots_within_capacity`` CHECK constraint backs them up.

The statements bypass the identity map. Callers that keep using the
:class:`Prize` object afterwards must refresh it (:func:`refresh_counters`).
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models import Prize

_COUNTERS = ["allocated_slots", "forfeited_slots"]


def reserve_slots(session: Session, prize_id: int, count: int) -> bool:
    """Move ``count`` open slots to allocated; ``False`` if they are gone."""

    if count <= 0:
        raise ValueError("count must be positive")
    stmt = (
        update(Prize)
        .where(
            Prize.id == prize_id,
            Prize.is_active.is_(True),
            Prize.allocated_slots + Prize.forfeited_slots + count <= Prize.slot_count,
        )
        .values(allocated_slots=Prize.allocated_slots + count)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount == 1


def release_slots(session: Session, prize_id: int, count: int) -> bool:
    """Return ``count`` allocated slots to the open pool."""

    if count <= 0:
        raise ValueError("count must be positive")
    stmt = (
        update(Prize)
        .where(Prize.id == prize_id, Prize.allocated_slots >= count)
        .values(allocated_slots=Prize.allocated_slots - count)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount == 1


def forfeit_slots(session: Session, prize_id: int, count: int) -> bool:
    """Close ``count`` open slots for good; their value goes to rollover."""

    if count <= 0:
        raise ValueError("count must be positive")
    stmt = (
        update(Prize)
        .where(
            Prize.id == prize_id,
            Prize.allocated_slots + Prize.forfeited_slots + count <= Prize.slot_count,
        )
        .values(forfeited_slots=Prize.forfeited_slots + count)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount == 1


def refresh_counters(session: Session, prize: Prize) -> None:
    session.refresh(prize, attribute_names=_COUNTERS)


__all__ = ["forfeit_slots", "refresh_counters", "release_slots", "reserve_slots"]
