"""Resolve which members may win a draw."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ..db.utils import as_utc, utcnow
from ..models import (
    Draw,
    Entry,
    Member,
    MemberStanding,
    Membership,
    MembershipStatus,
)
from .errors import NotFound

INELIGIBLE_STANDINGS = (MemberStanding.SUSPENDED, MemberStanding.BANNED)


class EligibilityResolver:
    """Computes the eligible member pool of a draw.

    A member qualifies when all of the following hold:

    1. an :class:`Entry` exists for the draw and member;
    2. the member has a membership with status ``active`` whose
       ``end_date`` is later than ``now``;
    3. the member's country matches the draw scope;
    4. the member is neither suspended nor banned.

    Reads are done without locks. The selector re-validates uniqueness at
    write time, so a stale pool can at worst make an insert fail.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def _eligible_stmt(self, draw: Draw, now: datetime) -> Select:
        active_membership = (
            select(Membership.id)
            .where(
                Membership.member_id == Entry.member_id,
                Membership.status == MembershipStatus.ACTIVE,
                Membership.end_date > now,
            )
            .exists()
        )
        return (
            select(Entry.member_id)
            .join(Member, Member.id == Entry.member_id)
            .where(
                Entry.draw_id == draw.id,
                Member.country_code == draw.scope,
                Member.standing.notin_(INELIGIBLE_STANDINGS),
                active_membership,
            )
        )

    def _load_draw(self, draw_id: int) -> Draw:
        draw = self._session.get(Draw, draw_id)
        if draw is None:
            raise NotFound(f"Draw {draw_id} does not exist")
        return draw

    def resolve_eligible(
        self, draw_id: int, *, now: Optional[datetime] = None
    ) -> set[int]:
        """Return the ids of every member currently eligible for ``draw_id``.

        An empty set is a valid answer, not an error.
        """

        now = as_utc(now) or utcnow()
        draw = self._load_draw(draw_id)
        return set(self._session.scalars(self._eligible_stmt(draw, now)).all())

    def is_eligible(
        self, draw_id: int, member_id: int, *, now: Optional[datetime] = None
    ) -> bool:
        """Return whether a single member is eligible for ``draw_id``."""

        now = as_utc(now) or utcnow()
        draw = self._load_draw(draw_id)
        stmt = self._eligible_stmt(draw, now).where(Entry.member_id == member_id)
        return self._session.scalar(stmt) is not None


__all__ = ["EligibilityResolver", "INELIGIBLE_STANDINGS"]
