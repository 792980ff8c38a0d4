"""Claim window tracking for selected winners."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.utils import as_utc, utcnow
from ..models import ClaimStatus, PayoutStatus, Winner
from .errors import (
    AlreadyResolved,
    DeadlinePassed,
    InvalidState,
    NotFound,
    NotOwner,
)
from .slots import release_slots

logger = logging.getLogger(__name__)


class ClaimTracker:
    """Moves winners out of PENDING: claimed by the member, or expired.

    Both moves are conditional updates on ``claim_status = 'PENDING'``, so a
    claim racing the expiry sweep, or two claims racing each other, resolve
    to exactly one outcome.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def _get(self, winner_id: int) -> Winner:
        winner = self._session.get(Winner, winner_id)
        if winner is None:
            raise NotFound(f"Winner {winner_id} does not exist")
        return winner

    def claim(
        self, winner_id: int, caller_member_id: int, *, now: Optional[datetime] = None
    ) -> Winner:
        """Mark ``winner_id`` CLAIMED on behalf of its member.

        Raises
        ------
        NotFound
            If the winner does not exist.
        NotOwner
            If ``caller_member_id`` is not the winning member.
        AlreadyResolved
            If the claim is already CLAIMED or EXPIRED, including when a
            concurrent request resolved it first.
        DeadlinePassed
            If ``now`` is after the claim deadline. The winner stays PENDING
            until the expiry sweep picks it up.
        """

        now = as_utc(now) or utcnow()
        winner = self._get(winner_id)
        if winner.member_id != caller_member_id:
            raise NotOwner(f"Member {caller_member_id} does not own winner {winner_id}")
        if winner.claim_status != ClaimStatus.PENDING:
            raise AlreadyResolved(f"Winner {winner_id} is already {winner.claim_status.value}")
        if now > winner.claim_deadline:
            raise DeadlinePassed(f"Claim window for winner {winner_id} closed")

        stmt = (
            update(Winner)
            .where(
                Winner.id == winner_id,
                Winner.claim_status == ClaimStatus.PENDING,
                Winner.claim_deadline >= now,
            )
            .values(claim_status=ClaimStatus.CLAIMED, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(winner)
        if result.rowcount != 1:
            if winner.claim_status != ClaimStatus.PENDING:
                raise AlreadyResolved(
                    f"Winner {winner_id} was resolved concurrently ({winner.claim_status.value})"
                )
            raise DeadlinePassed(f"Claim window for winner {winner_id} closed")

        logger.info("Winner %s claimed prize %s", winner.id, winner.prize_id)
        return winner

    def overdue(self, prize_id: int, *, now: Optional[datetime] = None) -> list[Winner]:
        """PENDING winners of ``prize_id`` whose deadline has passed."""

        now = as_utc(now) or utcnow()
        stmt = (
            select(Winner)
            .where(
                Winner.prize_id == prize_id,
                Winner.claim_status == ClaimStatus.PENDING,
                Winner.claim_deadline < now,
            )
            .order_by(Winner.id)
        )
        return list(self._session.scalars(stmt).all())

    def expire_overdue(
        self, prize_id: int, *, now: Optional[datetime] = None
    ) -> list[Winner]:
        """Expire every overdue PENDING winner of ``prize_id``.

        Each expiry releases one allocated slot of the prize. A winner that a
        concurrent claim resolved first is skipped.
        """

        now = as_utc(now) or utcnow()
        expired: list[Winner] = []
        for winner in self.overdue(prize_id, now=now):
            stmt = (
                update(Winner)
                .where(
                    Winner.id == winner.id,
                    Winner.claim_status == ClaimStatus.PENDING,
                    Winner.claim_deadline < now,
                )
                .values(claim_status=ClaimStatus.EXPIRED, expired_at=now)
                .execution_options(synchronize_session=False)
            )
            if self._session.execute(stmt).rowcount != 1:
                continue
            if not release_slots(self._session, prize_id, 1):
                raise InvalidState(
                    f"Prize {prize_id} allocation counter is out of step with its winners"
                )
            self._session.refresh(winner)
            expired.append(winner)
            logger.info(
                "Winner %s of prize %s expired (deadline %s)",
                winner.id,
                prize_id,
                winner.claim_deadline.isoformat(),
            )
        return expired

    def record_payout(self, winner_id: int, *, now: Optional[datetime] = None) -> Winner:
        """Mark a CLAIMED winner's payout PAID.

        Only the status is tracked; moving money is somebody else's job.
        """

        now = as_utc(now) or utcnow()
        winner = self._get(winner_id)
        if winner.claim_status != ClaimStatus.CLAIMED:
            raise InvalidState(f"Winner {winner_id} has not claimed; nothing to pay")
        stmt = (
            update(Winner)
            .where(
                Winner.id == winner_id,
                Winner.claim_status == ClaimStatus.CLAIMED,
                Winner.payout_status == PayoutStatus.PENDING,
            )
            .values(payout_status=PayoutStatus.PAID, paid_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(winner)
        if result.rowcount != 1:
            raise AlreadyResolved(f"Payout for winner {winner_id} already recorded")
        logger.info("Payout recorded for winner %s", winner.id)
        return winner


__all__ = ["ClaimTracker"]
