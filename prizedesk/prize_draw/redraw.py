"""Deadline sweep: expire unclaimed winners, refill slots, roll the rest over."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import DEFAULT_SETTINGS, EngineSettings
from ..db.utils import as_utc, utcnow
from ..models import AwardKind, ClaimStatus, Draw, DrawStatus, Prize, Winner
from .claims import ClaimTracker
from .errors import NotFound, PrizeDrawError
from .rollover import RolloverLedger
from .selector import Selector
from .slots import refresh_counters
from .states import require_draw_status

logger = logging.getLogger(__name__)


@dataclass
class RedrawSummary:
    """What one expire-and-redraw pass did to a draw.

    Attributes
    ----------
    draw_id : int
        Draw that was swept.
    expired_count : int
        PENDING winners moved to EXPIRED.
    redrawn_count : int
        Replacement winners selected.
    rolled_over_slots : int
        Slots forfeited because the eligible pool was exhausted.
    rollover_amount : Decimal
        Value of the forfeited slots, plus any carried rollover handed back
        by a prize left with no slots, now outstanding in the ledger.
    failed_prize_ids : list[int]
        Prizes whose processing failed and was rolled back; re-running the
        sweep retries them.
    completed : bool
        Whether the pass left the draw COMPLETED.
    """

    draw_id: int
    expired_count: int = 0
    redrawn_count: int = 0
    rolled_over_slots: int = 0
    rollover_amount: Decimal = Decimal("0")
    failed_prize_ids: list[int] = field(default_factory=list)
    completed: bool = False
    expired_winners: list[Winner] = field(default_factory=list, repr=False)
    new_winners: list[Winner] = field(default_factory=list, repr=False)


def draw_is_resolved(session: Session, draw: Draw) -> bool:
    """True when no active prize of ``draw`` can change any more.

    Every active prize must have all of its slots either allocated or
    forfeited and no winner still waiting on a claim.
    """

    prizes = draw.active_prizes
    if not prizes or draw.selection_ran_at is None:
        return False
    for prize in prizes:
        refresh_counters(session, prize)
        if prize.open_slots != 0:
            return False
    pending = session.scalar(
        select(func.count(Winner.id))
        .join(Prize, Prize.id == Winner.prize_id)
        .where(
            Winner.draw_id == draw.id,
            Winner.claim_status == ClaimStatus.PENDING,
            Prize.is_active.is_(True),
        )
    )
    return pending == 0


def complete_if_resolved(
    session: Session, draw: Draw, *, now: Optional[datetime] = None
) -> bool:
    """Move an ANNOUNCED, fully resolved draw to COMPLETED."""

    if draw.status != DrawStatus.ANNOUNCED or not draw_is_resolved(session, draw):
        return False
    draw.status = DrawStatus.COMPLETED
    draw.completed_at = as_utc(now) or utcnow()
    session.flush()
    logger.info("Draw %s completed", draw.id)
    return True


class ExpiryRedrawOrchestrator:
    """Runs the expiry sweep and redraw for one draw.

    Each prize is processed in its own savepoint. A failure is logged, that
    prize's work is rolled back and the remaining prizes still run, so the
    sweep can simply be repeated.
    """

    def __init__(
        self,
        session: Session,
        *,
        selector: Optional[Selector] = None,
        claims: Optional[ClaimTracker] = None,
        ledger: Optional[RolloverLedger] = None,
        rng: Optional[random.Random] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self._session = session
        self._settings = settings or DEFAULT_SETTINGS
        self._selector = selector or Selector(session, rng=rng, settings=self._settings)
        self._claims = claims or ClaimTracker(session)
        self._ledger = ledger or RolloverLedger(session)

    def _process_prize(
        self, draw: Draw, prize: Prize, summary: RedrawSummary, now: datetime
    ) -> None:
        expired = self._claims.expire_overdue(prize.id, now=now)
        summary.expired_count += len(expired)
        summary.expired_winners.extend(expired)

        # Community support slots are refilled by hand until the draw closes.
        if prize.award_kind != AwardKind.RANDOM_DRAW or draw.selection_ran_at is None:
            return
        refresh_counters(self._session, prize)
        if prize.open_slots == 0:
            return

        result = self._selector.select_winners(prize, now=now)
        summary.redrawn_count += len(result.winners)
        summary.new_winners.extend(result.winners)
        if result.shortfall:
            carried = prize.rollover_amount or Decimal("0")
            entry = self._ledger.forfeit_open_slots(
                prize,
                result.shortfall,
                reason=f"Eligible pool exhausted during redraw of draw {draw.id}",
                now=now,
            )
            summary.rolled_over_slots += result.shortfall
            if entry is not None:
                summary.rollover_amount += entry.amount
            # Fully forfeited prizes also hand back the rollover they carried.
            summary.rollover_amount += carried - (prize.rollover_amount or Decimal("0"))

    def expire_and_redraw(
        self, draw_id: int, *, now: Optional[datetime] = None
    ) -> RedrawSummary:
        """Expire overdue winners of ``draw_id`` and refill their slots.

        Parameters
        ----------
        draw_id : int
            An ANNOUNCED draw.
        now : Optional[datetime], default: None
            Sweep time; winners whose deadline is strictly earlier expire.

        Returns
        -------
        RedrawSummary
            Counts for the pass plus the expired and newly selected winners,
            which callers use for notifications.

        Raises
        ------
        NotFound
            If the draw does not exist.
        InvalidState
            If the draw is not ANNOUNCED.
        """

        now = as_utc(now) or utcnow()
        draw = self._session.get(Draw, draw_id)
        if draw is None:
            raise NotFound(f"Draw {draw_id} does not exist")
        require_draw_status(draw, DrawStatus.ANNOUNCED)

        summary = RedrawSummary(draw_id=draw.id)
        for prize in draw.active_prizes:
            partial = RedrawSummary(draw_id=draw.id)
            try:
                with self._session.begin_nested():
                    self._process_prize(draw, prize, partial, now)
            except (SQLAlchemyError, PrizeDrawError):
                logger.exception(
                    "Expire-and-redraw failed for prize %s of draw %s", prize.id, draw.id
                )
                summary.failed_prize_ids.append(prize.id)
                continue
            summary.expired_count += partial.expired_count
            summary.redrawn_count += partial.redrawn_count
            summary.rolled_over_slots += partial.rolled_over_slots
            summary.rollover_amount += partial.rollover_amount
            summary.expired_winners.extend(partial.expired_winners)
            summary.new_winners.extend(partial.new_winners)

        if not summary.failed_prize_ids:
            summary.completed = complete_if_resolved(self._session, draw, now=now)
        self._session.flush()
        logger.info(
            "Draw %s sweep: %s expired, %s redrawn, %s slot(s) rolled over (%s)",
            draw.id,
            summary.expired_count,
            summary.redrawn_count,
            summary.rolled_over_slots,
            summary.rollover_amount,
        )
        return summary


__all__ = [
    "ExpiryRedrawOrchestrator",
    "RedrawSummary",
    "complete_if_resolved",
    "draw_is_resolved",
]
