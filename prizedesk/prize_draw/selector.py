"""Random and manual winner selection for prize slots."""

from __future__ import annotations

import logging
import random
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import DEFAULT_SETTINGS, EngineSettings
from ..db.utils import as_utc, utcnow
from ..models import (
    AwardKind,
    DrawStatus,
    Member,
    Prize,
    SelectionMethod,
    Winner,
)
from .eligibility import EligibilityResolver
from .errors import (
    AlreadyResolved,
    InsufficientEligiblePool,
    InvalidState,
    NotEligible,
    NotFound,
)
from .slots import refresh_counters, reserve_slots
from .states import require_draw_status

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Outcome of filling one prize.

    Attributes
    ----------
    prize_id : int
        Prize the selection ran for.
    requested : int
        Slots the selector tried to fill.
    winners : list[Winner]
        Winner rows written, in draw order.
    shortfall : int
        Slots left unfilled because the eligible pool ran out.
    """

    prize_id: int
    requested: int
    winners: list[Winner] = field(default_factory=list)
    shortfall: int = 0

    @property
    def member_ids(self) -> list[int]:
        return [winner.member_id for winner in self.winners]


class _ReservationLost(Exception):
    """Another writer took the slots between the read and the update."""


class Selector:
    """Fills prize slots from the eligible pool.

    Each slot goes to a distinct member drawn uniformly at random without
    replacement. Members already holding any winner row for the prize,
    including expired ones, are never drawn again for that prize.
    """

    max_reservation_attempts = 3

    def __init__(
        self,
        session: Session,
        *,
        resolver: Optional[EligibilityResolver] = None,
        rng: Optional[random.Random] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        """Create a selector bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active session; the selector flushes but never commits.
        resolver : Optional[EligibilityResolver], default: None
            Source of the eligible pool. A resolver on ``session`` is used
            when omitted.
        rng : Optional[random.Random], default: None
            Random source. Defaults to :class:`secrets.SystemRandom`; tests
            pass a seeded :class:`random.Random` for reproducible draws.
        settings : Optional[EngineSettings], default: None
            Supplies the claim window given to new winners.
        """

        self._session = session
        self._resolver = resolver or EligibilityResolver(session)
        self._rng = rng or secrets.SystemRandom()
        self._settings = settings or DEFAULT_SETTINGS

    def _lock_prize(self, prize_id: int) -> Prize:
        stmt = (
            select(Prize)
            .where(Prize.id == prize_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        prize = self._session.scalars(stmt).first()
        if prize is None:
            raise NotFound(f"Prize {prize_id} does not exist")
        return prize

    def _check_selectable(self, prize: Prize, award_kind: AwardKind) -> None:
        if not prize.is_active:
            raise InvalidState(f"Prize {prize.id} is deactivated")
        if prize.award_kind != award_kind:
            raise InvalidState(
                f"Prize {prize.id} is {prize.award_kind.value}; expected {award_kind.value}"
            )
        require_draw_status(prize.draw, DrawStatus.ANNOUNCED)

    def prior_winner_ids(self, prize_id: int) -> set[int]:
        """Members holding any winner row for ``prize_id``, whatever its status."""

        stmt = select(Winner.member_id).where(Winner.prize_id == prize_id)
        return set(self._session.scalars(stmt).all())

    def _new_winner(
        self,
        prize: Prize,
        member_id: int,
        now: datetime,
        *,
        method: SelectionMethod = SelectionMethod.RANDOM,
        admin_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> Winner:
        return Winner(
            draw_id=prize.draw_id,
            prize_id=prize.id,
            member_id=member_id,
            award_kind=prize.award_kind,
            selection_method=method,
            selected_by_admin_id=admin_id,
            selected_at=now,
            claim_deadline=now + self._settings.claim_window,
            note=note,
        )

    def _write_winners(self, prize: Prize, winners: list[Winner]) -> None:
        """Reserve slots and insert ``winners`` in one savepoint."""

        try:
            with self._session.begin_nested():
                if not reserve_slots(self._session, prize.id, len(winners)):
                    raise _ReservationLost()
                self._session.add_all(winners)
                self._session.flush()
        except IntegrityError as exc:
            raise AlreadyResolved(
                f"A selected member already holds a slot of prize {prize.id}"
            ) from exc
        finally:
            refresh_counters(self._session, prize)

    def select_winners(
        self,
        prize: Prize,
        excluded_member_ids: Iterable[int] = (),
        slots_to_fill: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
        allow_shortfall: bool = True,
    ) -> SelectionResult:
        """Randomly fill up to ``slots_to_fill`` open slots of ``prize``.

        Parameters
        ----------
        prize : Prize
            A RANDOM_DRAW prize of an ANNOUNCED draw.
        excluded_member_ids : Iterable[int], default: ()
            Extra members to leave out. Prior winners of the prize are always
            excluded.
        slots_to_fill : Optional[int], default: None
            Upper bound on new winners; defaults to every open slot. The
            request is capped at the open slot count read under the lock.
        now : Optional[datetime], default: None
            Selection time, used for eligibility and the claim deadline.
        allow_shortfall : bool, default: True
            When ``False``, a pool smaller than the request raises instead of
            partially filling.

        Returns
        -------
        SelectionResult
            Winners written plus any shortfall. A prize without open slots
            yields an empty result and nothing is written.

        Raises
        ------
        NotFound
            If the prize does not exist.
        InvalidState
            If the prize is inactive, not RANDOM_DRAW, or its draw is not
            ANNOUNCED.
        InsufficientEligiblePool
            If ``allow_shortfall`` is ``False`` and the pool is too small.
        AlreadyResolved
            If a concurrent writer inserted one of the drawn members first,
            or the slots kept disappearing between read and update.
        """

        if slots_to_fill is not None and slots_to_fill < 0:
            raise ValueError("slots_to_fill must not be negative")
        now = as_utc(now) or utcnow()
        excluded = set(excluded_member_ids)

        for _attempt in range(self.max_reservation_attempts):
            current = self._lock_prize(prize.id)
            self._check_selectable(current, AwardKind.RANDOM_DRAW)
            wanted = current.open_slots
            if slots_to_fill is not None:
                wanted = min(wanted, slots_to_fill)
            if wanted <= 0:
                return SelectionResult(prize_id=current.id, requested=0)

            blocked = excluded | self.prior_winner_ids(current.id)
            eligible = self._resolver.resolve_eligible(current.draw_id, now=now)
            # Sorting makes a seeded generator reproducible across backends.
            pool = sorted(eligible - blocked)
            picks = self._rng.sample(pool, min(wanted, len(pool)))
            shortfall = wanted - len(picks)
            if shortfall and not allow_shortfall:
                raise InsufficientEligiblePool(current.id, wanted, len(pool))
            if not picks:
                logger.warning(
                    "Prize %s: no eligible members left for %s slot(s)",
                    current.id,
                    wanted,
                )
                return SelectionResult(
                    prize_id=current.id, requested=wanted, shortfall=shortfall
                )

            winners = [self._new_winner(current, member_id, now) for member_id in picks]
            try:
                self._write_winners(current, winners)
            except _ReservationLost:
                logger.info("Prize %s: slots changed during selection, retrying", current.id)
                continue

            if shortfall:
                logger.warning(
                    "Prize %s: filled %s of %s slot(s); pool exhausted",
                    current.id,
                    len(winners),
                    wanted,
                )
            logger.info(
                "Prize %s: selected %s winner(s) at %s",
                current.id,
                len(winners),
                now.isoformat(),
            )
            return SelectionResult(
                prize_id=current.id,
                requested=wanted,
                winners=winners,
                shortfall=shortfall,
            )

        raise AlreadyResolved(f"Slots of prize {prize.id} were taken concurrently")

    def assign(
        self,
        prize: Prize,
        member_id: int,
        *,
        admin_id: Optional[int],
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Winner:
        """Hand-pick ``member_id`` for one slot of a COMMUNITY_SUPPORT prize.

        Applies the same eligibility, uniqueness and capacity rules as random
        selection, without the randomness.

        Raises
        ------
        NotFound
            If the prize or member does not exist.
        InvalidState
            If the prize is not a COMMUNITY_SUPPORT prize of an ANNOUNCED
            draw, or has no open slot.
        NotEligible
            If the member is not in the draw's eligible pool.
        AlreadyResolved
            If the member already holds (or held) a slot of this prize.
        """

        now = as_utc(now) or utcnow()
        current = self._lock_prize(prize.id)
        self._check_selectable(current, AwardKind.COMMUNITY_SUPPORT)
        if self._session.get(Member, member_id) is None:
            raise NotFound(f"Member {member_id} does not exist")
        if member_id in self.prior_winner_ids(current.id):
            raise AlreadyResolved(
                f"Member {member_id} already holds a slot of prize {current.id}"
            )
        if not self._resolver.is_eligible(current.draw_id, member_id, now=now):
            raise NotEligible(
                f"Member {member_id} is not eligible for draw {current.draw_id}"
            )
        if current.open_slots <= 0:
            raise InvalidState(f"Prize {current.id} has no open slot")

        winner = self._new_winner(
            current,
            member_id,
            now,
            method=SelectionMethod.MANUAL,
            admin_id=admin_id,
            note=note,
        )
        try:
            self._write_winners(current, [winner])
        except _ReservationLost:
            raise InvalidState(f"Prize {current.id} has no open slot") from None
        logger.info(
            "Prize %s: member %s assigned manually by admin %s",
            current.id,
            member_id,
            admin_id,
        )
        return winner


__all__ = ["SelectionResult", "Selector"]
