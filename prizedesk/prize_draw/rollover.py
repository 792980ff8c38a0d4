"""Ledger of unallocated prize value carried into later draws."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from ..db.utils import as_utc, utcnow
from ..models import AwardKind, DrawStatus, Prize, RolloverEntry
from .errors import InvalidState, NotFound
from .slots import forfeit_slots, refresh_counters

logger = logging.getLogger(__name__)


class RolloverLedger:
    """Records forfeited prize value and hands it to the next matching prize.

    Rollover never crosses award kinds, currencies or country scopes. Entries
    are append-only: consuming one fills in its destination columns with a
    conditional update, so an amount can be consumed exactly once.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def _prize(self, prize_id: int) -> Prize:
        prize = self._session.get(Prize, prize_id)
        if prize is None:
            raise NotFound(f"Prize {prize_id} does not exist")
        return prize

    def record_rollover(
        self,
        source_prize_id: int,
        amount: Decimal,
        *,
        currency: Optional[str] = None,
        award_kind: Optional[AwardKind] = None,
        slots: int = 0,
        carried_back: bool = False,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RolloverEntry:
        """Append an outstanding rollover entry for ``source_prize_id``.

        ``currency`` and ``award_kind`` default to the source prize's and must
        match it when given.
        """

        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Rollover amount must be positive")
        prize = self._prize(source_prize_id)
        if award_kind is not None and AwardKind(award_kind) != prize.award_kind:
            raise ValueError("Rollover cannot change award kind")
        if currency is not None and currency.strip().upper() != prize.currency:
            raise ValueError("Rollover cannot change currency")

        entry = RolloverEntry(
            source_draw_id=prize.draw_id,
            source_prize_id=prize.id,
            scope=prize.draw.scope,
            award_kind=prize.award_kind,
            amount=amount,
            currency=prize.currency,
            slots=slots,
            carried_back=carried_back,
            reason=reason,
            created_at=as_utc(now) or utcnow(),
        )
        self._session.add(entry)
        self._session.flush()
        logger.info(
            "Rollover %s recorded: %s %s from prize %s (%s slot(s))",
            entry.id,
            amount,
            prize.currency,
            prize.id,
            slots,
        )
        return entry

    def forfeit_open_slots(
        self,
        prize: Prize,
        slots: int,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RolloverEntry]:
        """Close ``slots`` open slots of ``prize`` and roll their value over.

        Returns the ledger entry, or ``None`` for a zero-value prize, which
        has nothing to carry. Once every slot of the prize is forfeited the
        rollover it had consumed is handed back as well; see
        :meth:`return_carried`.

        Raises
        ------
        InvalidState
            If the prize no longer has ``slots`` open slots.
        """

        if slots <= 0:
            raise ValueError("slots must be positive")
        if not forfeit_slots(self._session, prize.id, slots):
            refresh_counters(self._session, prize)
            raise InvalidState(
                f"Prize {prize.id} has {prize.open_slots} open slot(s); cannot forfeit {slots}"
            )
        refresh_counters(self._session, prize)
        entry = None
        amount = prize.value_amount * slots
        if amount > 0:
            entry = self.record_rollover(
                prize.id, amount, slots=slots, reason=reason, now=now
            )
        else:
            logger.info("Prize %s: forfeited %s zero-value slot(s)", prize.id, slots)
        if prize.forfeited_slots == prize.slot_count:
            self.return_carried(prize, reason=reason, now=now)
        return entry

    def return_carried(
        self,
        prize: Prize,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RolloverEntry]:
        """Hand the unspent ``rollover_amount`` of ``prize`` back to the ledger.

        Used when a prize will never pay its carried value out: it was
        deactivated, or every one of its slots was forfeited. The amount is
        recorded as a new outstanding entry and the prize's field is zeroed,
        so outstanding plus consumed value is unchanged.

        Returns
        -------
        RolloverEntry or None
            The new entry, or ``None`` when the prize carried nothing.
        """

        carried = prize.rollover_amount or Decimal("0")
        if carried <= 0:
            return None
        entry = self.record_rollover(
            prize.id,
            carried,
            carried_back=True,
            reason=reason or "Carried rollover returned unspent",
            now=now,
        )
        prize.rollover_amount = Decimal("0")
        self._session.flush()
        return entry

    def _outstanding_stmt(
        self,
        scope: str,
        award_kind: AwardKind,
        currency: str,
        exclude_draw_id: Optional[int],
    ):
        stmt = select(RolloverEntry).where(
            RolloverEntry.scope == scope.strip().upper(),
            RolloverEntry.award_kind == AwardKind(award_kind),
            RolloverEntry.currency == currency.strip().upper(),
            RolloverEntry.destination_prize_id.is_(None),
        )
        if exclude_draw_id is not None:
            stmt = stmt.where(
                or_(
                    RolloverEntry.source_draw_id != exclude_draw_id,
                    RolloverEntry.carried_back.is_(True),
                )
            )
        return stmt.order_by(RolloverEntry.id)

    def outstanding(
        self,
        scope: str,
        award_kind: AwardKind,
        currency: str,
        *,
        exclude_draw_id: Optional[int] = None,
    ) -> list[RolloverEntry]:
        """Unconsumed entries matching scope, award kind and currency.

        ``exclude_draw_id`` drops value forfeited by that draw's own slots.
        """

        stmt = self._outstanding_stmt(scope, award_kind, currency, exclude_draw_id)
        return list(self._session.scalars(stmt).all())

    def outstanding_amount(
        self,
        scope: str,
        award_kind: AwardKind,
        currency: str,
        *,
        exclude_draw_id: Optional[int] = None,
    ) -> Decimal:
        entries = self.outstanding(
            scope, award_kind, currency, exclude_draw_id=exclude_draw_id
        )
        return sum((entry.amount for entry in entries), Decimal("0"))

    def consume_rollover(
        self, destination_prize_id: int, *, now: Optional[datetime] = None
    ) -> Decimal:
        """Move every matching outstanding entry into ``destination_prize_id``.

        Only entries from other draws are taken, apart from value handed back
        unspent by a prize of this draw, which originated elsewhere. The total is added to the
        prize's ``rollover_amount`` and, when the draw already advertises a
        pool in the same currency, to its estimated pool.

        Returns
        -------
        Decimal
            The amount consumed; zero when nothing was outstanding.

        Raises
        ------
        InvalidState
            If the prize is inactive or its draw is already completed.
        """

        now = as_utc(now) or utcnow()
        prize = self._prize(destination_prize_id)
        draw = prize.draw
        if not prize.is_active:
            raise InvalidState(f"Prize {prize.id} is deactivated")
        if draw.status == DrawStatus.COMPLETED:
            raise InvalidState(f"Draw {draw.id} is completed")

        total = Decimal("0")
        consumed = 0
        for entry in self.outstanding(
            draw.scope, prize.award_kind, prize.currency, exclude_draw_id=draw.id
        ):
            stmt = (
                update(RolloverEntry)
                .where(
                    RolloverEntry.id == entry.id,
                    RolloverEntry.destination_prize_id.is_(None),
                )
                .values(
                    destination_prize_id=prize.id,
                    destination_draw_id=draw.id,
                    consumed_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if self._session.execute(stmt).rowcount != 1:
                continue
            self._session.refresh(entry)
            total += entry.amount
            consumed += 1

        if total:
            prize.rollover_amount = (prize.rollover_amount or Decimal("0")) + total
            if (
                draw.estimated_pool_amount is not None
                and draw.estimated_pool_currency == prize.currency
            ):
                draw.estimated_pool_amount += total
            self._session.flush()
            logger.info(
                "Prize %s consumed %s rollover entr%s worth %s %s",
                prize.id,
                consumed,
                "y" if consumed == 1 else "ies",
                total,
                prize.currency,
            )
        return total


__all__ = ["RolloverLedger"]
