"""Read-only summaries of draws and winners for dashboards."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import (
    ClaimStatus,
    Draw,
    DrawStatus,
    Entry,
    PayoutStatus,
    RolloverEntry,
    Winner,
)
from .errors import NotFound
from .slots import refresh_counters

DAY_SECONDS = 24 * 60 * 60
EXPIRING_SOON_DAYS = 3


@dataclass
class PrizeLine:
    prize_id: int
    title: str
    award_kind: str
    slot_count: int
    allocated_slots: int
    forfeited_slots: int
    value_amount: Decimal
    rollover_amount: Decimal
    currency: str
    is_active: bool


@dataclass
class DrawReport:
    """Totals for one draw.

    Money totals are keyed by currency code, since a draw's prizes may be
    priced in more than one. ``total_prize_value`` counts every slot of the
    active prizes plus the rollover they carry in. ``rolled_over_amount`` is
    what this draw handed to the rollover ledger.
    """

    draw_id: int
    scope: str
    status: DrawStatus
    entry_count: int
    total_prize_value: dict[str, Decimal]
    claimed_count: int
    pending_count: int
    expired_count: int
    paid_count: int
    rolled_over_amount: dict[str, Decimal]
    forecast_member_count: Optional[int] = None
    estimated_pool_amount: Optional[Decimal] = None
    estimated_pool_currency: Optional[str] = None
    prizes: list[PrizeLine] = field(default_factory=list)


@dataclass
class MemberPrize:
    """A member's winner record with its claim countdown.

    ``days_remaining`` counts whole days left before the claim deadline and
    never goes below zero. ``expiring_soon`` flags PENDING claims with three
    days or fewer left.
    """

    winner: Winner
    days_remaining: int
    expiring_soon: bool

    @property
    def winner_id(self) -> int:
        return self.winner.id

    @property
    def claim_deadline(self) -> datetime:
        return self.winner.claim_deadline


def member_prize(winner: Winner, now: datetime) -> MemberPrize:
    seconds = (winner.claim_deadline - now).total_seconds()
    days = int(seconds // DAY_SECONDS)
    expiring = winner.claim_status == ClaimStatus.PENDING and 0 <= days <= EXPIRING_SOON_DAYS
    return MemberPrize(winner=winner, days_remaining=max(0, days), expiring_soon=expiring)


def build_draw_report(session: Session, draw_id: int) -> DrawReport:
    """Summarize ``draw_id`` from the database's current state.

    Slot counters are re-read first: they are only ever changed by
    conditional updates, so the identity map may hold stale values.
    """
    draw = session.get(Draw, draw_id)
    if draw is None:
        raise NotFound(f"Draw {draw_id} does not exist")

    counts = dict(
        session.execute(
            select(Winner.claim_status, func.count(Winner.id))
            .where(Winner.draw_id == draw.id)
            .group_by(Winner.claim_status)
        ).all()
    )
    paid = session.scalar(
        select(func.count(Winner.id)).where(
            Winner.draw_id == draw.id, Winner.payout_status == PayoutStatus.PAID
        )
    )
    entry_count = session.scalar(
        select(func.count(Entry.id)).where(Entry.draw_id == draw.id)
    )
    rolled = {
        currency: Decimal(str(amount))
        for currency, amount in session.execute(
            select(RolloverEntry.currency, func.sum(RolloverEntry.amount))
            .where(RolloverEntry.source_draw_id == draw.id)
            .group_by(RolloverEntry.currency)
        ).all()
    }

    lines = []
    totals: dict[str, Decimal] = {}
    for prize in draw.prizes:
        refresh_counters(session, prize)
        lines.append(
            PrizeLine(
                prize_id=prize.id,
                title=prize.title,
                award_kind=prize.award_kind.value,
                slot_count=prize.slot_count,
                allocated_slots=prize.allocated_slots,
                forfeited_slots=prize.forfeited_slots,
                value_amount=prize.value_amount,
                rollover_amount=prize.rollover_amount,
                currency=prize.currency,
                is_active=prize.is_active,
            )
        )
        if prize.is_active:
            totals[prize.currency] = totals.get(prize.currency, Decimal("0")) + prize.total_value

    return DrawReport(
        draw_id=draw.id,
        scope=draw.scope,
        status=draw.status,
        entry_count=entry_count or 0,
        total_prize_value=totals,
        claimed_count=counts.get(ClaimStatus.CLAIMED, 0),
        pending_count=counts.get(ClaimStatus.PENDING, 0),
        expired_count=counts.get(ClaimStatus.EXPIRED, 0),
        paid_count=paid or 0,
        rolled_over_amount=rolled,
        forecast_member_count=draw.forecast_member_count,
        estimated_pool_amount=draw.estimated_pool_amount,
        estimated_pool_currency=draw.estimated_pool_currency,
        prizes=lines,
    )


__all__ = ["DrawReport", "MemberPrize", "PrizeLine", "build_draw_report", "member_prize"]
