"""Caller-facing operations of the prize draw engine.

Every function takes the caller's :class:`~sqlalchemy.orm.Session` first,
flushes its writes and leaves the commit to the caller. Admin operations also
take a :class:`~prizedesk.prize_draw.capabilities.CallerCapabilities`
decided by the authorization layer.
"""

import logging
import random
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import DEFAULT_SETTINGS, EngineSettings
from .db.utils import as_utc, utcnow
from .models import (
    AwardKind,
    ClaimStatus,
    Draw,
    DrawStatus,
    Entry,
    Member,
    Prize,
    Winner,
)
from .prize_draw.audit import record_audit
from .prize_draw.capabilities import CallerCapabilities
from .prize_draw.claims import ClaimTracker
from .prize_draw.eligibility import INELIGIBLE_STANDINGS
from .prize_draw.errors import (
    CapabilityDenied,
    InvalidState,
    NotEligible,
    NotFound,
)
from .prize_draw.forecast import estimate_prize_pool, forecast_member_count
from .prize_draw.notifications import Notifier, dispatch
from .prize_draw.redraw import (
    ExpiryRedrawOrchestrator,
    RedrawSummary,
    complete_if_resolved,
)
from .prize_draw.reports import MemberPrize, member_prize
from .prize_draw.rollover import RolloverLedger
from .prize_draw.selector import SelectionResult, Selector
from .prize_draw.states import require_draw_status

logger = logging.getLogger(__name__)

MIN_MANUAL_REASON_LENGTH = 10


def _get_draw(session: Session, draw_id: int) -> Draw:
    draw = session.get(Draw, draw_id)
    if draw is None:
        raise NotFound(f"Draw {draw_id} does not exist")
    return draw


def _get_prize(session: Session, prize_id: int) -> Prize:
    prize = session.get(Prize, prize_id)
    if prize is None:
        raise NotFound(f"Prize {prize_id} does not exist")
    return prize


def _audit(
    session: Session,
    caller: CallerCapabilities,
    action: str,
    *,
    subject_table: str,
    subject_id: Optional[int],
    details: Optional[dict] = None,
) -> None:
    record_audit(
        session,
        action,
        subject_table=subject_table,
        subject_id=subject_id,
        actor_type=caller.actor_type,
        actor_admin_id=caller.admin_id,
        details=details,
    )


def _notify(notifier: Optional[Notifier], event: str, winners: Iterable[Winner]) -> None:
    for winner in winners:
        dispatch(notifier, event, winner)


def create_draw(
    session: Session,
    caller: CallerCapabilities,
    *,
    scope: str,
    scheduled_at: datetime,
    title: Optional[str] = None,
    disclaimer: Optional[str] = None,
    pool_percentage: Optional[Decimal] = None,
    entry_cutoff_at: Optional[datetime] = None,
) -> Draw:
    """Create a COMING_SOON draw for the country ``scope``.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    caller : CallerCapabilities
        Must grant ``can_manage_draws``.
    scope : str
        Two-letter country code whose members may take part.
    scheduled_at : datetime
        When selection is due. Naive values are taken as UTC.
    title, disclaimer : Optional[str]
        Display text.
    pool_percentage : Optional[Decimal]
        Share of forecast revenue advertised as prize pool. When omitted
        the country's (or the engine's default) share is used at announce.
    entry_cutoff_at : Optional[datetime]
        When entries close, no later than ``scheduled_at``. Entries close at
        ``scheduled_at`` when omitted.

    Returns
    -------
    Draw
        The flushed draw.
    """
    caller.require("can_manage_draws")
    if scheduled_at is None:
        raise ValueError("scheduled_at is required")
    scheduled_at = as_utc(scheduled_at)
    entry_cutoff_at = as_utc(entry_cutoff_at)
    if entry_cutoff_at is not None and entry_cutoff_at > scheduled_at:
        raise ValueError("entry_cutoff_at cannot be after scheduled_at")
    if pool_percentage is not None:
        pool_percentage = Decimal(pool_percentage)
        if not Decimal("0") <= pool_percentage <= Decimal("100"):
            raise ValueError("pool_percentage must be between 0 and 100")

    draw = Draw(
        scope=scope,
        scheduled_at=scheduled_at,
        title=title,
        disclaimer=disclaimer,
        pool_percentage=pool_percentage,
        entry_cutoff_at=entry_cutoff_at,
        created_by_admin_id=caller.admin_id,
    )
    session.add(draw)
    session.flush()
    logger.info("Draw %s created for %s, scheduled %s", draw.id, draw.scope, draw.scheduled_at)
    _audit(
        session,
        caller,
        "draw.created",
        subject_table="draws",
        subject_id=draw.id,
        details={"scope": draw.scope, "scheduled_at": draw.scheduled_at},
    )
    return draw


def announce_draw(
    session: Session,
    caller: CallerCapabilities,
    draw_id: int,
    *,
    now: Optional[datetime] = None,
    settings: Optional[EngineSettings] = None,
) -> Draw:
    """Announce a COMING_SOON draw and snapshot its forecast.

    The forecast member count and the estimated prize pool are frozen on the
    draw. The pool also includes rollover already carried into the draw's
    prizes. Without country settings the draw is announced with no pool
    estimate.

    Raises
    ------
    InvalidState
        If the draw is not COMING_SOON.
    """
    caller.require("can_manage_draws")
    settings = settings or DEFAULT_SETTINGS
    now = as_utc(now) or utcnow()
    draw = _get_draw(session, draw_id)
    require_draw_status(draw, DrawStatus.COMING_SOON)

    forecast = forecast_member_count(
        session,
        draw.scope,
        draw.scheduled_at,
        now=now,
        lookback_days=settings.growth_lookback_days,
    )
    estimate = estimate_prize_pool(
        session,
        draw.scope,
        draw.scheduled_at,
        percentage=draw.pool_percentage,
        now=now,
        settings=settings,
    )

    draw.forecast_member_count = forecast.forecast_member_count
    if estimate is not None:
        carried = sum(
            (
                prize.rollover_amount
                for prize in draw.active_prizes
                if prize.currency == estimate.currency
            ),
            Decimal("0"),
        )
        draw.estimated_pool_amount = estimate.amount + carried
        draw.estimated_pool_currency = estimate.currency
        draw.pool_percentage = estimate.percentage
    draw.status = DrawStatus.ANNOUNCED
    draw.announced_at = now
    session.flush()

    logger.info(
        "Draw %s announced: forecast %s member(s), pool %s %s",
        draw.id,
        draw.forecast_member_count,
        draw.estimated_pool_amount,
        draw.estimated_pool_currency,
    )
    _audit(
        session,
        caller,
        "draw.announced",
        subject_table="draws",
        subject_id=draw.id,
        details={
            "forecast_member_count": draw.forecast_member_count,
            "estimated_pool_amount": draw.estimated_pool_amount,
            "estimated_pool_currency": draw.estimated_pool_currency,
        },
    )
    return draw


def withdraw_announcement(
    session: Session, caller: CallerCapabilities, draw_id: int
) -> Draw:
    """Return an ANNOUNCED draw to COMING_SOON.

    Only possible while no winner has been selected for any of its prizes.
    """
    caller.require("can_manage_draws")
    draw = _get_draw(session, draw_id)
    require_draw_status(draw, DrawStatus.ANNOUNCED)
    has_winner = session.scalar(
        select(Winner.id).where(Winner.draw_id == draw.id).limit(1)
    )
    if has_winner is not None or draw.selection_ran_at is not None:
        raise InvalidState(f"Draw {draw.id} already has winners")

    draw.status = DrawStatus.COMING_SOON
    draw.announced_at = None
    draw.forecast_member_count = None
    draw.estimated_pool_amount = None
    draw.estimated_pool_currency = None
    session.flush()
    logger.info("Draw %s announcement withdrawn", draw.id)
    _audit(session, caller, "draw.withdrawn", subject_table="draws", subject_id=draw.id)
    return draw


def create_prize(
    session: Session,
    caller: CallerCapabilities,
    draw_id: int,
    *,
    title: str,
    award_kind: AwardKind,
    value_amount: Decimal,
    currency: str,
    slot_count: int,
    description: Optional[str] = None,
    apply_rollover: bool = True,
    now: Optional[datetime] = None,
) -> Prize:
    """Attach a prize to a draw that has not completed.

    With ``apply_rollover`` (the default) outstanding rollover of the same
    scope, award kind and currency from earlier draws is consumed into the
    new prize straight away.
    """
    caller.require("can_manage_draws")
    if not title or not title.strip():
        raise ValueError("Prize title is required")
    award_kind = AwardKind(award_kind)
    draw = _get_draw(session, draw_id)
    require_draw_status(draw, DrawStatus.COMING_SOON, DrawStatus.ANNOUNCED)

    prize = Prize(
        draw=draw,
        title=title.strip(),
        description=description,
        award_kind=award_kind,
        value_amount=Decimal(value_amount),
        currency=currency,
        slot_count=slot_count,
        created_at=as_utc(now) or utcnow(),
    )
    session.add(prize)
    session.flush()

    carried = Decimal("0")
    if apply_rollover:
        carried = RolloverLedger(session).consume_rollover(prize.id, now=now)

    logger.info(
        "Prize %s created on draw %s: %s x %s %s (%s)",
        prize.id,
        draw.id,
        prize.slot_count,
        prize.value_amount,
        prize.currency,
        prize.award_kind.value,
    )
    _audit(
        session,
        caller,
        "prize.created",
        subject_table="prizes",
        subject_id=prize.id,
        details={
            "draw_id": draw.id,
            "award_kind": prize.award_kind,
            "slot_count": prize.slot_count,
            "value_amount": prize.value_amount,
            "rollover_consumed": carried,
        },
    )
    return prize


def deactivate_prize(
    session: Session,
    caller: CallerCapabilities,
    prize_id: int,
    *,
    now: Optional[datetime] = None,
) -> Prize:
    """Retire a prize without deleting it.

    A prize still holding live winners cannot be retired. Rollover the prize
    had consumed goes back to the ledger, where a replacement prize (in this
    draw or a later one) can take it, and leaves the draw's advertised pool.
    """
    caller.require("can_manage_draws")
    now = as_utc(now) or utcnow()
    prize = _get_prize(session, prize_id)
    if not prize.is_active:
        raise InvalidState(f"Prize {prize.id} is already deactivated")
    session.refresh(prize, attribute_names=["allocated_slots"])
    if prize.allocated_slots:
        raise InvalidState(f"Prize {prize.id} has {prize.allocated_slots} live winner(s)")
    draw = prize.draw
    require_draw_status(draw, DrawStatus.COMING_SOON, DrawStatus.ANNOUNCED)

    returned = RolloverLedger(session).return_carried(
        prize, reason=f"Prize {prize.id} deactivated", now=now
    )
    if (
        returned is not None
        and draw.estimated_pool_amount is not None
        and draw.estimated_pool_currency == prize.currency
    ):
        draw.estimated_pool_amount = max(
            Decimal("0"), draw.estimated_pool_amount - returned.amount
        )
    prize.is_active = False
    prize.deactivated_at = now
    session.flush()
    logger.info("Prize %s deactivated", prize.id)
    _audit(
        session,
        caller,
        "prize.deactivated",
        subject_table="prizes",
        subject_id=prize.id,
        details={"rollover_returned": returned.amount if returned else Decimal("0")},
    )
    complete_if_resolved(session, draw, now=now)
    return prize


def list_prizes(
    session: Session, draw_id: int, *, active_only: bool = False
) -> list[Prize]:
    draw = _get_draw(session, draw_id)
    stmt = select(Prize).where(Prize.draw_id == draw.id)
    if active_only:
        stmt = stmt.where(Prize.is_active.is_(True))
    return list(session.scalars(stmt.order_by(Prize.id)).all())


def list_member_prizes(
    session: Session,
    member_id: int,
    *,
    claimable_only: bool = True,
    now: Optional[datetime] = None,
) -> list[MemberPrize]:
    """Winner records of ``member_id`` with their claim countdown.

    Parameters
    ----------
    claimable_only : bool
        By default only PENDING winners whose deadline has not passed are
        returned, soonest deadline first. Pass ``False`` for the member's
        full history, newest selection first.

    Raises
    ------
    NotFound
        If the member does not exist.
    """
    now = as_utc(now) or utcnow()
    if session.get(Member, member_id) is None:
        raise NotFound(f"Member {member_id} does not exist")

    stmt = select(Winner).where(Winner.member_id == member_id)
    if claimable_only:
        stmt = stmt.where(
            Winner.claim_status == ClaimStatus.PENDING,
            Winner.claim_deadline >= now,
        ).order_by(Winner.claim_deadline.asc(), Winner.id.asc())
    else:
        stmt = stmt.order_by(Winner.selected_at.desc(), Winner.id.desc())
    return [member_prize(winner, now) for winner in session.scalars(stmt).all()]


def list_draw_winners(session: Session, draw_id: int) -> list[Winner]:
    """Every winner of a draw, in the order they were selected."""
    draw = _get_draw(session, draw_id)
    stmt = (
        select(Winner)
        .where(Winner.draw_id == draw.id)
        .order_by(Winner.selected_at.asc(), Winner.id.asc())
    )
    return list(session.scalars(stmt).all())


def get_active_draw(session: Session, scope: str) -> Optional[Draw]:
    """Return the next COMING_SOON or ANNOUNCED draw for ``scope``, if any."""
    return Draw.active_for_scope(session, scope)


def enter_draw(
    session: Session,
    member_id: int,
    draw_id: int,
    *,
    now: Optional[datetime] = None,
) -> Entry:
    """Enter ``member_id`` into an ANNOUNCED draw.

    Idempotent: a member who already entered gets the existing entry back,
    even after entries have closed.

    Raises
    ------
    NotFound
        If the member or draw does not exist.
    InvalidState
        If the draw is not ANNOUNCED, its entry cutoff (``scheduled_at`` when
        no explicit cutoff is set) has passed, or selection already ran.
    NotEligible
        If the member is outside the draw's country, is suspended or banned,
        or has no active membership.
    """
    now = as_utc(now) or utcnow()
    member = session.get(Member, member_id)
    if member is None:
        raise NotFound(f"Member {member_id} does not exist")
    draw = _get_draw(session, draw_id)
    require_draw_status(draw, DrawStatus.ANNOUNCED)

    existing = session.scalar(
        select(Entry).where(Entry.draw_id == draw.id, Entry.member_id == member.id)
    )
    if existing is not None:
        return existing
    if not draw.accepts_entries(now):
        raise InvalidState(f"Draw {draw.id} no longer accepts entries")

    if member.country_code != draw.scope:
        raise NotEligible(f"Member {member.id} is not registered in {draw.scope}")
    if member.standing in INELIGIBLE_STANDINGS:
        raise NotEligible(f"Member {member.id} is {member.standing.value}")
    membership = member.active_membership(session, now)
    if membership is None:
        raise NotEligible(f"Member {member.id} has no active membership")

    entry = Entry(
        draw_id=draw.id,
        member_id=member.id,
        membership_id=membership.id,
        created_at=now,
    )
    try:
        with session.begin_nested():
            session.add(entry)
            session.flush()
    except IntegrityError:
        # A concurrent request entered the member first.
        existing = session.scalar(
            select(Entry).where(Entry.draw_id == draw.id, Entry.member_id == member.id)
        )
        if existing is None:
            raise
        return existing

    record_audit(
        session,
        "entry.created",
        subject_table="entries",
        subject_id=entry.id,
        actor_type="member",
        actor_member_id=member.id,
        details={"draw_id": draw.id},
    )
    return entry


def run_selection(
    session: Session,
    caller: CallerCapabilities,
    draw_id: int,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    settings: Optional[EngineSettings] = None,
    notifier: Optional[Notifier] = None,
) -> list[SelectionResult]:
    """Randomly fill the open slots of every active RANDOM_DRAW prize.

    Running it again is harmless: prizes with no open slots are skipped and
    prior winners are never drawn twice. Shortfalls are reported in the
    results; the expiry sweep later rolls the unfillable slots over.

    Raises
    ------
    InvalidState
        If the draw is not ANNOUNCED.
    """
    caller.require("can_run_selection")
    now = as_utc(now) or utcnow()
    draw = _get_draw(session, draw_id)
    require_draw_status(draw, DrawStatus.ANNOUNCED)

    selector = Selector(session, rng=rng, settings=settings)
    results = [
        selector.select_winners(prize, now=now)
        for prize in draw.active_prizes
        if prize.award_kind == AwardKind.RANDOM_DRAW
    ]
    if draw.selection_ran_at is None:
        draw.selection_ran_at = now
    session.flush()

    winners = [winner for result in results for winner in result.winners]
    logger.info(
        "Selection on draw %s: %s winner(s), %s slot(s) short",
        draw.id,
        len(winners),
        sum(result.shortfall for result in results),
    )
    _audit(
        session,
        caller,
        "selection.ran",
        subject_table="draws",
        subject_id=draw.id,
        details={
            "prizes": [
                {
                    "prize_id": result.prize_id,
                    "member_ids": result.member_ids,
                    "shortfall": result.shortfall,
                }
                for result in results
            ]
        },
    )
    _notify(notifier, "winner_selected", winners)
    return results


def expire_and_redraw(
    session: Session,
    caller: CallerCapabilities,
    draw_id: int,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    settings: Optional[EngineSettings] = None,
    notifier: Optional[Notifier] = None,
) -> RedrawSummary:
    """Expire overdue winners of a draw, redraw their slots and roll over the rest."""
    caller.require("can_expire_and_redraw")
    orchestrator = ExpiryRedrawOrchestrator(session, rng=rng, settings=settings)
    summary = orchestrator.expire_and_redraw(draw_id, now=now)

    if summary.expired_count or summary.redrawn_count or summary.rolled_over_slots:
        _audit(
            session,
            caller,
            "draw.swept",
            subject_table="draws",
            subject_id=draw_id,
            details={
                "expired_winner_ids": [w.id for w in summary.expired_winners],
                "new_winner_ids": [w.id for w in summary.new_winners],
                "rolled_over_slots": summary.rolled_over_slots,
                "rollover_amount": summary.rollover_amount,
                "failed_prize_ids": summary.failed_prize_ids,
            },
        )
    _notify(notifier, "winner_expired", summary.expired_winners)
    _notify(notifier, "winner_selected", summary.new_winners)
    return summary


def claim_prize(
    session: Session,
    winner_id: int,
    caller_member_id: int,
    *,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Winner:
    """Claim a won prize on behalf of the winning member.

    Errors surface as :class:`NotFound`, :class:`NotOwner`,
    :class:`AlreadyResolved` or :class:`DeadlinePassed`.
    """
    now = as_utc(now) or utcnow()
    winner = ClaimTracker(session).claim(winner_id, caller_member_id, now=now)
    record_audit(
        session,
        "winner.claimed",
        subject_table="winners",
        subject_id=winner.id,
        actor_type="member",
        actor_member_id=caller_member_id,
    )
    complete_if_resolved(session, winner.draw, now=now)
    dispatch(notifier, "prize_claimed", winner)
    return winner


def assign_manual_winner(
    session: Session,
    caller: CallerCapabilities,
    prize_id: int,
    member_id: int,
    *,
    reason: str,
    now: Optional[datetime] = None,
    settings: Optional[EngineSettings] = None,
    notifier: Optional[Notifier] = None,
) -> Winner:
    """Award one slot of a COMMUNITY_SUPPORT prize to a hand-picked member.

    ``reason`` is stored on the winner and must be at least
    ``MIN_MANUAL_REASON_LENGTH`` characters.
    """
    caller.require("can_assign_manual")
    if caller.admin_id is None:
        raise CapabilityDenied("can_assign_manual")
    reason = (reason or "").strip()
    if len(reason) < MIN_MANUAL_REASON_LENGTH:
        raise ValueError(
            f"A reason of at least {MIN_MANUAL_REASON_LENGTH} characters is required"
        )
    prize = _get_prize(session, prize_id)
    winner = Selector(session, settings=settings).assign(
        prize, member_id, admin_id=caller.admin_id, note=reason, now=now
    )
    _audit(
        session,
        caller,
        "winner.assigned",
        subject_table="winners",
        subject_id=winner.id,
        details={"prize_id": prize.id, "member_id": member_id, "reason": reason},
    )
    dispatch(notifier, "winner_selected", winner)
    return winner


def close_draw(
    session: Session,
    caller: CallerCapabilities,
    draw_id: int,
    *,
    now: Optional[datetime] = None,
) -> Draw:
    """Complete a draw by hand, forfeiting every slot still open.

    The forfeited value goes to the rollover ledger. A draw with winners
    still inside their claim window cannot be closed.

    Raises
    ------
    InvalidState
        If the draw is not ANNOUNCED, selection never ran, or PENDING winners
        remain.
    """
    caller.require("can_manage_draws")
    now = as_utc(now) or utcnow()
    draw = _get_draw(session, draw_id)
    require_draw_status(draw, DrawStatus.ANNOUNCED)
    if draw.selection_ran_at is None:
        raise InvalidState(f"Draw {draw.id} has not run selection")
    pending = session.scalar(
        select(Winner.id)
        .where(Winner.draw_id == draw.id, Winner.claim_status == ClaimStatus.PENDING)
        .limit(1)
    )
    if pending is not None:
        raise InvalidState(f"Draw {draw.id} still has winners awaiting a claim")

    ledger = RolloverLedger(session)
    forfeited = {}
    for prize in draw.active_prizes:
        session.refresh(prize, attribute_names=["allocated_slots", "forfeited_slots"])
        if prize.open_slots:
            forfeited[prize.id] = prize.open_slots
            ledger.forfeit_open_slots(
                prize,
                prize.open_slots,
                reason=f"Draw {draw.id} closed with open slots",
                now=now,
            )

    draw.status = DrawStatus.COMPLETED
    draw.completed_at = now
    session.flush()
    logger.info("Draw %s closed; forfeited slots %s", draw.id, forfeited)
    _audit(
        session,
        caller,
        "draw.closed",
        subject_table="draws",
        subject_id=draw.id,
        details={"forfeited_slots": forfeited},
    )
    return draw


def record_payout(
    session: Session,
    caller: CallerCapabilities,
    winner_id: int,
    *,
    now: Optional[datetime] = None,
) -> Winner:
    """Record that a claimed prize has been paid out."""
    caller.require("can_manage_draws")
    winner = ClaimTracker(session).record_payout(winner_id, now=now)
    _audit(session, caller, "winner.paid", subject_table="winners", subject_id=winner.id)
    return winner
