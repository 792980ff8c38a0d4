"""Participant forecast and advertised prize pool for a draw announcement."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import DEFAULT_SETTINGS, EngineSettings
from ..db.utils import as_utc, utcnow
from ..models import CountrySetting, Member, Membership, MembershipStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastResult:
    """Expected number of eligible members at draw time.

    Attributes
    ----------
    current_member_count : int
        Members of the scope holding an active, unexpired membership now.
    daily_growth : Decimal
        New memberships per day over the lookback window.
    days_until_draw : int
        Whole days (rounded up) between ``now`` and the draw; never negative.
    forecast_member_count : int
        ``current + daily_growth * days_until_draw``, rounded half up.
    """

    current_member_count: int
    daily_growth: Decimal
    days_until_draw: int
    forecast_member_count: int


@dataclass(frozen=True)
class PrizePoolEstimate:
    amount: Decimal
    currency: str
    percentage: Decimal
    forecast_member_count: int


def forecast_member_count(
    session: Session,
    scope: str,
    scheduled_at: datetime,
    *,
    now: Optional[datetime] = None,
    lookback_days: Optional[int] = None,
) -> ForecastResult:
    """Forecast the member count of ``scope`` at ``scheduled_at``.

    Growth is linear: the memberships created during the last
    ``lookback_days`` days, spread per day, projected over the days left.
    """

    now = as_utc(now) or utcnow()
    scope = scope.strip().upper()
    lookback = lookback_days or DEFAULT_SETTINGS.growth_lookback_days
    if lookback <= 0:
        raise ValueError("lookback_days must be positive")

    current = session.scalar(
        select(func.count(func.distinct(Member.id)))
        .join(Membership, Membership.member_id == Member.id)
        .where(
            Member.country_code == scope,
            Membership.status == MembershipStatus.ACTIVE,
            Membership.end_date > now,
        )
    ) or 0
    new_memberships = session.scalar(
        select(func.count(Membership.id))
        .join(Member, Member.id == Membership.member_id)
        .where(
            Member.country_code == scope,
            Membership.status == MembershipStatus.ACTIVE,
            Membership.created_at >= now - timedelta(days=lookback),
        )
    ) or 0

    seconds_left = (as_utc(scheduled_at) - now).total_seconds()
    days_until = max(0, math.ceil(seconds_left / 86400))
    daily_growth = Decimal(new_memberships) / Decimal(lookback)
    expected = (Decimal(current) + daily_growth * days_until).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return ForecastResult(
        current_member_count=current,
        daily_growth=daily_growth.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        days_until_draw=days_until,
        forecast_member_count=int(expected),
    )


def estimate_prize_pool(
    session: Session,
    scope: str,
    scheduled_at: datetime,
    *,
    percentage: Optional[Decimal] = None,
    now: Optional[datetime] = None,
    settings: Optional[EngineSettings] = None,
) -> Optional[PrizePoolEstimate]:
    """Estimate the prize pool as a share of forecast membership revenue.

    The percentage falls back to the country's configured share, then to
    ``settings.pool_percentage``. Returns ``None`` when the country has no
    fee configured; the draw is then announced without an estimate.
    """

    settings = settings or DEFAULT_SETTINGS
    country = CountrySetting.get(session, scope)
    if country is None:
        logger.warning("No country settings for %s; prize pool not estimated", scope)
        return None

    if percentage is None:
        percentage = country.prize_pool_percentage
    if percentage is None:
        percentage = settings.pool_percentage
    percentage = Decimal(percentage)
    if not Decimal("0") <= percentage <= Decimal("100"):
        raise ValueError("Prize pool percentage must be between 0 and 100")

    forecast = forecast_member_count(
        session,
        scope,
        scheduled_at,
        now=now,
        lookback_days=settings.growth_lookback_days,
    )
    revenue = Decimal(forecast.forecast_member_count) * country.membership_fee_amount
    amount = (revenue * percentage / Decimal("100")).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return PrizePoolEstimate(
        amount=amount,
        currency=country.currency_code,
        percentage=percentage,
        forecast_member_count=forecast.forecast_member_count,
    )


__all__ = [
    "ForecastResult",
    "PrizePoolEstimate",
    "estimate_prize_pool",
    "forecast_member_count",
]
