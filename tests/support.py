"""Shared fixtures for the prize draw test suites."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from prizedesk.db.engine import get_sessionmaker, make_engine
from prizedesk.models import (
    Admin,
    AwardKind,
    Base,
    CountrySetting,
    Draw,
    DrawStatus,
    Entry,
    Member,
    MemberStanding,
    Membership,
    MembershipStatus,
    Prize,
)
from prizedesk.prize_draw.notifications import Notifier

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.events: list[tuple[str, int]] = []

    def winner_selected(self, winner) -> None:
        self.events.append(("winner_selected", winner.id))

    def winner_expired(self, winner) -> None:
        self.events.append(("winner_expired", winner.id))

    def prize_claimed(self, winner) -> None:
        self.events.append(("prize_claimed", winner.id))


class BrokenNotifier(Notifier):
    def winner_selected(self, winner) -> None:
        raise RuntimeError("mail relay down")

    def prize_claimed(self, winner) -> None:
        raise RuntimeError("mail relay down")


class DrawTestCase(unittest.TestCase):
    """Fresh in-memory database per test plus seeding helpers."""

    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()

    def add_admin(self, session, email: str = "admin@example.com") -> Admin:
        admin = Admin(email=email, name="admin", role="superuser", created_at=T0)
        session.add(admin)
        session.flush()
        return admin

    def add_member(
        self,
        session,
        *,
        country: str = "BD",
        standing: MemberStanding = MemberStanding.ACTIVE,
        membership_status: Optional[MembershipStatus] = MembershipStatus.ACTIVE,
        membership_end: Optional[datetime] = None,
        joined_at: Optional[datetime] = None,
    ) -> Member:
        joined_at = joined_at or T0 - 90 * DAY
        member = Member(country_code=country, standing=standing, created_at=joined_at)
        if membership_status is not None:
            member.memberships.append(
                Membership(
                    start_date=joined_at,
                    end_date=membership_end or T0 + 365 * DAY,
                    status=membership_status,
                    created_at=joined_at,
                )
            )
        session.add(member)
        session.flush()
        return member

    def add_members(self, session, count: int, **kwargs) -> list[Member]:
        return [self.add_member(session, **kwargs) for _ in range(count)]

    def add_draw(
        self,
        session,
        *,
        scope: str = "BD",
        scheduled_at: Optional[datetime] = None,
        announced: bool = True,
    ) -> Draw:
        draw = Draw(scope=scope, scheduled_at=scheduled_at or T0, created_at=T0 - 30 * DAY)
        if announced:
            draw.status = DrawStatus.ANNOUNCED
            draw.announced_at = T0 - 7 * DAY
        session.add(draw)
        session.flush()
        return draw

    def add_prize(
        self,
        session,
        draw: Draw,
        *,
        kind: AwardKind = AwardKind.RANDOM_DRAW,
        value: str = "500",
        slots: int = 3,
        currency: str = "BDT",
        title: str = "Cash Prize",
    ) -> Prize:
        prize = Prize(
            draw=draw,
            title=title,
            award_kind=kind,
            value_amount=Decimal(value),
            currency=currency,
            slot_count=slots,
            created_at=T0 - 7 * DAY,
        )
        session.add(prize)
        session.flush()
        return prize

    def enter(self, session, draw: Draw, members) -> None:
        for member in members:
            session.add(Entry(draw_id=draw.id, member_id=member.id, created_at=T0 - DAY))
        session.flush()

    def add_country(
        self, session, code: str = "BD", fee: str = "1000", currency: str = "BDT",
        percentage: Optional[str] = "30",
    ) -> CountrySetting:
        setting = CountrySetting(
            country_code=code,
            membership_fee_amount=Decimal(fee),
            currency_code=currency,
            prize_pool_percentage=Decimal(percentage) if percentage is not None else None,
        )
        session.add(setting)
        session.flush()
        return setting
