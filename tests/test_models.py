import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, StatementError

from prizedesk.models import (
    AwardKind,
    ClaimStatus,
    Draw,
    DrawStatus,
    Entry,
    Member,
    Membership,
    PayoutStatus,
    Prize,
    Winner,
)
from prizedesk.prize_draw.errors import AlreadyResolved, InvalidState

from tests.support import DAY, T0, DrawTestCase


class PrizeConstraintTests(DrawTestCase):
    def test_slots_cannot_exceed_capacity_in_the_database(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            prize_id = self.add_prize(session, draw, slots=2).id

        session = self.Session()
        try:
            with self.assertRaises(IntegrityError):
                session.execute(
                    update(Prize)
                    .where(Prize.id == prize_id)
                    .values(allocated_slots=2, forfeited_slots=1)
                )
            session.rollback()
        finally:
            session.close()

    def test_constructor_rejects_bad_values(self):
        with self.assertRaises(ValueError):
            Prize(
                title="Nothing", award_kind=AwardKind.RANDOM_DRAW,
                value_amount=Decimal("10"), currency="BDT", slot_count=0,
            )
        with self.assertRaises(ValueError):
            Prize(
                title="Debt", award_kind=AwardKind.RANDOM_DRAW,
                value_amount=Decimal("-1"), currency="BDT", slot_count=1,
            )

    def test_award_kind_is_frozen(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            prize = self.add_prize(session, draw)
            with self.assertRaises(InvalidState):
                prize.award_kind = AwardKind.COMMUNITY_SUPPORT
            self.assertEqual(prize.award_kind, AwardKind.RANDOM_DRAW)
            self.assertEqual(prize.currency, "BDT")
            self.assertEqual(prize.open_slots, 3)
            self.assertEqual(prize.total_value, Decimal("1500"))


class UniquenessTests(DrawTestCase):
    def test_member_enters_a_draw_once(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            member = self.add_member(session)
            draw_id, member_id = draw.id, member.id
            self.enter(session, draw, [member])

        session = self.Session()
        try:
            session.add(Entry(draw_id=draw_id, member_id=member_id))
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()
        finally:
            session.close()

    def test_member_wins_a_prize_once(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            prize = self.add_prize(session, draw)
            member = self.add_member(session)
            ids = dict(draw_id=draw.id, prize_id=prize.id, member_id=member.id)

        session = self.Session()
        try:
            for _ in range(2):
                session.add(
                    Winner(
                        award_kind=AwardKind.RANDOM_DRAW,
                        selected_at=T0,
                        claim_deadline=T0 + 14 * DAY,
                        **ids,
                    )
                )
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()
        finally:
            session.close()


class TransitionTests(DrawTestCase):
    def _winner(self) -> Winner:
        return Winner(
            draw_id=1,
            prize_id=1,
            member_id=1,
            award_kind=AwardKind.RANDOM_DRAW,
            selected_at=T0,
            claim_deadline=T0 + 14 * DAY,
        )

    def test_claim_status_only_moves_forward(self):
        winner = self._winner()
        self.assertEqual(winner.claim_status, ClaimStatus.PENDING)
        winner.claim_status = ClaimStatus.CLAIMED
        with self.assertRaises(AlreadyResolved):
            winner.claim_status = ClaimStatus.EXPIRED
        with self.assertRaises(AlreadyResolved):
            winner.claim_status = ClaimStatus.PENDING

    def test_payout_cannot_be_undone(self):
        winner = self._winner()
        winner.payout_status = PayoutStatus.PAID
        with self.assertRaises(AlreadyResolved):
            winner.payout_status = PayoutStatus.PENDING

    def test_overdue_is_strictly_after_the_deadline(self):
        winner = self._winner()
        self.assertFalse(winner.is_overdue(T0 + 14 * DAY))
        self.assertTrue(winner.is_overdue(T0 + 14 * DAY + timedelta(seconds=1)))

    def test_deadline_must_follow_selection(self):
        with self.assertRaises(ValueError):
            Winner(
                draw_id=1, prize_id=1, member_id=1, award_kind=AwardKind.RANDOM_DRAW,
                selected_at=T0, claim_deadline=T0,
            )

    def test_draw_lifecycle(self):
        draw = Draw(scope="bd", scheduled_at=T0)
        self.assertEqual(draw.scope, "BD")
        self.assertEqual(draw.status, DrawStatus.COMING_SOON)
        with self.assertRaises(InvalidState):
            draw.status = DrawStatus.COMPLETED
        draw.status = DrawStatus.ANNOUNCED
        draw.status = DrawStatus.COMPLETED
        with self.assertRaises(InvalidState):
            draw.status = DrawStatus.ANNOUNCED

    def test_scope_must_be_a_country_code(self):
        with self.assertRaises(ValueError):
            Draw(scope="BGD", scheduled_at=T0)
        with self.assertRaises(ValueError):
            Member(country_code="")
        self.assertEqual(Member(country_code=" np ").country_code, "NP")

    def test_membership_period_must_be_positive(self):
        with self.assertRaises(ValueError):
            Membership(start_date=T0, end_date=T0 - DAY)


class UTCDateTimeTests(DrawTestCase):
    def test_naive_timestamp_is_rejected(self):
        session = self.Session()
        try:
            session.add(Draw(scope="BD", scheduled_at=datetime(2026, 3, 1, 12, 0)))
            with self.assertRaises(StatementError):
                session.flush()
            session.rollback()
        finally:
            session.close()

    def test_offsets_are_stored_as_utc(self):
        dhaka = timezone(timedelta(hours=6))
        with self.Session.begin() as session:
            draw = Draw(scope="BD", scheduled_at=datetime(2026, 3, 1, 18, 0, tzinfo=dhaka))
            session.add(draw)
            session.flush()
            draw_id = draw.id

        with self.Session() as session:
            loaded = session.get(Draw, draw_id)
            self.assertEqual(loaded.scheduled_at, T0)
            self.assertEqual(loaded.scheduled_at.utcoffset(), timedelta(0))


class MembershipLookupTests(DrawTestCase):
    def test_active_membership_ignores_expired_periods(self):
        with self.Session.begin() as session:
            member = self.add_member(session, membership_end=T0 - DAY)
            self.assertIsNone(member.active_membership(session, T0))
            renewal = Membership(
                member=member, start_date=T0 - DAY, end_date=T0 + 30 * DAY
            )
            session.add(renewal)
            session.flush()
            self.assertEqual(member.active_membership(session, T0).id, renewal.id)


if __name__ == "__main__":
    unittest.main()
