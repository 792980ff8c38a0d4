from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import select

from prizedesk import workflows
from prizedesk.models import AwardKind, DrawStatus, Prize, RolloverEntry
from prizedesk.prize_draw.capabilities import CallerCapabilities
from prizedesk.prize_draw.errors import InvalidState
from prizedesk.prize_draw.rollover import RolloverLedger

from tests.support import DAY, T0, DrawTestCase

SYSTEM = CallerCapabilities.system()


class RolloverTestCase(DrawTestCase):
    def forfeited_entry(
        self,
        session,
        *,
        scope: str = "BD",
        kind: AwardKind = AwardKind.RANDOM_DRAW,
        currency: str = "BDT",
        value: str = "500",
        slots: int = 2,
    ) -> RolloverEntry:
        draw = self.add_draw(session, scope=scope)
        prize = self.add_prize(session, draw, kind=kind, currency=currency, value=value, slots=slots)
        return RolloverLedger(session).forfeit_open_slots(
            prize, slots, reason="Eligible pool exhausted", now=T0
        )

    def new_prize(self, session, draw_id: int, **kwargs):
        params = dict(
            title="Cash Prize",
            award_kind=AwardKind.RANDOM_DRAW,
            value_amount=Decimal("500"),
            currency="BDT",
            slot_count=1,
            now=T0 + 40 * DAY,
        )
        params.update(kwargs)
        return workflows.create_prize(session, SYSTEM, draw_id, **params)


class ForfeitTests(RolloverTestCase):
    def test_forfeiting_open_slots_records_their_value(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            prize = self.add_prize(session, draw, slots=3, value="500")
            entry = RolloverLedger(session).forfeit_open_slots(
                prize, 2, reason="Closed early", now=T0
            )

            self.assertEqual(entry.amount, Decimal("1000"))
            self.assertEqual(entry.slots, 2)
            self.assertEqual(entry.scope, "BD")
            self.assertEqual(entry.source_draw_id, draw.id)
            self.assertEqual(entry.source_prize_id, prize.id)
            self.assertEqual(entry.created_at, T0)
            self.assertEqual(prize.forfeited_slots, 2)
            self.assertEqual(prize.open_slots, 1)

            with self.assertRaises(InvalidState):
                RolloverLedger(session).forfeit_open_slots(prize, 2, now=T0)
            self.assertEqual(prize.forfeited_slots, 2)

    def test_zero_value_prize_forfeits_without_an_entry(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            prize = self.add_prize(session, draw, value="0", slots=1)
            self.assertIsNone(RolloverLedger(session).forfeit_open_slots(prize, 1, now=T0))
            self.assertEqual(prize.forfeited_slots, 1)
            self.assertEqual(session.scalars(select(RolloverEntry)).all(), [])

    def test_record_rollover_validation(self):
        with self.Session.begin() as session:
            draw = self.add_draw(session)
            prize = self.add_prize(session, draw)
            ledger = RolloverLedger(session)
            with self.assertRaises(ValueError):
                ledger.record_rollover(prize.id, Decimal("0"))
            with self.assertRaises(ValueError):
                ledger.record_rollover(
                    prize.id, Decimal("10"), award_kind=AwardKind.COMMUNITY_SUPPORT
                )
            with self.assertRaises(ValueError):
                ledger.record_rollover(prize.id, Decimal("10"), currency="NPR")

            ledger.record_rollover(prize.id, Decimal("10"), currency="bdt", now=T0)
            ledger.record_rollover(prize.id, Decimal("15.50"), now=T0)
            self.assertEqual(
                ledger.outstanding_amount("bd", AwardKind.RANDOM_DRAW, "BDT"),
                Decimal("25.50"),
            )
            self.assertEqual(
                ledger.outstanding_amount(
                    "BD", AwardKind.RANDOM_DRAW, "BDT", exclude_draw_id=draw.id
                ),
                Decimal("0"),
            )


class ConsumeTests(RolloverTestCase):
    def test_next_matching_prize_takes_the_rollover(self):
        with self.Session.begin() as session:
            entry = self.forfeited_entry(session)
            draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)

            first = self.new_prize(session, draw.id)
            self.assertEqual(first.rollover_amount, Decimal("1000"))
            self.assertEqual(first.total_value, Decimal("1500"))
            session.refresh(entry)
            self.assertEqual(entry.destination_prize_id, first.id)
            self.assertEqual(entry.destination_draw_id, draw.id)
            self.assertEqual(entry.consumed_at, T0 + 40 * DAY)

            # Consumed exactly once.
            second = self.new_prize(session, draw.id, title="Second Prize")
            self.assertEqual(second.rollover_amount, Decimal("0"))
            self.assertEqual(
                RolloverLedger(session).consume_rollover(first.id, now=T0 + 41 * DAY),
                Decimal("0"),
            )

    def test_rollover_does_not_cross_kind_currency_or_scope(self):
        with self.Session.begin() as session:
            self.forfeited_entry(session)
            bd_draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)
            np_draw = workflows.create_draw(session, SYSTEM, scope="NP", scheduled_at=T0 + 60 * DAY)

            support = self.new_prize(
                session, bd_draw.id, title="Support", award_kind=AwardKind.COMMUNITY_SUPPORT
            )
            dollars = self.new_prize(session, bd_draw.id, title="Dollars", currency="USD")
            abroad = self.new_prize(session, np_draw.id, title="Abroad")
            for prize in (support, dollars, abroad):
                self.assertEqual(prize.rollover_amount, Decimal("0"))

            self.assertEqual(
                RolloverLedger(session).outstanding_amount("BD", AwardKind.RANDOM_DRAW, "BDT"),
                Decimal("1000"),
            )

    def test_rollover_never_returns_to_its_own_draw(self):
        with self.Session.begin() as session:
            entry = self.forfeited_entry(session)
            same_draw_prize = self.new_prize(session, entry.source_draw_id, title="Late addition")
            self.assertEqual(same_draw_prize.rollover_amount, Decimal("0"))
            session.refresh(entry)
            self.assertIsNone(entry.destination_prize_id)

    def test_consumption_can_be_deferred(self):
        with self.Session.begin() as session:
            entry = self.forfeited_entry(session)
            draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)
            prize = self.new_prize(session, draw.id, apply_rollover=False)
            self.assertEqual(prize.rollover_amount, Decimal("0"))

            taken = RolloverLedger(session).consume_rollover(prize.id, now=T0 + 45 * DAY)
            self.assertEqual(taken, Decimal("1000"))
            session.refresh(entry)
            self.assertEqual(entry.destination_prize_id, prize.id)

    def test_rejects_inactive_prize_and_completed_draw(self):
        with self.Session.begin() as session:
            self.forfeited_entry(session)
            draw = self.add_draw(session)
            retired = self.add_prize(session, draw)
            retired.is_active = False
            session.flush()
            with self.assertRaises(InvalidState):
                RolloverLedger(session).consume_rollover(retired.id, now=T0)

            done = self.add_draw(session)
            prize = self.add_prize(session, done)
            done.status = DrawStatus.COMPLETED
            session.flush()
            with self.assertRaises(InvalidState):
                RolloverLedger(session).consume_rollover(prize.id, now=T0)


class ConservationTests(RolloverTestCase):
    def ledger_total(self, session) -> Decimal:
        """Outstanding ledger value plus value held by prizes."""
        outstanding = RolloverLedger(session).outstanding_amount(
            "BD", AwardKind.RANDOM_DRAW, "BDT"
        )
        held = sum(
            (prize.rollover_amount for prize in session.scalars(select(Prize)).all()),
            Decimal("0"),
        )
        return outstanding + held

    def test_deactivated_prize_hands_its_rollover_to_a_replacement(self):
        with self.Session.begin() as session:
            self.forfeited_entry(session)
            draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)
            retired = self.new_prize(session, draw.id, title="Retired")
            self.assertEqual(retired.rollover_amount, Decimal("1000"))
            self.assertEqual(self.ledger_total(session), Decimal("1000"))

            workflows.deactivate_prize(session, SYSTEM, retired.id, now=T0 + 41 * DAY)
            self.assertEqual(retired.rollover_amount, Decimal("0"))
            self.assertEqual(self.ledger_total(session), Decimal("1000"))
            returned = session.scalars(
                select(RolloverEntry).where(RolloverEntry.carried_back.is_(True))
            ).one()
            self.assertEqual(returned.amount, Decimal("1000"))
            self.assertEqual(returned.slots, 0)
            self.assertEqual(returned.source_prize_id, retired.id)

            replacement = self.new_prize(session, draw.id, title="Replacement")
            self.assertEqual(replacement.rollover_amount, Decimal("1000"))
            self.assertEqual(self.ledger_total(session), Decimal("1000"))
            session.refresh(returned)
            self.assertEqual(returned.destination_prize_id, replacement.id)

    def test_deactivation_takes_the_rollover_out_of_the_advertised_pool(self):
        with self.Session.begin() as session:
            self.add_country(session)
            self.forfeited_entry(session)
            draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)
            prize = self.new_prize(session, draw.id)
            workflows.announce_draw(session, SYSTEM, draw.id, now=T0 + 45 * DAY)
            self.assertEqual(draw.estimated_pool_amount, Decimal("1000"))

            workflows.deactivate_prize(session, SYSTEM, prize.id, now=T0 + 46 * DAY)
            self.assertEqual(draw.estimated_pool_amount, Decimal("0"))

    def test_fully_forfeited_prize_returns_what_it_carried(self):
        with self.Session.begin() as session:
            self.forfeited_entry(session)
            draw = self.add_draw(session)
            prize = self.new_prize(session, draw.id, now=T0 - DAY)
            self.assertEqual(prize.rollover_amount, Decimal("1000"))

            # Nobody entered, so selection and the sweep both come up empty.
            workflows.run_selection(session, SYSTEM, draw.id, now=T0)
            summary = workflows.expire_and_redraw(session, SYSTEM, draw.id, now=T0 + DAY)

            self.assertEqual(summary.rolled_over_slots, 1)
            self.assertEqual(summary.rollover_amount, Decimal("1500"))
            self.assertEqual(prize.rollover_amount, Decimal("0"))
            recorded = session.scalars(
                select(RolloverEntry).where(RolloverEntry.source_draw_id == draw.id)
            ).all()
            self.assertEqual(
                sum((entry.amount for entry in recorded), Decimal("0")), Decimal("1500")
            )
            self.assertEqual(
                RolloverLedger(session).outstanding_amount("BD", AwardKind.RANDOM_DRAW, "BDT"),
                Decimal("1500"),
            )

    def test_partly_awarded_prize_keeps_its_rollover(self):
        with self.Session.begin() as session:
            self.forfeited_entry(session)
            draw = self.add_draw(session)
            prize = self.new_prize(session, draw.id, slot_count=2, now=T0 - DAY)
            self.enter(session, draw, self.add_members(session, 1))

            workflows.run_selection(session, SYSTEM, draw.id, now=T0)
            workflows.expire_and_redraw(session, SYSTEM, draw.id, now=T0 + DAY)

            self.assertEqual((prize.allocated_slots, prize.forfeited_slots), (1, 1))
            self.assertEqual(prize.rollover_amount, Decimal("1000"))
            self.assertEqual(
                session.scalars(
                    select(RolloverEntry).where(RolloverEntry.carried_back.is_(True))
                ).all(),
                [],
            )


class AdvertisedPoolTests(RolloverTestCase):
    def test_consuming_into_an_announced_draw_raises_its_pool(self):
        with self.Session.begin() as session:
            self.add_country(session)
            self.forfeited_entry(session)
            draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)
            workflows.announce_draw(session, SYSTEM, draw.id, now=T0 + 30 * DAY)
            before = draw.estimated_pool_amount
            self.assertEqual(draw.estimated_pool_currency, "BDT")

            self.new_prize(session, draw.id)
            self.assertEqual(draw.estimated_pool_amount, before + Decimal("1000"))

    def test_announcing_includes_rollover_already_carried(self):
        with self.Session.begin() as session:
            self.add_country(session)
            self.forfeited_entry(session)
            draw = workflows.create_draw(session, SYSTEM, scope="BD", scheduled_at=T0 + 60 * DAY)
            self.new_prize(session, draw.id)
            self.assertIsNone(draw.estimated_pool_amount)

            workflows.announce_draw(session, SYSTEM, draw.id, now=T0 + 50 * DAY)
            # No members in the country, so the forecast part of the pool is zero.
            self.assertEqual(draw.forecast_member_count, 0)
            self.assertEqual(draw.estimated_pool_amount, Decimal("1000"))


if __name__ == "__main__":
    unittest.main()
