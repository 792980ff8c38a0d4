from datetime import datetime, timedelta, timezone
from decimal import Decimal

from prizedesk import workflows
from prizedesk.db.engine import get_sessionmaker, make_engine
from prizedesk.models import (
    Admin,
    AwardKind,
    Base,
    CountrySetting,
    Member,
    Membership,
)
from prizedesk.prize_draw import CallerCapabilities


def main() -> None:
    """Reset the development database and fill it with an announced draw."""
    engine = make_engine()

    # The schema has no foreign-key cycles, so dependency order is enough.
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        admin = Admin(email="admin@example.com", name="prize_admin", role="superuser")
        session.add(admin)
        session.add(
            CountrySetting(
                country_code="BD",
                membership_fee_amount=Decimal("1000"),
                currency_code="BDT",
                prize_pool_percentage=Decimal("30"),
            )
        )
        session.flush()

        members = []
        for index in range(1, 9):
            member = Member(
                country_code="BD",
                display_name=f"Member {index:02d}",
                email=f"member{index:02d}@example.com",
            )
            member.memberships.append(
                Membership(
                    membership_number=f"BD-{index:05d}",
                    start_date=now - timedelta(days=10 * index),
                    end_date=now + timedelta(days=365),
                    created_at=now - timedelta(days=10 * index),
                )
            )
            members.append(member)
        session.add_all(members)
        session.flush()

        caller = CallerCapabilities.full_admin(admin.id)
        draw = workflows.create_draw(
            session,
            caller,
            scope="BD",
            scheduled_at=now + timedelta(days=7),
            title="Monthly Member Draw",
            disclaimer="Estimated prize pool is not guaranteed and depends on membership forecast.",
        )
        workflows.create_prize(
            session,
            caller,
            draw.id,
            title="Cash Prize",
            award_kind=AwardKind.RANDOM_DRAW,
            value_amount=Decimal("500"),
            currency="BDT",
            slot_count=3,
        )
        workflows.create_prize(
            session,
            caller,
            draw.id,
            title="Community Support Grant",
            award_kind=AwardKind.COMMUNITY_SUPPORT,
            value_amount=Decimal("2000"),
            currency="BDT",
            slot_count=1,
        )
        workflows.announce_draw(session, caller, draw.id, now=now)
        for member in members:
            workflows.enter_draw(session, member.id, draw.id, now=now)

    print("Seeded draw with 8 entrants:", draw.id)


if __name__ == "__main__":
    main()
