from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .enums import (  # noqa: F401
    AwardKind,
    ClaimStatus,
    DrawStatus,
    MemberStanding,
    MembershipStatus,
    PayoutStatus,
    SelectionMethod,
)
from .admin import Admin  # noqa: F401
from .member import Member, Membership  # noqa: F401
from .country import CountrySetting  # noqa: F401
from .draw import Draw, Prize, Entry  # noqa: F401
from .winner import Winner  # noqa: F401
from .rollover import RolloverEntry  # noqa: F401
from .audit import AuditLog  # noqa: F401

__all__ = [
    "Base",
    "Admin",
    "Member",
    "Membership",
    "CountrySetting",
    "Draw",
    "Prize",
    "Entry",
    "Winner",
    "RolloverEntry",
    "AuditLog",
    "AwardKind",
    "ClaimStatus",
    "DrawStatus",
    "MemberStanding",
    "MembershipStatus",
    "PayoutStatus",
    "SelectionMethod",
]
