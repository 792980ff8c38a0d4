"""Closed enumerations for every status column in the prize draw schema."""

from __future__ import annotations

import enum


class DrawStatus(str, enum.Enum):
    COMING_SOON = "COMING_SOON"
    ANNOUNCED = "ANNOUNCED"
    COMPLETED = "COMPLETED"


class AwardKind(str, enum.Enum):
    RANDOM_DRAW = "RANDOM_DRAW"
    COMMUNITY_SUPPORT = "COMMUNITY_SUPPORT"


class ClaimStatus(str, enum.Enum):
    PENDING = "PENDING"
    CLAIMED = "CLAIMED"
    EXPIRED = "EXPIRED"


class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class SelectionMethod(str, enum.Enum):
    RANDOM = "random"
    MANUAL = "manual"


class MembershipStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class MemberStanding(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


__all__ = [
    "AwardKind",
    "ClaimStatus",
    "DrawStatus",
    "MemberStanding",
    "MembershipStatus",
    "PayoutStatus",
    "SelectionMethod",
]
