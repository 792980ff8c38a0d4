"""Member and membership records consumed by the eligibility rules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .enums import MemberStanding, MembershipStatus
from .id_type import ID_TYPE
from .types import UTCDateTime, enum_type

if TYPE_CHECKING:
    from .draw import Entry
    from .winner import Winner


class Member(Base):
    """A person who can enter draws and win prizes."""

    __tablename__ = "members"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    """ISO 3166-1 alpha-2 country the member is registered in."""

    standing: Mapped[MemberStanding] = mapped_column(
        enum_type(MemberStanding, "member_standing"),
        nullable=False,
        default=MemberStanding.ACTIVE,
    )
    """Account standing; suspended and banned members never win."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    memberships: Mapped[list["Membership"]] = relationship(
        back_populates="member", cascade="all, delete-orphan"
    )
    entries: Mapped[list["Entry"]] = relationship(back_populates="member")
    wins: Mapped[list["Winner"]] = relationship(back_populates="member")

    def __init__(
        self,
        *,
        country_code: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        standing: MemberStanding = MemberStanding.ACTIVE,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.country_code = country_code
        self.display_name = display_name
        self.email = email
        self.standing = standing
        if created_at is not None:
            self.created_at = created_at

    @validates("country_code")
    def _normalize_country(self, _key: str, value: str) -> str:
        normalized = value.strip().upper()
        if len(normalized) != 2:
            raise ValueError("country_code must be a two-letter code")
        return normalized

    def active_membership(
        self, session: Session, now: Optional[datetime] = None
    ) -> Optional["Membership"]:
        """Return the latest active, unexpired membership, if any."""

        now = now or datetime.now(timezone.utc)
        stmt = (
            select(Membership)
            .where(
                Membership.member_id == self.id,
                Membership.status == MembershipStatus.ACTIVE,
                Membership.end_date > now,
            )
            .order_by(Membership.end_date.desc(), Membership.id.desc())
        )
        return session.scalars(stmt).first()

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Member(id={self.id}, country_code={self.country_code}, standing={self.standing})>"


class Membership(Base):
    """A paid membership period; only active, unexpired ones are eligible."""

    __tablename__ = "memberships"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    membership_number: Mapped[Optional[str]] = mapped_column(
        String(32), unique=True, nullable=True
    )
    status: Mapped[MembershipStatus] = mapped_column(
        enum_type(MembershipStatus, "membership_status"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    member: Mapped["Member"] = relationship(back_populates="memberships")

    __table_args__ = (
        Index("ix_memberships_member_status", "member_id", "status"),
    )

    def __init__(
        self,
        *,
        start_date: datetime,
        end_date: datetime,
        member: Optional[Member] = None,
        member_id: Optional[int] = None,
        membership_number: Optional[str] = None,
        status: MembershipStatus = MembershipStatus.ACTIVE,
        created_at: Optional[datetime] = None,
    ) -> None:
        if end_date <= start_date:
            raise ValueError("Membership end_date must be after start_date")
        if member is not None:
            self.member = member
        if member_id is not None:
            self.member_id = member_id
        self.membership_number = membership_number
        self.status = status
        self.start_date = start_date
        self.end_date = end_date
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Membership(id={self.id}, member_id={self.member_id}, status={self.status}, end_date={self.end_date})>"


__all__ = ["Member", "Membership"]
