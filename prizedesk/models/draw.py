"""Database models for draws, their prizes and member entries."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .enums import AwardKind, DrawStatus
from .id_type import ID_TYPE
from .types import MONEY, UTCDateTime, enum_type

if TYPE_CHECKING:
    from .member import Member, Membership
    from .winner import Winner


class Draw(Base):
    """One periodic prize-allocation cycle scoped to a country."""

    __tablename__ = "draws"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    scope: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    """Country code whose members may take part."""

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Optional human readable name shown to admins and members."""

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    """When the draw is due to run winner selection."""

    status: Mapped[DrawStatus] = mapped_column(
        enum_type(DrawStatus, "draw_status"),
        nullable=False,
        default=DrawStatus.COMING_SOON,
    )
    """Lifecycle stage; see :mod:`prizedesk.prize_draw.states`."""

    forecast_member_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Participant forecast snapshotted when the draw was announced."""

    estimated_pool_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    """Advertised prize pool, including rollover folded into the draw's prizes."""

    estimated_pool_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    pool_percentage: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    """Share of forecast membership revenue advertised as prize pool."""

    disclaimer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    entry_cutoff_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    """Entries close here; falls back to ``scheduled_at`` when unset."""

    announced_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    selection_ran_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    """First time winner selection ran; the scheduler skips draws with a value."""

    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    created_by_admin_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    prizes: Mapped[list["Prize"]] = relationship(
        back_populates="draw", order_by="Prize.id"
    )
    entries: Mapped[list["Entry"]] = relationship(back_populates="draw")
    winners: Mapped[list["Winner"]] = relationship(back_populates="draw")

    __table_args__ = (
        Index("ix_draws_scope_status", "scope", "status"),
    )

    def __init__(
        self,
        *,
        scope: str,
        scheduled_at: datetime,
        title: Optional[str] = None,
        disclaimer: Optional[str] = None,
        pool_percentage: Optional[Decimal] = None,
        entry_cutoff_at: Optional[datetime] = None,
        created_by_admin_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.scope = scope
        self.scheduled_at = scheduled_at
        self.title = title
        self.disclaimer = disclaimer
        self.pool_percentage = pool_percentage
        self.entry_cutoff_at = entry_cutoff_at
        self.created_by_admin_id = created_by_admin_id
        self.status = DrawStatus.COMING_SOON
        if created_at is not None:
            self.created_at = created_at

    @validates("scope")
    def _normalize_scope(self, _key: str, value: str) -> str:
        normalized = value.strip().upper()
        if len(normalized) != 2:
            raise ValueError("Draw scope must be a two-letter country code")
        return normalized

    @validates("status")
    def _validate_status(self, _key: str, value: DrawStatus) -> DrawStatus:
        from ..prize_draw.states import check_draw_transition

        value = DrawStatus(value)
        check_draw_transition(self.status, value)
        return value

    @property
    def entries_close_at(self) -> datetime:
        return self.entry_cutoff_at or self.scheduled_at

    def accepts_entries(self, now: datetime) -> bool:
        """Whether a member may still enter at ``now``.

        Entry closes at the cutoff and never reopens once selection has run.
        """

        return self.selection_ran_at is None and now < self.entries_close_at

    @property
    def active_prizes(self) -> list["Prize"]:
        return [prize for prize in self.prizes if prize.is_active]

    @classmethod
    def active_for_scope(cls, session: Session, scope: str) -> Optional["Draw"]:
        """Return the earliest upcoming or announced draw for ``scope``."""

        stmt = (
            select(cls)
            .where(
                cls.scope == scope.strip().upper(),
                cls.status.in_([DrawStatus.COMING_SOON, DrawStatus.ANNOUNCED]),
            )
            .order_by(cls.scheduled_at.asc(), cls.id.asc())
        )
        return session.scalars(stmt).first()

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Draw(id={id}, scope={scope}, status={status}, scheduled_at={at})>".format(
            id=self.id,
            scope=self.scope,
            status=self.status,
            at=self.scheduled_at,
        )


class Prize(Base):
    """A named reward within a draw with a fixed per-winner value and slot count."""

    __tablename__ = "prizes"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)

    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    award_kind: Mapped[AwardKind] = mapped_column(
        enum_type(AwardKind, "award_kind"), nullable=False
    )
    """RANDOM_DRAW or COMMUNITY_SUPPORT; immutable once set."""

    value_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    """Value awarded to each winner slot."""

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    slot_count: Mapped[int] = mapped_column(Integer, nullable=False)
    """Number of winners this prize requires."""

    allocated_slots: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    """Slots held by PENDING or CLAIMED winners. Only changed by conditional updates."""

    forfeited_slots: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    """Slots closed for this draw whose value moved to the rollover ledger."""

    rollover_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0"), server_default=text("0")
    )
    """Value carried in from earlier draws' unclaimed prizes."""

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    draw: Mapped["Draw"] = relationship(back_populates="prizes")
    winners: Mapped[list["Winner"]] = relationship(
        back_populates="prize", order_by="Winner.id"
    )

    __table_args__ = (
        CheckConstraint("slot_count >= 1", name="slot_count_positive"),
        CheckConstraint("value_amount >= 0", name="value_non_negative"),
        CheckConstraint("allocated_slots >= 0", name="allocated_non_negative"),
        CheckConstraint("forfeited_slots >= 0", name="forfeited_non_negative"),
        CheckConstraint(
            "allocated_slots + forfeited_slots <= slot_count",
            name="slots_within_capacity",
        ),
    )

    def __init__(
        self,
        *,
        title: str,
        award_kind: AwardKind,
        value_amount: Decimal,
        currency: str,
        slot_count: int,
        draw: Optional[Draw] = None,
        draw_id: Optional[int] = None,
        description: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        if slot_count < 1:
            raise ValueError("slot_count must be at least 1")
        if Decimal(value_amount) < 0:
            raise ValueError("value_amount must not be negative")
        if draw is not None:
            self.draw = draw
        if draw_id is not None:
            self.draw_id = draw_id
        self.title = title
        self.description = description
        self.award_kind = award_kind
        self.value_amount = Decimal(value_amount)
        self.currency = currency.strip().upper()
        self.slot_count = slot_count
        self.allocated_slots = 0
        self.forfeited_slots = 0
        self.rollover_amount = Decimal("0")
        self.is_active = True
        if created_at is not None:
            self.created_at = created_at

    @validates("award_kind")
    def _freeze_award_kind(self, _key: str, value: AwardKind) -> AwardKind:
        value = AwardKind(value)
        current = self.award_kind
        if current is not None and current != value:
            from ..prize_draw.errors import InvalidState

            raise InvalidState("A prize's award kind cannot change after creation")
        return value

    @property
    def open_slots(self) -> int:
        """Slots neither held by a live winner nor forfeited."""
        return self.slot_count - self.allocated_slots - self.forfeited_slots

    @property
    def total_value(self) -> Decimal:
        """Full advertised value: every slot plus rollover carried in."""
        return self.value_amount * self.slot_count + (self.rollover_amount or Decimal("0"))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Prize(id={id}, draw_id={draw_id}, award_kind={kind}, slots={alloc}/{count})>".format(
            id=self.id,
            draw_id=self.draw_id,
            kind=self.award_kind,
            alloc=self.allocated_slots,
            count=self.slot_count,
        )


class Entry(Base):
    """A member's participation ticket for a draw; at most one per pair."""

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="CASCADE"), nullable=False, index=True
    )
    member_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    membership_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    draw: Mapped["Draw"] = relationship(back_populates="entries")
    member: Mapped["Member"] = relationship(back_populates="entries")
    membership: Mapped[Optional["Membership"]] = relationship()

    __table_args__ = (
        UniqueConstraint("draw_id", "member_id", name="uq_entries_draw_member"),
    )

    def __init__(
        self,
        *,
        draw_id: int,
        member_id: int,
        membership_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.draw_id = draw_id
        self.member_id = member_id
        self.membership_id = membership_id
        if created_at is not None:
            self.created_at = created_at


__all__ = ["Draw", "Prize", "Entry"]
