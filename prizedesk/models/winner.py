"""The allocation record binding one member to one prize slot."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .base import Base
from .enums import AwardKind, ClaimStatus, PayoutStatus, SelectionMethod
from .id_type import ID_TYPE
from .types import UTCDateTime, enum_type

if TYPE_CHECKING:
    from .admin import Admin
    from .draw import Draw, Prize
    from .member import Member


class Winner(Base):
    """Audit-relevant record of who won which prize slot, and its claim state.

    Winners are never deleted. ``claim_status`` only moves forward
    (PENDING to CLAIMED or EXPIRED); both the ORM validator and the
    conditional updates in :mod:`prizedesk.prize_draw.claims` enforce it.
    """

    __tablename__ = "winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    prize_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("prizes.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    member_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("members.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    award_kind: Mapped[AwardKind] = mapped_column(
        enum_type(AwardKind, "award_kind"), nullable=False
    )
    """Copied from the prize at selection time."""

    selection_method: Mapped[SelectionMethod] = mapped_column(
        enum_type(SelectionMethod, "selection_method"),
        nullable=False,
        default=SelectionMethod.RANDOM,
    )

    selected_by_admin_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True
    )
    """Admin who picked the winner; ``None`` when the system selected it."""

    selected_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    claim_status: Mapped[ClaimStatus] = mapped_column(
        enum_type(ClaimStatus, "claim_status"),
        nullable=False,
        default=ClaimStatus.PENDING,
    )

    claim_deadline: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    """Last moment a claim is accepted."""

    claimed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    payout_status: Mapped[PayoutStatus] = mapped_column(
        enum_type(PayoutStatus, "payout_status"),
        nullable=False,
        default=PayoutStatus.PENDING,
    )
    """Advanced by the external payout system."""

    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Reason supplied with a manual community-support award."""

    draw: Mapped["Draw"] = relationship(back_populates="winners")
    prize: Mapped["Prize"] = relationship(back_populates="winners")
    member: Mapped["Member"] = relationship(back_populates="wins")
    selected_by_admin: Mapped[Optional["Admin"]] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "draw_id", "prize_id", "member_id", name="uq_winners_draw_prize_member"
        ),
        Index("ix_winners_status_deadline", "claim_status", "claim_deadline"),
    )

    def __init__(
        self,
        *,
        draw_id: int,
        prize_id: int,
        member_id: int,
        award_kind: AwardKind,
        selected_at: datetime,
        claim_deadline: datetime,
        selection_method: SelectionMethod = SelectionMethod.RANDOM,
        selected_by_admin_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> None:
        if claim_deadline <= selected_at:
            raise ValueError("claim_deadline must be after selected_at")
        self.draw_id = draw_id
        self.prize_id = prize_id
        self.member_id = member_id
        self.award_kind = award_kind
        self.selection_method = selection_method
        self.selected_by_admin_id = selected_by_admin_id
        self.selected_at = selected_at
        self.claim_deadline = claim_deadline
        self.claim_status = ClaimStatus.PENDING
        self.payout_status = PayoutStatus.PENDING
        self.note = note

    @validates("claim_status")
    def _validate_claim_status(self, _key: str, value: ClaimStatus) -> ClaimStatus:
        from ..prize_draw.states import check_claim_transition

        value = ClaimStatus(value)
        check_claim_transition(self.claim_status, value)
        return value

    @validates("payout_status")
    def _validate_payout_status(self, _key: str, value: PayoutStatus) -> PayoutStatus:
        from ..prize_draw.states import check_payout_transition

        value = PayoutStatus(value)
        check_payout_transition(self.payout_status, value)
        return value

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Whether a PENDING winner has passed its claim deadline."""

        now = now or datetime.now(timezone.utc)
        return self.claim_status == ClaimStatus.PENDING and now > self.claim_deadline

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Winner(id={id}, prize_id={prize}, member_id={member}, claim_status={status})>".format(
            id=self.id,
            prize=self.prize_id,
            member=self.member_id,
            status=self.claim_status,
        )


__all__ = ["Winner"]
