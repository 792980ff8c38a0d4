"""Append-only ledger of prize value carried from one draw into another."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import AwardKind
from .id_type import ID_TYPE
from .types import MONEY, UTCDateTime, enum_type

if TYPE_CHECKING:
    from .draw import Prize


class RolloverEntry(Base):
    """Unallocated prize value waiting to fund a later prize of the same kind.

    Rows are never deleted. Consumption sets the destination columns and
    ``consumed_at`` so the path of every amount stays auditable.
    """

    __tablename__ = "rollover_entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)

    source_draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    source_prize_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("prizes.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    destination_draw_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="RESTRICT"), nullable=True
    )
    destination_prize_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("prizes.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    scope: Mapped[str] = mapped_column(String(2), nullable=False)
    """Country scope of the source draw; rollover stays within it."""

    award_kind: Mapped[AwardKind] = mapped_column(
        enum_type(AwardKind, "award_kind"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Number of forfeited slots this entry accounts for."""

    carried_back: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    """Unspent rollover handed back by a retired or fully forfeited prize.

    Such value came from an earlier draw, so any draw may take it again,
    including the one that handed it back.
    """

    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    source_prize: Mapped["Prize"] = relationship(foreign_keys=[source_prize_id])
    destination_prize: Mapped[Optional["Prize"]] = relationship(
        foreign_keys=[destination_prize_id]
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        Index(
            "ix_rollover_entries_outstanding",
            "scope",
            "award_kind",
            "currency",
            "destination_prize_id",
        ),
    )

    @property
    def is_consumed(self) -> bool:
        return self.destination_prize_id is not None

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<RolloverEntry(id={id}, source_prize_id={src}, amount={amount} {cur}, consumed={consumed})>".format(
            id=self.id,
            src=self.source_prize_id,
            amount=self.amount,
            cur=self.currency,
            consumed=self.is_consumed,
        )


__all__ = ["RolloverEntry"]
