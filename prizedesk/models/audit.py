from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .id_type import ID_TYPE
from .types import UTCDateTime


class AuditLog(Base):
    """Append-only trail of engine actions."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_admin_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True
    )
    actor_member_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    subject_table: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_id: Mapped[Optional[int]] = mapped_column(ID_TYPE, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "actor_type IN ('system','admin','member')", name="actor_type_enum"
        ),
    )
