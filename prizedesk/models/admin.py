from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from .base import Base
from .id_type import ID_TYPE
from .types import UTCDateTime


class Admin(Base):
    """Operator account recorded as the selector of manual awards."""

    __tablename__ = "admins"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    email: Mapped[Optional[str]] = mapped_column(String(100), unique=True, index=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
    )

    @validates("email")
    def _normalize_email(self, _key: str, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None

    @classmethod
    def get_by_email(cls, session: Session, email: str) -> Optional["Admin"]:
        """Get admin by their email address."""
        return session.scalar(select(cls).where(cls.email == email.strip().lower()))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Admin(id={self.id}, email={self.email!r}, role={self.role!r})>"
