from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .types import MONEY, UTCDateTime


class CountrySetting(Base):
    """Per-country membership fee and prize pool share used for forecasts."""

    __tablename__ = "country_settings"

    country_code: Mapped[str] = mapped_column(String(2), primary_key=True)
    membership_fee_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    prize_pool_percentage: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    """Share of forecast membership revenue advertised as prize pool."""

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @classmethod
    def get(cls, session: Session, country_code: str) -> Optional["CountrySetting"]:
        return session.scalar(
            select(cls).where(cls.country_code == country_code.strip().upper())
        )
