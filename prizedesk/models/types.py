"""Column types shared by the models package."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, Numeric
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp stored as UTC.

    SQLite drops tzinfo on the way in and returns naive values on the way
    out. Normalizing both directions lets application code compare stored
    deadlines against ``datetime.now(timezone.utc)`` on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: Optional[datetime], dialect
    ) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(
        self, value: Optional[datetime], dialect
    ) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


MONEY = Numeric(14, 2, asdecimal=True)
"""Monetary amounts, always handled as :class:`decimal.Decimal`."""


def enum_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Return a portable VARCHAR-backed column type storing enum values."""

    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        validate_strings=True,
        values_callable=lambda cls: [member.value for member in cls],
    )
