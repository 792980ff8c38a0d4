"""Runtime settings for the prize draw engine, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class EngineSettings:
    claim_window: timedelta = timedelta(days=14)
    """Time a selected winner has to claim."""

    pool_percentage: Decimal = Decimal("30")
    """Default share of forecast revenue advertised as the prize pool."""

    growth_lookback_days: int = 30
    """Window used to estimate daily membership growth for forecasts."""

    notification_webhook_url: Optional[str] = None
    notification_timeout: int = 10

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from ``PRIZE_*`` environment variables (and ``.env``)."""

        load_dotenv()
        claim_days = int(os.getenv("PRIZE_CLAIM_WINDOW_DAYS", "14"))
        if claim_days <= 0:
            raise ValueError("PRIZE_CLAIM_WINDOW_DAYS must be positive")
        return cls(
            claim_window=timedelta(days=claim_days),
            pool_percentage=Decimal(os.getenv("PRIZE_POOL_PERCENTAGE", "30")),
            growth_lookback_days=int(os.getenv("PRIZE_GROWTH_LOOKBACK_DAYS", "30")),
            notification_webhook_url=os.getenv("PRIZE_NOTIFY_WEBHOOK_URL") or None,
            notification_timeout=int(os.getenv("PRIZE_NOTIFY_TIMEOUT", "10")),
        )


DEFAULT_SETTINGS = EngineSettings()

__all__ = ["DEFAULT_SETTINGS", "EngineSettings"]
