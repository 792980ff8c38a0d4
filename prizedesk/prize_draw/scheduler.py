"""Periodic jobs: run due selections and sweep expired claims.

Each draw is processed in its own savepoint so one broken draw cannot hold
back the others. The caller commits once the job returns.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import EngineSettings
from ..db.utils import as_utc, utcnow
from ..models import Draw, DrawStatus
from .capabilities import CallerCapabilities
from .errors import PrizeDrawError
from .notifications import Notifier
from .redraw import RedrawSummary
from .selector import SelectionResult

logger = logging.getLogger(__name__)


def due_draws(session: Session, *, now: Optional[datetime] = None) -> list[Draw]:
    """ANNOUNCED draws whose scheduled time has passed and that never ran selection."""

    now = as_utc(now) or utcnow()
    stmt = (
        select(Draw)
        .where(
            Draw.status == DrawStatus.ANNOUNCED,
            Draw.scheduled_at <= now,
            Draw.selection_ran_at.is_(None),
        )
        .order_by(Draw.scheduled_at, Draw.id)
    )
    return list(session.scalars(stmt).all())


def run_due_selections(
    session: Session,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    settings: Optional[EngineSettings] = None,
    notifier: Optional[Notifier] = None,
) -> dict[int, list[SelectionResult]]:
    """Run winner selection for every due draw as the system caller."""
    from ..workflows import run_selection

    now = as_utc(now) or utcnow()
    caller = CallerCapabilities.system()
    outcomes: dict[int, list[SelectionResult]] = {}
    for draw in due_draws(session, now=now):
        try:
            with session.begin_nested():
                outcomes[draw.id] = run_selection(
                    session,
                    caller,
                    draw.id,
                    now=now,
                    rng=rng,
                    settings=settings,
                    notifier=notifier,
                )
        except (SQLAlchemyError, PrizeDrawError):
            logger.exception("Scheduled selection failed for draw %s", draw.id)
    return outcomes


def sweep_expired(
    session: Session,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    settings: Optional[EngineSettings] = None,
    notifier: Optional[Notifier] = None,
) -> dict[int, RedrawSummary]:
    """Expire-and-redraw every ANNOUNCED draw that has run selection."""
    from ..workflows import expire_and_redraw

    now = as_utc(now) or utcnow()
    caller = CallerCapabilities.system()
    stmt = (
        select(Draw)
        .where(
            Draw.status == DrawStatus.ANNOUNCED,
            Draw.selection_ran_at.is_not(None),
        )
        .order_by(Draw.id)
    )
    summaries: dict[int, RedrawSummary] = {}
    for draw in session.scalars(stmt).all():
        try:
            with session.begin_nested():
                summaries[draw.id] = expire_and_redraw(
                    session,
                    caller,
                    draw.id,
                    now=now,
                    rng=rng,
                    settings=settings,
                    notifier=notifier,
                )
        except (SQLAlchemyError, PrizeDrawError):
            logger.exception("Scheduled sweep failed for draw %s", draw.id)
    return summaries


__all__ = ["due_draws", "run_due_selections", "sweep_expired"]
