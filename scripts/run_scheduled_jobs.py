"""Cron entry point: run due selections, then sweep expired claims.

Usage::

    python scripts/run_scheduled_jobs.py [--selections-only | --sweep-only]
"""

from __future__ import annotations

import argparse
import logging

from prizedesk.config import EngineSettings
from prizedesk.db.engine import get_sessionmaker, make_engine
from prizedesk.prize_draw.notifications import notifier_from_settings
from prizedesk.prize_draw.scheduler import run_due_selections, sweep_expired

logger = logging.getLogger("prizedesk.jobs")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--selections-only", action="store_true")
    group.add_argument("--sweep-only", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    settings = EngineSettings.from_env()
    notifier = notifier_from_settings(settings)
    Session = get_sessionmaker(make_engine())

    if not args.sweep_only:
        with Session.begin() as session:
            outcomes = run_due_selections(session, settings=settings, notifier=notifier)
        logger.info("Selection ran for %s draw(s)", len(outcomes))

    if not args.selections_only:
        with Session.begin() as session:
            summaries = sweep_expired(session, settings=settings, notifier=notifier)
        failed = [d for d, s in summaries.items() if s.failed_prize_ids]
        logger.info("Swept %s draw(s); %s with failures", len(summaries), len(failed))
        if failed:
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
