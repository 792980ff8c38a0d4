"""Winner notification hooks.

Delivery is a side effect: :func:`dispatch` logs and swallows every failure
so a broken mail relay or webhook can never undo a winner write.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests

from ..db.utils import dt_iso
from ..models import Winner

logger = logging.getLogger(__name__)


class Notifier:
    """Base notifier; every hook is a no-op."""

    def winner_selected(self, winner: Winner) -> None:
        """Called after a winner row is written (random or manual)."""

    def winner_expired(self, winner: Winner) -> None:
        """Called after a PENDING winner is expired by the sweep."""

    def prize_claimed(self, winner: Winner) -> None:
        """Called after a member successfully claims."""


class WebhookNotifier(Notifier):
    """Posts winner events as JSON to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        if not url:
            raise ValueError("A webhook URL is required")
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json", **(headers or {})}

    @staticmethod
    def payload(event: str, winner: Winner) -> dict[str, Any]:
        return {
            "event": event,
            "winner_id": winner.id,
            "draw_id": winner.draw_id,
            "prize_id": winner.prize_id,
            "member_id": winner.member_id,
            "award_kind": winner.award_kind.value,
            "claim_status": winner.claim_status.value,
            "claim_deadline": dt_iso(winner.claim_deadline),
            "claimed_at": dt_iso(winner.claimed_at),
        }

    def _post(self, event: str, winner: Winner) -> None:
        response = self.session.post(
            self.url,
            json=self.payload(event, winner),
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()

    def winner_selected(self, winner: Winner) -> None:
        self._post("winner_selected", winner)

    def winner_expired(self, winner: Winner) -> None:
        self._post("winner_expired", winner)

    def prize_claimed(self, winner: Winner) -> None:
        self._post("prize_claimed", winner)


def notifier_from_settings(settings) -> Notifier:
    """Return a webhook notifier when one is configured, else the no-op base."""

    if settings.notification_webhook_url:
        return WebhookNotifier(
            settings.notification_webhook_url, timeout=settings.notification_timeout
        )
    return Notifier()


def dispatch(notifier: Optional[Notifier], event: str, winner: Winner) -> bool:
    """Invoke ``notifier.<event>(winner)``; return whether it succeeded.

    Never raises. Failures are logged at WARNING with the winner id only.
    """

    if notifier is None:
        return True
    hook = getattr(notifier, event)
    try:
        hook(winner)
    except Exception as exc:
        logger.warning(
            "Notification %s failed for winner %s: %s", event, winner.id, exc
        )
        return False
    return True


__all__ = ["Notifier", "WebhookNotifier", "dispatch", "notifier_from_settings"]
