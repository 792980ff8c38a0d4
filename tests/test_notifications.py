import os
import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import requests

from prizedesk.config import EngineSettings
from prizedesk.models import AwardKind, Winner
from prizedesk.prize_draw.notifications import (
    Notifier,
    WebhookNotifier,
    dispatch,
    notifier_from_settings,
)

from tests.support import DAY, T0


class DummyResponse:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class DummySession:
    def __init__(self, response: DummyResponse):
        self.response = response
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append(
            {"url": url, "json": json, "headers": headers, "timeout": timeout}
        )
        return self.response


def make_winner() -> Winner:
    winner = Winner(
        draw_id=3,
        prize_id=5,
        member_id=8,
        award_kind=AwardKind.RANDOM_DRAW,
        selected_at=T0,
        claim_deadline=T0 + 14 * DAY,
    )
    winner.id = 13
    return winner


class TestWebhookNotifier(unittest.TestCase):
    def test_posts_winner_event(self):
        session = DummySession(DummyResponse())
        notifier = WebhookNotifier(
            "https://hooks.example.com/prizes",
            timeout=5,
            session=session,
            headers={"Authorization": "Bearer token"},
        )

        notifier.winner_selected(make_winner())

        self.assertEqual(len(session.calls), 1)
        call = session.calls[0]
        self.assertEqual(call["url"], "https://hooks.example.com/prizes")
        self.assertEqual(call["timeout"], 5)
        self.assertEqual(call["headers"]["Authorization"], "Bearer token")
        self.assertEqual(call["headers"]["Accept"], "application/json")
        self.assertEqual(
            call["json"],
            {
                "event": "winner_selected",
                "winner_id": 13,
                "draw_id": 3,
                "prize_id": 5,
                "member_id": 8,
                "award_kind": "RANDOM_DRAW",
                "claim_status": "PENDING",
                "claim_deadline": "2026-03-15T12:00:00+00:00",
                "claimed_at": None,
            },
        )

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            WebhookNotifier("")

    def test_http_error_is_logged_by_dispatch(self):
        session = DummySession(DummyResponse(status_code=503))
        notifier = WebhookNotifier("https://hooks.example.com/prizes", session=session)
        with self.assertLogs("prizedesk.prize_draw.notifications", level="WARNING") as logs:
            delivered = dispatch(notifier, "winner_expired", make_winner())
        self.assertFalse(delivered)
        self.assertIn("winner 13", logs.output[0])
        self.assertEqual(session.calls[0]["json"]["event"], "winner_expired")


class TestDispatch(unittest.TestCase):
    def test_no_notifier_is_a_noop(self):
        self.assertTrue(dispatch(None, "winner_selected", make_winner()))

    def test_base_notifier_accepts_every_event(self):
        for event in ("winner_selected", "winner_expired", "prize_claimed"):
            self.assertTrue(dispatch(Notifier(), event, make_winner()))


class TestSettings(unittest.TestCase):
    @patch("prizedesk.config.load_dotenv")
    def test_defaults(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            settings = EngineSettings.from_env()
        mock_load_dotenv.assert_called_once()
        self.assertEqual(settings, EngineSettings())
        self.assertIsInstance(notifier_from_settings(settings), Notifier)
        self.assertNotIsInstance(notifier_from_settings(settings), WebhookNotifier)

    @patch("prizedesk.config.load_dotenv")
    def test_reads_environment(self, mock_load_dotenv):
        env = {
            "PRIZE_CLAIM_WINDOW_DAYS": "7",
            "PRIZE_POOL_PERCENTAGE": "25.5",
            "PRIZE_GROWTH_LOOKBACK_DAYS": "60",
            "PRIZE_NOTIFY_WEBHOOK_URL": "https://hooks.example.com/prizes",
            "PRIZE_NOTIFY_TIMEOUT": "3",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = EngineSettings.from_env()
        self.assertEqual(settings.claim_window, timedelta(days=7))
        self.assertEqual(settings.pool_percentage, Decimal("25.5"))
        self.assertEqual(settings.growth_lookback_days, 60)

        notifier = notifier_from_settings(settings)
        self.assertIsInstance(notifier, WebhookNotifier)
        self.assertEqual(notifier.url, "https://hooks.example.com/prizes")
        self.assertEqual(notifier.timeout, 3)

    @patch("prizedesk.config.load_dotenv")
    def test_rejects_empty_claim_window(self, mock_load_dotenv):
        with patch.dict(os.environ, {"PRIZE_CLAIM_WINDOW_DAYS": "0"}, clear=True):
            with self.assertRaises(ValueError):
                EngineSettings.from_env()


if __name__ == "__main__":
    unittest.main()
