"""Allocation, claim, redraw and rollover engine for prize draws."""

from .capabilities import CallerCapabilities
from .claims import ClaimTracker
from .eligibility import EligibilityResolver
from .errors import (
    AlreadyResolved,
    CapabilityDenied,
    DeadlinePassed,
    InsufficientEligiblePool,
    InvalidState,
    NotEligible,
    NotFound,
    NotOwner,
    PrizeDrawError,
)
from .notifications import Notifier, WebhookNotifier
from .redraw import ExpiryRedrawOrchestrator, RedrawSummary
from .rollover import RolloverLedger
from .selector import SelectionResult, Selector

__all__ = [
    "AlreadyResolved",
    "CallerCapabilities",
    "CapabilityDenied",
    "ClaimTracker",
    "DeadlinePassed",
    "EligibilityResolver",
    "ExpiryRedrawOrchestrator",
    "InsufficientEligiblePool",
    "InvalidState",
    "NotEligible",
    "NotFound",
    "NotOwner",
    "Notifier",
    "PrizeDrawError",
    "RedrawSummary",
    "RolloverLedger",
    "SelectionResult",
    "Selector",
    "WebhookNotifier",
]
