"""Explicit transition tables for every status column the engine mutates."""

from __future__ import annotations

from typing import Mapping, Optional

from ..models.enums import ClaimStatus, DrawStatus, PayoutStatus
from .errors import AlreadyResolved, InvalidState

DRAW_TRANSITIONS: Mapping[DrawStatus, frozenset[DrawStatus]] = {
    DrawStatus.COMING_SOON: frozenset({DrawStatus.ANNOUNCED}),
    # Withdrawing an announcement is only legal while no winner exists;
    # workflows.withdraw_announcement checks that before setting the status.
    DrawStatus.ANNOUNCED: frozenset({DrawStatus.COMING_SOON, DrawStatus.COMPLETED}),
    DrawStatus.COMPLETED: frozenset(),
}

CLAIM_TRANSITIONS: Mapping[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.PENDING: frozenset({ClaimStatus.CLAIMED, ClaimStatus.EXPIRED}),
    ClaimStatus.CLAIMED: frozenset(),
    ClaimStatus.EXPIRED: frozenset(),
}

PAYOUT_TRANSITIONS: Mapping[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PAID}),
    PayoutStatus.PAID: frozenset(),
}


def check_draw_transition(
    current: Optional[DrawStatus], target: DrawStatus
) -> None:
    """Raise :class:`InvalidState` unless ``current -> target`` is allowed.

    A draw that has not been assigned a status yet may only start in
    ``COMING_SOON``. Re-assigning the current status is a no-op.
    """

    if current is None:
        if target != DrawStatus.COMING_SOON:
            raise InvalidState(f"Draws start in COMING_SOON, not {target.value}")
        return
    if current == target:
        return
    if target not in DRAW_TRANSITIONS[current]:
        raise InvalidState(
            f"Draw cannot move from {current.value} to {target.value}"
        )


def check_claim_transition(
    current: Optional[ClaimStatus], target: ClaimStatus
) -> None:
    """Raise :class:`AlreadyResolved` when a terminal claim would change."""

    if current is None:
        if target != ClaimStatus.PENDING:
            raise InvalidState("Winners start with a PENDING claim")
        return
    if current == target:
        return
    if target not in CLAIM_TRANSITIONS[current]:
        raise AlreadyResolved(
            f"Claim status cannot move from {current.value} to {target.value}"
        )


def check_payout_transition(
    current: Optional[PayoutStatus], target: PayoutStatus
) -> None:
    if current is None or current == target:
        return
    if target not in PAYOUT_TRANSITIONS[current]:
        raise AlreadyResolved(
            f"Payout status cannot move from {current.value} to {target.value}"
        )


def require_draw_status(draw, *allowed: DrawStatus) -> None:
    """Raise :class:`InvalidState` unless ``draw.status`` is one of ``allowed``."""

    if draw.status not in allowed:
        names = ", ".join(status.value for status in allowed)
        raise InvalidState(
            f"Draw {draw.id} is {draw.status.value}; operation requires {names}"
        )


__all__ = [
    "CLAIM_TRANSITIONS",
    "DRAW_TRANSITIONS",
    "PAYOUT_TRANSITIONS",
    "check_claim_transition",
    "check_draw_transition",
    "check_payout_transition",
    "require_draw_status",
]
