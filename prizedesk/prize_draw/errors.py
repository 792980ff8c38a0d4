"""Error taxonomy raised by the prize draw engine.

Each error carries a ``public_message`` that is safe to show to members and
admins; the exception text itself may include identifiers for the logs.
"""

from __future__ import annotations

from typing import Optional


class PrizeDrawError(Exception):
    """Base class for every failure the engine reports to callers."""

    public_message = "request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)


class NotFound(PrizeDrawError):
    """A draw, prize, winner or member id is unknown."""

    public_message = "not found"


class InvalidState(PrizeDrawError):
    """The operation is not allowed in the record's current lifecycle stage."""

    public_message = "not allowed at this stage"


class AlreadyResolved(PrizeDrawError):
    """The claim or slot was already resolved by an earlier or concurrent action."""

    public_message = "already claimed"


class NotOwner(PrizeDrawError):
    """A member tried to claim a prize won by someone else."""

    public_message = "not eligible"


class DeadlinePassed(PrizeDrawError):
    """The claim window closed before the claim arrived."""

    public_message = "deadline passed"


class NotEligible(PrizeDrawError):
    """The member does not satisfy the eligibility rules for the draw."""

    public_message = "not eligible"


class CapabilityDenied(PrizeDrawError):
    """The caller lacks the capability the operation requires."""

    public_message = "forbidden"

    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"Caller lacks capability '{capability}'")


class InsufficientEligiblePool(PrizeDrawError):
    """Fewer eligible members than open slots.

    Normally a shortfall is recorded rather than raised; this is only raised
    when a caller explicitly refuses partial fills.
    """

    public_message = "not enough eligible members"

    def __init__(self, prize_id: int, requested: int, available: int) -> None:
        self.prize_id = prize_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Prize {prize_id} needs {requested} winner(s) but only {available} eligible member(s) remain"
        )


__all__ = [
    "AlreadyResolved",
    "CapabilityDenied",
    "DeadlinePassed",
    "InsufficientEligiblePool",
    "InvalidState",
    "NotEligible",
    "NotFound",
    "NotOwner",
    "PrizeDrawError",
]
