"""Capability decisions handed to the engine by the authorization layer."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Optional

from .errors import CapabilityDenied


@dataclass(frozen=True)
class CallerCapabilities:
    """What an already-authenticated caller may do.

    The engine never looks up roles itself. Whoever builds this object owns
    the authorization policy; the engine only checks the relevant flag.

    Attributes
    ----------
    admin_id : Optional[int]
        Admin behind the request, recorded on manual awards and audit rows.
        ``None`` means the system itself (scheduler) is acting.
    can_manage_draws : bool
        Create, announce, withdraw and close draws; manage prizes; record payouts.
    can_run_selection : bool
        Trigger random winner selection for a draw.
    can_assign_manual : bool
        Hand-pick community-support winners.
    can_expire_and_redraw : bool
        Run the expiry sweep and redraw for a draw.
    """

    admin_id: Optional[int] = None
    can_manage_draws: bool = False
    can_run_selection: bool = False
    can_assign_manual: bool = False
    can_expire_and_redraw: bool = False

    @classmethod
    def system(cls) -> "CallerCapabilities":
        """Capabilities of the scheduled background job."""
        return cls(
            admin_id=None,
            can_manage_draws=True,
            can_run_selection=True,
            can_assign_manual=False,
            can_expire_and_redraw=True,
        )

    @classmethod
    def full_admin(cls, admin_id: int) -> "CallerCapabilities":
        flags = {
            f.name: True for f in fields(cls) if f.name.startswith("can_")
        }
        return cls(admin_id=admin_id, **flags)

    @property
    def actor_type(self) -> str:
        return "system" if self.admin_id is None else "admin"

    def require(self, capability: str) -> None:
        """Raise :class:`CapabilityDenied` unless ``capability`` is granted."""
        if not getattr(self, capability, False):
            raise CapabilityDenied(capability)


__all__ = ["CallerCapabilities"]
