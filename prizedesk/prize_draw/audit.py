"""Best-effort audit trail for engine actions."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import AuditLog

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def record_audit(
    session: Session,
    action: str,
    *,
    subject_table: str,
    subject_id: Optional[int] = None,
    actor_type: str = "system",
    actor_admin_id: Optional[int] = None,
    actor_member_id: Optional[int] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> Optional[AuditLog]:
    """Append an :class:`AuditLog` row inside a savepoint.

    Audit is a side effect: if the insert fails the savepoint is rolled back,
    the failure is logged and ``None`` is returned; the surrounding
    operation carries on.
    """

    entry = AuditLog(
        actor_type=actor_type,
        actor_admin_id=actor_admin_id,
        actor_member_id=actor_member_id,
        action=action,
        subject_table=subject_table,
        subject_id=subject_id,
        details=_jsonable(dict(details)) if details else None,
        occurred_at=datetime.now(timezone.utc),
    )
    try:
        with session.begin_nested():
            session.add(entry)
    except SQLAlchemyError as exc:
        logger.warning("Audit append for %s on %s failed: %s", action, subject_table, exc)
        return None
    return entry


__all__ = ["record_audit"]
