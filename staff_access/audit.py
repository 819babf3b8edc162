from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from staff_access.models import StaffActivityLog

logger = logging.getLogger("staff_access.audit")


def log_staff_activity(
    db: Session,
    *,
    staff_id: int | None,
    action: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    """Append a staff activity row; fire-and-forget.

    Write failures are rolled back and reported through the logger only, so
    the caller's primary operation is never affected. Callers must commit
    their own work first because the rollback discards anything pending.
    """
    try:
        db.add(
            StaffActivityLog(
                staff_id=staff_id,
                action=action,
                details=details,
                created_at=datetime.now(timezone.utc),
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "staff_activity_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "staff_id": staff_id,
            },
        )
        return

    logger.info(
        "staff_activity",
        extra={
            "request_id": request_id,
            "action": action,
            "staff_id": staff_id,
            "details": details or {},
        },
    )
