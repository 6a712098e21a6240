from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fieldforce.models import AuditActorType, AuditLog
from fieldforce.routers.common import client_ip, user_agent

logger = logging.getLogger("fieldforce.audit")


class AuditAction(str, enum.Enum):
    DUTY_STARTED = "DUTY_STARTED"
    DUTY_ENDED = "DUTY_ENDED"
    CHECK_IN_CREATED = "CHECK_IN_CREATED"
    CHECK_OUT_COMPLETED = "CHECK_OUT_COMPLETED"


ENTITY_TYPES: dict[AuditAction, str] = {
    AuditAction.DUTY_STARTED: "daily_attendance",
    AuditAction.DUTY_ENDED: "daily_attendance",
    AuditAction.CHECK_IN_CREATED: "check_in",
    AuditAction.CHECK_OUT_COMPLETED: "check_in",
}


def record_user_action(
    db: Session,
    request: Request,
    *,
    user_id: int,
    action: AuditAction,
    entity_id: int | None,
    details: dict[str, Any] | None = None,
) -> AuditLog | None:
    """Append an audit row for a committed duty or check-in change.

    The change itself is already committed, so a failed audit write is
    logged and rolled back without failing the request.
    """
    request_id = getattr(request.state, "request_id", None)
    entry = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=AuditActorType.USER,
        actor_id=str(user_id),
        action=action.value,
        entity_type=ENTITY_TYPES[action],
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=client_ip(request),
        user_agent=user_agent(request),
        success=True,
        details=jsonable_encoder({**(details or {}), "request_id": request_id}),
    )
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "audit_write_failed",
            extra={"request_id": request_id, "action": action.value, "user_id": user_id},
        )
        return None

    logger.info(
        "audit_recorded",
        extra={
            "request_id": request_id,
            "action": action.value,
            "user_id": user_id,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
        },
    )
    return entry
