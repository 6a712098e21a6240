"""Keeps ``User.duty_status`` equal to what today's sessions say.

The flag is a cache the mobile client reads; the session list is the truth.
Both the status read and the explicit sync recompute it and overwrite the
flag, so a client that lost a response can recover with either call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fieldforce.errors import NotFoundError, PersistenceError
from fieldforce.models import User
from fieldforce.services.aggregator import is_on_duty
from fieldforce.services.attendance_store import load_daily_attendance
from fieldforce.services.sessions import current_session, serialize_session
from fieldforce.services.timekeeping import local_day, normalize_ts

logger = logging.getLogger("fieldforce.reconciler")


@dataclass(slots=True)
class DutyStatus:
    is_on_duty: bool
    total_sessions: int
    total_hours: float
    current_session: dict[str, Any] | None = None
    all_sessions: list[dict[str, Any]] = field(default_factory=list)
    drift_corrected: bool = False


def resolve_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("USER_NOT_FOUND", "User not found.")
    return user


def reconcile_duty_status(
    db: Session,
    *,
    user: User,
    now: datetime | None = None,
    source: str = "status",
) -> DutyStatus:
    reference = normalize_ts(now)
    day = local_day(reference, user.timezone)
    record = load_daily_attendance(db, user_id=user.id, day=day)

    on_duty = is_on_duty(record)
    drift = bool(user.duty_status) != on_duty
    # Always write, even without drift: repeated calls must leave the
    # same state behind.
    user.duty_status = on_duty
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "duty_status_write_failed",
            extra={"user_id": user.id, "source": source},
        )
        raise PersistenceError("Failed to sync duty status.") from exc

    if drift:
        logger.warning(
            "duty_status_drift_corrected",
            extra={"user_id": user.id, "is_on_duty": on_duty, "source": source},
        )

    if record is None:
        return DutyStatus(is_on_duty=False, total_sessions=0, total_hours=0.0, drift_corrected=drift)

    sessions = [serialize_session(session) for session in record.duty_sessions]
    return DutyStatus(
        is_on_duty=on_duty,
        total_sessions=len(sessions),
        total_hours=record.total_hours or 0.0,
        current_session=serialize_session(current_session(record)),
        all_sessions=[session for session in sessions if session is not None],
        drift_corrected=drift,
    )


def get_duty_status(db: Session, *, user_id: int, now: datetime | None = None) -> DutyStatus:
    user = resolve_user(db, user_id)
    return reconcile_duty_status(db, user=user, now=now, source="status")


def sync_duty_status(db: Session, *, user_id: int, now: datetime | None = None) -> DutyStatus:
    user = resolve_user(db, user_id)
    status = reconcile_duty_status(db, user=user, now=now, source="sync")
    logger.info(
        "duty_status_synced",
        extra={"user_id": user_id, "is_on_duty": status.is_on_duty},
    )
    return status


def reconcile_all_duty_flags(db: Session, *, now: datetime | None = None) -> dict[str, int]:
    reference = normalize_ts(now)
    checked = 0
    corrected = 0
    user_ids = list(db.scalars(select(User.id).order_by(User.id)).all())
    for user_id in user_ids:
        user = db.get(User, user_id)
        if user is None:
            continue
        status = reconcile_duty_status(db, user=user, now=reference, source="batch")
        checked += 1
        if status.drift_corrected:
            corrected += 1
    logger.info(
        "duty_status_batch_reconciled",
        extra={"checked": checked, "corrected": corrected},
    )
    return {"checked": checked, "corrected": corrected}
