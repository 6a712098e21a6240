from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging
from typing import Any

from sqlalchemy.orm import Session

from fieldforce.errors import ApiError, NotFoundError, ValidationError
from fieldforce.models import DailyAttendance, DutySession, User, UserRole
from fieldforce.services.aggregator import is_on_duty
from fieldforce.services.attendance_store import (
    get_daily_attendance,
    get_or_create_daily_attendance,
    list_daily_attendance,
    load_daily_attendance,
    persist_daily_attendance,
    summarize_attendance,
)
from fieldforce.services.location import validate_location
from fieldforce.services.notifier import (
    DUTY_ENDED,
    DUTY_STARTED,
    DutyNotifier,
    publish_safely,
)
from fieldforce.services.reconciler import resolve_user
from fieldforce.services.sessions import (
    end_session,
    serialize_session,
    start_session,
)
from fieldforce.services.timekeeping import local_day, normalize_ts

logger = logging.getLogger("fieldforce.attendance")

ACTION_START = "start"
ACTION_END = "end"
PRIVILEGED_ROLES = frozenset({UserRole.ADMIN.value, UserRole.MANAGER.value})


@dataclass(slots=True)
class AttendanceActionResult:
    action: str
    record: DailyAttendance
    session: DutySession
    session_number: int


def is_privileged(role: str | None) -> bool:
    return (role or "").lower() in PRIVILEGED_ROLES


def scoped_user_id(*, caller_id: int, caller_role: str | None, requested_user_id: int | None) -> int | None:
    """Admins and managers may look at anyone (or everyone); others only at themselves."""
    if is_privileged(caller_role):
        return requested_user_id
    return caller_id


def serialize_attendance(record: DailyAttendance) -> dict[str, Any]:
    sessions = [serialize_session(session) for session in record.duty_sessions]
    duty_start_time = record.duty_start_time
    duty_end_time = record.duty_end_time
    return {
        "id": record.id,
        "user": record.user_id,
        "date": record.date,
        "duty_sessions": [session for session in sessions if session is not None],
        "total_hours": record.total_hours or 0.0,
        "total_distance": record.total_distance or 0.0,
        "status": record.status,
        "check_ins": [check_in.id for check_in in record.check_ins],
        "duty_start_time": normalize_ts(duty_start_time) if duty_start_time is not None else None,
        "duty_start_location": record.duty_start_location,
        "duty_end_time": normalize_ts(duty_end_time) if duty_end_time is not None else None,
        "duty_end_location": record.duty_end_location,
    }


def _resolve_action(action: Any) -> str:
    normalized = str(action or "").strip().lower()
    if normalized not in (ACTION_START, ACTION_END):
        raise ValidationError("INVALID_ACTION", 'Invalid action. Use "start" or "end".')
    return normalized


def _transition(
    db: Session,
    *,
    user: User,
    action: str,
    location: Any,
    reference: datetime,
) -> tuple[DailyAttendance, DutySession]:
    snapshot = validate_location(location, now=reference)
    day = local_day(reference, user.timezone)

    if action == ACTION_START:
        record = get_or_create_daily_attendance(db, user_id=user.id, day=day)
        session = start_session(record, snapshot, reference)
    else:
        # A day without a record has nothing to end; do not create one.
        record = load_daily_attendance(db, user_id=user.id, day=day, for_update=True)
        session = end_session(record, snapshot, reference)

    user.duty_status = is_on_duty(record)
    user.current_location = snapshot.to_dict()
    persist_daily_attendance(db, record)
    return record, session


def mark_attendance(
    db: Session,
    *,
    user_id: int,
    action: Any,
    location: Any,
    notifier: DutyNotifier,
    now: datetime | None = None,
) -> AttendanceActionResult:
    resolved_action = _resolve_action(action)
    reference = normalize_ts(now)
    user = resolve_user(db, user_id)

    try:
        record, session = _transition(
            db,
            user=user,
            action=resolved_action,
            location=location,
            reference=reference,
        )
    except ApiError as exc:
        # Release the day lock before the error travels back to the client.
        db.rollback()
        logger.info(
            "duty_transition_rejected",
            extra={"user_id": user_id, "action": resolved_action, "code": exc.code},
        )
        raise

    session_number = len(record.duty_sessions)
    if resolved_action == ACTION_START:
        logger.info(
            "duty_session_started",
            extra={
                "user_id": user_id,
                "attendance_id": record.id,
                "session_id": session.id,
                "session_number": session_number,
                "address": (session.start_location or {}).get("address"),
            },
        )
        publish_safely(
            notifier,
            user_id,
            DUTY_STARTED,
            {
                "attendanceId": record.id,
                "sessionId": session.id,
                "startTime": normalize_ts(session.start_time).isoformat(),
                "sessionNumber": session_number,
            },
        )
    else:
        logger.info(
            "duty_session_ended",
            extra={
                "user_id": user_id,
                "attendance_id": record.id,
                "session_id": session.id,
                "duration_hours": session.duration,
                "total_hours": record.total_hours,
            },
        )
        publish_safely(
            notifier,
            user_id,
            DUTY_ENDED,
            {
                "attendanceId": record.id,
                "sessionId": session.id,
                "duration": session.duration,
                "totalHours": record.total_hours,
            },
        )

    return AttendanceActionResult(
        action=resolved_action,
        record=record,
        session=session,
        session_number=session_number,
    )


def list_attendance(
    db: Session,
    *,
    caller_id: int,
    caller_role: str | None,
    user_id: int | None,
    start_date: date | None,
    end_date: date | None,
    page: int,
    limit: int,
) -> dict[str, Any]:
    target_user_id = scoped_user_id(caller_id=caller_id, caller_role=caller_role, requested_user_id=user_id)
    rows, total = list_daily_attendance(
        db,
        user_id=target_user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {
        "attendance": [serialize_attendance(record) for record in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


def get_attendance(
    db: Session,
    *,
    caller_id: int,
    caller_role: str | None,
    attendance_id: int,
) -> dict[str, Any]:
    record = get_daily_attendance(db, attendance_id)
    if record is None or (not is_privileged(caller_role) and record.user_id != caller_id):
        raise NotFoundError("ATTENDANCE_NOT_FOUND", "Attendance record not found.")
    return serialize_attendance(record)


def attendance_overview(
    db: Session,
    *,
    caller_id: int,
    caller_role: str | None,
    user_id: int | None,
    start_date: date | None,
    end_date: date | None,
) -> dict[str, float | int]:
    target_user_id = scoped_user_id(caller_id=caller_id, caller_role=caller_role, requested_user_id=user_id)
    return summarize_attendance(
        db,
        user_id=target_user_id,
        start_date=start_date,
        end_date=end_date,
    )
