from __future__ import annotations

from datetime import date
import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from fieldforce.errors import PersistenceError
from fieldforce.models import (
    AttendanceStatus,
    CheckIn,
    DailyAttendance,
    DutySession,
    DutySessionStatus,
)
from fieldforce.services.aggregator import recompute_totals
from fieldforce.services.sessions import active_session_conflict, round_hours

logger = logging.getLogger("fieldforce.store")


def load_daily_attendance(
    db: Session,
    *,
    user_id: int,
    day: date,
    for_update: bool = False,
) -> DailyAttendance | None:
    stmt = (
        select(DailyAttendance)
        .where(
            DailyAttendance.user_id == user_id,
            DailyAttendance.date == day,
        )
        .options(selectinload(DailyAttendance.duty_sessions))
    )
    if for_update:
        # Serializes start/end per (user, day); the row lock is held until commit.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.scalar(stmt)


def get_or_create_daily_attendance(db: Session, *, user_id: int, day: date) -> DailyAttendance:
    record = load_daily_attendance(db, user_id=user_id, day=day, for_update=True)
    if record is not None:
        return record

    record = DailyAttendance(
        user_id=user_id,
        date=day,
        total_hours=0.0,
        total_distance=0.0,
        status=AttendanceStatus.OFF_DUTY,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        # Another request created the same day first; use its row.
        db.rollback()
        logger.info(
            "daily_attendance_create_race",
            extra={"user_id": user_id, "day": day.isoformat()},
        )
        record = load_daily_attendance(db, user_id=user_id, day=day, for_update=True)
        if record is None:
            raise PersistenceError() from None
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "daily_attendance_create_failed",
            extra={"user_id": user_id, "day": day.isoformat()},
        )
        raise PersistenceError() from exc
    return record


def _load_active_session(db: Session, attendance_id: int) -> DutySession | None:
    return db.scalar(
        select(DutySession).where(
            DutySession.attendance_id == attendance_id,
            DutySession.status == DutySessionStatus.ACTIVE,
        )
    )


def persist_daily_attendance(db: Session, record: DailyAttendance) -> DailyAttendance:
    """Recompute totals and commit everything pending in ``db`` as one unit."""
    recompute_totals(record)
    attendance_id = record.id
    context: dict[str, Any] = {
        "attendance_id": attendance_id,
        "user_id": record.user_id,
        "day": record.date.isoformat() if record.date is not None else None,
    }
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        winner = _load_active_session(db, attendance_id) if attendance_id is not None else None
        if winner is not None:
            logger.info("duty_session_start_race_lost", extra=context)
            raise active_session_conflict(winner) from exc
        logger.exception("daily_attendance_persist_failed", extra=context)
        raise PersistenceError() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("daily_attendance_persist_failed", extra=context)
        raise PersistenceError() from exc

    db.refresh(record)
    return record


def _range_filters(
    *,
    user_id: int | None,
    start_date: date | None,
    end_date: date | None,
) -> list[Any]:
    filters: list[Any] = []
    if user_id is not None:
        filters.append(DailyAttendance.user_id == user_id)
    if start_date is not None:
        filters.append(DailyAttendance.date >= start_date)
    if end_date is not None:
        filters.append(DailyAttendance.date <= end_date)
    return filters


def list_daily_attendance(
    db: Session,
    *,
    user_id: int | None,
    start_date: date | None,
    end_date: date | None,
    page: int,
    limit: int,
) -> tuple[list[DailyAttendance], int]:
    filters = _range_filters(user_id=user_id, start_date=start_date, end_date=end_date)
    total = db.scalar(select(func.count(DailyAttendance.id)).where(*filters)) or 0
    rows = db.scalars(
        select(DailyAttendance)
        .where(*filters)
        .options(
            selectinload(DailyAttendance.duty_sessions),
            selectinload(DailyAttendance.check_ins),
        )
        .order_by(DailyAttendance.date.desc(), DailyAttendance.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), int(total)


def get_daily_attendance(db: Session, attendance_id: int) -> DailyAttendance | None:
    return db.scalar(
        select(DailyAttendance)
        .where(DailyAttendance.id == attendance_id)
        .options(
            selectinload(DailyAttendance.duty_sessions),
            selectinload(DailyAttendance.check_ins),
        )
    )


def summarize_attendance(
    db: Session,
    *,
    user_id: int | None,
    start_date: date | None,
    end_date: date | None,
) -> dict[str, float | int]:
    session_counts = (
        select(
            DutySession.attendance_id.label("attendance_id"),
            func.count(DutySession.id).label("session_count"),
        )
        .group_by(DutySession.attendance_id)
        .subquery()
    )
    check_in_counts = (
        select(
            CheckIn.attendance_id.label("attendance_id"),
            func.count(CheckIn.id).label("check_in_count"),
        )
        .where(CheckIn.attendance_id.is_not(None))
        .group_by(CheckIn.attendance_id)
        .subquery()
    )
    sessions_per_day = func.coalesce(session_counts.c.session_count, 0)
    check_ins_per_day = func.coalesce(check_in_counts.c.check_in_count, 0)

    stmt = (
        select(
            func.count(DailyAttendance.id),
            func.coalesce(func.sum(DailyAttendance.total_hours), 0.0),
            func.coalesce(func.sum(DailyAttendance.total_distance), 0.0),
            func.coalesce(func.sum(check_ins_per_day), 0),
            func.coalesce(func.sum(sessions_per_day), 0),
            func.avg(DailyAttendance.total_hours),
            func.avg(DailyAttendance.total_distance),
            func.avg(sessions_per_day),
        )
        .select_from(DailyAttendance)
        .outerjoin(session_counts, session_counts.c.attendance_id == DailyAttendance.id)
        .outerjoin(check_in_counts, check_in_counts.c.attendance_id == DailyAttendance.id)
        .where(*_range_filters(user_id=user_id, start_date=start_date, end_date=end_date))
    )
    (
        total_days,
        total_hours,
        total_distance,
        total_check_ins,
        total_sessions,
        avg_hours,
        avg_distance,
        avg_sessions,
    ) = db.execute(stmt).one()

    return {
        "total_days": int(total_days or 0),
        "total_hours": float(total_hours or 0.0),
        "total_distance": float(total_distance or 0.0),
        "total_check_ins": int(total_check_ins or 0),
        "total_sessions": int(total_sessions or 0),
        "avg_hours_per_day": round_hours(float(avg_hours or 0.0)),
        "avg_distance_per_day": round_hours(float(avg_distance or 0.0)),
        "avg_sessions_per_day": round_hours(float(avg_sessions or 0.0)),
    }
