from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
import logging
from math import floor, isfinite
from numbers import Real
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fieldforce.errors import ApiError, NotFoundError, ValidationError
from fieldforce.models import CheckIn, CheckInStatus, CheckInType, User
from fieldforce.services.attendance import is_privileged, scoped_user_id
from fieldforce.services.attendance_store import (
    get_or_create_daily_attendance,
    persist_daily_attendance,
)
from fieldforce.services.location import distance_km, nearest, validate_coordinates
from fieldforce.services.reconciler import resolve_user
from fieldforce.services.timekeeping import local_day, local_day_bounds_utc, normalize_ts

logger = logging.getLogger("fieldforce.checkins")

_OPTIONAL_LOCATION_NUMBERS = ("accuracy", "altitude", "speed", "heading")


def _location_detail(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("LOCATION_REQUIRED", "Location data is required.")
    latitude, longitude = validate_coordinates(payload.get("latitude"), payload.get("longitude"))
    detail: dict[str, Any] = {"latitude": latitude, "longitude": longitude}
    address = str(payload.get("address") or "").strip()
    if address:
        detail["address"] = address
    for key in _OPTIONAL_LOCATION_NUMBERS:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, Real) or not isfinite(value):
            raise ValidationError("INVALID_LOCATION", f"Location {key} must be a number.")
        detail[key] = float(value)
    return detail


def _resolve_type(raw: Any) -> CheckInType:
    try:
        return CheckInType(str(raw or "").strip().lower())
    except ValueError:
        raise ValidationError("INVALID_CHECKIN_TYPE", 'Check-in type must be "customer" or "general".') from None


def _elapsed_minutes(start: datetime, end: datetime) -> int:
    seconds = (normalize_ts(end) - normalize_ts(start)).total_seconds()
    return int(floor(seconds / 60 + 0.5))


def create_check_in(
    db: Session,
    *,
    user_id: int,
    check_in_type: Any,
    customer_id: int | None,
    location: Any,
    notes: str | None = None,
    purpose: str | None = None,
    now: datetime | None = None,
) -> CheckIn:
    resolved_type = _resolve_type(check_in_type)
    if resolved_type == CheckInType.CUSTOMER and customer_id is None:
        raise ValidationError("CUSTOMER_REQUIRED", "Customer is required for a customer check-in.")
    detail = _location_detail(location)

    reference = normalize_ts(now)
    user = resolve_user(db, user_id)
    record = get_or_create_daily_attendance(db, user_id=user.id, day=local_day(reference, user.timezone))
    check_in = CheckIn(
        user_id=user.id,
        customer_id=customer_id if resolved_type == CheckInType.CUSTOMER else None,
        type=resolved_type,
        check_in_time=reference,
        check_in_location=detail,
        notes=notes,
        purpose=purpose,
        status=CheckInStatus.CHECKED_IN,
    )
    record.check_ins.append(check_in)
    db.add(check_in)
    persist_daily_attendance(db, record)
    db.refresh(check_in)
    logger.info(
        "check_in_created",
        extra={"user_id": user.id, "check_in_id": check_in.id, "attendance_id": record.id},
    )
    return check_in


def complete_check_out(
    db: Session,
    *,
    user_id: int,
    check_in_id: int,
    location: Any | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> CheckIn:
    check_in = db.get(CheckIn, check_in_id)
    if check_in is None:
        raise NotFoundError("CHECKIN_NOT_FOUND", "Check-in not found.")
    if check_in.user_id != user_id:
        raise ApiError(403, "FORBIDDEN", "You can only check out your own check-ins.")
    if check_in.status == CheckInStatus.CHECKED_OUT:
        raise ValidationError("ALREADY_CHECKED_OUT", "Already checked out.")

    reference = normalize_ts(now)
    detail = _location_detail(location) if location is not None else None
    distance = 0.0
    if detail is not None:
        origin = check_in.check_in_location or {}
        distance = distance_km(
            origin["latitude"],
            origin["longitude"],
            detail["latitude"],
            detail["longitude"],
        )

    check_in.check_out_time = reference
    check_in.check_out_location = detail
    check_in.duration_minutes = _elapsed_minutes(check_in.check_in_time, reference)
    check_in.distance_km = distance
    check_in.status = CheckInStatus.CHECKED_OUT
    if notes:
        prefix = f"{check_in.notes}\n" if check_in.notes else ""
        check_in.notes = f"{prefix}Check-out notes: {notes}"

    user = resolve_user(db, user_id)
    record = get_or_create_daily_attendance(db, user_id=user.id, day=local_day(reference, user.timezone))
    if distance > 0:
        record.total_distance = (record.total_distance or 0.0) + distance
    persist_daily_attendance(db, record)
    db.refresh(check_in)
    logger.info(
        "check_out_completed",
        extra={
            "user_id": user_id,
            "check_in_id": check_in.id,
            "distance_km": round(distance, 3),
            "duration_minutes": check_in.duration_minutes,
        },
    )
    return check_in


def get_check_in(db: Session, *, caller_id: int, caller_role: str | None, check_in_id: int) -> CheckIn:
    check_in = db.get(CheckIn, check_in_id)
    if check_in is None or (not is_privileged(caller_role) and check_in.user_id != caller_id):
        raise NotFoundError("CHECKIN_NOT_FOUND", "Check-in not found.")
    return check_in


def list_check_ins(
    db: Session,
    *,
    caller_id: int,
    caller_role: str | None,
    user_id: int | None,
    day: date | None,
    customer_id: int | None,
    check_in_type: str | None,
    status: str | None,
    page: int,
    limit: int,
) -> tuple[list[CheckIn], int]:
    filters: list[Any] = []
    target_user_id = scoped_user_id(caller_id=caller_id, caller_role=caller_role, requested_user_id=user_id)
    if target_user_id is not None:
        filters.append(CheckIn.user_id == target_user_id)
    if day is not None:
        target = db.get(User, target_user_id) if target_user_id is not None else None
        day_start, day_end = local_day_bounds_utc(day, target.timezone if target is not None else None)
        filters.append(CheckIn.check_in_time >= day_start)
        filters.append(CheckIn.check_in_time < day_end)
    if customer_id is not None:
        filters.append(CheckIn.customer_id == customer_id)
    if check_in_type:
        filters.append(CheckIn.type == _resolve_type(check_in_type))
    if status:
        try:
            filters.append(CheckIn.status == CheckInStatus(status))
        except ValueError:
            raise ValidationError("INVALID_CHECKIN_STATUS", "Unknown check-in status.") from None

    total = db.scalar(select(func.count(CheckIn.id)).where(*filters)) or 0
    rows = db.scalars(
        select(CheckIn)
        .where(*filters)
        .order_by(CheckIn.check_in_time.desc(), CheckIn.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), int(total)


def nearest_check_in(
    db: Session,
    *,
    user_id: int,
    latitude: Any,
    longitude: Any,
    now: datetime | None = None,
) -> tuple[CheckIn, float] | None:
    """Today's check-in of ``user_id`` closest to the given point."""
    lat, lon = validate_coordinates(latitude, longitude)
    user = resolve_user(db, user_id)
    day_start, day_end = local_day_bounds_utc(local_day(normalize_ts(now), user.timezone), user.timezone)
    candidates = db.scalars(
        select(CheckIn).where(
            CheckIn.user_id == user.id,
            CheckIn.check_in_time >= day_start,
            CheckIn.check_in_time < day_end,
        )
    ).all()

    def _point(check_in: CheckIn) -> tuple[float, float] | None:
        location = check_in.check_in_location or {}
        if location.get("latitude") is None or location.get("longitude") is None:
            return None
        return float(location["latitude"]), float(location["longitude"])

    return nearest(lat, lon, candidates, coordinates=_point)
