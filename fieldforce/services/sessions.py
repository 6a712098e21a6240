"""Duty session lifecycle for a single day record.

A session moves ``active -> completed`` and never back. A day record holds
at most one active session; the check lives here and is backed in the
database by the ``uq_duty_sessions_one_active`` partial index.

These functions only mutate the in-memory record. Locking, totals and
commits belong to :mod:`fieldforce.services.attendance_store`.
"""

from __future__ import annotations

from datetime import datetime
from math import floor
from typing import Any

from fieldforce.errors import ConflictError, NotFoundError
from fieldforce.models import DailyAttendance, DutySession, DutySessionStatus
from fieldforce.services.location import LocationSnapshot
from fieldforce.services.timekeeping import normalize_ts

SECONDS_PER_HOUR = 3600.0


def round_hours(value: float) -> float:
    """Round half-up to two decimals.

    Matches ``Math.round(value * 100) / 100`` as used by the mobile client,
    including ``.5`` cases where :func:`round` would pick the even digit.
    """
    return floor(value * 100 + 0.5) / 100


def session_duration_hours(start_time: datetime, end_time: datetime) -> float:
    elapsed = normalize_ts(end_time) - normalize_ts(start_time)
    return round_hours(elapsed.total_seconds() / SECONDS_PER_HOUR)


def current_session(record: DailyAttendance | None) -> DutySession | None:
    if record is None:
        return None
    for session in record.duty_sessions:
        if session.status == DutySessionStatus.ACTIVE:
            return session
    return None


def serialize_session(session: DutySession | None) -> dict[str, Any] | None:
    if session is None:
        return None
    return {
        "id": session.id,
        "start_time": normalize_ts(session.start_time),
        "start_location": session.start_location,
        "end_time": normalize_ts(session.end_time) if session.end_time is not None else None,
        "end_location": session.end_location,
        "duration": session.duration,
        "status": DutySessionStatus(session.status).value,
    }


def active_session_conflict(session: DutySession) -> ConflictError:
    return ConflictError(
        "ACTIVE_SESSION_EXISTS",
        "You already have an active duty session. Please end the current session first.",
        details={
            "activeSession": {
                "startTime": normalize_ts(session.start_time),
                "startLocation": session.start_location,
            }
        },
    )


def start_session(record: DailyAttendance, location: LocationSnapshot, now: datetime) -> DutySession:
    active = current_session(record)
    if active is not None:
        raise active_session_conflict(active)

    session = DutySession(
        start_time=normalize_ts(now),
        start_location=location.to_dict(),
        status=DutySessionStatus.ACTIVE,
    )
    record.duty_sessions.append(session)
    return session


def end_session(record: DailyAttendance | None, location: LocationSnapshot, now: datetime) -> DutySession:
    active = current_session(record)
    if active is None:
        raise NotFoundError(
            "NO_ACTIVE_SESSION",
            "No active duty session found. Please start duty first.",
            details={"totalSessions": len(record.duty_sessions) if record is not None else 0},
            status_code=400,
        )

    end_time = normalize_ts(now)
    active.end_time = end_time
    active.end_location = location.to_dict()
    active.status = DutySessionStatus.COMPLETED
    active.duration = session_duration_hours(active.start_time, end_time)
    return active
