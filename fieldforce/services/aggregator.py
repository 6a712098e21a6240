from __future__ import annotations

from fieldforce.models import AttendanceStatus, DailyAttendance, DutySessionStatus
from fieldforce.services.sessions import round_hours


def is_on_duty(record: DailyAttendance | None) -> bool:
    if record is None:
        return False
    return any(session.status == DutySessionStatus.ACTIVE for session in record.duty_sessions)


def recompute_totals(record: DailyAttendance) -> DailyAttendance:
    """Refresh ``status`` and ``total_hours`` from the session list.

    Each session duration is already rounded when it completes; the sum is
    rounded once more here. ``total_distance`` belongs to check-outs and is
    left alone.
    """
    record.status = AttendanceStatus.ON_DUTY if is_on_duty(record) else AttendanceStatus.OFF_DUTY

    total = 0.0
    for session in record.duty_sessions:
        if session.status == DutySessionStatus.COMPLETED and session.duration is not None:
            total += session.duration
    record.total_hours = round_hours(total)
    return record
