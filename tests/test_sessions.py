from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import unittest

from fieldforce.errors import ConflictError, NotFoundError
from fieldforce.models import DailyAttendance, DutySessionStatus
from fieldforce.services.location import validate_location
from fieldforce.services.sessions import (
    current_session,
    end_session,
    round_hours,
    session_duration_hours,
    start_session,
)

NINE_AM = datetime(2026, 10, 17, 3, 30, tzinfo=timezone.utc)


def _snapshot(address: str = "Office"):
    return validate_location({"latitude": 19.0, "longitude": 72.8, "address": address}, now=NINE_AM)


def _record() -> DailyAttendance:
    return DailyAttendance(user_id=1, date=date(2026, 10, 17), total_hours=0.0, total_distance=0.0)


class RoundHoursTests(unittest.TestCase):
    def test_half_rounds_up(self) -> None:
        self.assertEqual(round_hours(0.125), 0.13)

    def test_plain_values(self) -> None:
        self.assertEqual(round_hours(8.5), 8.5)
        self.assertEqual(round_hours(0.0), 0.0)
        self.assertEqual(round_hours(1 / 3), 0.33)


class SessionStateMachineTests(unittest.TestCase):
    def test_start_appends_active_session(self) -> None:
        record = _record()

        session = start_session(record, _snapshot(), NINE_AM)

        self.assertEqual(session.status, DutySessionStatus.ACTIVE)
        self.assertEqual(session.start_time, NINE_AM)
        self.assertEqual(session.start_location["address"], "Office")
        self.assertIs(current_session(record), session)
        self.assertEqual(len(record.duty_sessions), 1)

    def test_second_start_conflicts_and_leaves_record_unchanged(self) -> None:
        record = _record()
        first = start_session(record, _snapshot(), NINE_AM)

        with self.assertRaises(ConflictError) as ctx:
            start_session(record, _snapshot("Elsewhere"), NINE_AM + timedelta(minutes=5))

        self.assertEqual(ctx.exception.code, "ACTIVE_SESSION_EXISTS")
        self.assertEqual(ctx.exception.status_code, 400)
        active = ctx.exception.details["activeSession"]
        self.assertEqual(active["startTime"], NINE_AM)
        self.assertEqual(active["startLocation"]["address"], "Office")
        self.assertEqual(record.duty_sessions, [first])

    def test_end_closes_session_with_duration(self) -> None:
        record = _record()
        start_session(record, _snapshot(), NINE_AM)

        ended = end_session(record, _snapshot("Client site"), NINE_AM + timedelta(hours=8, minutes=30))

        self.assertEqual(ended.status, DutySessionStatus.COMPLETED)
        self.assertEqual(ended.duration, 8.5)
        self.assertEqual(ended.end_location["address"], "Client site")
        self.assertIsNone(current_session(record))

    def test_end_without_active_session(self) -> None:
        record = _record()
        start_session(record, _snapshot(), NINE_AM)
        end_session(record, _snapshot(), NINE_AM + timedelta(hours=1))

        with self.assertRaises(NotFoundError) as ctx:
            end_session(record, _snapshot(), NINE_AM + timedelta(hours=2))

        self.assertEqual(ctx.exception.code, "NO_ACTIVE_SESSION")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.details, {"totalSessions": 1})

    def test_end_without_record(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            end_session(None, _snapshot(), NINE_AM)
        self.assertEqual(ctx.exception.details, {"totalSessions": 0})

    def test_duration_accepts_naive_database_values(self) -> None:
        naive_start = NINE_AM.replace(tzinfo=None)
        value = session_duration_hours(naive_start, NINE_AM + timedelta(minutes=90))
        self.assertEqual(value, 1.5)


if __name__ == "__main__":
    unittest.main()
