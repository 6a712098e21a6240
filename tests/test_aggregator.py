from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import unittest

from fieldforce.models import AttendanceStatus, DailyAttendance, DutySession, DutySessionStatus
from fieldforce.services.aggregator import is_on_duty, recompute_totals
from fieldforce.services.sessions import session_duration_hours

START = datetime(2026, 10, 17, 3, 30, tzinfo=timezone.utc)
LOCATION = {"latitude": 19.0, "longitude": 72.8, "address": "Office"}


def _completed(start: datetime, minutes: int) -> DutySession:
    end = start + timedelta(minutes=minutes)
    return DutySession(
        start_time=start,
        start_location=LOCATION,
        end_time=end,
        end_location=LOCATION,
        duration=session_duration_hours(start, end),
        status=DutySessionStatus.COMPLETED,
    )


def _record(*sessions: DutySession) -> DailyAttendance:
    record = DailyAttendance(user_id=1, date=date(2026, 10, 17), total_hours=0.0, total_distance=0.0)
    record.duty_sessions.extend(sessions)
    return record


class AggregatorTests(unittest.TestCase):
    def test_total_is_sum_of_rounded_durations(self) -> None:
        # Three 20 minute sessions are 0.33h each once rounded; the day
        # total is 0.99, not 1.0.
        record = _record(
            _completed(START, 20),
            _completed(START + timedelta(hours=1), 20),
            _completed(START + timedelta(hours=2), 20),
        )

        recompute_totals(record)

        self.assertEqual([session.duration for session in record.duty_sessions], [0.33, 0.33, 0.33])
        self.assertEqual(record.total_hours, 0.99)
        self.assertEqual(record.status, AttendanceStatus.OFF_DUTY)

    def test_total_is_rounded_after_summing(self) -> None:
        first = _completed(START, 6)
        second = _completed(START + timedelta(hours=1), 12)
        self.assertEqual((first.duration, second.duration), (0.1, 0.2))

        record = _record(first, second)
        recompute_totals(record)

        self.assertEqual(record.total_hours, 0.3)

    def test_active_session_counts_for_status_not_hours(self) -> None:
        active = DutySession(
            start_time=START + timedelta(hours=3),
            start_location=LOCATION,
            status=DutySessionStatus.ACTIVE,
        )
        record = _record(_completed(START, 90), active)

        recompute_totals(record)

        self.assertTrue(is_on_duty(record))
        self.assertEqual(record.status, AttendanceStatus.ON_DUTY)
        self.assertEqual(record.total_hours, 1.5)

    def test_total_distance_is_untouched(self) -> None:
        record = _record(_completed(START, 60))
        record.total_distance = 12.4

        recompute_totals(record)

        self.assertEqual(record.total_distance, 12.4)

    def test_missing_record_is_off_duty(self) -> None:
        self.assertFalse(is_on_duty(None))


if __name__ == "__main__":
    unittest.main()
