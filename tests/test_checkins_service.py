from __future__ import annotations

from datetime import date, datetime, timezone
import unittest

from fieldforce.errors import ApiError, NotFoundError, ValidationError
from fieldforce.models import CheckInStatus, CheckInType, DailyAttendance
from fieldforce.services.attendance import attendance_overview
from fieldforce.services.checkins import (
    complete_check_out,
    create_check_in,
    get_check_in,
    list_check_ins,
    nearest_check_in,
)
from fieldforce.services.location import distance_km

from sqlite_support import add_user, ist, make_engine, make_session_factory

OFFICE = {"latitude": 19.076, "longitude": 72.8777, "address": "Bandra West", "accuracy": 12}
CLIENT = {"latitude": 19.1136, "longitude": 72.8697, "address": "Andheri"}


class CheckInServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()
        add_user(self.db, user_id=1)
        add_user(self.db, user_id=2)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def check_in(self, *, user_id: int = 1, check_in_type: str = "general", customer_id=None, where=None, now=None):
        return create_check_in(
            self.db,
            user_id=user_id,
            check_in_type=check_in_type,
            customer_id=customer_id,
            location=where or OFFICE,
            notes="Visit",
            purpose="Demo",
            now=now or ist(2026, 10, 17, 10),
        )

    def test_check_in_attaches_to_day_record(self) -> None:
        check_in = self.check_in(check_in_type="customer", customer_id=42)

        self.assertEqual(check_in.type, CheckInType.CUSTOMER)
        self.assertEqual(check_in.customer_id, 42)
        self.assertEqual(check_in.status, CheckInStatus.CHECKED_IN)
        self.assertEqual(check_in.check_in_location["accuracy"], 12.0)

        record = self.db.get(DailyAttendance, check_in.attendance_id)
        self.assertIsNotNone(record)
        self.assertEqual(record.date, date(2026, 10, 17))
        self.assertEqual([item.id for item in record.check_ins], [check_in.id])

    def test_general_check_in_drops_customer(self) -> None:
        check_in = self.check_in(customer_id=42)
        self.assertIsNone(check_in.customer_id)

    def test_check_in_validation(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.check_in(check_in_type="customer")
        self.assertEqual(ctx.exception.code, "CUSTOMER_REQUIRED")

        with self.assertRaises(ValidationError) as ctx:
            self.check_in(check_in_type="lunch")
        self.assertEqual(ctx.exception.code, "INVALID_CHECKIN_TYPE")

        with self.assertRaises(ValidationError) as ctx:
            self.check_in(where={"latitude": 100, "longitude": 72.0})
        self.assertEqual(ctx.exception.code, "INVALID_LOCATION")

    def test_check_out_records_distance_and_duration(self) -> None:
        check_in = self.check_in()

        checked_out = complete_check_out(
            self.db,
            user_id=1,
            check_in_id=check_in.id,
            location=CLIENT,
            notes="Signed",
            now=ist(2026, 10, 17, 10, 45),
        )

        expected = distance_km(OFFICE["latitude"], OFFICE["longitude"], CLIENT["latitude"], CLIENT["longitude"])
        self.assertEqual(checked_out.status, CheckInStatus.CHECKED_OUT)
        self.assertEqual(checked_out.duration_minutes, 45)
        self.assertAlmostEqual(checked_out.distance_km, expected, places=6)
        self.assertEqual(checked_out.notes, "Visit\nCheck-out notes: Signed")

        record = self.db.get(DailyAttendance, check_in.attendance_id)
        self.assertAlmostEqual(record.total_distance, expected, places=6)

        stats = attendance_overview(
            self.db,
            caller_id=1,
            caller_role="executive",
            user_id=None,
            start_date=None,
            end_date=None,
        )
        self.assertEqual(stats["total_check_ins"], 1)
        self.assertAlmostEqual(stats["total_distance"], expected, places=6)

    def test_check_out_guards(self) -> None:
        check_in = self.check_in()

        with self.assertRaises(ApiError) as ctx:
            complete_check_out(self.db, user_id=2, check_in_id=check_in.id, location=None)
        self.assertEqual(ctx.exception.status_code, 403)

        complete_check_out(self.db, user_id=1, check_in_id=check_in.id, location=None, now=ist(2026, 10, 17, 11))
        with self.assertRaises(ValidationError) as ctx:
            complete_check_out(self.db, user_id=1, check_in_id=check_in.id, location=None)
        self.assertEqual(ctx.exception.code, "ALREADY_CHECKED_OUT")

        with self.assertRaises(NotFoundError):
            complete_check_out(self.db, user_id=1, check_in_id=999, location=None)

    def test_check_out_without_location_keeps_zero_distance(self) -> None:
        check_in = self.check_in()
        checked_out = complete_check_out(
            self.db, user_id=1, check_in_id=check_in.id, location=None, now=ist(2026, 10, 17, 10, 30)
        )
        self.assertEqual(checked_out.distance_km, 0.0)
        self.assertIsNone(checked_out.check_out_location)

    def test_get_and_list_are_scoped(self) -> None:
        mine = self.check_in(check_in_type="customer", customer_id=7)
        theirs = self.check_in(user_id=2)

        with self.assertRaises(NotFoundError):
            get_check_in(self.db, caller_id=1, caller_role="executive", check_in_id=theirs.id)
        self.assertEqual(get_check_in(self.db, caller_id=1, caller_role="admin", check_in_id=theirs.id).id, theirs.id)

        rows, total = list_check_ins(
            self.db,
            caller_id=1,
            caller_role="executive",
            user_id=2,
            day=date(2026, 10, 17),
            customer_id=None,
            check_in_type=None,
            status=None,
            page=1,
            limit=30,
        )
        self.assertEqual(total, 1)
        self.assertEqual([row.id for row in rows], [mine.id])

        rows, total = list_check_ins(
            self.db,
            caller_id=1,
            caller_role="admin",
            user_id=None,
            day=None,
            customer_id=None,
            check_in_type="general",
            status="checked-in",
            page=1,
            limit=30,
        )
        self.assertEqual([row.id for row in rows], [theirs.id])

        with self.assertRaises(ValidationError):
            list_check_ins(
                self.db,
                caller_id=1,
                caller_role="executive",
                user_id=None,
                day=None,
                customer_id=None,
                check_in_type=None,
                status="lost",
                page=1,
                limit=30,
            )

    def test_date_filter_uses_users_timezone(self) -> None:
        add_user(self.db, user_id=3, tz_name="America/New_York")
        # 22:00 in New York on the 16th is already the 17th in India.
        late = self.check_in(user_id=3, now=datetime(2026, 10, 17, 2, 0, tzinfo=timezone.utc))

        def listed(day: date) -> list[int]:
            rows, _ = list_check_ins(
                self.db,
                caller_id=3,
                caller_role="executive",
                user_id=None,
                day=day,
                customer_id=None,
                check_in_type=None,
                status=None,
                page=1,
                limit=30,
            )
            return [row.id for row in rows]

        self.assertEqual(listed(date(2026, 10, 16)), [late.id])
        self.assertEqual(listed(date(2026, 10, 17)), [])

    def test_nearest_uses_todays_check_ins(self) -> None:
        self.check_in(where=CLIENT, now=ist(2026, 10, 16, 10))
        office = self.check_in(where=OFFICE, now=ist(2026, 10, 17, 9))
        self.check_in(where={"latitude": 18.5204, "longitude": 73.8567, "address": "Pune"}, now=ist(2026, 10, 17, 15))

        match = nearest_check_in(
            self.db,
            user_id=1,
            latitude=19.1136,
            longitude=72.8697,
            now=ist(2026, 10, 17, 16),
        )

        self.assertIsNotNone(match)
        assert match is not None
        self.assertEqual(match[0].id, office.id)
        self.assertGreater(match[1], 0.0)

        self.assertIsNone(nearest_check_in(self.db, user_id=2, latitude=19.0, longitude=72.0, now=ist(2026, 10, 17, 16)))


if __name__ == "__main__":
    unittest.main()
