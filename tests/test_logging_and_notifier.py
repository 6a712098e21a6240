from __future__ import annotations

import json
import logging
import unittest
from unittest.mock import patch

from fieldforce.logging_utils import JsonFormatter
from fieldforce.services.notifier import (
    LoggingDutyNotifier,
    NullDutyNotifier,
    get_duty_notifier,
    publish_safely,
)
from fieldforce.settings import Settings


class JsonFormatterTests(unittest.TestCase):
    def test_extra_fields_are_merged(self) -> None:
        record = logging.LogRecord(
            name="fieldforce.attendance",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="duty_session_started",
            args=None,
            exc_info=None,
        )
        record.user_id = 7
        record.attendance_id = 3

        payload = json.loads(JsonFormatter("FieldForceCRM").format(record))

        self.assertEqual(payload["message"], "duty_session_started")
        self.assertEqual(payload["service"], "FieldForceCRM")
        self.assertEqual(payload["logger"], "fieldforce.attendance")
        self.assertEqual(payload["user_id"], 7)
        self.assertEqual(payload["attendance_id"], 3)
        self.assertNotIn("pathname", payload)


class NotifierTests(unittest.TestCase):
    def test_notifier_follows_settings(self) -> None:
        with patch("fieldforce.services.notifier.get_settings", return_value=Settings(notifications_enabled=False)):
            self.assertIsInstance(get_duty_notifier(), NullDutyNotifier)
        with patch("fieldforce.services.notifier.get_settings", return_value=Settings(notifications_enabled=True)):
            self.assertIsInstance(get_duty_notifier(), LoggingDutyNotifier)

    def test_logging_notifier_logs_event(self) -> None:
        with self.assertLogs("fieldforce.notifier", level="INFO") as captured:
            LoggingDutyNotifier().publish(7, "duty_started", {"sessionNumber": 1})
        self.assertEqual(captured.records[0].event, "duty_started")

    def test_publish_failure_is_logged_not_raised(self) -> None:
        class Broken:
            def publish(self, user_id, event, payload):  # type: ignore[no-untyped-def]
                raise ConnectionError("down")

        with self.assertLogs("fieldforce.notifier", level="ERROR") as captured:
            publish_safely(Broken(), 7, "duty_ended", {})
        self.assertEqual(captured.records[0].getMessage(), "duty_event_publish_failed")


if __name__ == "__main__":
    unittest.main()
