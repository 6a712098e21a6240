from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import text

from fieldforce.services.schema_guard import verify_runtime_schema

from sqlite_support import make_engine


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeDialect:
    name = "postgresql"


class _FakeEngine:
    dialect = _FakeDialect()

    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(
        self,
        *,
        columns_by_table: dict[str, set[str]],
        indexes_by_table: dict[str, set[str]],
        enums: list[dict[str, object]],
    ):
        self._columns_by_table = columns_by_table
        self._indexes_by_table = indexes_by_table
        self._enums = enums

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        columns = self._columns_by_table[table_name]
        return [{"name": item} for item in columns]

    def get_indexes(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._indexes_by_table.get(table_name, set())]

    def get_enums(self):  # type: ignore[no-untyped-def]
        return self._enums


COMPLETE_COLUMNS = {
    "users": {"id", "name", "timezone", "duty_status", "current_location"},
    "daily_attendance": {"id", "user_id", "date", "total_hours", "total_distance", "status"},
    "duty_sessions": {"id", "attendance_id", "start_time", "end_time", "duration", "status"},
    "check_ins": {"id", "user_id", "attendance_id", "check_in_time", "status"},
    "audit_logs": {"id", "action", "details"},
    "alembic_version": {"version_num"},
}


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table=COMPLETE_COLUMNS,
            indexes_by_table={"duty_sessions": {"uq_duty_sessions_one_active"}},
            enums=[
                {"name": "duty_session_status", "labels": ["active", "completed"]},
                {"name": "attendance_status", "labels": ["on-duty", "off-duty"]},
            ],
        )

        with patch("fieldforce.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0001_initial"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_verify_runtime_schema_reports_missing_pieces(self) -> None:
        columns = dict(COMPLETE_COLUMNS)
        columns["duty_sessions"] = {"id", "attendance_id", "start_time"}
        fake_inspector = _FakeInspector(
            columns_by_table=columns,
            indexes_by_table={},
            enums=[{"name": "duty_session_status", "labels": ["active"]}],
        )

        with patch("fieldforce.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine(""))  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertIn("MISSING_COLUMNS:duty_sessions:duration,end_time,status", result.issues)
        self.assertIn("MISSING_INDEXES:duty_sessions:uq_duty_sessions_one_active", result.issues)
        self.assertIn("MISSING_ENUM_VALUES:duty_session_status:completed", result.issues)
        self.assertIn("ENUM_NOT_FOUND:attendance_status", result.warnings)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)

    def test_sqlite_schema_from_models(self) -> None:
        engine = make_engine()
        try:
            with engine.begin() as connection:
                connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
                connection.execute(text("INSERT INTO alembic_version VALUES ('0001_initial')"))

            result = verify_runtime_schema(engine)
        finally:
            engine.dispose()

        self.assertTrue(result.ok, result.issues)
        self.assertEqual(result.to_dict()["issue_count"], 0)


if __name__ == "__main__":
    unittest.main()
