from __future__ import annotations

from datetime import date
import importlib.util
from pathlib import Path
import unittest

from sqlalchemy import text

from fieldforce.models import User

from sqlite_support import add_day, add_user, make_engine, make_session_factory

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "db_health_check.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("db_health_check", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


class DbHealthCheckTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.module = _load_script()

    def tearDown(self) -> None:
        self.engine.dispose()

    def _checks(self) -> dict[str, dict]:
        report = self.module.run(self.engine)
        return {check["name"]: check for check in report["checks"]}

    def test_stale_flag_and_missing_version_are_reported(self) -> None:
        with make_session_factory(self.engine)() as db:
            add_user(db, user_id=1, duty_status=True)
            add_day(db, user_id=1, day=date(2026, 10, 17))

        checks = self._checks()

        self.assertEqual(checks["required_tables"]["status"], "ok")
        self.assertEqual(checks["alembic_version"]["status"], "fail")
        self.assertEqual(checks["stale_duty_flag"]["details"]["sample_user_ids"], [1])
        self.assertEqual(checks["duplicate_active_sessions"]["status"], "ok")
        self.assertEqual(checks["attendance_status_mismatch"]["status"], "ok")

    def test_clean_database_passes(self) -> None:
        with self.engine.begin() as connection:
            connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
            connection.execute(text("INSERT INTO alembic_version VALUES ('0001_initial')"))
        with make_session_factory(self.engine)() as db:
            add_user(db, user_id=1)
            self.assertFalse(db.get(User, 1).duty_status)

        report = self.module.run(self.engine)

        self.assertTrue(report["ok"])
        self.assertTrue(all(check["status"] == "ok" for check in report["checks"]))


if __name__ == "__main__":
    unittest.main()
