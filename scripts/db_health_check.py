#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fieldforce.settings import get_settings, normalize_database_url

EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = ("users", "daily_attendance", "duty_sessions", "check_ins", "audit_logs")


def run(engine: Engine) -> dict[str, Any]:
    report: dict[str, Any] = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "dialect": engine.dialect.name,
        "checks": [],
    }

    def add(name: str, status: str, details: dict[str, Any]) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    tables = set(inspect(engine).get_table_names())
    missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
    add("required_tables", "fail" if missing_tables else "ok", {"missing": missing_tables})

    with engine.connect() as conn:
        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        if "duty_sessions" in tables:
            duplicate_active = conn.execute(
                text(
                    """
                    select attendance_id, count(*)
                    from duty_sessions
                    where status = 'active'
                    group by attendance_id
                    having count(*) > 1
                    """
                )
            ).fetchall()
            add(
                "duplicate_active_sessions",
                "fail" if duplicate_active else "ok",
                {"rows": [list(row) for row in duplicate_active]},
            )

            incomplete_sessions = conn.execute(
                text(
                    """
                    select id
                    from duty_sessions
                    where status = 'completed' and (end_time is null or duration is null)
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "completed_session_missing_end",
                "fail" if incomplete_sessions else "ok",
                {"sample_ids": [row[0] for row in incomplete_sessions]},
            )

        if "daily_attendance" in tables and "duty_sessions" in tables:
            status_mismatch = conn.execute(
                text(
                    """
                    select d.id
                    from daily_attendance d
                    left join duty_sessions s on s.attendance_id = d.id and s.status = 'active'
                    where (s.id is null and d.status = 'on-duty')
                       or (s.id is not null and d.status = 'off-duty')
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_status_mismatch",
                "warn" if status_mismatch else "ok",
                {"sample_ids": [row[0] for row in status_mismatch]},
            )

        if "users" in tables and "daily_attendance" in tables and "duty_sessions" in tables:
            # Users flagged on duty without any active session anywhere.
            stale_flags = conn.execute(
                text(
                    """
                    select u.id
                    from users u
                    where u.duty_status = true
                      and not exists (
                        select 1
                        from daily_attendance d
                        join duty_sessions s on s.attendance_id = d.id
                        where d.user_id = u.id and s.status = 'active'
                      )
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "stale_duty_flag",
                "warn" if stale_flags else "ok",
                {"sample_user_ids": [row[0] for row in stale_flags]},
            )

    failed = [check for check in report["checks"] if check["status"] == "fail"]
    report["ok"] = len(failed) == 0
    return report


def main() -> int:
    engine = create_engine(normalize_database_url(get_settings().database_url))
    report = run(engine)
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
