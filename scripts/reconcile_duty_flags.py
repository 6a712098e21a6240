#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fieldforce.db import SessionLocal
from fieldforce.logging_utils import setup_json_logging
from fieldforce.services.reconciler import reconcile_all_duty_flags


def main() -> int:
    setup_json_logging()
    with SessionLocal() as db:
        result = reconcile_all_duty_flags(db)
    summary = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        **result,
    }
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
