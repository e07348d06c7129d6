"""
Run the daily expiry scan outside HTTP (platform cron job / manual run).

Same work as POST /api/cron/check-expiries: expire lapsed trials, create alerts
for medical exams, equipment inspections and trainings nearing expiry, and send
the per-organization digest.

Usage:
  python scripts/check_expiries.py
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> int:
    from app.ssm import create_app
    from app.ssm.db import session_scope
    from app.ssm.modules.alerts.notifications import notifier_from_config
    from app.ssm.modules.alerts.scanner import run_expiry_scan

    app = create_app()
    with app.app_context():
        with session_scope(app) as s:
            summary = run_expiry_scan(
                s,
                notifier=notifier_from_config(app.config),
                warning_days=int(app.config.get("ALERT_WARNING_DAYS") or 30),
            )
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    return 1 if summary.organizations_failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
