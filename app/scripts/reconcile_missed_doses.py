"""Start-up / cron reconciliation pass.
Run once when the host starts, or on a schedule:
    python -m app.scripts.reconcile_missed_doses
"""

from __future__ import annotations

import asyncio
import logging

import db
from app.services.reminder_service import build_reminder_service
from app.types.schedule_contract import ReconcileReport


async def main() -> ReconcileReport:
    service = build_reminder_service()
    try:
        return await service.on_app_start()
    finally:
        await db.dispose_engine()


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=logging.INFO)
    print("[CRON] reconcile_missed_doses: job started")
    try:
        report = asyncio.run(main())
        print(
            "[CRON] reconcile_missed_doses: job completed successfully:",
            f"{report.missed_recorded} missed, {report.stale_pending_removed} stale pending removed",
        )
    except Exception as e:
        print(f"[CRON] reconcile_missed_doses: job failed: {e}")
        raise SystemExit(1)
