"""Celery tasks for the three inbound triggers.

Each task builds the service lazily, runs the async service call with
``asyncio.run`` (prefork pool, no running loop) and retries on
``StoreUnavailable`` so a transient DB or disk failure does not lose the
trigger.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import db
from app.celery_app import celery_app
from app.services.reminder_service import ReminderService, build_reminder_service
from app.types.errors import StoreUnavailable
from app.types.schedule_contract import UserAction

_service: Optional[ReminderService] = None


def get_service() -> ReminderService:
    global _service
    if _service is None:
        _service = build_reminder_service()
    return _service


async def _run(coro):
    """Await a service call, then drop the engine bound to this task's event loop."""
    try:
        return await coro
    finally:
        await db.dispose_engine()


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.reminder.alarm_fired", bind=True, max_retries=3)
def alarm_fired(self, medication_id: int, hour: int, minute: int) -> list[dict]:  # noqa: D401
    """Arm a pending dose; returns the entries now pending at that slot."""
    try:
        pending = asyncio.run(_run(get_service().on_alarm_fired(medication_id, hour, minute)))
    except StoreUnavailable as exc:
        raise self.retry(exc=exc)
    return [p.model_dump(mode="json", by_alias=True) for p in pending]


@celery_app.task(name="app.workers.reminder.user_action", bind=True, max_retries=3)
def user_action(self, kind: str, medication_id: Optional[int], hour: int, minute: int) -> dict:
    try:
        result = asyncio.run(
            _run(get_service().on_user_action(UserAction(kind), medication_id, hour, minute))
        )
    except StoreUnavailable as exc:
        raise self.retry(exc=exc)
    if result.snoozed_until is not None and result.medication_ids:
        # re-deliver the alarm once the snooze elapses
        for mid in result.medication_ids:
            alarm_fired.apply_async(args=[mid, hour, minute], eta=result.snoozed_until)
    return result.model_dump(mode="json")


@celery_app.task(name="app.workers.reminder.reconcile", bind=True, max_retries=3)
def reconcile(self) -> dict:
    """Repair pending entries and record MISSED doses since the last check."""
    try:
        report = asyncio.run(_run(get_service().on_app_start()))
    except StoreUnavailable as exc:
        raise self.retry(exc=exc, countdown=30)
    return report.model_dump(mode="json")
