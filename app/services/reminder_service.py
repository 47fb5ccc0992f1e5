"""
Inbound triggers: alarm delivery, user actions on a notification, and the
start-up / periodic reconciliation pass.

The service owns no state of its own.  It is built once with explicit store
objects and handed to whoever receives triggers (FastAPI app, Celery worker,
cron script).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Protocol

from config import settings
from app.services.gap_reconciler import find_missed_doses_in_gap
from app.services.pending_tracker import PendingDoseTracker
from app.types.errors import StoreUnavailable, invariant_violated
from app.types.schedule_contract import (
    HistoryAction,
    HistoryRecord,
    Medication,
    MissedDose,
    PendingEntry,
    ReconcileReport,
    UserAction,
    UserActionResult,
    minutes_between,
)
from app.utils.blob import FileBlob, PersistentBlob
from app.utils.timeutil import resolve, slot_key_of, slot_today

_LOGGER = logging.getLogger(__name__)


class MedicationStore(Protocol):
    async def get_all(self) -> List[Medication]: ...

    async def get_by_id(self, medication_id: int) -> Optional[Medication]: ...


class HistoryStore(Protocol):
    async def insert(self, record: HistoryRecord) -> int: ...

    async def replace(self, record_id: int, record: HistoryRecord) -> None: ...

    async def query_by_medication_and_day(self, medication_id: int, day: date) -> List[HistoryRecord]: ...

    async def query_by_date_range(self, start: datetime, end: datetime) -> List[HistoryRecord]: ...


class ReminderService:
    def __init__(
        self,
        medications: MedicationStore,
        history: HistoryStore,
        tracker: PendingDoseTracker,
        last_check: PersistentBlob,
    ):
        self.medications = medications
        self.history = history
        self.tracker = tracker
        self._last_check = last_check

    # ------------------------------------------------------------------
    # Last known-good check marker
    # ------------------------------------------------------------------
    def read_last_check(self) -> Optional[datetime]:
        try:
            raw = self._last_check.read()
        except Exception as exc:  # noqa: BLE001
            raise StoreUnavailable("could not read last-check marker") from exc
        if not raw:
            return None
        try:
            value = datetime.fromisoformat(raw.strip())
        except ValueError:
            _LOGGER.warning("Ignoring malformed last-check marker: %r", raw)
            return None
        if value.tzinfo is None:
            _LOGGER.warning("Ignoring naive last-check marker: %r", raw)
            return None
        return value

    def write_last_check(self, when: datetime) -> None:
        try:
            self._last_check.write(when.isoformat())
        except Exception as exc:  # noqa: BLE001
            raise StoreUnavailable("could not write last-check marker") from exc

    # ------------------------------------------------------------------
    # Alarm delivery
    # ------------------------------------------------------------------
    async def on_alarm_fired(self, medication_id: int, hour: int, minute: int) -> List[PendingEntry]:
        """Arm the dose and return everything pending at the same slot."""
        medication = await self.medications.get_by_id(medication_id)
        if medication is None:
            _LOGGER.warning("Alarm for unknown medication %s ignored", medication_id)
            return []

        self.tracker.arm(
            PendingEntry(
                medication_id=medication.id,
                medication_name=medication.name,
                medication_photo_uri=medication.photo_uri,
                hour=hour,
                minute=minute,
            )
        )
        pending = self.tracker.list_at(hour, minute)
        if len(pending) > 1:
            _LOGGER.info("%d medications due at %02d:%02d, grouping", len(pending), hour, minute)
        return pending

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    @staticmethod
    def _scheduled_for(hour: int, minute: int, now: datetime) -> datetime:
        """Most recent occurrence of the slot; a slot far ahead of now was yesterday's."""
        scheduled = slot_today(hour, minute, now)
        if scheduled - now > timedelta(minutes=settings.ON_TIME_WINDOW_MINUTES):
            scheduled -= timedelta(days=1)
        return scheduled

    async def _existing_at_slot(self, medication_id: int, scheduled: datetime) -> Optional[HistoryRecord]:
        tz = scheduled.tzinfo
        key = slot_key_of(medication_id, scheduled, tz)
        for h in await self.history.query_by_medication_and_day(medication_id, scheduled.date()):
            if slot_key_of(h.medication_id, h.scheduled_time, tz) == key:
                return h
        return None

    async def _record(
        self,
        medication_id: int,
        fallback_name: Optional[str],
        action: HistoryAction,
        scheduled: datetime,
        now: datetime,
    ) -> Optional[HistoryRecord]:
        medication = await self.medications.get_by_id(medication_id)
        if medication is None and fallback_name is None:
            _LOGGER.warning("No medication %s to record %s against", medication_id, action.value)
            return None

        existing = await self._existing_at_slot(medication_id, scheduled)
        if existing is not None and existing.action is not HistoryAction.MISSED:
            _LOGGER.info(
                "%s at %02d:%02d already recorded as %s, keeping it",
                existing.medication_name, scheduled.hour, scheduled.minute, existing.action.value,
            )
            return existing

        on_time = (
            action is HistoryAction.TAKEN
            and minutes_between(now, scheduled) <= settings.ON_TIME_WINDOW_MINUTES
        )
        record = HistoryRecord(
            profile_id=medication.profile_id if medication else 1,
            medication_id=medication_id,
            medication_name=medication.name if medication else fallback_name,
            scheduled_time=scheduled,
            taken_time=now,
            was_on_time=on_time,
            action=action,
        )
        if existing is not None:
            # a late action overrides the backfilled MISSED row
            await self.history.replace(existing.id, record)
            record_id = existing.id
        else:
            record_id = await self.history.insert(record)
        _LOGGER.info("Saved %s for %s at %02d:%02d", action.value, record.medication_name, scheduled.hour, scheduled.minute)
        return record.model_copy(update={"id": record_id})

    async def on_user_action(
        self,
        kind: UserAction,
        medication_id: Optional[int],
        hour: int,
        minute: int,
        *,
        now: Optional[datetime] = None,
    ) -> UserActionResult:
        now, _ = resolve(now)
        kind = UserAction(kind)

        if kind.grouped:
            pending = self.tracker.list_at(hour, minute)
            targets = {e.medication_id: e.medication_name for e in pending}
            if not targets and medication_id is not None:
                targets = {medication_id: None}
            self.tracker.disarm_at(hour, minute)
        else:
            if medication_id is None:
                raise ValueError(f"{kind.value} needs a medication id")
            names = {e.medication_id: e.medication_name for e in self.tracker.list_all()}
            targets = {medication_id: names.get(medication_id)}
            self.tracker.disarm(medication_id)

        result = UserActionResult(action=kind, medication_ids=sorted(targets))

        action = kind.history_action
        if action is None:
            result.snoozed_until = now + timedelta(minutes=settings.SNOOZE_MINUTES)
            _LOGGER.info("Snoozed %s until %s", result.medication_ids, result.snoozed_until)
            return result

        scheduled = self._scheduled_for(hour, minute, now)
        for mid, name in targets.items():
            record = await self._record(mid, name, action, scheduled, now)
            if record is not None:
                result.history.append(record)
        return result

    # ------------------------------------------------------------------
    # Start-up / periodic reconciliation
    # ------------------------------------------------------------------
    def _is_live(self, live: List[PendingEntry], medication_id: int, dose: MissedDose) -> bool:
        """True when ``dose`` is the one behind a live pending entry."""
        return any(
            e.key == (medication_id, dose.hour, dose.minute)
            and abs(e.armed_at - dose.scheduled_timestamp) <= self.tracker.expiry
            for e in live
        )

    async def on_app_start(self, *, now: Optional[datetime] = None) -> ReconcileReport:
        """Repair the pending list, then backfill MISSED doses since the last check."""
        now, tz = resolve(now)
        medications = await self.medications.get_all()

        report = ReconcileReport(
            gap_end=now,
            medications_checked=len(medications),
            stale_pending_removed=self.tracker.reconcile_with_store(m.id for m in medications),
        )

        last = self.read_last_check()
        if last is None:
            _LOGGER.info("No previous check recorded; starting tracking at %s", now)
            self.write_last_check(now)
            return report
        if last >= now:
            _LOGGER.warning("Last check %s is not before now %s (clock change?)", last, now)
            self.write_last_check(now)
            return report

        report.gap_start = last
        history = await self.history.query_by_date_range(last, now)
        live = self.tracker.list_live(now)
        live_keys = {e.key for e in live}
        marker = now

        for medication in medications:
            gap_start = max(last, medication.created_at)
            for dose in find_missed_doses_in_gap(medication, gap_start, now, history, now=now, tz=tz):
                if dose.scheduled_timestamp > now:
                    invariant_violated(f"future MISSED dose for {medication.id} at {dose.scheduled_timestamp}", _LOGGER)
                    continue
                if self._is_live(live, medication.id, dose):
                    # notification still showing; revisit it on a later pass
                    marker = min(marker, dose.scheduled_timestamp)
                    report.still_pending += 1
                    continue
                await self.history.insert(
                    HistoryRecord(
                        profile_id=medication.profile_id,
                        medication_id=medication.id,
                        medication_name=medication.name,
                        scheduled_time=dose.scheduled_timestamp,
                        taken_time=dose.scheduled_timestamp,
                        was_on_time=False,
                        action=HistoryAction.MISSED,
                    )
                )
                if (medication.id, dose.hour, dose.minute) not in live_keys:
                    self.tracker.disarm_dose(medication.id, dose.hour, dose.minute)
                report.missed_recorded += 1

        self.write_last_check(marker)
        _LOGGER.info(
            "Reconciled %d medication(s): %d missed, %d still pending, %d stale pending removed",
            report.medications_checked, report.missed_recorded, report.still_pending, report.stale_pending_removed,
        )
        return report

    # ------------------------------------------------------------------
    # Catalog changes
    # ------------------------------------------------------------------
    def on_medication_deleted(self, medication_id: int) -> int:
        return self.tracker.disarm(medication_id)


def build_reminder_service() -> ReminderService:
    """Service wired to the SQL stores and the configured state files."""
    import db

    return ReminderService(
        medications=db.SqlMedicationStore(),
        history=db.SqlHistoryStore(),
        tracker=PendingDoseTracker(FileBlob(settings.PENDING_STATE_PATH)),
        last_check=FileBlob(settings.LAST_CHECK_PATH),
    )
