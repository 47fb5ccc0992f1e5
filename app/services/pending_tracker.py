"""
Tracks medications whose notification fired and has not been acted on yet.

The whole pending list lives in one ``PersistentBlob`` and is
read-modify-written on every mutation:

• dedup on (medication_id, hour, minute) so a re-delivered alarm is idempotent
• entries older than ``PENDING_EXPIRY_HOURS`` are pruned on every ``arm``
• ``reconcile_with_store`` drops entries for deleted medications and
  duplicate keys; run it at process start

One tracker instance per blob; mutators are serialised with an RLock.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta
from threading import RLock
from typing import Callable, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from config import settings
from app.types.errors import ParseError, StoreUnavailable, invariant_violated
from app.types.schedule_contract import PendingEntry
from app.utils.blob import PersistentBlob

_LOGGER = logging.getLogger(__name__)

_PENDING_ADAPTER = TypeAdapter(List[PendingEntry])


def _now_ms() -> int:
    return int(time.time() * 1000)


# ──────────────────────────────────────────────────────────────────────
# Blob codec
# ──────────────────────────────────────────────────────────────────────

def decode_pending(raw: Optional[str]) -> List[PendingEntry]:
    """Parse the blob; raises ``ParseError`` on anything unreadable."""
    if raw is None or not raw.strip():
        return []
    try:
        return _PENDING_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise ParseError(f"pending list is malformed: {exc.error_count()} error(s)", raw) from exc


def encode_pending(entries: Iterable[PendingEntry]) -> str:
    return json.dumps(
        [e.model_dump(mode="json", by_alias=True) for e in entries],
        separators=(",", ":"),
    )


class PendingDoseTracker:
    def __init__(
        self,
        blob: PersistentBlob,
        clock: Callable[[], int] = _now_ms,
        expiry_hours: Optional[float] = None,
    ):
        self._blob = blob
        self._clock = clock
        self._expiry_ms = int(
            (expiry_hours if expiry_hours is not None else settings.PENDING_EXPIRY_HOURS)
            * 60 * 60 * 1000
        )
        self._lock = RLock()

    @property
    def expiry(self) -> timedelta:
        return timedelta(milliseconds=self._expiry_ms)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _load(self) -> List[PendingEntry]:
        try:
            raw = self._blob.read()
        except Exception as exc:  # noqa: BLE001
            raise StoreUnavailable(f"could not read pending list from {self._blob!r}") from exc
        try:
            return decode_pending(raw)
        except ParseError as exc:
            _LOGGER.warning("Error parsing pending medications, treating as empty: %s", exc)
            return []

    def _save(self, entries: List[PendingEntry]) -> None:
        entries = self._enforce_unique(entries)
        try:
            self._blob.write(encode_pending(entries))
        except Exception as exc:  # noqa: BLE001
            raise StoreUnavailable(f"could not write pending list to {self._blob!r}") from exc

    @staticmethod
    def _enforce_unique(entries: List[PendingEntry]) -> List[PendingEntry]:
        latest = {}
        for e in entries:
            latest[e.key] = e
        if len(latest) == len(entries):
            return entries
        invariant_violated(
            f"{len(entries) - len(latest)} duplicate pending key(s) before write", _LOGGER
        )
        # last write wins, keep original order of the survivors
        return [e for e in entries if latest[e.key] is e]

    def _remove_where(self, predicate: Callable[[PendingEntry], bool]) -> int:
        with self._lock:
            pending = self._load()
            kept = [e for e in pending if not predicate(e)]
            removed = len(pending) - len(kept)
            self._save(kept)
            return removed

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    def arm(self, entry: PendingEntry) -> PendingEntry:
        """Record that ``entry``'s notification was shown."""
        with self._lock:
            now = self._clock()
            stored = entry.model_copy(update={"timestamp": now})
            pending = [e for e in self._load() if e.key != stored.key]
            pending.append(stored)

            cutoff = now - self._expiry_ms
            pending = [e for e in pending if e.timestamp >= cutoff]

            self._save(pending)
        _LOGGER.debug(
            "Added pending medication: %s at %02d:%02d, total pending: %d",
            stored.medication_name, stored.hour, stored.minute, len(pending),
        )
        return stored

    def disarm(self, medication_id: int) -> int:
        removed = self._remove_where(lambda e: e.medication_id == medication_id)
        _LOGGER.debug("Removed pending medication ID %s (%d entries)", medication_id, removed)
        return removed

    def disarm_at(self, hour: int, minute: int) -> int:
        removed = self._remove_where(lambda e: e.hour == hour and e.minute == minute)
        _LOGGER.debug("Removed all pending medications at %02d:%02d (%d entries)", hour, minute, removed)
        return removed

    def disarm_dose(self, medication_id: int, hour: int, minute: int) -> int:
        return self._remove_where(lambda e: e.key == (medication_id, hour, minute))

    def clear(self) -> None:
        with self._lock:
            try:
                self._blob.delete()
            except Exception as exc:  # noqa: BLE001
                raise StoreUnavailable(f"could not clear {self._blob!r}") from exc
        _LOGGER.debug("Cleared all pending medications")

    def reconcile_with_store(self, valid_medication_ids: Iterable[int]) -> int:
        """Drop entries for unknown medications and duplicate keys.

        Keeps the first occurrence of a duplicated key.  Only writes when
        something changed, so a second run is a no-op.
        """
        valid = set(valid_medication_ids)
        with self._lock:
            pending = self._load()
            seen = set()
            kept: List[PendingEntry] = []
            for e in pending:
                if e.medication_id not in valid:
                    continue
                if e.key in seen:
                    _LOGGER.debug("Removing duplicate: %s at %02d:%02d", e.medication_name, e.hour, e.minute)
                    continue
                seen.add(e.key)
                kept.append(e)

            removed = len(pending) - len(kept)
            if removed:
                self._save(kept)
                _LOGGER.info("Cleaned up stale pending entries: removed %d", removed)
            return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_all(self) -> List[PendingEntry]:
        with self._lock:
            return self._load()

    def list_at(self, hour: int, minute: int) -> List[PendingEntry]:
        return [e for e in self.list_all() if e.hour == hour and e.minute == minute]

    def list_live(self, now: datetime) -> List[PendingEntry]:
        """Entries armed no more than ``expiry`` before ``now``; expired ones may linger until the next ``arm``."""
        return [e for e in self.list_all() if now - e.armed_at <= self.expiry]
