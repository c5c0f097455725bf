"""Session entry collection: manual logs plus merged imports.

Entries live in memory for the lifetime of the server process. Imports
replace whatever the same source previously recorded for a metric on a
date; manual entries are only ever appended.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import date as date_cls

from bioage.domains.health.domain_logic.models import EntrySource, HealthEntry, ImportResult, MetricId

logger = logging.getLogger(__name__)


class EntryValidationError(ValueError):
    """Raised when a manual entry is rejected."""


def _validate_date(value: str) -> str:
    try:
        return date_cls.fromisoformat(value).isoformat()
    except (TypeError, ValueError) as exc:
        raise EntryValidationError(f"Invalid date {value!r}; expected YYYY-MM-DD") from exc


class EntryStore:
    """Thread-safe in-memory list of :class:`HealthEntry`.

    Usage::

        store = EntryStore()
        store.add_manual(MetricId.VO2MAX, 41.5)
        store.merge_import(result)
        store.latest(MetricId.VO2MAX)
    """

    def __init__(self, entries: list[HealthEntry] | None = None) -> None:
        self._entries: list[HealthEntry] = list(entries or [])
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_manual(
        self,
        metric_id: MetricId | str,
        value: float,
        *,
        secondary_value: float | None = None,
        entry_date: str | None = None,
        note: str = "",
    ) -> HealthEntry:
        """Append a manually logged reading (never deduplicated).

        Raises:
            EntryValidationError: non-positive value, bad date, unknown metric,
                or a diastolic value on a metric other than blood pressure.
        """
        try:
            metric_id = MetricId.parse(metric_id)
        except ValueError as exc:
            raise EntryValidationError(str(exc)) from exc
        if value is None or not value > 0:
            raise EntryValidationError("Value must be a positive number")
        if secondary_value is not None:
            if metric_id is not MetricId.BLOOD_PRESSURE:
                raise EntryValidationError("Only blood pressure takes a secondary (diastolic) value")
            if not secondary_value > 0:
                raise EntryValidationError("Diastolic value must be a positive number")

        entry = HealthEntry(
            id=f"manual_{uuid.uuid4().hex}",
            metric_id=metric_id,
            value=float(value),
            secondary_value=float(secondary_value) if secondary_value is not None else None,
            date=_validate_date(entry_date) if entry_date else date_cls.today().isoformat(),
            source=EntrySource.MANUAL,
            note=note,
        )
        with self._lock:
            self._entries.append(entry)
        logger.info("Logged manual %s entry for %s", metric_id.value, entry.date)
        return entry

    def merge_import(self, result: ImportResult) -> int:
        """Replace same (source, metric, date) entries with the imported ones.

        Returns:
            Number of previously stored entries that were replaced.
        """
        keys = {(e.source, e.metric_id, e.date) for e in result.entries}
        with self._lock:
            kept = [e for e in self._entries if (e.source, e.metric_id, e.date) not in keys]
            replaced = len(self._entries) - len(kept)
            self._entries = kept + list(result.entries)
        logger.info(
            "Merged %d %s entries (%d replaced)",
            len(result.entries),
            result.source.value,
            replaced,
        )
        return replaced

    def clear(self, source: EntrySource | None = None) -> int:
        """Remove every entry, or only those of ``source``. Returns the count removed."""
        with self._lock:
            before = len(self._entries)
            if source is None:
                self._entries = []
            else:
                self._entries = [e for e in self._entries if e.source is not source]
            return before - len(self._entries)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def entries(self, metric_id: MetricId | None = None) -> list[HealthEntry]:
        """Snapshot in insertion order, optionally for one metric."""
        with self._lock:
            if metric_id is None:
                return list(self._entries)
            return [e for e in self._entries if e.metric_id is metric_id]

    def history(self, metric_id: MetricId) -> list[HealthEntry]:
        """Entries for one metric, oldest date first (stable within a date)."""
        return sorted(self.entries(metric_id), key=lambda e: e.date)

    def latest(self, metric_id: MetricId) -> HealthEntry | None:
        history = self.history(metric_id)
        return history[-1] if history else None

    @property
    def import_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._entries if e.source is not EntrySource.MANUAL)

    @property
    def import_sources(self) -> list[EntrySource]:
        with self._lock:
            present = {e.source for e in self._entries}
        return [s for s in (EntrySource.GOOGLE_FIT, EntrySource.APPLE_HEALTH) if s in present]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
