"""Google Fit (Takeout) JSON data-point extractor.

A Takeout archive holds many small JSON files under ``Takeout/Fit/All Data/``.
Each has a ``"Data Points"`` array whose points carry ``dataTypeName``,
nanosecond timestamps and a ``fitValue`` list.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from bioage.core.archive.decompressor import CancellationToken, StreamingDecompressor
from bioage.core.archive.errors import NoDataFilesFoundError, NoMatchingRecordsError
from bioage.core.archive.reader import ArchiveReader
from bioage.domains.health.connectors.aggregation import (
    DailyAggregator,
    normalize_body_fat,
    normalize_glucose,
    parse_number,
)
from bioage.domains.health.domain_logic.models import EntrySource, HealthEntry, ImportResult, MetricId

logger = logging.getLogger(__name__)

_DATA_TYPES: dict[str, MetricId] = {
    "com.google.heart_rate.bpm": MetricId.RESTING_HEART_RATE,
    "com.google.blood_pressure": MetricId.BLOOD_PRESSURE,
    "com.google.blood_glucose.level": MetricId.FASTING_GLUCOSE,
    "com.google.body.fat.percentage": MetricId.BODY_FAT_PERCENT,
    "com.google.fitness.vo2max": MetricId.VO2MAX,
    "com.google.vo2max": MetricId.VO2MAX,
}

# Checked in order against the lowercased file name.
_FILENAME_HINTS: tuple[tuple[tuple[str, ...], MetricId], ...] = (
    (("heart_rate",), MetricId.RESTING_HEART_RATE),
    (("blood_pressure",), MetricId.BLOOD_PRESSURE),
    (("blood_glucose",), MetricId.FASTING_GLUCOSE),
    (("body_fat", "body.fat"), MetricId.BODY_FAT_PERCENT),
    (("vo2",), MetricId.VO2MAX),
)

_NO_RECORDS_MESSAGE = "No matching health records found."
_NO_RECORDS_HINT = (
    "Make sure your Google Fit export includes Heart Rate, Blood Pressure, "
    "Glucose, Body Fat, or VO₂ Max."
)

PROGRESS_CEILING = 95


def _metric_from_filename(filename: str) -> MetricId | None:
    for needles, metric_id in _FILENAME_HINTS:
        if any(needle in filename for needle in needles):
            return metric_id
    return None


def _nanos_to_date(raw: Any) -> str | None:
    try:
        nanos = int(str(raw).strip())
    except ValueError:
        # JSON numbers such as 1.7e18 arrive as floats
        try:
            nanos = int(float(raw))
        except (TypeError, ValueError, OverflowError):
            return None
    millis = nanos // 1_000_000
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def _fit_value(fit_values: list[Any], index: int) -> float | None:
    if index >= len(fit_values) or not isinstance(fit_values[index], dict):
        return None
    slot = fit_values[index]
    value = parse_number(slot.get("fpVal"))
    if value is None:
        value = parse_number(slot.get("intVal"))
    return value


class GoogleFitExtractor:
    """Accumulates data points from any number of Takeout JSON files."""

    def __init__(self) -> None:
        self._samples = DailyAggregator("gf", EntrySource.GOOGLE_FIT)
        self.files_parsed = 0
        self.files_skipped = 0

    def feed_json(self, text: str, filename: str = "") -> int:
        """Parse one JSON document; returns the number of points accepted.

        Invalid JSON is skipped (counted in ``files_skipped``).
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            self.files_skipped += 1
            logger.warning("Skipping Google Fit file %s: invalid JSON", filename or "<memory>")
            return 0
        if not isinstance(data, dict):
            self.files_skipped += 1
            return 0

        self.files_parsed += 1
        points = data.get("Data Points") or data.get("dataPoints") or []
        lname = filename.lower()
        accepted = 0
        for point in points:
            if isinstance(point, dict) and self._feed_point(point, lname):
                accepted += 1
        return accepted

    def _feed_point(self, point: dict[str, Any], lname: str) -> bool:
        metric_id = _DATA_TYPES.get(str(point.get("dataTypeName") or "")) or _metric_from_filename(lname)
        if metric_id is None:
            return False

        stamp = point.get("startTimeNanos") or point.get("endTimeNanos")
        date = _nanos_to_date(stamp) if stamp else None
        fit_values = point.get("fitValue") or []
        if date is None or not fit_values:
            return False

        if metric_id is MetricId.BLOOD_PRESSURE:
            systolic = _fit_value(fit_values, 0)
            diastolic = _fit_value(fit_values, 1)
            if systolic is None or systolic <= 0:
                return False
            sys_value = float(round(systolic))
            dia_value = float(round(diastolic)) if diastolic else None
            dia_key = int(dia_value) if dia_value is not None else "na"
            self._samples.add_blood_pressure(
                f"gf_bp_{date}_{int(sys_value)}_{dia_key}", date, sys_value, dia_value
            )
            return True

        value = _fit_value(fit_values, 0)
        if value is None:
            return False
        if metric_id is MetricId.FASTING_GLUCOSE:
            value = normalize_glucose(value)
        elif metric_id is MetricId.BODY_FAT_PERCENT:
            value = normalize_body_fat(value)
        self._samples.add(metric_id, date, value)
        return True

    def finish(self) -> list[HealthEntry]:
        return self._samples.build()


# ---------------------------------------------------------------------------
# Archive level
# ---------------------------------------------------------------------------

def is_google_fit_archive(reader: ArchiveReader) -> bool:
    """Name-only pre-scan: any ``*fit*.json`` entry marks a Takeout archive."""
    for name in reader.names():
        lname = name.lower()
        if "fit" in lname and lname.endswith(".json"):
            return True
    return False


def _is_candidate(name: str) -> bool:
    lname = name.lower()
    in_fit_folder = "all data" in lname or ("fit" in lname and "/" in lname)
    return in_fit_folder and lname.endswith(".json")


def parse_google_fit_archive(
    reader: ArchiveReader,
    *,
    decompressor: StreamingDecompressor | None = None,
    progress: Callable[[int], None] | None = None,
    cancel: CancellationToken | None = None,
) -> ImportResult:
    """Decompress and parse every Fit JSON file in the archive.

    Raises:
        NoDataFilesFoundError: no readable candidate JSON entries.
        NoMatchingRecordsError: candidates parsed but yielded no entries.
    """
    decompressor = decompressor or StreamingDecompressor()
    ranges = [rng for rng in reader.locate_all(_is_candidate) if rng.data_length > 0]
    if not ranges:
        raise NoDataFilesFoundError()

    extractor = GoogleFitExtractor()
    total = len(ranges)
    for i, rng in enumerate(ranges):
        if progress is not None:
            progress(min(PROGRESS_CEILING, round(i / total * PROGRESS_CEILING)))
        raw = decompressor.decompress_bytes(reader.read(rng), rng.compression_method, cancel=cancel)
        extractor.feed_json(raw.decode("utf-8", errors="replace"), rng.name)

    entries = extractor.finish()
    if not entries:
        raise NoMatchingRecordsError(_NO_RECORDS_MESSAGE, hint=_NO_RECORDS_HINT)

    logger.info(
        "Google Fit archive parsed: %d files, %d skipped, %d entries",
        extractor.files_parsed,
        extractor.files_skipped,
        len(entries),
    )
    return ImportResult(entries=entries, source=EntrySource.GOOGLE_FIT)
