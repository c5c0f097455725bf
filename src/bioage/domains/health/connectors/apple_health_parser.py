"""Apple Health ``export.xml`` record extractor.

The export is not parsed as an XML document. Real exports run to hundreds of
megabytes and arrive as decompressed text chunks, so complete ``<Record>``
elements are pulled out of a rolling text window with a regular expression
and only attributes that matter are read.

HealthKit type mappings:
- HKQuantityTypeIdentifierVO2Max → vo2max
- HKQuantityTypeIdentifierRestingHeartRate → restingHeartRate
- HKQuantityTypeIdentifierBloodPressureSystolic/Diastolic → bloodPressure
- HKQuantityTypeIdentifierBloodGlucose → fastingGlucose
- HKQuantityTypeIdentifierBodyFatPercentage → bodyFatPercent
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from bioage.core.archive.errors import NoMatchingRecordsError
from bioage.domains.health.connectors.aggregation import (
    DailyAggregator,
    normalize_body_fat,
    normalize_glucose,
    parse_number,
)
from bioage.domains.health.domain_logic.models import EntrySource, HealthEntry, ImportResult, MetricId

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_CHARS = 32 * 1024

# HealthKit quantity type identifiers
_VO2MAX = "HKQuantityTypeIdentifierVO2Max"
_RHR = "HKQuantityTypeIdentifierRestingHeartRate"
_BP_SYS = "HKQuantityTypeIdentifierBloodPressureSystolic"
_BP_DIA = "HKQuantityTypeIdentifierBloodPressureDiastolic"
_GLUCOSE = "HKQuantityTypeIdentifierBloodGlucose"
_BODY_FAT = "HKQuantityTypeIdentifierBodyFatPercentage"

_METRIC_TYPES: dict[str, MetricId] = {
    _VO2MAX: MetricId.VO2MAX,
    _RHR: MetricId.RESTING_HEART_RATE,
    _GLUCOSE: MetricId.FASTING_GLUCOSE,
    _BODY_FAT: MetricId.BODY_FAT_PERCENT,
}
_TRACKED_TYPES = frozenset(_METRIC_TYPES) | {_BP_SYS, _BP_DIA}

_RECORD_RE = re.compile(r"<Record\b[^>]*?(?:/>|>[\s\S]*?</Record>)")
_RECORD_START = "<Record"
_SEX_RE = re.compile(r'HKCharacteristicTypeIdentifierBiologicalSex="([^"]*)"')
_DOB_RE = re.compile(r'HKCharacteristicTypeIdentifierDateOfBirth="(\d{4}-\d{2}-\d{2})')

# Tail kept when no record is pending: enough for a tag prefix or a split
# <Me> attribute.
_PLAIN_TAIL_CHARS = 512

_ATTR_CACHE: dict[str, re.Pattern[str]] = {}


def _attr(tag: str, name: str) -> str | None:
    pattern = _ATTR_CACHE.get(name)
    if pattern is None:
        pattern = _ATTR_CACHE[name] = re.compile(rf'\b{name}="([^"]*)"')
    match = pattern.search(tag)
    return match.group(1) if match else None


class AppleRecordExtractor:
    """Incremental extractor for ``<Record>`` elements.

    Usage::

        extractor = AppleRecordExtractor()
        buffer = ""
        for chunk in chunks:
            buffer += chunk
            consumed = extractor.feed(buffer)
            buffer = extractor.carry_over(buffer, consumed)
        extractor.feed(buffer)
        entries = extractor.finish()
    """

    def __init__(self, lookback_chars: int = DEFAULT_LOOKBACK_CHARS) -> None:
        self._lookback = lookback_chars
        self._samples = DailyAggregator("ah", EntrySource.APPLE_HEALTH)
        self._systolic: dict[str, float] = {}
        self._diastolic: dict[str, float] = {}
        self.records_seen = 0
        self.records_matched = 0
        self.detected_sex: str | None = None
        self.detected_date_of_birth: str | None = None

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def feed(self, buffer: str) -> int:
        """Extract every complete record in ``buffer``; return the consumed offset."""
        consumed = 0
        for match in _RECORD_RE.finditer(buffer):
            consumed = match.end()
            self._process(match.group(0))
        return consumed

    def carry_over(self, buffer: str, consumed: int) -> str:
        """Unconsumed tail worth keeping for the next chunk.

        Keeps the text from the first incomplete ``<Record`` onward; a pending
        record longer than the lookback window is dropped.
        """
        start = buffer.find(_RECORD_START, consumed)
        if start == -1:
            return buffer[max(consumed, len(buffer) - _PLAIN_TAIL_CHARS):]
        if len(buffer) - start > self._lookback:
            logger.debug("Dropping oversized partial record (%d chars)", len(buffer) - start)
            return ""
        return buffer[start:]

    def extract_metadata(self, text: str) -> None:
        """Read biological sex and date of birth from the ``<Me>`` element."""
        if self.detected_sex is None:
            sex = _SEX_RE.search(text)
            if sex:
                if "Female" in sex.group(1):
                    self.detected_sex = "female"
                elif "Male" in sex.group(1):
                    self.detected_sex = "male"
        if self.detected_date_of_birth is None:
            dob = _DOB_RE.search(text)
            if dob:
                self.detected_date_of_birth = dob.group(1)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _process(self, record: str) -> None:
        self.records_seen += 1
        tag = record[:record.find(">") + 1] or record
        rec_type = _attr(tag, "type")
        if rec_type not in _TRACKED_TYPES:
            return

        value = parse_number(_attr(tag, "value"))
        raw_date = _attr(tag, "startDate") or _attr(tag, "creationDate") or ""
        if value is None or not raw_date:
            logger.debug("Skipping %s record without a usable value/date", rec_type)
            return
        date = raw_date[:10]
        self.records_matched += 1

        if rec_type == _BP_SYS:
            self._systolic[date] = value
            return
        if rec_type == _BP_DIA:
            self._diastolic[date] = value
            return

        if rec_type == _BODY_FAT:
            value = normalize_body_fat(value)
        elif rec_type == _GLUCOSE:
            value = normalize_glucose(value, _attr(tag, "unit") or "")
        self._samples.add(_METRIC_TYPES[rec_type], date, value)

    def finish(self) -> list[HealthEntry]:
        """Join blood pressure by date and build the aggregated entries."""
        for date, systolic in self._systolic.items():
            if not systolic:
                continue
            sys_value = float(round(systolic))
            diastolic = self._diastolic.get(date)
            dia_value = float(round(diastolic)) if diastolic else None
            self._samples.add_blood_pressure(
                f"ah_bp_{date}_{int(sys_value)}", date, sys_value, dia_value
            )
        return self._samples.build()

    def result(self) -> ImportResult:
        """Finish and wrap; raises when no tracked metric was found."""
        entries = self.finish()
        if not entries:
            raise NoMatchingRecordsError()
        logger.info(
            "Apple Health export parsed: %d records scanned, %d matched, %d entries",
            self.records_seen,
            self.records_matched,
            len(entries),
        )
        return ImportResult(
            entries=entries,
            source=EntrySource.APPLE_HEALTH,
            detected_sex=self.detected_sex,
            detected_date_of_birth=self.detected_date_of_birth,
        )


def parse_apple_health_stream(
    chunks: Iterable[str],
    *,
    lookback_chars: int = DEFAULT_LOOKBACK_CHARS,
) -> ImportResult:
    """Drive the extractor over decoded text chunks.

    Metadata is read from buffers until the first record shows up, since the
    ``<Me>`` element always precedes the records.

    Raises:
        NoMatchingRecordsError: no record of a tracked type was found.
    """
    extractor = AppleRecordExtractor(lookback_chars)
    buffer = ""
    metadata_pending = True
    for chunk in chunks:
        buffer += chunk
        if metadata_pending:
            extractor.extract_metadata(buffer)
            metadata_pending = _RECORD_START not in buffer
        consumed = extractor.feed(buffer)
        buffer = extractor.carry_over(buffer, consumed)
    if buffer:
        extractor.feed(buffer)
    return extractor.result()


def parse_apple_health_text(text: str) -> ImportResult:
    """Parse a whole ``export.xml`` already held in memory."""
    extractor = AppleRecordExtractor()
    extractor.extract_metadata(text)
    extractor.feed(text)
    return extractor.result()
