"""Per-day aggregation and unit normalisation shared by both export parsers."""

from __future__ import annotations

import math
from collections import defaultdict

from bioage.domains.health.domain_logic.models import METRIC_ORDER, EntrySource, HealthEntry, MetricId
from bioage.domains.health.domain_logic.reference import default_reference_tables

MMOL_TO_MG_DL = 18.0182
# Readings below this are assumed to be mmol/L rather than mg/dL.
GLUCOSE_MMOL_THRESHOLD = 25


def parse_number(raw: object) -> float | None:
    """Finite float or ``None``."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def normalize_glucose(value: float, unit: str = "") -> float:
    """Convert mmol/L readings to mg/dL (whole number)."""
    if "mmol" in unit.lower() or value < GLUCOSE_MMOL_THRESHOLD:
        return float(round(value * MMOL_TO_MG_DL))
    return value


def normalize_body_fat(value: float) -> float:
    """Fractions (0-1) become percentages."""
    if value <= 1:
        return round(value * 100, 2)
    return value


def metric_precision() -> dict[MetricId, int]:
    tables = default_reference_tables()
    return {metric_id: definition.precision for metric_id, definition in tables.metrics.items()}


class DailyAggregator:
    """Collects intraday samples and emits one entry per metric per day.

    Blood pressure pairs are never averaged; each distinct entry id is kept
    once (the id encodes the reading).
    """

    def __init__(
        self,
        prefix: str,
        source: EntrySource,
        precision: dict[MetricId, int] | None = None,
    ) -> None:
        self._prefix = prefix
        self._source = source
        self._precision = precision if precision is not None else metric_precision()
        self._samples: dict[MetricId, dict[str, list[float]]] = defaultdict(lambda: defaultdict(list))
        self._pressure: dict[str, HealthEntry] = {}

    def add(self, metric_id: MetricId, date: str, value: float) -> None:
        self._samples[metric_id][date].append(value)

    def add_blood_pressure(self, entry_id: str, date: str, systolic: float, diastolic: float | None) -> None:
        self._pressure.setdefault(
            entry_id,
            HealthEntry(
                id=entry_id,
                metric_id=MetricId.BLOOD_PRESSURE,
                value=systolic,
                secondary_value=diastolic,
                date=date,
                source=self._source,
            ),
        )

    def build(self) -> list[HealthEntry]:
        entries: list[HealthEntry] = []
        for metric_id in METRIC_ORDER:
            if metric_id is MetricId.BLOOD_PRESSURE:
                entries.extend(sorted(self._pressure.values(), key=lambda e: (e.date, e.id)))
                continue
            by_date = self._samples.get(metric_id, {})
            digits = self._precision.get(metric_id, 1)
            for date in sorted(by_date):
                values = by_date[date]
                entries.append(
                    HealthEntry(
                        id=f"{self._prefix}_{metric_id.value}_{date}",
                        metric_id=metric_id,
                        value=round(sum(values) / len(values), digits),
                        date=date,
                        source=self._source,
                    )
                )
        return entries
