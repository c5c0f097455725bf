"""Health entry models and derived result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MetricId(str, Enum):
    """The five tracked biomarkers, in declaration (tie-break) order."""

    VO2MAX = "vo2max"
    RESTING_HEART_RATE = "restingHeartRate"
    BLOOD_PRESSURE = "bloodPressure"
    FASTING_GLUCOSE = "fastingGlucose"
    BODY_FAT_PERCENT = "bodyFatPercent"

    @classmethod
    def parse(cls, value: str | MetricId) -> MetricId:
        """Accept either the enum or its wire value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown metric id {value!r}; expected one of: {valid}") from None


METRIC_ORDER: tuple[MetricId, ...] = tuple(MetricId)


class EntrySource(str, Enum):
    """Provenance of an entry; imports replace entries of their own source."""

    MANUAL = "Manual"
    APPLE_HEALTH = "AppleHealth"
    GOOGLE_FIT = "GoogleFit"


SEXES = ("female", "male")


# ---------------------------------------------------------------------------
# Observed readings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthEntry:
    """One observed reading at day granularity."""

    id: str
    metric_id: MetricId
    value: float
    date: str  # ISO 8601 YYYY-MM-DD
    source: EntrySource
    secondary_value: float | None = None  # diastolic, blood pressure only
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "metric_id": self.metric_id.value,
            "value": self.value,
            "date": self.date,
            "source": self.source.value,
        }
        if self.secondary_value is not None:
            data["secondary_value"] = self.secondary_value
        if self.note:
            data["note"] = self.note
        return data


@dataclass
class ImportResult:
    """Outcome of a successful import."""

    entries: list[HealthEntry]
    source: EntrySource
    detected_sex: str | None = None
    detected_date_of_birth: str | None = None

    @property
    def counts_by_metric(self) -> dict[MetricId, int]:
        counts: dict[MetricId, int] = {}
        for entry in self.entries:
            counts[entry.metric_id] = counts.get(entry.metric_id, 0) + 1
        return counts

    def summary(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "entries_imported": len(self.entries),
            "counts_by_metric": {m.value: n for m, n in self.counts_by_metric.items()},
            "detected_sex": self.detected_sex,
            "detected_date_of_birth": self.detected_date_of_birth,
        }


# ---------------------------------------------------------------------------
# Derived (transient) results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoredMetric:
    """A metric's latest reading with its 15-100 score."""

    metric_id: MetricId
    value: float
    date: str
    score: float
    tier: str           # 'good' | 'fair' | 'poor'
    band_label: str     # e.g. 'Pre-diabetic'
    status_label: str   # 'Optimal' | 'Good' | 'Fair' | 'Needs Work'
    optimal_min: float
    optimal_max: float
    secondary_value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_id": self.metric_id.value,
            "value": self.value,
            "secondary_value": self.secondary_value,
            "date": self.date,
            "score": round(self.score, 1),
            "tier": self.tier,
            "band": self.band_label,
            "status": self.status_label,
            "optimal_range": [self.optimal_min, self.optimal_max],
        }


@dataclass(frozen=True)
class ImpactRow:
    """How much bio age a single metric could recover at its optimal target."""

    metric_id: MetricId
    label: str
    current_value: float
    unit: str
    score: float
    tier: str
    current_bio_age: float | None
    hypothetical_bio_age: float | None
    gain: float
    action: str = ""
    detail: str = ""
    optimal_min: float | None = None
    optimal_max: float | None = None

    @property
    def at_optimal(self) -> bool:
        return self.gain <= 0.1

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_id": self.metric_id.value,
            "label": self.label,
            "current_value": f"{self.current_value:g} {self.unit}",
            "score": round(self.score, 1),
            "tier": self.tier,
            "hypothetical_bio_age": self.hypothetical_bio_age,
            "gain_years": self.gain,
            "at_optimal": self.at_optimal,
            "optimal_range": [self.optimal_min, self.optimal_max],
            "action": self.action,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class TrajectoryPoint:
    """Bio age estimated from entries dated on or before ``as_of``."""

    as_of: str
    label: str
    bio_age: float
    chronological_age: float


@dataclass
class BioAgeSummary:
    """Dashboard-level view: bio age, delta and overall score."""

    chronological_age: float
    bio_age: float | None
    overall_score: int | None
    scored: list[ScoredMetric] = field(default_factory=list)

    @property
    def delta(self) -> float | None:
        """Years younger (positive) or older (negative) than chronological age."""
        if self.bio_age is None:
            return None
        return round(self.chronological_age - self.bio_age, 1)
