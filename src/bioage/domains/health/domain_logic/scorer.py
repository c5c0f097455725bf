"""Biomarker scoring: map a raw reading onto a 15-100 scale.

Bands are ordered by value. For a higher-is-better metric the first band
scores lowest; for a lower-is-better metric the anchor table is walked
backwards so the first (lowest-value) band scores highest. Inside a band the
score is interpolated linearly between adjacent anchors.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from bioage.domains.health.domain_logic.models import HealthEntry, MetricId, ScoredMetric
from bioage.domains.health.domain_logic.reference import (
    DEFAULT_ETHNICITY,
    DEFAULT_SEX,
    ReferenceTables,
    ResolvedMetric,
    resolve_metric,
)

SCORE_ANCHORS: tuple[float, ...] = (15, 45, 72, 100)

GOOD_TIER_THRESHOLD = 72
FAIR_TIER_THRESHOLD = 45


def score_resolved(
    metric: ResolvedMetric,
    value: float,
    *,
    anchors: Sequence[float] = SCORE_ANCHORS,
) -> float | None:
    """Score ``value`` against an already-resolved metric definition.

    Scores stay within the first and last anchor. Returns ``None`` for
    non-numeric input (NaN). Never raises.
    """
    if value is None or math.isnan(value):
        return None

    bands = metric.bands
    n = len(bands)
    last = n - 1
    top = len(anchors) - 1
    lowest, highest = anchors[0], anchors[-1]

    for i, band in enumerate(bands):
        in_band = value >= band.lo and (value <= band.hi if i == last else value < bands[i + 1].lo)
        if not in_band:
            continue
        width = band.hi - band.lo
        pos = (value - band.lo) / width if width else 0.0
        if metric.higher_is_better:
            s0 = anchors[min(i, top)]
            s1 = anchors[min(i + 1, last, top)]
            return min(highest, s0 + pos * (s1 - s0))
        s0 = anchors[min(last - i, top)]
        s1 = anchors[min(max(last - 1 - i, 0), top)]
        return max(lowest, s0 - pos * (s0 - s1))

    if metric.higher_is_better:
        return highest if value > bands[last].hi else lowest
    return highest if value < bands[0].lo else lowest


def score(
    metric_id: MetricId | str,
    value: float,
    sex: str = DEFAULT_SEX,
    ethnicity: str = DEFAULT_ETHNICITY,
    *,
    anchors: Sequence[float] = SCORE_ANCHORS,
    tables: ReferenceTables | None = None,
) -> float | None:
    """Score a reading for ``sex``; ``ethnicity`` never changes bands."""
    return score_resolved(resolve_metric(metric_id, sex, ethnicity, tables), value, anchors=anchors)


def band_label(metric: ResolvedMetric, value: float) -> str:
    """Label of the band ``value`` falls in, clamped to the outermost bands."""
    bands = metric.bands
    if value < bands[0].lo:
        return bands[0].label
    for i, band in enumerate(bands):
        if i == len(bands) - 1:
            return band.label
        if value < bands[i + 1].lo:
            return band.label
    return bands[-1].label


def tier_for_score(value: float) -> str:
    if value >= GOOD_TIER_THRESHOLD:
        return "good"
    if value >= FAIR_TIER_THRESHOLD:
        return "fair"
    return "poor"


def score_status_label(value: float) -> str:
    if value >= 85:
        return "Optimal"
    if value >= 65:
        return "Good"
    if value >= 45:
        return "Fair"
    return "Needs Work"


def score_metric(
    entry: HealthEntry,
    sex: str = DEFAULT_SEX,
    ethnicity: str = DEFAULT_ETHNICITY,
    *,
    anchors: Sequence[float] = SCORE_ANCHORS,
    tables: ReferenceTables | None = None,
) -> ScoredMetric | None:
    """Score one entry and attach its tier, band and status labels."""
    metric = resolve_metric(entry.metric_id, sex, ethnicity, tables)
    value = score_resolved(metric, entry.value, anchors=anchors)
    if value is None:
        return None
    return ScoredMetric(
        metric_id=entry.metric_id,
        value=entry.value,
        secondary_value=entry.secondary_value,
        date=entry.date,
        score=value,
        tier=tier_for_score(value),
        band_label=band_label(metric, entry.value),
        status_label=score_status_label(value),
        optimal_min=metric.optimal_min,
        optimal_max=metric.optimal_max,
    )


def overall_score(scored: Sequence[ScoredMetric]) -> int | None:
    """Rounded mean of the available metric scores."""
    if not scored:
        return None
    return math.floor(sum(s.score for s in scored) / len(scored) + 0.5)
