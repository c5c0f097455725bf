"""Biological age estimation (Klemera-Doubal style).

Each biomarker with calibration constants implies an age ``(x - q) / k``
carrying precision weight ``k² / s²``. Chronological age joins the weighted
mean as an anchor with weight ``1 / s_ba²``, which pulls the estimate toward
the person's real age when evidence is thin. The result is clamped to
``chronological_age ± clamp_years`` and then rounded to one decimal.

All functions here are pure; nothing touches the entry store.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable, Mapping
from datetime import date

from bioage.domains.health.domain_logic.models import METRIC_ORDER, HealthEntry, MetricId, TrajectoryPoint
from bioage.domains.health.domain_logic.reference import (
    DEFAULT_SEX,
    ReferenceTables,
    default_reference_tables,
    regression_for,
    resolve_metric,
)

logger = logging.getLogger(__name__)

DEFAULT_CLAMP_YEARS = 20.0


# ---------------------------------------------------------------------------
# Latest readings
# ---------------------------------------------------------------------------

def latest_entries(entries: Iterable[HealthEntry]) -> dict[MetricId, HealthEntry]:
    """Latest entry per metric by date; on a same-date tie the later entry wins."""
    latest: dict[MetricId, HealthEntry] = {}
    for entry in entries:
        current = latest.get(entry.metric_id)
        if current is None or entry.date >= current.date:
            latest[entry.metric_id] = entry
    return latest


def latest_values(entries: Iterable[HealthEntry]) -> dict[MetricId, float]:
    return {metric_id: entry.value for metric_id, entry in latest_entries(entries).items()}


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

def estimate(
    values: Mapping[MetricId, float | None],
    chronological_age: float,
    sex: str = DEFAULT_SEX,
    *,
    s_ba: float | None = None,
    clamp_years: float = DEFAULT_CLAMP_YEARS,
    tables: ReferenceTables | None = None,
) -> float | None:
    """Precision-weighted biological age, or ``None`` without usable evidence.

    Metrics lacking regression constants, with ``k == 0`` or with a ``None``
    value are skipped.
    """
    tables = tables or default_reference_tables()
    s_ba = s_ba if s_ba is not None else tables.s_ba

    weighted_sum = 0.0
    weight_total = 0.0
    contributed = 0
    for metric_id in METRIC_ORDER:
        value = values.get(metric_id)
        if value is None:
            continue
        params = regression_for(metric_id, sex, tables)
        if params is None or params.k == 0:
            continue
        implied_age = (value - params.q) / params.k
        weight = (params.k * params.k) / (params.s * params.s)
        weighted_sum += implied_age * weight
        weight_total += weight
        contributed += 1

    if not contributed:
        return None

    anchor_weight = 1.0 / (s_ba * s_ba)
    raw = (weighted_sum + chronological_age * anchor_weight) / (weight_total + anchor_weight)
    return round(max(chronological_age - clamp_years, min(chronological_age + clamp_years, raw)), 1)


def hypothetical_estimate(
    values: Mapping[MetricId, float | None],
    chronological_age: float,
    sex: str,
    ethnicity: str,
    target: MetricId,
    *,
    s_ba: float | None = None,
    clamp_years: float = DEFAULT_CLAMP_YEARS,
    tables: ReferenceTables | None = None,
) -> float | None:
    """Bio age if ``target`` sat at its directionally-best optimal boundary."""
    metric = resolve_metric(target, sex, ethnicity, tables)
    substituted = dict(values)
    substituted[metric.metric_id] = metric.best_optimal_value
    return estimate(
        substituted,
        chronological_age,
        sex,
        s_ba=s_ba,
        clamp_years=clamp_years,
        tables=tables,
    )


# ---------------------------------------------------------------------------
# Trajectory
# ---------------------------------------------------------------------------

def _month_start(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - offset
    return index // 12, index % 12 + 1


def bio_age_trajectory(
    entries: Iterable[HealthEntry],
    chronological_age: float,
    sex: str = DEFAULT_SEX,
    *,
    months: int = 12,
    today: date | None = None,
    s_ba: float | None = None,
    clamp_years: float = DEFAULT_CLAMP_YEARS,
    tables: ReferenceTables | None = None,
) -> list[TrajectoryPoint]:
    """One bio-age point per calendar month, oldest first.

    Each point uses only entries dated on or before that month's last day;
    months without an estimate are left out.
    """
    entries = list(entries)
    today = today or date.today()
    points: list[TrajectoryPoint] = []
    for offset in range(months - 1, -1, -1):
        year, month = _month_start(today.year, today.month, offset)
        month_end = date(year, month, calendar.monthrange(year, month)[1]).isoformat()
        visible = [e for e in entries if e.date <= month_end]
        value = estimate(
            latest_values(visible),
            chronological_age,
            sex,
            s_ba=s_ba,
            clamp_years=clamp_years,
            tables=tables,
        )
        if value is None:
            continue
        points.append(
            TrajectoryPoint(
                as_of=month_end,
                label=date(year, month, 1).strftime("%b %y"),
                bio_age=value,
                chronological_age=chronological_age,
            )
        )
    return points


def age_from_date_of_birth(date_of_birth: str, today: date | None = None) -> int:
    """Calendar-year difference, matching how exports are summarised on import."""
    today = today or date.today()
    return today.year - date.fromisoformat(date_of_birth[:10]).year
