"""Rank metrics by how many bio-age years reaching their optimal target recovers."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from bioage.domains.health.domain_logic.bio_age import (
    DEFAULT_CLAMP_YEARS,
    estimate,
    hypothetical_estimate,
    latest_entries,
)
from bioage.domains.health.domain_logic.models import METRIC_ORDER, HealthEntry, ImpactRow
from bioage.domains.health.domain_logic.reference import (
    DEFAULT_ETHNICITY,
    DEFAULT_SEX,
    ReferenceTables,
    recommendation_for,
    resolve_metric,
)
from bioage.domains.health.domain_logic.scorer import SCORE_ANCHORS, score_resolved, tier_for_score

DEFAULT_PLAN_SIZE = 3


def rank_impacts(
    entries: Iterable[HealthEntry],
    chronological_age: float,
    sex: str = DEFAULT_SEX,
    ethnicity: str = DEFAULT_ETHNICITY,
    *,
    anchors: Sequence[float] = SCORE_ANCHORS,
    s_ba: float | None = None,
    clamp_years: float = DEFAULT_CLAMP_YEARS,
    tables: ReferenceTables | None = None,
) -> list[ImpactRow]:
    """One row per metric with a reading, sorted by gain (largest first).

    Ties keep metric declaration order.
    """
    latest = latest_entries(entries)
    values = {metric_id: entry.value for metric_id, entry in latest.items()}
    current = estimate(values, chronological_age, sex, s_ba=s_ba, clamp_years=clamp_years, tables=tables)

    rows: list[ImpactRow] = []
    for metric_id in METRIC_ORDER:
        entry = latest.get(metric_id)
        if entry is None:
            continue
        metric = resolve_metric(metric_id, sex, ethnicity, tables)
        hypothetical = hypothetical_estimate(
            values,
            chronological_age,
            sex,
            ethnicity,
            metric_id,
            s_ba=s_ba,
            clamp_years=clamp_years,
            tables=tables,
        )
        gain = 0.0
        if current is not None and hypothetical is not None:
            gain = max(0.0, round(current - hypothetical, 1))

        value_score = score_resolved(metric, entry.value, anchors=anchors) or 0.0
        tier = tier_for_score(value_score)
        rec = recommendation_for(metric_id, tier, tables)
        rows.append(
            ImpactRow(
                metric_id=metric_id,
                label=metric.label,
                current_value=entry.value,
                unit=metric.unit,
                score=value_score,
                tier=tier,
                current_bio_age=current,
                hypothetical_bio_age=hypothetical,
                gain=gain,
                action=rec.action,
                detail=rec.detail,
                optimal_min=metric.optimal_min,
                optimal_max=metric.optimal_max,
            )
        )

    # sorted() is stable, so equal gains stay in declaration order.
    return sorted(rows, key=lambda row: row.gain, reverse=True)


def action_plan(rows: Sequence[ImpactRow], top: int = DEFAULT_PLAN_SIZE) -> list[ImpactRow]:
    """The highest-impact rows, already ranked by :func:`rank_impacts`."""
    return list(rows[:max(0, top)])
