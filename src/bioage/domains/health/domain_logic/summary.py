"""Dashboard-level derived views built from the pure scoring functions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bioage.domains.health.domain_logic.bio_age import DEFAULT_CLAMP_YEARS, estimate, latest_entries
from bioage.domains.health.domain_logic.models import METRIC_ORDER, BioAgeSummary, HealthEntry, ScoredMetric
from bioage.domains.health.domain_logic.reference import (
    ReferenceTables,
    default_reference_tables,
    load_reference_tables,
)
from bioage.domains.health.domain_logic.scorer import SCORE_ANCHORS, overall_score, score_metric

if TYPE_CHECKING:
    from bioage.core.config.settings import Settings


@dataclass(frozen=True)
class EngineParameters:
    """Reference tables plus the tunable scoring/estimation constants."""

    tables: ReferenceTables
    anchors: tuple[float, ...] = SCORE_ANCHORS
    s_ba: float | None = None
    clamp_years: float = DEFAULT_CLAMP_YEARS

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineParameters:
        tables = (
            load_reference_tables(settings.reference_dir)
            if settings.reference_dir
            else default_reference_tables()
        )
        return cls(
            tables=tables,
            anchors=tuple(settings.score_anchors),
            s_ba=settings.bio_age_s_ba,
            clamp_years=settings.bio_age_clamp_years,
        )


def score_latest(
    entries: Iterable[HealthEntry],
    sex: str,
    ethnicity: str,
    params: EngineParameters,
) -> list[ScoredMetric]:
    """Score each metric's latest entry, in declaration order."""
    latest = latest_entries(entries)
    scored: list[ScoredMetric] = []
    for metric_id in METRIC_ORDER:
        entry = latest.get(metric_id)
        if entry is None:
            continue
        result = score_metric(entry, sex, ethnicity, anchors=params.anchors, tables=params.tables)
        if result is not None:
            scored.append(result)
    return scored


def summarize(
    entries: Sequence[HealthEntry],
    chronological_age: float,
    sex: str,
    ethnicity: str,
    params: EngineParameters,
) -> BioAgeSummary:
    scored = score_latest(entries, sex, ethnicity, params)
    values = {s.metric_id: s.value for s in scored}
    bio_age = estimate(
        values,
        chronological_age,
        sex,
        s_ba=params.s_ba,
        clamp_years=params.clamp_years,
        tables=params.tables,
    )
    return BioAgeSummary(
        chronological_age=chronological_age,
        bio_age=bio_age,
        overall_score=overall_score(scored),
        scored=scored,
    )
