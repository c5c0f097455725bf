"""Static reference tables: metric definitions, ethnicity deltas, regression
parameters and recommendation text.

Tables ship as YAML under ``bioage/domains/health/reference/`` and are loaded
once into immutable dataclasses. Resolving a metric for a person is an
explicit two-step pipeline of pure transforms::

    base definition --select_sex--> ResolvedMetric --apply_ethnicity--> ResolvedMetric

Ethnicity only ever moves the optimal upper boundary; scoring bands are
sex-specific and nothing else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from bioage.domains.health.domain_logic.models import METRIC_ORDER, SEXES, MetricId

logger = logging.getLogger(__name__)

_DEFAULT_REFERENCE_DIR = Path(__file__).resolve().parent.parent / "reference"

DEFAULT_SEX = "female"
DEFAULT_ETHNICITY = "general"
TIERS = ("good", "fair", "poor")


class ReferenceDataError(Exception):
    """Raised when reference tables are missing or malformed."""


# ---------------------------------------------------------------------------
# Table models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Band:
    """A named sub-range of a metric's clinical domain."""

    label: str
    lo: float
    hi: float
    color: str = ""


@dataclass(frozen=True)
class SexVariant:
    optimal_min: float
    optimal_max: float
    chart_min: float
    chart_max: float
    bands: tuple[Band, ...]


@dataclass(frozen=True)
class MetricDefinition:
    """Base (unresolved) definition as read from ``metrics.yaml``."""

    metric_id: MetricId
    label: str
    unit: str
    higher_is_better: bool
    precision: int
    variants: dict[str, SexVariant]
    description: str = ""
    how_to: str = ""
    source: str = ""
    secondary: bool = False


@dataclass(frozen=True)
class ResolvedMetric:
    """A metric definition specialised for one sex (and ethnicity)."""

    metric_id: MetricId
    label: str
    unit: str
    higher_is_better: bool
    precision: int
    optimal_min: float
    optimal_max: float
    chart_min: float
    chart_max: float
    bands: tuple[Band, ...]
    description: str = ""
    how_to: str = ""
    source: str = ""
    secondary: bool = False

    @property
    def best_optimal_value(self) -> float:
        """Directionally-best boundary of the optimal range."""
        return self.optimal_max if self.higher_is_better else self.optimal_min

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_id": self.metric_id.value,
            "label": self.label,
            "unit": self.unit,
            "higher_is_better": self.higher_is_better,
            "precision": self.precision,
            "optimal_range": [self.optimal_min, self.optimal_max],
            "bands": [
                {"label": b.label, "lo": b.lo, "hi": b.hi, "color": b.color} for b in self.bands
            ],
            "description": self.description,
            "how_to": self.how_to,
            "source": self.source,
        }


@dataclass(frozen=True)
class EthnicityProfile:
    id: str
    label: str
    subtitle: str = ""
    note: str = ""
    optimal_max_deltas: dict[MetricId, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RegressionParameters:
    """Klemera-Doubal calibration constants for one metric and sex."""

    k: float
    q: float
    s: float


@dataclass(frozen=True)
class Recommendation:
    action: str
    detail: str


@dataclass(frozen=True)
class ReferenceTables:
    metrics: dict[MetricId, MetricDefinition]
    ethnicities: dict[str, EthnicityProfile]
    regression: dict[MetricId, dict[str, RegressionParameters]]
    recommendations: dict[MetricId, dict[str, Recommendation]]
    s_ba: float = 7.0


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_yaml(path: Path) -> Any:
    if not path.is_file():
        raise ReferenceDataError(f"Reference table not found: {path}")
    with open(path, encoding="utf-8") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ReferenceDataError(f"Invalid YAML in {path}: {exc}") from exc


def _metric_key(raw: str, table: str) -> MetricId:
    try:
        return MetricId.parse(raw)
    except ValueError as exc:
        raise ReferenceDataError(f"{table}: {exc}") from exc


def _parse_variant(metric_id: MetricId, sex: str, data: dict[str, Any]) -> SexVariant:
    bands = tuple(
        Band(label=b["label"], lo=float(b["lo"]), hi=float(b["hi"]), color=b.get("color", ""))
        for b in data.get("bands", [])
    )
    if not bands:
        raise ReferenceDataError(f"{metric_id.value}/{sex}: at least one band is required")
    for band in bands:
        if band.hi < band.lo:
            raise ReferenceDataError(f"{metric_id.value}/{sex}: band {band.label!r} has hi < lo")
    for prev, nxt in zip(bands, bands[1:]):
        if prev.hi != nxt.lo:
            raise ReferenceDataError(
                f"{metric_id.value}/{sex}: bands {prev.label!r} and {nxt.label!r} are not contiguous"
            )
    optimal = data["optimal"]
    chart = data.get("chart", {"min": bands[0].lo, "max": bands[-1].hi})
    return SexVariant(
        optimal_min=float(optimal["min"]),
        optimal_max=float(optimal["max"]),
        chart_min=float(chart["min"]),
        chart_max=float(chart["max"]),
        bands=bands,
    )


def _parse_metrics(data: dict[str, Any]) -> dict[MetricId, MetricDefinition]:
    metrics: dict[MetricId, MetricDefinition] = {}
    for raw_id, item in data.items():
        metric_id = _metric_key(raw_id, "metrics.yaml")
        variants = {sex: _parse_variant(metric_id, sex, item[sex]) for sex in SEXES if sex in item}
        if DEFAULT_SEX not in variants:
            raise ReferenceDataError(f"{metric_id.value}: a '{DEFAULT_SEX}' variant is required")
        metrics[metric_id] = MetricDefinition(
            metric_id=metric_id,
            label=item["label"],
            unit=item["unit"],
            higher_is_better=bool(item["higher_is_better"]),
            precision=int(item.get("precision", 1)),
            variants=variants,
            description=item.get("description", ""),
            how_to=item.get("how_to", ""),
            source=item.get("source", ""),
            secondary=bool(item.get("secondary", False)),
        )
    return metrics


def _parse_ethnicities(data: list[dict[str, Any]]) -> dict[str, EthnicityProfile]:
    profiles: dict[str, EthnicityProfile] = {}
    for item in data:
        deltas = {
            _metric_key(raw_id, "ethnicities.yaml"): float(adj.get("optimal_max_delta", 0))
            for raw_id, adj in (item.get("adjustments") or {}).items()
        }
        profiles[item["id"]] = EthnicityProfile(
            id=item["id"],
            label=item["label"],
            subtitle=item.get("subtitle", ""),
            note=item.get("note", ""),
            optimal_max_deltas=deltas,
        )
    if DEFAULT_ETHNICITY not in profiles:
        raise ReferenceDataError(f"ethnicities.yaml: a '{DEFAULT_ETHNICITY}' entry is required")
    return profiles


def _parse_regression(data: dict[str, Any]) -> tuple[dict[MetricId, dict[str, RegressionParameters]], float]:
    table: dict[MetricId, dict[str, RegressionParameters]] = {}
    for raw_id, by_sex in (data.get("parameters") or {}).items():
        metric_id = _metric_key(raw_id, "regression.yaml")
        table[metric_id] = {
            sex: RegressionParameters(k=float(p["k"]), q=float(p["q"]), s=float(p["s"]))
            for sex, p in by_sex.items()
        }
    s_ba = float(data.get("s_ba", 7.0))
    if s_ba <= 0:
        raise ReferenceDataError("regression.yaml: s_ba must be positive")
    return table, s_ba


def _parse_recommendations(data: dict[str, Any]) -> dict[MetricId, dict[str, Recommendation]]:
    recs: dict[MetricId, dict[str, Recommendation]] = {}
    for raw_id, by_tier in data.items():
        metric_id = _metric_key(raw_id, "recommendations.yaml")
        recs[metric_id] = {
            tier: Recommendation(action=r.get("action", ""), detail=r.get("detail", "").strip())
            for tier, r in by_tier.items()
            if tier in TIERS
        }
    return recs


def load_reference_tables(directory: str | Path | None = None) -> ReferenceTables:
    """Load all four reference tables from ``directory`` (packaged tables by default)."""
    directory = Path(directory) if directory else _DEFAULT_REFERENCE_DIR

    metrics = _parse_metrics(_read_yaml(directory / "metrics.yaml") or {})
    ethnicities = _parse_ethnicities(_read_yaml(directory / "ethnicities.yaml") or [])
    regression, s_ba = _parse_regression(_read_yaml(directory / "regression.yaml") or {})
    recommendations = _parse_recommendations(_read_yaml(directory / "recommendations.yaml") or {})

    missing = [m.value for m in METRIC_ORDER if m not in metrics]
    if missing:
        raise ReferenceDataError(f"metrics.yaml is missing definitions for: {', '.join(missing)}")

    logger.info(
        "Loaded reference tables from %s: %d metrics, %d ethnicities",
        directory,
        len(metrics),
        len(ethnicities),
    )
    return ReferenceTables(
        metrics=metrics,
        ethnicities=ethnicities,
        regression=regression,
        recommendations=recommendations,
        s_ba=s_ba,
    )


@lru_cache(maxsize=1)
def default_reference_tables() -> ReferenceTables:
    """The packaged tables, loaded once per process."""
    return load_reference_tables()


# ---------------------------------------------------------------------------
# Layered resolution (pure transforms)
# ---------------------------------------------------------------------------

def select_sex(definition: MetricDefinition, sex: str) -> ResolvedMetric:
    """Pick the sex-specific variant; unknown sexes use the female variant."""
    variant = definition.variants.get(sex) or definition.variants[DEFAULT_SEX]
    return ResolvedMetric(
        metric_id=definition.metric_id,
        label=definition.label,
        unit=definition.unit,
        higher_is_better=definition.higher_is_better,
        precision=definition.precision,
        optimal_min=variant.optimal_min,
        optimal_max=variant.optimal_max,
        chart_min=variant.chart_min,
        chart_max=variant.chart_max,
        bands=variant.bands,
        description=definition.description,
        how_to=definition.how_to,
        source=definition.source,
        secondary=definition.secondary,
    )


def apply_ethnicity(resolved: ResolvedMetric, ethnicity: EthnicityProfile | None) -> ResolvedMetric:
    """Shift the optimal upper boundary, never below ``optimal_min + 1``."""
    if ethnicity is None:
        return resolved
    delta = ethnicity.optimal_max_deltas.get(resolved.metric_id)
    if not delta:
        return resolved
    return replace(
        resolved,
        optimal_max=max(resolved.optimal_min + 1, resolved.optimal_max + delta),
    )


def resolve_metric(
    metric_id: MetricId | str,
    sex: str = DEFAULT_SEX,
    ethnicity: str = DEFAULT_ETHNICITY,
    tables: ReferenceTables | None = None,
) -> ResolvedMetric:
    """Base table → sex selection → ethnicity delta."""
    tables = tables or default_reference_tables()
    try:
        metric_id = MetricId.parse(metric_id)
    except ValueError as exc:
        raise ReferenceDataError(str(exc)) from exc
    definition = tables.metrics.get(metric_id)
    if definition is None:
        raise ReferenceDataError(f"No metric definition for {metric_id.value!r}")
    profile = tables.ethnicities.get(ethnicity) or tables.ethnicities.get(DEFAULT_ETHNICITY)
    return apply_ethnicity(select_sex(definition, sex), profile)


def regression_for(
    metric_id: MetricId,
    sex: str,
    tables: ReferenceTables | None = None,
) -> RegressionParameters | None:
    """Regression constants for ``metric_id``; ``None`` when not calibrated."""
    tables = tables or default_reference_tables()
    by_sex = tables.regression.get(metric_id)
    if not by_sex:
        return None
    return by_sex.get(sex) or by_sex.get(DEFAULT_SEX)


def recommendation_for(
    metric_id: MetricId,
    tier: str,
    tables: ReferenceTables | None = None,
) -> Recommendation:
    tables = tables or default_reference_tables()
    return tables.recommendations.get(metric_id, {}).get(tier) or Recommendation(action="", detail="")
