"""Tests for reference table loading and layered metric resolution."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from bioage.domains.health.domain_logic import reference
from bioage.domains.health.domain_logic.models import METRIC_ORDER, MetricId
from bioage.domains.health.domain_logic.reference import (
    EthnicityProfile,
    ReferenceDataError,
    apply_ethnicity,
    default_reference_tables,
    load_reference_tables,
    recommendation_for,
    regression_for,
    resolve_metric,
    select_sex,
)

PACKAGED_DIR = Path(reference.__file__).resolve().parent.parent / "reference"


@pytest.fixture
def table_dir(tmp_path: Path) -> Path:
    target = tmp_path / "reference"
    shutil.copytree(PACKAGED_DIR, target)
    return target


class TestLoading:
    def test_packaged_tables(self):
        tables = default_reference_tables()
        assert set(tables.metrics) == set(METRIC_ORDER)
        assert {"general", "south_asian", "black_african", "hispanic", "east_asian"} <= set(tables.ethnicities)
        assert tables.s_ba == 7.0

    def test_bands_are_contiguous(self):
        for definition in default_reference_tables().metrics.values():
            for variant in definition.variants.values():
                for prev, nxt in zip(variant.bands, variant.bands[1:]):
                    assert prev.hi == nxt.lo

    def test_every_metric_has_recommendations_for_each_tier(self):
        tables = default_reference_tables()
        for metric_id in METRIC_ORDER:
            for tier in ("good", "fair", "poor"):
                assert recommendation_for(metric_id, tier, tables).action

    def test_custom_directory(self, table_dir: Path):
        (table_dir / "regression.yaml").write_text(
            (table_dir / "regression.yaml").read_text(encoding="utf-8").replace("s_ba: 7.0", "s_ba: 5.0"),
            encoding="utf-8",
        )
        assert load_reference_tables(table_dir).s_ba == 5.0

    def test_missing_table(self, table_dir: Path):
        (table_dir / "ethnicities.yaml").unlink()
        with pytest.raises(ReferenceDataError, match="not found"):
            load_reference_tables(table_dir)

    def test_gap_between_bands_rejected(self, table_dir: Path):
        path = table_dir / "metrics.yaml"
        path.write_text(
            path.read_text(encoding="utf-8").replace(
                '{label: "Fair",      lo: 27,   hi: 31.5', '{label: "Fair",      lo: 28,   hi: 31.5'
            ),
            encoding="utf-8",
        )
        with pytest.raises(ReferenceDataError, match="contiguous"):
            load_reference_tables(table_dir)

    def test_missing_metric_rejected(self, table_dir: Path):
        path = table_dir / "metrics.yaml"
        text = path.read_text(encoding="utf-8")
        path.write_text(text[:text.index("bodyFatPercent:")], encoding="utf-8")
        with pytest.raises(ReferenceDataError, match="bodyFatPercent"):
            load_reference_tables(table_dir)

    def test_unknown_metric_key_rejected(self, table_dir: Path):
        path = table_dir / "regression.yaml"
        path.write_text(
            path.read_text(encoding="utf-8") + "  hba1c:\n    female: {k: 0.01, q: 5.0, s: 0.5}\n",
            encoding="utf-8",
        )
        with pytest.raises(ReferenceDataError, match="hba1c"):
            load_reference_tables(table_dir)


class TestResolution:
    def test_sex_specific_variant(self):
        female = resolve_metric(MetricId.VO2MAX, "female")
        male = resolve_metric(MetricId.VO2MAX, "male")
        assert (female.optimal_min, female.optimal_max) == (38, 44)
        assert (male.optimal_min, male.optimal_max) == (46, 56)
        assert female.bands != male.bands

    def test_unknown_sex_uses_female_variant(self):
        definition = default_reference_tables().metrics[MetricId.BODY_FAT_PERCENT]
        assert select_sex(definition, "other") == select_sex(definition, "female")

    def test_ethnicity_moves_only_optimal_max(self):
        general = resolve_metric(MetricId.BODY_FAT_PERCENT, "female", "general")
        south_asian = resolve_metric(MetricId.BODY_FAT_PERCENT, "female", "south_asian")
        assert south_asian.optimal_max == general.optimal_max - 3
        assert south_asian.optimal_min == general.optimal_min
        assert south_asian.bands == general.bands

    def test_ethnicity_without_adjustment_is_identity(self):
        assert resolve_metric(MetricId.VO2MAX, "male", "south_asian") == resolve_metric(MetricId.VO2MAX, "male")

    def test_delta_floor_keeps_range_open(self):
        base = resolve_metric(MetricId.FASTING_GLUCOSE, "female")
        harsh = EthnicityProfile(id="x", label="X", optimal_max_deltas={MetricId.FASTING_GLUCOSE: -100})
        adjusted = apply_ethnicity(base, harsh)
        assert adjusted.optimal_max == base.optimal_min + 1

    def test_unknown_ethnicity_falls_back_to_general(self):
        assert resolve_metric(MetricId.FASTING_GLUCOSE, "female", "martian") == resolve_metric(
            MetricId.FASTING_GLUCOSE, "female", "general"
        )

    def test_unknown_metric(self):
        with pytest.raises(ReferenceDataError):
            resolve_metric("steps")

    def test_best_optimal_value_direction(self):
        assert resolve_metric(MetricId.VO2MAX, "female").best_optimal_value == 44
        assert resolve_metric(MetricId.RESTING_HEART_RATE, "female").best_optimal_value == 40

    def test_regression_lookup(self):
        params = regression_for(MetricId.VO2MAX, "male")
        assert (params.k, params.q, params.s) == (-0.46, 60.0, 7.5)
        assert regression_for(MetricId.VO2MAX, "other") == regression_for(MetricId.VO2MAX, "female")
