"""Tests for biomarker scoring."""

from __future__ import annotations

import math

import pytest

from bioage.domains.health.domain_logic.models import MetricId
from bioage.domains.health.domain_logic.reference import resolve_metric
from bioage.domains.health.domain_logic.scorer import (
    SCORE_ANCHORS,
    band_label,
    overall_score,
    score,
    score_metric,
    score_status_label,
    tier_for_score,
)
from conftest import make_entry


class TestBandEdges:
    @pytest.mark.parametrize("value,expected", [(15, 15), (27, 45), (31.5, 72), (38, 100), (55, 100)])
    def test_higher_is_better_edges_hit_anchors(self, value, expected):
        assert score(MetricId.VO2MAX, value, "female") == pytest.approx(expected)

    @pytest.mark.parametrize("value,expected", [(40, 100), (56, 72), (66, 45), (76, 15), (100, 15)])
    def test_lower_is_better_edges_hit_anchors(self, value, expected):
        assert score(MetricId.RESTING_HEART_RATE, value) == pytest.approx(expected)

    def test_interpolates_inside_band(self):
        assert score(MetricId.VO2MAX, 21, "female") == pytest.approx(30)
        assert score(MetricId.RESTING_HEART_RATE, 61) == pytest.approx(58.5)

    def test_sex_changes_bands(self):
        assert score(MetricId.VO2MAX, 40, "female") == pytest.approx(100)
        assert score(MetricId.VO2MAX, 40, "male") == pytest.approx(79)

    def test_custom_anchors(self):
        anchors = (10, 40, 70, 90)
        assert score(MetricId.VO2MAX, 27, "female", anchors=anchors) == pytest.approx(40)
        assert score(MetricId.BLOOD_PRESSURE, 130, anchors=anchors) == pytest.approx(40)


class TestOutOfRange:
    def test_beyond_bands(self):
        assert score(MetricId.VO2MAX, 70, "female") == 100
        assert score(MetricId.VO2MAX, 5, "female") == 15
        assert score(MetricId.BLOOD_PRESSURE, 80) == 100
        assert score(MetricId.BLOOD_PRESSURE, 190) == 15

    def test_beyond_bands_follows_custom_anchors(self):
        anchors = (20, 50, 75, 95)
        assert score(MetricId.VO2MAX, 70, "female", anchors=anchors) == 95
        assert score(MetricId.VO2MAX, 55, "female", anchors=anchors) == pytest.approx(95)
        assert score(MetricId.VO2MAX, 5, "female", anchors=anchors) == 20
        assert score(MetricId.BLOOD_PRESSURE, 80, anchors=anchors) == 95
        assert score(MetricId.BLOOD_PRESSURE, 190, anchors=anchors) == 20

    def test_nan_is_unscored(self):
        assert score(MetricId.FASTING_GLUCOSE, math.nan) is None

    def test_ethnicity_does_not_change_score(self):
        assert score(MetricId.FASTING_GLUCOSE, 95, "female", "south_asian") == score(MetricId.FASTING_GLUCOSE, 95)


class TestMonotonicity:
    @pytest.mark.parametrize("metric_id", list(MetricId))
    @pytest.mark.parametrize("sex", ["female", "male"])
    def test_scores_move_with_direction(self, metric_id, sex):
        metric = resolve_metric(metric_id, sex)
        lo, hi = metric.bands[0].lo - 5, metric.bands[-1].hi + 5
        steps = [lo + (hi - lo) * i / 200 for i in range(201)]
        scores = [score(metric_id, v, sex) for v in steps]
        assert all(SCORE_ANCHORS[0] <= s <= SCORE_ANCHORS[-1] for s in scores)
        pairs = list(zip(scores, scores[1:]))
        if metric.higher_is_better:
            assert all(b >= a - 1e-9 for a, b in pairs)
        else:
            assert all(b <= a + 1e-9 for a, b in pairs)


class TestLabels:
    def test_band_label(self):
        glucose = resolve_metric(MetricId.FASTING_GLUCOSE, "female")
        assert band_label(glucose, 110) == "Pre-diabetic"
        assert band_label(glucose, 100) == "Pre-diabetic"
        assert band_label(glucose, 40) == "Optimal"
        assert band_label(glucose, 200) == "Diabetic"

    @pytest.mark.parametrize("value,tier", [(100, "good"), (72, "good"), (71.9, "fair"), (45, "fair"), (44.9, "poor")])
    def test_tiers(self, value, tier):
        assert tier_for_score(value) == tier

    @pytest.mark.parametrize(
        "value,label", [(90, "Optimal"), (85, "Optimal"), (70, "Good"), (50, "Fair"), (20, "Needs Work")]
    )
    def test_status_labels(self, value, label):
        assert score_status_label(value) == label


class TestScoreMetric:
    def test_scored_metric_fields(self):
        scored = score_metric(make_entry(MetricId.BLOOD_PRESSURE, 125, secondary_value=82), "male")
        assert scored.band_label == "Elevated"
        assert scored.tier == "fair"
        assert scored.score == pytest.approx(58.5)
        assert scored.secondary_value == 82
        assert (scored.optimal_min, scored.optimal_max) == (90, 120)
        assert scored.to_dict()["optimal_range"] == [90, 120]

    def test_overall_score_rounds_half_up(self):
        scored = [
            score_metric(make_entry(MetricId.RESTING_HEART_RATE, 56)),
            score_metric(make_entry(MetricId.RESTING_HEART_RATE, 66)),
        ]
        assert overall_score(scored) == 59

    def test_overall_score_empty(self):
        assert overall_score([]) is None
