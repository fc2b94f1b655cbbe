"""Tests for metric aggregation into learning curves."""

from __future__ import annotations

import random

import pytest

from lc_training.modules.errors import UnknownMetricTypeError
from lc_training.modules.metrics_aggregator import (
    LEARNING_CURVE_METRICS,
    NOT_MARKER,
    CurveMetricType,
    LabelPortionMetric,
    MetricAccumulator,
    MetricsAggregator,
    MetricType,
    UnitMetric,
    accumulate,
    average_across_folds,
    create_learning_curves,
    create_unit_metrics,
    filter_metrics,
    finalize_averages,
    learning_curve_type,
    merge_accumulators,
)
from lc_training.modules.types import ResultTuple


def outcomes(label, fold, portion, pairs):
    """ResultTuples from (predicted, gold) pairs."""
    return [ResultTuple(label, fold, portion, predicted, gold) for predicted, gold in pairs]


@pytest.fixture
def unit_metrics():
    rng = random.Random(0)
    metrics = []
    for label in ("A", "B"):
        for portion in (0.25, 0.5, 1.0):
            for fold in range(5):
                for metric in MetricType:
                    metrics.append(UnitMetric(label, fold, portion, metric, rng.random()))
    return metrics


class TestUnitMetrics:
    """Stage 1: per (fold, portion, label) metrics."""

    def test_positive_and_marker_classes(self):
        tuples = outcomes("Intent", 0, 1.0, [(True, True), (False, True), (False, False), (True, False)])
        metrics = create_unit_metrics(tuples)

        class_labels = {m.class_label for m in metrics}
        assert class_labels == {None, "Intent", f"{NOT_MARKER}Intent"}
        # overall F1 + 3 label metrics for each of the two classes
        assert len(metrics) == 7

        values = {(m.metric, m.class_label): m.value for m in metrics}
        assert values[(MetricType.LABEL_PRECISION, "Intent")] == 0.5
        assert values[(MetricType.LABEL_RECALL, "Intent")] == 0.5

    def test_one_group_per_fold_portion_label(self):
        tuples = (
            outcomes("A", 0, 0.5, [(True, True)])
            + outcomes("A", 1, 0.5, [(True, True)])
            + outcomes("B", 0, 0.5, [(False, True)])
            + outcomes("A", 0, 1.0, [(True, True)])
        )
        metrics = create_unit_metrics(tuples)
        groups = {(m.fold, m.portion, m.label) for m in metrics}
        assert groups == {(0, 0.5, "A"), (1, 0.5, "A"), (0, 0.5, "B"), (0, 1.0, "A")}

    def test_single_polarity_gives_undefined_not_zero(self):
        tuples = outcomes("Rare", 0, 0.5, [(False, False), (False, False)])
        metrics = filter_metrics("Rare", create_unit_metrics(tuples))

        values = {m.metric: m.value for m in metrics}
        assert values[MetricType.LABEL_PRECISION] is None
        assert values[MetricType.LABEL_RECALL] is None
        assert values[MetricType.LABEL_F1] is None
        assert values[MetricType.F1] == 1.0

    def test_false_positive_without_gold_positives_is_undefined(self):
        tuples = outcomes("Rare", 0, 0.5, [(True, False), (False, False)])
        metrics = filter_metrics("Rare", create_unit_metrics(tuples))

        values = {m.metric: m.value for m in metrics}
        assert values[MetricType.LABEL_PRECISION] == 0.0
        assert values[MetricType.LABEL_RECALL] is None
        assert values[MetricType.LABEL_F1] is None

        [f1] = average_across_folds(
            [m for m in metrics if m.metric is MetricType.LABEL_F1], num_folds=1
        )
        assert f1.value is None
        assert f1.incomplete

    def test_marker_does_not_collide_with_real_label(self):
        label = f"{NOT_MARKER}X"
        tuples = outcomes(label, 0, 1.0, [(True, True), (False, False)])
        metrics = filter_metrics(label, create_unit_metrics(tuples))
        assert {m.class_label for m in metrics} == {None, label}
        assert len(metrics) == 4


class TestFilterMetrics:
    """Stage 2: keep only the true-polarity learning curve metrics."""

    def test_discards_marker_class(self):
        tuples = outcomes("A", 0, 1.0, [(True, True), (False, False)])
        filtered = filter_metrics("A", create_unit_metrics(tuples))

        assert {m.metric for m in filtered} == set(MetricType)
        assert all(m.class_label in (None, "A") for m in filtered)
        assert len(filtered) == 4


class TestAverageAcrossFolds:
    """Stage 3: cross-fold averaging."""

    def test_mean_of_folds(self):
        metrics = [
            UnitMetric("A", fold, 0.5, MetricType.LABEL_F1, value)
            for fold, value in enumerate([0.2, 0.4, 0.9])
        ]
        [averaged] = average_across_folds(metrics, num_folds=3)

        assert averaged.value == pytest.approx(0.5)
        assert averaged.num_folds == 3
        assert not averaged.incomplete

    def test_undefined_values_excluded_and_flagged(self):
        metrics = [
            UnitMetric("A", 0, 0.5, MetricType.LABEL_RECALL, 0.6),
            UnitMetric("A", 1, 0.5, MetricType.LABEL_RECALL, None),
        ]
        [averaged] = average_across_folds(metrics, num_folds=2)

        assert averaged.value == pytest.approx(0.6)
        assert averaged.num_folds == 1
        assert averaged.incomplete
        assert averaged.undefined_folds == (1,)

    def test_all_undefined(self):
        metrics = [UnitMetric("A", f, 1.0, MetricType.LABEL_PRECISION, None) for f in range(2)]
        [averaged] = average_across_folds(metrics, num_folds=2)
        assert averaged.value is None
        assert averaged.num_folds == 0

    def test_missing_fold_is_incomplete(self):
        metrics = [UnitMetric("A", 0, 1.0, MetricType.F1, 0.7)]
        [averaged] = average_across_folds(metrics, num_folds=3)
        assert averaged.incomplete
        assert averaged.to_dict()["incomplete"] is True

    def test_invariant_to_input_order(self, unit_metrics):
        expected = average_across_folds(unit_metrics, num_folds=5)
        for seed in range(5):
            shuffled = list(unit_metrics)
            random.Random(seed).shuffle(shuffled)
            assert average_across_folds(shuffled, num_folds=5) == expected

    @pytest.mark.parametrize("batch_size", [1, 3, 7, 50])
    def test_invariant_to_batching(self, unit_metrics, batch_size):
        expected = average_across_folds(unit_metrics, num_folds=5)

        shuffled = list(unit_metrics)
        random.Random(batch_size).shuffle(shuffled)
        batches = [
            accumulate(shuffled[i:i + batch_size])
            for i in range(0, len(shuffled), batch_size)
        ]
        random.Random(batch_size + 1).shuffle(batches)

        merged = {}
        for batch in batches:
            merged = merge_accumulators(merged, batch)

        assert finalize_averages(merged, num_folds=5) == expected

    def test_accumulator_merge_is_commutative(self):
        left = MetricAccumulator().add(0, 0.1).add(1, None)
        right = MetricAccumulator().add(2, 0.7)
        assert left.merge(right).mean() == right.merge(left).mean()
        assert left.merge(right).undefined_folds == frozenset({1})


class TestLearningCurves:
    """Stage 4: curve assembly."""

    def averaged(self, label, metric, points):
        return [
            LabelPortionMetric(label, portion, metric, value, num_folds=2, expected_folds=2)
            for portion, value in points
        ]

    def test_points_sorted_by_portion(self):
        averaged = self.averaged("A", MetricType.LABEL_F1, [(1.0, 0.9), (0.25, 0.3), (0.5, 0.6)])
        curves = create_learning_curves(averaged)

        [curve] = curves["A"]
        assert curve.metric is CurveMetricType.LEARNING_CURVE_LABEL_F1
        assert curve.as_pairs() == [(0.25, 0.3), (0.5, 0.6), (1.0, 0.9)]

    def test_one_curve_per_label_and_metric(self):
        averaged = []
        for label in ("B", "A"):
            for metric in MetricType:
                averaged += self.averaged(label, metric, [(0.5, 0.1), (1.0, 0.2)])

        curves = create_learning_curves(averaged)

        assert list(curves) == ["A", "B"]
        for label_curves in curves.values():
            assert [c.metric for c in label_curves] == list(LEARNING_CURVE_METRICS.values())

    def test_mapping_is_exhaustive(self):
        assert set(LEARNING_CURVE_METRICS) == set(MetricType)
        assert set(LEARNING_CURVE_METRICS.values()) == set(CurveMetricType)

    def test_unknown_metric_is_fatal(self):
        bogus = LabelPortionMetric("A", 0.5, "Accuracy", 0.9, num_folds=1, expected_folds=1)
        with pytest.raises(UnknownMetricTypeError, match="label='A', portion=0.5") as excinfo:
            create_learning_curves([bogus])
        assert excinfo.value.portion == 0.5
        assert excinfo.value.metric_type == "Accuracy"

    def test_learning_curve_type(self):
        assert learning_curve_type("A", MetricType.F1) is CurveMetricType.LEARNING_CURVE_F1
        with pytest.raises(UnknownMetricTypeError):
            learning_curve_type("A", CurveMetricType.LEARNING_CURVE_F1)


class TestMetricsAggregator:
    def test_aggregate(self, caplog):
        tuples = []
        for fold in range(2):
            for portion in (0.5, 1.0):
                tuples += outcomes("A", fold, portion, [(True, True), (False, False)])
                tuples += outcomes("B", fold, portion, [(False, False), (False, False)])

        result = MetricsAggregator(num_folds=2).aggregate(tuples)

        assert set(result.curves) == {"A", "B"}
        a_f1 = next(c for c in result.curves["A"] if c.metric is CurveMetricType.LEARNING_CURVE_LABEL_F1)
        assert a_f1.as_pairs() == [(0.5, 1.0), (1.0, 1.0)]

        b_recall = next(c for c in result.curves["B"] if c.metric is CurveMetricType.LEARNING_CURVE_LABEL_RECALL)
        assert b_recall.as_pairs() == [(0.5, None), (1.0, None)]
        assert all(point.incomplete for point in b_recall.points)
        assert "Incomplete average for label='B'" in caplog.text
