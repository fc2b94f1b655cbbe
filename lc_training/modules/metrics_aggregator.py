"""
Metrics aggregator - reduces raw prediction outcomes to per-label learning curves

Stages, in order:
    1. per (fold, portion, label) binary metrics from the confusion counts
    2. keep F1 / precision / recall for the label's true polarity
    3. average each (label, portion, metric) across folds
    4. assemble one curve per (label, metric), ordered by portion
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from itertools import groupby
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from lc_training.modules.errors import UnknownMetricTypeError
from lc_training.modules.types import ResultTuple
from lc_training.utils.logger import get_logger
from lc_training.utils.metrics import compute_binary_metrics

# Prefix naming the negative class of a label, e.g. "__!Intent"
NOT_MARKER = "__!"


class MetricType(Enum):
    F1 = "F1"
    LABEL_F1 = "LabelF1"
    LABEL_PRECISION = "LabelPrecision"
    LABEL_RECALL = "LabelRecall"


class CurveMetricType(Enum):
    LEARNING_CURVE_F1 = "LearningCurveF1"
    LEARNING_CURVE_LABEL_F1 = "LearningCurveLabelF1"
    LEARNING_CURVE_LABEL_PRECISION = "LearningCurveLabelPrecision"
    LEARNING_CURVE_LABEL_RECALL = "LearningCurveLabelRecall"


LEARNING_CURVE_METRICS: Mapping[MetricType, CurveMetricType] = {
    MetricType.F1: CurveMetricType.LEARNING_CURVE_F1,
    MetricType.LABEL_F1: CurveMetricType.LEARNING_CURVE_LABEL_F1,
    MetricType.LABEL_PRECISION: CurveMetricType.LEARNING_CURVE_LABEL_PRECISION,
    MetricType.LABEL_RECALL: CurveMetricType.LEARNING_CURVE_LABEL_RECALL,
}

_unmapped = set(MetricType) - set(LEARNING_CURVE_METRICS)
if _unmapped:
    raise RuntimeError(f"Metric types without a learning curve mapping: {sorted(m.value for m in _unmapped)}")

_LABEL_METRICS = {
    MetricType.LABEL_F1: 'f1',
    MetricType.LABEL_PRECISION: 'precision',
    MetricType.LABEL_RECALL: 'recall',
}


def learning_curve_type(label: str, metric: MetricType, portion: Optional[float] = None) -> CurveMetricType:
    """Curve kind for a raw metric kind"""
    try:
        return LEARNING_CURVE_METRICS[metric]
    except (KeyError, TypeError):
        raise UnknownMetricTypeError(label, metric, portion) from None


@dataclass(frozen=True)
class UnitMetric:
    """One metric of one (fold, portion, label); value None when undefined"""
    label: str
    fold: int
    portion: float
    metric: MetricType
    value: Optional[float]
    class_label: Optional[str] = None


@dataclass(frozen=True)
class LabelPortionMetric:
    """A metric for one (label, portion), averaged across folds"""
    label: str
    portion: float
    metric: MetricType
    value: Optional[float]
    num_folds: int
    expected_folds: int
    undefined_folds: Tuple[int, ...] = ()

    @property
    def incomplete(self) -> bool:
        return self.num_folds < self.expected_folds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'portion': self.portion,
            'metric': self.metric.value,
            'value': self.value,
            'num_folds': self.num_folds,
            'expected_folds': self.expected_folds,
            'incomplete': self.incomplete,
            'undefined_folds': list(self.undefined_folds),
        }


@dataclass(frozen=True)
class CurvePoint:
    portion: float
    value: Optional[float]
    num_folds: int
    incomplete: bool = False


@dataclass(frozen=True)
class LearningCurve:
    label: str
    metric: CurveMetricType
    points: Tuple[CurvePoint, ...]

    def as_pairs(self) -> List[Tuple[float, Optional[float]]]:
        return [(point.portion, point.value) for point in self.points]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'metric': self.metric.value,
            'points': [
                {
                    'portion': p.portion,
                    'value': p.value,
                    'num_folds': p.num_folds,
                    'incomplete': p.incomplete,
                }
                for p in self.points
            ],
        }


@dataclass(frozen=True)
class MetricAccumulator:
    """
    Partial state of a cross-fold average.

    Accumulators merge associatively and commutatively, and the mean uses
    math.fsum, so the result does not depend on input order or batching.
    """
    values: Tuple[float, ...] = ()
    folds: FrozenSet[int] = field(default_factory=frozenset)
    undefined_folds: FrozenSet[int] = field(default_factory=frozenset)

    def add(self, fold: int, value: Optional[float]) -> "MetricAccumulator":
        if value is None:
            return MetricAccumulator(self.values, self.folds, self.undefined_folds | {fold})
        return MetricAccumulator(self.values + (value,), self.folds | {fold}, self.undefined_folds)

    def merge(self, other: "MetricAccumulator") -> "MetricAccumulator":
        return MetricAccumulator(
            self.values + other.values,
            self.folds | other.folds,
            self.undefined_folds | other.undefined_folds,
        )

    def mean(self) -> Optional[float]:
        if not self.values:
            return None
        return math.fsum(self.values) / len(self.values)


AccumulatorKey = Tuple[str, float, MetricType]


def create_unit_metrics(tuples: Iterable[ResultTuple]) -> List[UnitMetric]:
    """
    Stage 1: binary metrics for every (fold, portion, label) group.

    The positive class is named after the label and the negative class after
    NOT_MARKER + label, so a real label can never collide with it.
    """
    def key(tup: ResultTuple):
        return tup.fold, tup.portion, tup.label

    metrics = []
    for (fold, portion, label), grouped in groupby(sorted(tuples, key=key), key=key):
        grouped = list(grouped)
        negative = f"{NOT_MARKER}{label}"
        report = compute_binary_metrics(
            y_true=[1 if tup.gold else 0 for tup in grouped],
            y_pred=[1 if tup.predicted else 0 for tup in grouped],
            class_names={1: label, 0: negative},
        )

        metrics.append(UnitMetric(label, fold, portion, MetricType.F1, report['f1']))
        for class_label in (label, negative):
            class_values = report['classes'][class_label]
            for metric, name in _LABEL_METRICS.items():
                metrics.append(UnitMetric(label, fold, portion, metric, class_values[name], class_label))
    return metrics


def filter_metrics(label: str, metrics: Iterable[UnitMetric]) -> List[UnitMetric]:
    """Stage 2: keep the learning curve metrics of the label's positive class"""
    return [
        m for m in metrics
        if m.metric in LEARNING_CURVE_METRICS
        and (m.class_label is None or m.class_label == label)
    ]


def accumulate(metrics: Iterable[UnitMetric]) -> Dict[AccumulatorKey, MetricAccumulator]:
    """Group unit metrics by (label, portion, metric) into accumulators"""
    accumulators: Dict[AccumulatorKey, MetricAccumulator] = {}
    for m in metrics:
        key = (m.label, m.portion, m.metric)
        accumulators[key] = accumulators.get(key, MetricAccumulator()).add(m.fold, m.value)
    return accumulators


def merge_accumulators(
    left: Mapping[AccumulatorKey, MetricAccumulator],
    right: Mapping[AccumulatorKey, MetricAccumulator]
) -> Dict[AccumulatorKey, MetricAccumulator]:
    merged = dict(left)
    for key, accumulator in right.items():
        merged[key] = merged[key].merge(accumulator) if key in merged else accumulator
    return merged


def finalize_averages(
    accumulators: Mapping[AccumulatorKey, MetricAccumulator],
    num_folds: int
) -> List[LabelPortionMetric]:
    """Turn accumulators into averaged metrics, sorted by (label, portion, metric)"""
    averaged = []
    for (label, portion, metric), accumulator in accumulators.items():
        averaged.append(LabelPortionMetric(
            label=label,
            portion=portion,
            metric=metric,
            value=accumulator.mean(),
            num_folds=len(accumulator.values),
            expected_folds=num_folds,
            undefined_folds=tuple(sorted(accumulator.undefined_folds)),
        ))
    return sorted(averaged, key=lambda m: (m.label, m.portion, m.metric.value))


def average_across_folds(metrics: Iterable[UnitMetric], num_folds: int) -> List[LabelPortionMetric]:
    """Stage 3: arithmetic mean of each (label, portion, metric) over the folds that defined it"""
    return finalize_averages(accumulate(metrics), num_folds)


def create_learning_curves(averaged: Iterable[LabelPortionMetric]) -> Dict[str, List[LearningCurve]]:
    """Stage 4: one curve per (label, metric), points ordered by portion"""
    grouped: Dict[Tuple[str, MetricType], List[LabelPortionMetric]] = {}
    for m in averaged:
        grouped.setdefault((m.label, m.metric), []).append(m)

    order = {curve_type: i for i, curve_type in enumerate(LEARNING_CURVE_METRICS.values())}
    curves: Dict[str, List[LearningCurve]] = {}
    for (label, metric), values in grouped.items():
        values = sorted(values, key=lambda v: v.portion)
        curve_type = learning_curve_type(label, metric, values[0].portion)
        points = tuple(
            CurvePoint(portion=v.portion, value=v.value, num_folds=v.num_folds, incomplete=v.incomplete)
            for v in values
        )
        curves.setdefault(label, []).append(LearningCurve(label, curve_type, points))

    for label_curves in curves.values():
        label_curves.sort(key=lambda c: order[c.metric])
    return dict(sorted(curves.items()))


@dataclass(frozen=True)
class AggregationResult:
    averaged: List[LabelPortionMetric]
    curves: Dict[str, List[LearningCurve]]


class MetricsAggregator:
    """Runs the four aggregation stages and logs their outcome"""

    def __init__(self, num_folds: int, logger: Optional[logging.Logger] = None):
        self.num_folds = num_folds
        self.logger = logger or get_logger('metrics_aggregator')

    def aggregate(self, tuples: Sequence[ResultTuple]) -> AggregationResult:
        unit_metrics = create_unit_metrics(tuples)

        filtered = []
        for label, grouped in groupby(sorted(unit_metrics, key=lambda m: m.label), key=lambda m: m.label):
            filtered.extend(filter_metrics(label, grouped))

        averaged = average_across_folds(filtered, self.num_folds)
        self._log_incomplete(averaged)

        curves = create_learning_curves(averaged)
        for label, label_curves in curves.items():
            summary = "; ".join(
                f"{curve.metric.value}: " + ", ".join(
                    f"{portion}={'undefined' if value is None else f'{value:.4f}'}"
                    for portion, value in curve.as_pairs()
                )
                for curve in label_curves
            )
            self.logger.info(f"{label} -> {summary}")

        return AggregationResult(averaged=averaged, curves=curves)

    def _log_incomplete(self, averaged: Sequence[LabelPortionMetric]):
        for m in averaged:
            if m.incomplete:
                self.logger.warning(
                    f"Incomplete average for label={m.label!r}, portion={m.portion}, metric={m.metric.value}: "
                    f"{m.num_folds}/{m.expected_folds} folds defined (undefined in folds {list(m.undefined_folds)})"
                )
