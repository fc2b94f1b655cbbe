"""
Metrics and reporting utilities
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np
from sklearn.metrics import confusion_matrix


@dataclass(frozen=True)
class BinaryCounts:
    tp: int
    fp: int
    fn: int
    tn: int


def safe_divide(numerator: float, denominator: float) -> Optional[float]:
    """Ratio, or None where it is undefined"""
    if denominator == 0:
        return None
    return float(numerator) / float(denominator)


def binary_counts(y_true: Sequence[int], y_pred: Sequence[int]) -> BinaryCounts:
    """Confusion counts for a 0/1 problem, positive class = 1"""
    if len(y_true) == 0:
        return BinaryCounts(tp=0, fp=0, fn=0, tn=0)

    matrix = confusion_matrix(
        np.asarray(y_true, dtype=int),
        np.asarray(y_pred, dtype=int),
        labels=[0, 1],
    )
    tn, fp, fn, tp = (int(v) for v in matrix.ravel())
    return BinaryCounts(tp=tp, fp=fp, fn=fn, tn=tn)


def f1_score(precision: Optional[float], recall: Optional[float]) -> Optional[float]:
    """Harmonic mean of precision and recall; None if either is undefined"""
    if precision is None or recall is None:
        return None
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def class_metrics(tp: int, fp: int, fn: int) -> Dict[str, Optional[float]]:
    """
    Precision, recall and F1 for one class.

    Precision is undefined without predicted positives, recall without gold
    positives. F1 is undefined whenever either of them is, and 0 when both
    are 0.
    """
    precision = safe_divide(tp, tp + fp)
    recall = safe_divide(tp, tp + fn)
    return {
        'precision': precision,
        'recall': recall,
        'f1': f1_score(precision, recall),
    }


def compute_binary_metrics(
    y_true: Sequence[int],
    y_pred: Sequence[int],
    class_names: Mapping[int, str]
) -> Dict[str, Any]:
    """
    Compute per-class and support-weighted metrics for a binary problem.

    Args:
        y_true: Gold labels (0/1)
        y_pred: Predicted labels (0/1)
        class_names: Name for class 1 and class 0

    Returns:
        Dictionary with 'classes' (name -> precision/recall/f1/support)
        and 'f1' (support-weighted F1 across both classes, None if empty
        or if a class that occurs has an undefined F1)
    """
    counts = binary_counts(y_true, y_pred)

    per_class = {
        class_names[1]: dict(
            class_metrics(counts.tp, counts.fp, counts.fn),
            support=counts.tp + counts.fn,
        ),
        class_names[0]: dict(
            class_metrics(counts.tn, counts.fn, counts.fp),
            support=counts.tn + counts.fp,
        ),
    }

    # Undefined as soon as a class that occurs has an undefined F1
    total = counts.tp + counts.fp + counts.fn + counts.tn
    supported = [values for values in per_class.values() if values['support'] > 0]
    weighted_f1 = None
    if total > 0 and all(values['f1'] is not None for values in supported):
        weighted_f1 = sum(values['support'] * values['f1'] for values in supported) / total

    return {
        'counts': counts,
        'classes': per_class,
        'f1': weighted_f1,
    }


def generate_learning_curve_report(
    alloy_report: Dict[str, Any],
    config: Dict[str, Any],
    duration: str = None
) -> Dict[str, Any]:
    """
    Generate the final learning curve training report.

    Args:
        alloy_report: Output of LearningCurveAlloy.to_report()
        config: Configuration dictionary
        duration: Human-readable wall-clock duration

    Returns:
        Complete training report
    """
    return {
        'timestamp': datetime.now().isoformat(),
        'config': config,
        'alloy': alloy_report,
        'summary': {
            'pipeline_version': '1.0.0',
            'status': 'completed',
            'duration': duration,
            'failed_units': len(alloy_report.get('failed_units', [])),
        }
    }
