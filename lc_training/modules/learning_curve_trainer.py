"""
Learning curve trainer - cross-validated learning curves around a single-model trainer
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from lc_training.modules.data_loader import validate_labels
from lc_training.modules.fold_creator import KFoldDataSetCreator, normalize_portions
from lc_training.modules.fold_trainer import FailurePolicy, FoldPortionTrainer
from lc_training.modules.metrics_aggregator import LabelPortionMetric, LearningCurve, MetricsAggregator
from lc_training.modules.prediction_collector import PredictionCollector, default_threshold
from lc_training.modules.types import AlloyTrainer, DocumentFactory, TaskConfig, UnitFailure
from lc_training.utils.logger import get_logger


@dataclass(frozen=True)
class TrainingSummary:
    """Learning curves of one label"""
    identifier: str
    metrics: Tuple[LearningCurve, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'identifier': self.identifier,
            'metrics': [curve.to_dict() for curve in self.metrics],
        }

    def __str__(self) -> str:
        return f"TrainingSummary({self.identifier}, {[curve.metric.value for curve in self.metrics]})"


class LearningCurveAlloy:
    """Result of a learning curve run: per-label summaries and averaged metrics"""

    def __init__(
        self,
        name: str,
        labels: Sequence[str],
        summaries: Sequence[TrainingSummary],
        averaged: Sequence[LabelPortionMetric],
        failures: Sequence[UnitFailure] = ()
    ):
        self.name = name
        self.labels = list(labels)
        self.summaries = list(summaries)
        self.averaged = list(averaged)
        self.failures = list(failures)

    def get_training_summaries(self) -> List[TrainingSummary]:
        return list(self.summaries)

    def curves_for(self, label: str) -> Tuple[LearningCurve, ...]:
        for summary in self.summaries:
            if summary.identifier == label:
                return summary.metrics
        raise KeyError(label)

    def to_report(self) -> Dict[str, Any]:
        """JSON-serializable representation for the training report"""
        return {
            'name': self.name,
            'labels': self.labels,
            'training_summaries': [summary.to_dict() for summary in self.summaries],
            'label_portion_metrics': [metric.to_dict() for metric in self.averaged],
            'failed_units': [
                {'fold': f.fold, 'portion': f.portion, 'error': f.error} for f in self.failures
            ],
        }


def create_per_label_summaries(curves: Dict[str, List[LearningCurve]]) -> List[TrainingSummary]:
    return [TrainingSummary(identifier=label, metrics=tuple(label_curves)) for label, label_curves in curves.items()]


class LearningCurveTrainer:
    """
    Creates learning curves by building fold and portion training sets,
    training a model on each with the wrapped trainer, and scoring every
    model on its fold's holdout documents.
    """

    def __init__(
        self,
        trainer: AlloyTrainer,
        num_folds: int,
        portions: Sequence[float],
        fold_seed: int,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
        n_jobs: int = 1,
        backend: str = 'threading',
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize learning curve trainer.

        Args:
            trainer: Single-model trainer to wrap
            num_folds: Number of cross-validation folds (>= 2)
            portions: Fractions of each fold's training complement
            fold_seed: Seed for fold and portion sampling
            failure_policy: Abort or skip when a (fold, portion) fails to train
            n_jobs: joblib worker count for training and prediction
            backend: joblib backend
            logger: Logger instance
        """
        if num_folds < 2:
            raise ValueError(f"num_folds must be >= 2, got {num_folds}")

        self.trainer = trainer
        self.num_folds = num_folds
        self.portions = normalize_portions(portions)
        self.fold_seed = fold_seed
        self.failure_policy = FailurePolicy(failure_policy)
        self.n_jobs = n_jobs
        self.backend = backend
        self.logger = logger or get_logger('learning_curve_trainer')

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        trainer: AlloyTrainer,
        logger: Optional[logging.Logger] = None
    ) -> "LearningCurveTrainer":
        lc_config = config['learning_curve']
        return cls(
            trainer=trainer,
            num_folds=int(lc_config['num_folds']),
            portions=lc_config['portions'],
            fold_seed=int(lc_config['fold_seed']),
            failure_policy=FailurePolicy(lc_config.get('failure_policy', 'abort')),
            n_jobs=lc_config.get('n_jobs', 1),
            backend=lc_config.get('backend', 'threading'),
            logger=logger,
        )

    def train_alloy(
        self,
        name: str,
        docs: DocumentFactory,
        task_config: TaskConfig,
        options: Optional[Dict[str, Any]] = None
    ) -> LearningCurveAlloy:
        """
        Train and evaluate one model per (fold, portion) and build learning curves.

        Args:
            name: A user-friendly name for the result
            docs: Factory returning a fresh, order-stable traversal of the documents
            task_config: Labels, rules and task type
            options: Trainer options, passed through to the wrapped trainer

        Returns:
            LearningCurveAlloy holding one training summary per label
        """
        validate_labels(docs(), task_config.labels)

        folds = KFoldDataSetCreator(self.logger).create_fold_datasets(
            docs, self.num_folds, self.portions, self.fold_seed
        )

        fold_trainer = FoldPortionTrainer(
            self.trainer,
            failure_policy=self.failure_policy,
            n_jobs=self.n_jobs,
            backend=self.backend,
            logger=self.logger,
        )
        fold_models, failures = fold_trainer.train(folds, task_config, options)

        threshold = default_threshold(task_config)
        self.logger.info(f"Default threshold for {task_config.task_type.value}: {threshold:.4f}")
        collector = PredictionCollector(threshold, n_jobs=self.n_jobs, backend=self.backend, logger=self.logger)
        tuples = collector.collect(fold_models)

        result = MetricsAggregator(self.num_folds, self.logger).aggregate(tuples)

        summaries = create_per_label_summaries(result.curves)
        for summary in summaries:
            self.logger.info(str(summary))

        return LearningCurveAlloy(
            name=name,
            labels=task_config.labels,
            summaries=summaries,
            averaged=result.averaged,
            failures=failures,
        )
