"""
Prediction collector - runs each fold's models over its holdout set
"""

import logging
from typing import Dict, List, Optional, Sequence

from joblib import Parallel, delayed

from lc_training.modules.types import (
    Document,
    FoldModels,
    ResultTuple,
    TaskConfig,
    TaskType,
)
from lc_training.utils.logger import get_logger


def default_threshold(task_config: TaskConfig) -> float:
    """
    Threshold used for labels the model suggests none for.

    Mutually-exclusive tasks split probability mass across labels, so the
    fallback is 1/|labels|; independent labels use 0.5.
    """
    if task_config.task_type is TaskType.SINGLE:
        return 1.0 / len(task_config.labels)
    if task_config.task_type is TaskType.MULTIPLE:
        return 0.5
    raise ValueError(f"Unsupported task type: {task_config.task_type}")


def create_gold_labels(document: Document) -> Dict[str, bool]:
    """Map each annotated label of a document to its polarity (last one wins)"""
    return {annotation.label: annotation.is_positive for annotation in document.annotations}


def predict_fold(fold_models: FoldModels, threshold: float) -> List[ResultTuple]:
    """
    Predict every holdout document of a fold with every portion's model.

    Labels the document carries no annotation for are scored as gold negative.
    """
    fold = fold_models.fold
    models = [
        (portion, model, model.get_suggested_thresholds())
        for portion, model in fold_models.portion_models
    ]

    results = []
    for document in fold.holdout:
        gold = create_gold_labels(document)
        for portion, model, thresholds in models:
            for classification in model.predict(document):
                label_threshold = thresholds.get(classification.label, threshold)
                results.append(ResultTuple(
                    label=classification.label,
                    fold=fold.fold,
                    portion=portion,
                    predicted=classification.probability >= label_threshold,
                    gold=gold.get(classification.label, False),
                ))
    return results


class PredictionCollector:
    """Collects flat (fold, portion, label) prediction outcomes"""

    def __init__(
        self,
        threshold: float,
        n_jobs: int = 1,
        backend: str = 'threading',
        logger: Optional[logging.Logger] = None
    ):
        self.threshold = threshold
        self.n_jobs = n_jobs
        self.backend = backend
        self.logger = logger or get_logger('prediction_collector')

    def collect(self, fold_models: Sequence[FoldModels]) -> List[ResultTuple]:
        """
        Run one prediction pass per fold, in parallel.

        Returns:
            Result tuples, grouped by fold in fold order
        """
        per_fold = Parallel(n_jobs=self.n_jobs, backend=self.backend)(
            delayed(predict_fold)(models, self.threshold) for models in fold_models
        )

        results = []
        for models, fold_results in zip(fold_models, per_fold):
            self.logger.info(
                f"Fold {models.fold.fold}: {len(fold_results)} predictions over "
                f"{len(models.fold.holdout)} holdout documents, {len(models.portion_models)} portions"
            )
            results.extend(fold_results)
        return results
