"""
Fold trainer - trains one model per (fold, portion) in parallel
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from joblib import Parallel, delayed

from lc_training.modules.errors import FoldTrainingError, UnitTrainingError
from lc_training.modules.types import (
    AlloyTrainer,
    Fold,
    FoldModels,
    TaskConfig,
    TrainedModel,
    TrainingStream,
    UnitFailure,
)
from lc_training.utils.logger import get_logger


class FailurePolicy(Enum):
    """What to do when a (fold, portion) unit fails to train"""
    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True)
class UnitResult:
    fold: int
    portion: float
    model: Optional[TrainedModel] = None
    error: Optional[UnitTrainingError] = None


def train_unit(
    trainer: AlloyTrainer,
    fold: int,
    stream: TrainingStream,
    task_config: TaskConfig,
    options: Optional[Dict[str, Any]]
) -> UnitResult:
    """Train a single (fold, portion) model, capturing its failure as a result"""
    name = f"F{fold}-P-{stream.portion}"
    try:
        model = trainer.train_alloy(name, stream.stream, task_config, options)
    except Exception as e:
        error = UnitTrainingError(fold, stream.portion, e)
        error.__cause__ = e
        return UnitResult(fold=fold, portion=stream.portion, error=error)
    return UnitResult(fold=fold, portion=stream.portion, model=model)


class FoldPortionTrainer:
    """Fans out one training job per (fold, portion) and joins the results"""

    def __init__(
        self,
        trainer: AlloyTrainer,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
        n_jobs: int = 1,
        backend: str = 'threading',
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize fold trainer.

        Args:
            trainer: Single-model trainer, shared read-only by every job
            failure_policy: Abort the run or continue without failed units
            n_jobs: joblib worker count (-1 for all cores)
            backend: joblib backend
            logger: Logger instance
        """
        self.trainer = trainer
        self.failure_policy = FailurePolicy(failure_policy)
        self.n_jobs = n_jobs
        self.backend = backend
        self.logger = logger or get_logger('fold_trainer')

    def train(
        self,
        folds: Sequence[Fold],
        task_config: TaskConfig,
        options: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[FoldModels], List[UnitFailure]]:
        """
        Train a model for every portion of every fold.

        Returns:
            (per-fold models ordered by portion, failed units)

        Raises:
            FoldTrainingError: if any unit failed and the policy is ABORT
        """
        units = [(fold, stream) for fold in folds for stream in fold.training_streams]
        self.logger.info(f"Training {len(units)} (fold, portion) models with n_jobs={self.n_jobs}")

        results = Parallel(n_jobs=self.n_jobs, backend=self.backend)(
            delayed(train_unit)(self.trainer, fold.fold, stream, task_config, options)
            for fold, stream in units
        )

        errors = [result.error for result in results if result.error is not None]
        for error in errors:
            self.logger.error(str(error), exc_info=error.cause)

        if errors and self.failure_policy is FailurePolicy.ABORT:
            raise FoldTrainingError(errors) from errors[0]

        models: Dict[int, List[Tuple[float, TrainedModel]]] = {fold.fold: [] for fold in folds}
        for result in results:
            if result.model is not None:
                models[result.fold].append((result.portion, result.model))

        fold_models = [
            FoldModels(fold=fold, portion_models=tuple(sorted(models[fold.fold], key=lambda pm: pm[0])))
            for fold in folds
        ]
        failures = [UnitFailure(fold=e.fold, portion=e.portion, error=str(e)) for e in errors]

        if failures:
            self.logger.warning(f"Continuing without {len(failures)} failed unit(s) (policy={self.failure_policy.value})")
        return fold_models, failures
