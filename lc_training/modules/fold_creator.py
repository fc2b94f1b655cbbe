"""
Fold creator - k-fold holdouts with nested training portions for learning curves
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np
from sklearn.model_selection import KFold

from lc_training.modules.types import DocumentFactory, Fold, TrainingStream
from lc_training.utils.helpers import derive_seed
from lc_training.utils.logger import get_logger


def normalize_portions(portions: Sequence[float]) -> List[float]:
    """Validate portion fractions and return them sorted, without duplicates"""
    if not portions:
        raise ValueError("At least one portion is required")
    for portion in portions:
        if not 0.0 < float(portion) <= 1.0:
            raise ValueError(f"Portions must be in (0, 1], got {portion}")
    return sorted({float(portion) for portion in portions})


def portion_size(portion: float, total: int) -> int:
    """round(portion * total), half up, never below one document"""
    if total == 0:
        return 0
    return max(1, min(total, int(math.floor(portion * total + 0.5))))


class KFoldDataSetCreator:
    """Creates the fold and portion data sets a learning curve is trained on"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger('fold_creator')

    def create_fold_datasets(
        self,
        docs: DocumentFactory,
        num_folds: int,
        portions: Sequence[float],
        seed: int
    ) -> List[Fold]:
        """
        Split documents into k folds, each with nested training portions.

        Holdouts are a standard shuffled k-fold partition. Within a fold the
        training complement is permuted once with a sub-seed derived from
        (seed, fold) and every portion takes a prefix of that permutation, so
        smaller portions are always subsets of larger ones.

        Args:
            docs: Factory returning a fresh traversal over the documents
            num_folds: Number of folds (>= 2)
            portions: Fractions of the training complement, in (0, 1]
            seed: Base random seed

        Returns:
            Folds ordered by fold index
        """
        if num_folds < 2:
            raise ValueError(f"num_folds must be >= 2, got {num_folds}")
        portions = normalize_portions(portions)

        documents = list(docs())
        if len(documents) < num_folds:
            raise ValueError(
                f"Cannot split {len(documents)} documents into {num_folds} folds"
            )

        kfold = KFold(n_splits=num_folds, shuffle=True, random_state=derive_seed(seed))

        folds = []
        for fold, (train_idx, holdout_idx) in enumerate(kfold.split(np.arange(len(documents)))):
            rng = np.random.default_rng(derive_seed(seed, fold))
            order = rng.permutation(train_idx)

            streams = []
            for portion in portions:
                selected = np.sort(order[:portion_size(portion, len(order))])
                streams.append(TrainingStream(
                    portion=portion,
                    documents=tuple(documents[i] for i in selected),
                ))

            folds.append(Fold(
                fold=fold,
                holdout=tuple(documents[i] for i in holdout_idx),
                training_streams=tuple(streams),
            ))

            sizes = ", ".join(f"{s.portion}: {len(s.documents)}" for s in streams)
            self.logger.info(f"Fold {fold}: holdout {len(holdout_idx)}, training portions [{sizes}]")

        return folds
