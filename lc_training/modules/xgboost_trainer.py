"""
XGBoost trainer module - trains one binary booster per label
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np
import xgboost as xgb
from sklearn.metrics import precision_recall_curve

from lc_training.modules.feature_extractor import FeaturePipeline, PrimedFeaturePipeline
from lc_training.modules.labeled_dataset import LabeledDatasetBuilder, to_arrays
from lc_training.modules.types import Classification, Document, DocumentFactory, TaskConfig
from lc_training.utils.helpers import merge_options
from lc_training.utils.logger import get_logger

# Keys of the xgboost section that are not booster parameters
TRAINER_KEYS = {'num_boost_round', 'suggest_thresholds'}


class XGBoostAlloy:
    """Per-label XGBoost boosters sharing one primed feature pipeline"""

    def __init__(
        self,
        name: str,
        labels: List[str],
        encoder: PrimedFeaturePipeline,
        models: Mapping[str, Union[xgb.Booster, float]],
        thresholds: Mapping[str, float]
    ):
        self.name = name
        self.labels = list(labels)
        self.encoder = encoder
        self.models = dict(models)
        self.thresholds = dict(thresholds)

    def predict(self, document: Document) -> List[Classification]:
        """Probability of each label for one document"""
        features = None
        results = []
        for label in self.labels:
            model = self.models[label]
            if isinstance(model, xgb.Booster):
                if features is None:
                    features = xgb.DMatrix(self.encoder(document).reshape(1, -1))
                probability = float(model.predict(features)[0])
            else:
                probability = float(model)
            results.append(Classification(label=label, probability=probability))
        return results

    def get_suggested_thresholds(self) -> Dict[str, float]:
        return dict(self.thresholds)


class XGBoostAlloyTrainer:
    """Trains XGBoostAlloy models from annotated documents"""

    def __init__(self, config: Dict[str, Any], logger: Optional[logging.Logger] = None):
        """
        Initialize XGBoost trainer.

        Args:
            config: Configuration dictionary
            logger: Logger instance
        """
        self.config = config
        self.logger = logger or get_logger('xgboost_trainer')
        self.xgb_config = config['xgboost']

    def train_alloy(
        self,
        name: str,
        docs: DocumentFactory,
        task_config: TaskConfig,
        options: Optional[Dict[str, Any]] = None
    ) -> XGBoostAlloy:
        """
        Train one booster per label of the task.

        Args:
            name: A user-friendly name for the model
            docs: Factory returning a fresh traversal over the training documents
            task_config: Labels and rules
            options: Overrides for the xgboost configuration section

        Returns:
            Trained XGBoostAlloy
        """
        params = merge_options(self.xgb_config, options)

        builder = LabeledDatasetBuilder(FeaturePipeline.from_config(self.config), self.logger)
        per_label, encoder = builder.build(docs, task_config.labels)

        models = {}
        thresholds = {}
        for label in task_config.labels:
            X, y = to_arrays(per_label.get(label, []), encoder.dimension)

            if encoder.dimension == 0 or len(np.unique(y)) < 2:
                # Single polarity (or no data): constant prediction
                models[label] = 1.0 if y.size and bool(np.all(y == 1.0)) else 0.0
                self.logger.debug(f"[{name}] {label}: constant model ({models[label]}) from {y.size} examples")
                continue

            dtrain = xgb.DMatrix(X, label=y)
            booster = xgb.train(
                self._booster_params(params),
                dtrain,
                num_boost_round=int(params.get('num_boost_round', 50)),
                verbose_eval=False,
            )
            models[label] = booster

            if params.get('suggest_thresholds', False):
                thresholds[label] = self._suggest_threshold(y, booster.predict(dtrain))

        self.logger.info(f"✓ Trained {name}: {len(task_config.labels)} labels, {encoder.dimension} features")
        return XGBoostAlloy(name, list(task_config.labels), encoder, models, thresholds)

    def _booster_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in params.items() if key not in TRAINER_KEYS}

    def _suggest_threshold(self, y: np.ndarray, probas: np.ndarray) -> float:
        """Threshold maximizing F1 on the training data"""
        precision, recall, thresholds = precision_recall_curve(y, probas)
        # The last precision/recall pair has no threshold
        precision, recall = precision[:-1], recall[:-1]
        denom = precision + recall
        f1 = np.divide(2 * precision * recall, denom, out=np.zeros_like(denom), where=denom > 0)
        return float(thresholds[int(np.argmax(f1))])
