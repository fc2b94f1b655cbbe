"""
Labeled dataset builder - turns annotated documents into per-label training examples
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from lc_training.modules.errors import DocumentSchemaError
from lc_training.modules.feature_extractor import FeaturePipeline, PrimedFeaturePipeline
from lc_training.modules.types import DocumentFactory, LabeledExample
from lc_training.utils.logger import get_logger


class LabeledDatasetBuilder:
    """Builds per-label (feature vector, binary label) collections"""

    def __init__(self, pipeline: FeaturePipeline, logger: Optional[logging.Logger] = None):
        """
        Initialize builder.

        Args:
            pipeline: Unprimed feature pipeline
            logger: Logger instance
        """
        self.pipeline = pipeline
        self.logger = logger or get_logger('labeled_dataset')

    def build(
        self,
        docs: DocumentFactory,
        labels: Optional[Sequence[str]] = None
    ) -> Tuple[Dict[str, List[LabeledExample]], PrimedFeaturePipeline]:
        """
        Produce labeled examples for each label that has annotations.

        ``docs`` is called twice, once to prime the feature pipeline and once
        to encode. Both calls must traverse the exact same documents;
        otherwise vectors produced in the second pass are not aligned with
        the vocabulary fixed in the first.

        Args:
            docs: Factory returning a fresh traversal over the documents
            labels: Label universe; annotations outside it are rejected

        Returns:
            (label -> examples, primed feature pipeline)
        """
        encoder = self.pipeline.prime(docs())
        universe = set(labels) if labels is not None else None

        annotated = []
        for position, document in enumerate(docs()):
            for annotation in document.annotations:
                if universe is not None and annotation.label not in universe:
                    raise DocumentSchemaError(
                        f"annotation label {annotation.label!r} is not in the task labels",
                        position,
                    )
            if document.annotations:
                annotated.append(document)

        per_label: Dict[str, List[LabeledExample]] = {}
        for document, features in zip(annotated, encoder.encode_many(annotated)):
            for annotation in document.annotations:
                per_label.setdefault(annotation.label, []).append(
                    LabeledExample(features=features, label=1.0 if annotation.is_positive else 0.0)
                )

        self._log_summary(per_label)
        return per_label, encoder

    def _log_summary(self, per_label: Dict[str, List[LabeledExample]]):
        lines = []
        for label, examples in per_label.items():
            splits = Counter(example.label for example in examples)
            split_text = ", ".join(
                f"Polarity: {polarity}, Size: {size}" for polarity, size in sorted(splits.items())
            )
            lines.append(f"Created {len(examples)} data points for {label}; with splits [{split_text}]")
        self.logger.info("\n".join(lines) if lines else "Created no data points")


def to_arrays(examples: Sequence[LabeledExample], dimension: int) -> Tuple[np.ndarray, np.ndarray]:
    """Stack labeled examples into a feature matrix and label vector"""
    if not examples:
        return np.zeros((0, dimension), dtype=np.float32), np.zeros(0, dtype=np.float32)
    X = np.vstack([example.features for example in examples]).astype(np.float32)
    y = np.asarray([example.label for example in examples], dtype=np.float32)
    return X, y
