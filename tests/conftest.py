"""Shared fixtures and stub trainers for the learning curve tests."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

import pytest

from lc_training.modules.types import (
    Annotation,
    Classification,
    Document,
    TaskConfig,
    TaskType,
)


def make_document(content: str, *annotations: tuple) -> Document:
    """Build a document from (label, is_positive) pairs."""
    return Document(
        content=content,
        annotations=tuple(Annotation(label=label, is_positive=positive) for label, positive in annotations),
    )


def make_task_config(labels, task_type: TaskType = TaskType.MULTIPLE) -> TaskConfig:
    return TaskConfig.from_dict({
        "uuid_to_label": {f"uuid-{i}": label for i, label in enumerate(labels)},
        "rules": [],
        "task_type": task_type.value,
    })


class StubModel:
    """Predicts a label when its keyword occurs in the document content."""

    def __init__(self, labels, thresholds: Optional[Dict[str, float]] = None, hit: float = 0.9, miss: float = 0.1):
        self.labels = list(labels)
        self.thresholds = dict(thresholds or {})
        self.hit = hit
        self.miss = miss

    def predict(self, document: Document) -> List[Classification]:
        content = document.content.lower()
        return [
            Classification(label, self.hit if label.lower() in content else self.miss)
            for label in self.labels
        ]

    def get_suggested_thresholds(self) -> Dict[str, float]:
        return dict(self.thresholds)


class ConstantModel:
    """Predicts the same probability for every label."""

    def __init__(self, labels, probability: float, thresholds: Optional[Dict[str, float]] = None):
        self.labels = list(labels)
        self.probability = probability
        self.thresholds = dict(thresholds or {})

    def predict(self, document: Document) -> List[Classification]:
        return [Classification(label, self.probability) for label in self.labels]

    def get_suggested_thresholds(self) -> Dict[str, float]:
        return dict(self.thresholds)


class PriorModel:
    """Predicts each label with its positive rate in the training data."""

    def __init__(self, priors: Dict[str, float]):
        self.priors = priors

    def predict(self, document: Document) -> List[Classification]:
        return [Classification(label, prior) for label, prior in self.priors.items()]

    def get_suggested_thresholds(self) -> Dict[str, float]:
        return {}


class StubTrainer:
    """Records every training call and returns a StubModel."""

    def __init__(self, fail_names=()):
        self.fail_names = set(fail_names)
        self.calls = []
        self._lock = threading.Lock()

    def train_alloy(self, name, docs, task_config, options=None):
        documents = list(docs())
        with self._lock:
            self.calls.append((name, len(documents), options))
        if name in self.fail_names:
            raise RuntimeError(f"cannot train {name}")
        return StubModel(task_config.labels)


class PriorTrainer:
    """Learns only the per-label positive rate of its training documents."""

    def train_alloy(self, name, docs, task_config, options=None):
        positives = {label: 0 for label in task_config.labels}
        totals = {label: 0 for label in task_config.labels}
        for document in docs():
            for annotation in document.annotations:
                totals[annotation.label] += 1
                positives[annotation.label] += int(annotation.is_positive)
        priors = {
            label: (positives[label] / totals[label]) if totals[label] else 0.0
            for label in task_config.labels
        }
        return PriorModel(priors)


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("lc_training.tests")


@pytest.fixture
def two_label_documents() -> List[Document]:
    """10 documents, one annotation each, split between Intent and Sentiment."""
    documents = []
    for i in range(10):
        label = "Intent" if i % 2 == 0 else "Sentiment"
        positive = i % 4 < 2
        keyword = label.lower() if positive else "nothing"
        documents.append(make_document(f"document {i} about {keyword}", (label, positive)))
    return documents


@pytest.fixture
def two_label_task() -> TaskConfig:
    return make_task_config(["Intent", "Sentiment"], TaskType.MULTIPLE)


@pytest.fixture
def corpus() -> List[Document]:
    """40 documents with distinct content and two labels."""
    documents = []
    for i in range(40):
        documents.append(make_document(
            f"text number {i} " + ("good great" if i % 3 else "bad awful"),
            ("Positive", i % 3 != 0),
            ("Long", i % 2 == 0),
        ))
    return documents


@pytest.fixture
def base_config(tmp_path) -> dict:
    """Complete configuration dictionary pointing into tmp_path."""
    return {
        "dataset": {
            "path": str(tmp_path / "docs.jsonl"),
            "task_config": str(tmp_path / "task.json"),
        },
        "learning_curve": {
            "num_folds": 2,
            "portions": [0.5, 1.0],
            "fold_seed": 7,
            "failure_policy": "abort",
            "n_jobs": 1,
            "backend": "threading",
        },
        "feature_extraction": {
            "lowercase": True,
            "ngram_range": [1, 1],
            "min_count": 1,
        },
        "xgboost": {
            "objective": "binary:logistic",
            "eval_metric": "logloss",
            "tree_method": "hist",
            "max_depth": 2,
            "learning_rate": 0.3,
            "num_boost_round": 10,
            "nthread": 1,
            "seed": 0,
            "suggest_thresholds": False,
        },
        "logging": {
            "level": "INFO",
            "console": False,
            "file": False,
            "file_path": str(tmp_path / "logs" / "run.log"),
        },
        "output": {
            "base_dir": str(tmp_path / "output"),
            "report_name": "report.json",
        },
    }
