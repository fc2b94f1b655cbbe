"""
Core data types shared by the learning curve pipeline
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import numpy as np


@dataclass(frozen=True)
class Annotation:
    """One polarity vote for one label on one document"""
    label: str
    is_positive: bool


@dataclass(frozen=True)
class Document:
    """Annotated training document"""
    content: str
    annotations: Tuple[Annotation, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)


# A callable returning a fresh traversal over the identical document set
DocumentFactory = Callable[[], Iterable[Document]]


@dataclass(frozen=True)
class LabeledExample:
    features: np.ndarray
    label: float


class TaskType(Enum):
    SINGLE = "classification.single"
    MULTIPLE = "classification.multiple"


@dataclass(frozen=True)
class TaskConfig:
    """
    Label and rule configuration for a training task.

    Attributes:
        labels: Label universe, in declaration order
        task_type: Mutually-exclusive (single) or independent (multiple) labels
        uuid_to_label: Label uuid to label name mapping as supplied
        rules: Rule definitions, passed through to the trainer untouched
    """
    labels: Tuple[str, ...]
    task_type: TaskType
    uuid_to_label: Mapping[str, str] = field(default_factory=dict)
    rules: Tuple[Any, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskConfig":
        """Build a task config from its JSON representation"""
        for key in ("uuid_to_label", "task_type"):
            if key not in data:
                raise ValueError(f"Task config is missing '{key}'")

        uuid_to_label = data["uuid_to_label"]
        if not isinstance(uuid_to_label, dict) or not uuid_to_label:
            raise ValueError("Task config 'uuid_to_label' must be a non-empty object")

        try:
            task_type = TaskType(data["task_type"])
        except ValueError:
            raise ValueError(
                f"Unknown task type: {data['task_type']!r}. "
                f"Expected one of {[t.value for t in TaskType]}"
            ) from None

        labels = tuple(dict.fromkeys(str(name) for name in uuid_to_label.values()))
        return cls(
            labels=labels,
            task_type=task_type,
            uuid_to_label=dict(uuid_to_label),
            rules=tuple(data.get("rules", [])),
        )


@dataclass(frozen=True)
class TrainingStream:
    """Nested subsample of a fold's training complement"""
    portion: float
    documents: Tuple[Document, ...]

    def stream(self) -> Iterable[Document]:
        return iter(self.documents)


@dataclass(frozen=True)
class Fold:
    fold: int
    holdout: Tuple[Document, ...]
    training_streams: Tuple[TrainingStream, ...]


@dataclass(frozen=True)
class Classification:
    label: str
    probability: float


class TrainedModel(Protocol):
    """Trained model bound to one (fold, portion)"""

    def predict(self, document: Document) -> List[Classification]:
        ...

    def get_suggested_thresholds(self) -> Mapping[str, float]:
        ...


class AlloyTrainer(Protocol):
    """Single-model trainer consumed by the learning curve pipeline"""

    def train_alloy(
        self,
        name: str,
        docs: DocumentFactory,
        task_config: TaskConfig,
        options: Optional[Dict[str, Any]] = None,
    ) -> TrainedModel:
        ...


@dataclass(frozen=True)
class FoldModels:
    """Trained models of one fold, ordered by portion"""
    fold: Fold
    portion_models: Tuple[Tuple[float, TrainedModel], ...]


@dataclass(frozen=True)
class ResultTuple:
    """Raw outcome for one document, keyed by (fold, portion, label)"""
    label: str
    fold: int
    portion: float
    predicted: bool
    gold: bool


@dataclass(frozen=True)
class UnitFailure:
    """A (fold, portion) training job that did not produce a model"""
    fold: int
    portion: float
    error: str
