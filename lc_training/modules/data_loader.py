"""
Document loader module - reads annotated training documents and task configuration
"""

import json
import os
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from datasets import load_dataset

from lc_training.modules.errors import DocumentSchemaError
from lc_training.modules.types import (
    AlloyTrainer,
    Annotation,
    Document,
    DocumentFactory,
    TaskConfig,
    TrainedModel,
)


def parse_document(raw: Dict[str, Any], position: Optional[int] = None) -> Document:
    """
    Convert one raw JSON training document into a Document.

    Expected shape::

        {"content": "...", "metadata": {...},
         "annotations": [{"label": {"name": "Intent"}, "isPositive": true}]}

    Raises:
        DocumentSchemaError: if the document does not match that shape
    """
    if not isinstance(raw, dict):
        raise DocumentSchemaError(f"expected a JSON object, got {type(raw).__name__}", position)

    content = raw.get('content')
    if not isinstance(content, str):
        raise DocumentSchemaError("'content' must be a string", position)

    annotations = raw.get('annotations')
    if not isinstance(annotations, list):
        raise DocumentSchemaError("'annotations' must be a list", position)

    parsed = []
    for i, entry in enumerate(annotations):
        label = entry.get('label') if isinstance(entry, dict) else None
        name = label.get('name') if isinstance(label, dict) else None
        if not isinstance(name, str):
            raise DocumentSchemaError(f"annotation {i} has no string 'label.name'", position)

        is_positive = entry.get('isPositive')
        if not isinstance(is_positive, bool):
            raise DocumentSchemaError(f"annotation {i} has no boolean 'isPositive'", position)

        parsed.append(Annotation(label=name, is_positive=is_positive))

    return Document(
        content=content,
        annotations=tuple(parsed),
        metadata=raw.get('metadata') or {},
    )


def validate_labels(documents: Iterable[Document], labels: Sequence[str]):
    """
    Check every annotation refers to a label of the task.

    Raises:
        DocumentSchemaError: on the first annotation with an unknown label
    """
    universe = set(labels)
    for position, document in enumerate(documents):
        for annotation in document.annotations:
            if annotation.label not in universe:
                raise DocumentSchemaError(
                    f"annotation label {annotation.label!r} is not in the task labels {sorted(universe)}",
                    position,
                )


def lazy_document_reader(filename: str) -> DocumentFactory:
    """
    Returns a function that reads a newline-delimited JSON file into Documents.

    Every call re-opens the file, so each traversal sees the same documents
    in the same order.
    """
    if not os.path.exists(filename):
        raise FileNotFoundError(f"Training data not found: {filename}")

    def read() -> Iterator[Document]:
        with open(filename, 'r') as f:
            position = 0
            for line in f:
                if not line.strip():
                    continue
                try:
                    raw = json.loads(line)
                except json.JSONDecodeError as e:
                    raise DocumentSchemaError(f"invalid JSON: {e}", position) from e
                yield parse_document(raw, position)
                position += 1

    return read


def read_json_file(filename: str) -> Dict[str, Any]:
    """Reads a file holding exactly one (possibly multi-line) JSON object"""
    if not os.path.exists(filename):
        raise FileNotFoundError(f"File not found: {filename}")

    with open(filename, 'r') as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {filename}")
    return data


def load_task_config(filename: str) -> TaskConfig:
    """Load label and rule configuration from a JSON file"""
    return TaskConfig.from_dict(read_json_file(filename))


class DocumentLoader:
    """Loads annotated documents into memory through Hugging Face datasets"""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize document loader.

        Args:
            config: Configuration dictionary
        """
        self.config = config
        self.dataset_config = config['dataset']

    def load(self) -> DocumentFactory:
        """
        Load and validate documents from the configured path.

        Returns:
            Factory returning a fresh traversal over the loaded documents
        """
        path = self.dataset_config['path']
        if not os.path.exists(path):
            raise FileNotFoundError(f"Dataset not found: {path}")

        dataset = load_dataset('json', data_files=path)['train']
        self._validate_schema(dataset.column_names)

        documents = self._to_documents(dataset)
        return lambda: iter(documents)

    def _validate_schema(self, column_names: List[str]):
        """Validate that dataset has required columns"""
        for column in ('content', 'annotations'):
            if column not in column_names:
                raise DocumentSchemaError(
                    f"Column '{column}' not found in dataset. "
                    f"Available columns: {column_names}"
                )

    def _to_documents(self, dataset) -> List[Document]:
        return [parse_document(row, position) for position, row in enumerate(dataset)]


def train_from_files(
    trainer: AlloyTrainer,
    name: str,
    training_data_file: str,
    task_config_file: str,
    options: Optional[Dict[str, Any]] = None
) -> TrainedModel:
    """
    Trains a model using configuration and data located in local files.

    Args:
        trainer: Trainer to delegate to
        name: A user-friendly name to identify the model
        training_data_file: Newline-delimited JSON training documents
        task_config_file: JSON file containing label and rule configuration
        options: Trainer options, passed through

    Returns:
        The trained model
    """
    task_config = load_task_config(task_config_file)
    docs = lazy_document_reader(training_data_file)
    return trainer.train_alloy(name, docs, task_config, options)
