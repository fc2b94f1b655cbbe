"""
Feature extractor - two-phase bag-of-ngrams feature pipeline

A FeaturePipeline only knows how to build a vocabulary. Priming it over the
full document set returns a PrimedFeaturePipeline, which only knows how to
encode. Encoding before priming is therefore impossible by construction.
"""

from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import numpy as np
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.preprocessing import normalize

from lc_training.modules.types import Document

# Single-character words are kept as terms
TOKEN_PATTERN = r"(?u)\b\w+\b"


class FeaturePipeline:
    """Vocabulary builder; call prime() to obtain an encoder"""

    def __init__(self, lowercase: bool = True, ngram_range: Tuple[int, int] = (1, 1), min_count: int = 1):
        if ngram_range[0] < 1 or ngram_range[0] > ngram_range[1]:
            raise ValueError(f"Invalid ngram_range: {ngram_range}")
        if min_count < 1:
            raise ValueError(f"min_count must be >= 1, got {min_count}")

        self.lowercase = lowercase
        self.ngram_range = tuple(ngram_range)
        self.min_count = min_count

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "FeaturePipeline":
        feature_config = config['feature_extraction']
        return cls(
            lowercase=feature_config.get('lowercase', True),
            ngram_range=tuple(feature_config.get('ngram_range', (1, 1))),
            min_count=feature_config.get('min_count', 1),
        )

    def vectorizer(self, vocabulary: Optional[Mapping[str, int]] = None) -> CountVectorizer:
        """Count vectorizer with this pipeline's tokenization settings"""
        return CountVectorizer(
            lowercase=self.lowercase,
            ngram_range=self.ngram_range,
            token_pattern=TOKEN_PATTERN,
            vocabulary=vocabulary,
            dtype=np.float32,
        )

    def prime(self, documents: Iterable[Document]) -> "PrimedFeaturePipeline":
        """
        Index every term of every document, fixing the feature dimension.

        Terms occurring fewer than ``min_count`` times in total are dropped.

        Args:
            documents: One full traversal of the training documents

        Returns:
            Encoder over the finalized vocabulary
        """
        contents = [document.content for document in documents]
        vectorizer = self.vectorizer()
        try:
            counts = vectorizer.fit_transform(contents)
        except ValueError:
            # No document contains a single term
            return PrimedFeaturePipeline(self, {})

        totals = np.asarray(counts.sum(axis=0)).ravel()
        terms = vectorizer.get_feature_names_out()[totals >= self.min_count]
        return PrimedFeaturePipeline(self, {str(term): index for index, term in enumerate(terms)})


class PrimedFeaturePipeline:
    """Encoder over a fixed vocabulary"""

    def __init__(self, pipeline: FeaturePipeline, vocabulary: Dict[str, int]):
        self._vocabulary = MappingProxyType(dict(vocabulary))
        self._vectorizer = pipeline.vectorizer(dict(vocabulary)) if vocabulary else None

    @property
    def vocabulary(self) -> Mapping[str, int]:
        return self._vocabulary

    @property
    def dimension(self) -> int:
        return len(self._vocabulary)

    def encode_many(self, documents: Iterable[Document]) -> np.ndarray:
        """
        L2-normalized term counts, one row per document.

        Terms outside the vocabulary are ignored; a document without known
        terms encodes to a zero row.
        """
        contents = [document.content for document in documents]
        if self._vectorizer is None or not contents:
            return np.zeros((len(contents), self.dimension), dtype=np.float32)

        counts = self._vectorizer.transform(contents)
        return normalize(counts, norm='l2').toarray().astype(np.float32)

    def encode(self, document: Document) -> np.ndarray:
        return self.encode_many([document])[0]

    def __call__(self, document: Document) -> np.ndarray:
        return self.encode(document)
