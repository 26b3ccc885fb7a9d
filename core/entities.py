# core/entities.py
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple
import numpy as np
from model.knowledge import KnowledgeEntry
from util.enums import IntentSource, RetrievalMode


@dataclass(frozen=True)
class SparseVector:
    """Term -> weight map with its precomputed L2 norm."""

    weights: Mapping[str, float]
    norm: float


@dataclass(frozen=True)
class LexicalIndex:
    """
    TF-IDF index tied to one knowledge snapshot.
    doc_vectors is aligned 1:1 with the snapshot's entries.
    """

    idf: Mapping[str, float]
    doc_vectors: Tuple[SparseVector, ...]


@dataclass(frozen=True)
class EmbeddingIndex:
    """
    L2-normalized embedding matrix for cosine similarity search.
    Row i belongs to ids[i].
    """

    ids: Tuple[str, ...]
    embeddings: np.ndarray  # (n, d) float32
    built_at: float
    fingerprint: str = ""

    @property
    def dimension(self) -> int:
        return int(self.embeddings.shape[1]) if self.embeddings.ndim == 2 else 0

    def __len__(self) -> int:
        return len(self.ids)


@dataclass(frozen=True)
class Candidate:
    entry: KnowledgeEntry
    score: float  # [0, 1]
    mode: RetrievalMode


@dataclass(frozen=True)
class ClassificationResult:
    is_adverse: bool
    confidence: float
    reason: str


@dataclass(frozen=True)
class IntentResult:
    label: str
    score: float
    source: IntentSource

    @classmethod
    def none(cls) -> "IntentResult":
        return cls(label="none", score=0.0, source=IntentSource.RULE)


@dataclass(frozen=True)
class CallerIdentity:
    ip: str = "unknown"
    user_agent: str = ""
    product: str = "default"


@dataclass(frozen=True)
class KnowledgeSnapshot:
    revision: int
    entries: Tuple[KnowledgeEntry, ...]
    lexical: LexicalIndex
    semantic: Optional[EmbeddingIndex] = None
    by_id: Mapping[str, KnowledgeEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)
