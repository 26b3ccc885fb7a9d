# core/lexical_index.py
import math
import re
from collections import Counter
from typing import Dict, List, Mapping, Sequence
from core.entities import Candidate, LexicalIndex, SparseVector
from model.knowledge import KnowledgeEntry
from util.enums import RetrievalMode
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

# Anything that is not a letter, digit, hyphen or whitespace becomes a space.
_STRIP_RE = re.compile(r"[^\w\s-]|_")
_SPLIT_RE = re.compile(r"\s+")

EMPTY_VECTOR = SparseVector(weights={}, norm=0.0)


def tokenize(text: str) -> List[str]:
    cleaned = _STRIP_RE.sub(" ", (text or "").lower())
    return [t for t in _SPLIT_RE.split(cleaned) if t]


def _weigh(counts: Mapping[str, int], idf: Mapping[str, float]) -> SparseVector:
    weights: Dict[str, float] = {}
    norm2 = 0.0
    for term, c in counts.items():
        w = c * idf.get(term, 0.0)
        if w != 0.0:
            weights[term] = w
            norm2 += w * w
    return SparseVector(weights=weights, norm=math.sqrt(norm2))


def build_index(entries: Sequence[KnowledgeEntry]) -> LexicalIndex:
    """
    Augmented TF-IDF over title/question/answer/tags.
      idf(t) = ln((N + 1) / (df(t) + 1)) + 1
      w(t, d) = tf(t, d) * idf(t)
    Pure function of `entries`; the same input always yields the same vectors.
    """
    with timed(logger, "lexical.build", logging.DEBUG, n=len(entries)):
        counts = [Counter(tokenize(e.document_text())) for e in entries]
        df: Counter = Counter()
        for c in counts:
            df.update(c.keys())
        n = len(entries) or 1
        idf = {t: math.log((n + 1) / (dfi + 1)) + 1 for t, dfi in df.items()}
        vectors = tuple(_weigh(c, idf) for c in counts)
    return LexicalIndex(idf=idf, doc_vectors=vectors)


def vectorize_query(text: str, index: LexicalIndex) -> SparseVector:
    # Unknown terms have no idf and contribute nothing.
    return _weigh(Counter(tokenize(text)), index.idf)


def cosine_similarity(a: SparseVector, b: SparseVector) -> float:
    if not a.norm or not b.norm:
        return 0.0
    small, large = (a.weights, b.weights) if len(a.weights) < len(b.weights) else (b.weights, a.weights)
    dot = 0.0
    for term, w in small.items():
        v = large.get(term)
        if v:
            dot += w * v
    return dot / (a.norm * b.norm)


def query(
    index: LexicalIndex,
    entries: Sequence[KnowledgeEntry],
    text: str,
    k: int,
) -> List[Candidate]:
    """
    Top-k entries by cosine similarity, best first; ties keep knowledge-base order.
    Entries with zero similarity are not candidates.
    """
    if not entries or k <= 0:
        return []
    qvec = vectorize_query(text, index)
    if not qvec.norm:
        return []
    scored = []
    for i, entry in enumerate(entries):
        dvec = index.doc_vectors[i] if i < len(index.doc_vectors) else EMPTY_VECTOR
        s = cosine_similarity(qvec, dvec)
        if s > 0.0:
            scored.append((entry, min(1.0, s)))
    scored.sort(key=lambda t: t[1], reverse=True)
    return [
        Candidate(entry=e, score=s, mode=RetrievalMode.LEXICAL) for e, s in scored[:k]
    ]
