# core/fusion.py
from typing import Dict, List, Optional, Sequence
from core.entities import Candidate
from util.enums import RetrievalMode

LEXICAL_DAMPING = 0.9


def _damped(c: Candidate) -> Candidate:
    return Candidate(
        entry=c.entry, score=min(1.0, c.score * LEXICAL_DAMPING), mode=c.mode
    )


def fuse(
    lexical: Sequence[Candidate],
    semantic: Optional[Sequence[Candidate]],
    k: int,
) -> List[Candidate]:
    """
    Merge both candidate lists into one, deduplicated by entry id.

    Semantic candidates go in first at their own score; lexical ones follow at
    score * 0.9 so keyword overlap can surface entries the embeddings miss but
    cannot outrank a strong semantic hit. Per id the higher score wins.

    `semantic=None` means no semantic retriever exists at all, in which case
    lexical scores are used as-is.
    """
    best: Dict[str, Candidate] = {}

    for c in semantic or ():
        prev = best.get(c.entry.id)
        if prev is None or c.score > prev.score:
            best[c.entry.id] = c

    for c in lexical:
        cand = _damped(c) if semantic is not None else c
        prev = best.get(cand.entry.id)
        if prev is None or cand.score > prev.score:
            best[cand.entry.id] = cand

    # sorted() is stable: equal scores keep first-insertion order
    merged = sorted(best.values(), key=lambda c: c.score, reverse=True)
    return merged[: max(0, k)]


def modes(candidates: Sequence[Candidate]) -> Dict[str, int]:
    out = {m.value: 0 for m in RetrievalMode}
    for c in candidates:
        out[c.mode.value] += 1
    return out
