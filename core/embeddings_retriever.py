# core/embeddings_retriever.py
import asyncio
import hashlib
import time
from functools import lru_cache
from typing import List, Mapping, Optional, Protocol, Sequence
import numpy as np
from sentence_transformers import SentenceTransformer
from config.settings import settings
from core.entities import Candidate, EmbeddingIndex
from model.knowledge import KnowledgeEntry
from util.enums import RetrievalMode
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def encode(self, texts: Sequence[str]) -> np.ndarray: ...


@lru_cache(maxsize=1)
def _load_model(name: str) -> SentenceTransformer:
    """
    Lazy-load the sentence embedding model.

    Model is kept CPU-friendly; adjust in settings if you want a larger model.
    """
    with timed(logger, "embed.model.load", model=name):
        model = SentenceTransformer(name, device="cpu")
    return model


class SentenceEmbedder:
    """Local sentence-transformers model producing L2-normalized float32 vectors."""

    def __init__(self, model_name: str = settings.EMBEDDING_MODEL_NAME) -> None:
        self._model_name = model_name

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        model = _load_model(self._model_name)
        vecs = model.encode(
            list(texts),
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return np.asarray(vecs, dtype=np.float32)


def entry_text(entry: KnowledgeEntry) -> str:
    return "\n".join([entry.title, entry.question, entry.answer, " ".join(entry.tags)])


def fingerprint(entries: Sequence[KnowledgeEntry]) -> str:
    h = hashlib.sha256()
    for e in entries:
        h.update(e.id.encode("utf-8"))
        h.update(b"\x1e")
        h.update(entry_text(e).encode("utf-8"))
        h.update(b"\x1f")
    return h.hexdigest()


def _valid(vecs: Optional[np.ndarray], rows: int) -> bool:
    return (
        vecs is not None
        and vecs.ndim == 2
        and vecs.shape[0] == rows
        and vecs.shape[1] > 0
        and bool(np.isfinite(vecs).all())
    )


def _l2_normalize(vecs: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vecs, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (vecs / norms).astype(np.float32, copy=False)


class SemanticRetriever:
    """
    Cosine top-k over entry embeddings.

    The embedding index is an immutable value: sync() returns either the
    persisted index (when it still matches the live entries) or a freshly
    rebuilt one; callers keep it inside their knowledge snapshot.
    Any embedding failure degrades to "no semantic candidates".
    """

    def __init__(
        self,
        embedder: Embedder,
        repository,
        batch_size: int = settings.EMBED_BATCH_SIZE,
        timeout: float = settings.EMBED_TIMEOUT_SECONDS,
    ) -> None:
        self._embedder = embedder
        self._repository = repository
        self._batch_size = max(1, batch_size)
        self._timeout = timeout

    async def _encode(self, texts: Sequence[str]) -> Optional[np.ndarray]:
        try:
            vecs = await asyncio.wait_for(
                asyncio.to_thread(self._embedder.encode, list(texts)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("embed.timeout n=%d", len(texts))
            return None
        except Exception as e:
            logger.warning("embed.error err=%s", type(e).__name__)
            return None
        vecs = np.asarray(vecs, dtype=np.float32) if vecs is not None else None
        return vecs if _valid(vecs, len(texts)) else None

    async def embed(self, text: str) -> Optional[np.ndarray]:
        vecs = await self._encode([text])
        return None if vecs is None else vecs[0]

    async def embed_batch(self, texts: Sequence[str]) -> Optional[np.ndarray]:
        parts: List[np.ndarray] = []
        for i in range(0, len(texts), self._batch_size):
            chunk = await self._encode(texts[i : i + self._batch_size])
            if chunk is None:
                return None
            parts.append(chunk)
        if not parts:
            return None
        if len({p.shape[1] for p in parts}) != 1:
            return None
        return np.vstack(parts)

    async def build(self, entries: Sequence[KnowledgeEntry]) -> Optional[EmbeddingIndex]:
        if not entries:
            return None
        with timed(logger, "embed.index.build", n=len(entries), batch=self._batch_size):
            vecs = await self.embed_batch([entry_text(e) for e in entries])
        if vecs is None:
            logger.warning("embed.index.build.failed n=%d", len(entries))
            return None
        index = EmbeddingIndex(
            ids=tuple(e.id for e in entries),
            embeddings=_l2_normalize(vecs),
            built_at=time.time(),
            fingerprint=fingerprint(entries),
        )
        try:
            await self._repository.save(index)
        except Exception as e:
            logger.warning("embed.index.persist.error err=%s", type(e).__name__)
        logger.info("embed.index n=%d d=%d", len(index), index.dimension)
        return index

    async def sync(
        self,
        entries: Sequence[KnowledgeEntry],
        current: Optional[EmbeddingIndex] = None,
    ) -> Optional[EmbeddingIndex]:
        """
        Return an index matching `entries`, rebuilding fully when the vector count,
        the id set or the content fingerprint differ from what is held/persisted.
        """
        if not entries:
            return None
        fp = fingerprint(entries)
        if current is not None and current.fingerprint == fp and len(current) == len(entries):
            return current
        try:
            persisted = await self._repository.load()
        except Exception as e:
            logger.warning("embed.index.load.error err=%s", type(e).__name__)
            persisted = None
        if (
            persisted is not None
            and len(persisted) == len(entries)
            and persisted.fingerprint == fp
        ):
            logger.info("embed.index.reuse n=%d", len(persisted))
            return persisted
        return await self.build(entries)

    async def retrieve(
        self,
        index: Optional[EmbeddingIndex],
        by_id: Mapping[str, KnowledgeEntry],
        query: str,
        k: int,
    ) -> List[Candidate]:
        if index is None or not len(index) or k <= 0:
            return []
        with timed(logger, "embed.query", k=k):
            q = await self.embed(query)
            if q is None or q.shape[0] != index.dimension:
                return []
            qn = float(np.linalg.norm(q))
            if not qn:
                return []
            sims = (index.embeddings @ (q / qn)).astype(float)
        # Stable sort on -score keeps insertion order for ties
        order = sorted(range(len(index.ids)), key=lambda i: -sims[i])
        out: List[Candidate] = []
        for i in order:
            entry = by_id.get(index.ids[i])
            if entry is None:
                continue
            out.append(
                Candidate(
                    entry=entry,
                    score=max(0.0, min(1.0, float(sims[i]))),
                    mode=RetrievalMode.SEMANTIC,
                )
            )
            if len(out) >= k:
                break
        logger.info("embed.topk k=%d", len(out))
        return out
