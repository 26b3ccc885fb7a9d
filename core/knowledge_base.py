# core/knowledge_base.py
import asyncio
from typing import Optional, Sequence
from core.embeddings_retriever import SemanticRetriever
from core.entities import KnowledgeSnapshot
from core.lexical_index import build_index
from model.knowledge import KnowledgeEntry
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


def make_snapshot(
    revision: int, entries: Sequence[KnowledgeEntry], semantic=None
) -> KnowledgeSnapshot:
    entries = tuple(entries)
    return KnowledgeSnapshot(
        revision=revision,
        entries=entries,
        lexical=build_index(entries),
        semantic=semantic,
        by_id={e.id: e for e in entries},
    )


EMPTY_SNAPSHOT = make_snapshot(-1, ())


class KnowledgeBase:
    """
    Holder of the active KnowledgeSnapshot.

    Readers call current() once per request and keep that snapshot for the
    whole request. reload() builds a complete new snapshot under a lock and
    only then replaces the reference, so a half-built index is never visible.
    """

    def __init__(self, repository, semantic: Optional[SemanticRetriever] = None) -> None:
        self._repository = repository
        self._semantic = semantic
        self._snapshot: KnowledgeSnapshot = EMPTY_SNAPSHOT
        self._lock = asyncio.Lock()

    @property
    def semantic(self) -> Optional[SemanticRetriever]:
        return self._semantic

    def current(self) -> KnowledgeSnapshot:
        return self._snapshot

    async def reload(self) -> KnowledgeSnapshot:
        async with self._lock:
            revision = await self._repository.revision()
            entries = tuple(await self._repository.list_entries())
            with timed(logger, "kb.rebuild", n=len(entries), rev=revision):
                lexical = await asyncio.to_thread(build_index, entries)
                embeddings = None
                if self._semantic is not None:
                    embeddings = await self._semantic.sync(entries, self._snapshot.semantic)
            self._snapshot = KnowledgeSnapshot(
                revision=revision,
                entries=entries,
                lexical=lexical,
                semantic=embeddings,
                by_id={e.id: e for e in entries},
            )
            logger.info(
                "kb.swap rev=%d n=%d semantic=%s",
                revision,
                len(entries),
                embeddings is not None,
            )
            return self._snapshot

    async def refresh_if_stale(self) -> bool:
        revision = await self._repository.revision()
        if revision == self._snapshot.revision:
            return False
        await self.reload()
        return True

    async def poll(self, interval: float) -> None:
        """Run until cancelled; storage errors are logged and retried next tick."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_if_stale()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("kb.poll.error", exc_info=True)
