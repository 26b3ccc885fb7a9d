# repository/knowledge_repository.py
import json
from typing import List, Optional, Sequence
from redis.asyncio import Redis
from redis.exceptions import WatchError
from config.cache import get_redis
from model.knowledge import KnowledgeEntry, merge_entries
from repository.namespaces import FAQ_ENTRIES, FAQ_REVISION
import logging

logger = logging.getLogger(__name__)

APPEND_MAX_ATTEMPTS = 5


def _decode(raw: Optional[bytes]) -> List[KnowledgeEntry]:
    if not raw:
        return []
    data = json.loads(raw)
    out: List[KnowledgeEntry] = []
    for item in data if isinstance(data, list) else []:
        try:
            out.append(KnowledgeEntry.model_validate(item))
        except Exception:
            # Skip malformed entries instead of losing the whole KB
            logger.warning("kb.entry.malformed")
    return out


def _encode(entries: Sequence[KnowledgeEntry]) -> bytes:
    return json.dumps([e.model_dump(mode="json") for e in entries]).encode("utf-8")


class KnowledgeRepository:
    """
    Flow:
    - The whole FAQ list is one JSON document (flat list, no per-entry keys).
    - Ids are unique in what is stored: replace() collapses repeats and
      append() upserts by id.
    - append() is read-modify-write under WATCH, so concurrent writers retry
      instead of overwriting each other.
    - Every write bumps a revision counter; readers poll revision() to learn
      that their cached indices are stale.
    - Read/write failures propagate.
    """

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    async def list_entries(self) -> List[KnowledgeEntry]:
        r = await self._client()
        return _decode(await r.get(FAQ_ENTRIES))

    async def revision(self) -> int:
        r = await self._client()
        v = await r.get(FAQ_REVISION)
        return int(v or 0)

    async def replace(self, entries: Sequence[KnowledgeEntry]) -> int:
        """Overwrite the KB and return the new revision."""
        unique = merge_entries(entries)
        r = await self._client()
        async with r.pipeline(transaction=True) as pipe:
            pipe.set(FAQ_ENTRIES, _encode(unique))
            pipe.incr(FAQ_REVISION)
            _, rev = await pipe.execute()
        logger.info("kb.replace count=%d rev=%s", len(unique), rev)
        return int(rev)

    async def append(self, entries: Sequence[KnowledgeEntry]) -> int:
        """Upsert `entries` into the stored list and return the new revision."""
        r = await self._client()
        async with r.pipeline(transaction=True) as pipe:
            for attempt in range(1, APPEND_MAX_ATTEMPTS + 1):
                try:
                    await pipe.watch(FAQ_ENTRIES)
                    merged = merge_entries(_decode(await pipe.get(FAQ_ENTRIES)), entries)
                    pipe.multi()
                    pipe.set(FAQ_ENTRIES, _encode(merged))
                    pipe.incr(FAQ_REVISION)
                    _, rev = await pipe.execute()
                except WatchError:
                    logger.warning("kb.append.conflict attempt=%d", attempt)
                    continue
                logger.info("kb.append added=%d count=%d rev=%s", len(entries), len(merged), rev)
                return int(rev)
        raise WatchError(f"FAQ entries kept changing; gave up after {APPEND_MAX_ATTEMPTS} attempts")
