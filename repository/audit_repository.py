# repository/audit_repository.py
import json
from typing import Any, Dict
from redis.asyncio import Redis
from config.cache import get_redis
from repository.namespaces import ADVERSE_LOG, FEEDBACK_LOG, UNANSWERED_LOG


class AuditRepository:
    """
    Append-only logs (RPUSH, never trimmed here):
      - adverse: every positive adverse-event determination
      - unanswered: queries the KB could not resolve
      - feedback: thumbs up/down on answers
    Write errors propagate to the caller.
    """

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    async def _push(self, key: str, record: Dict[str, Any]) -> None:
        r = await self._client()
        await r.rpush(key, json.dumps(record, ensure_ascii=False).encode("utf-8"))

    async def record_adverse(self, record: Dict[str, Any]) -> None:
        await self._push(ADVERSE_LOG, record)

    async def record_unanswered(self, record: Dict[str, Any]) -> None:
        await self._push(UNANSWERED_LOG, record)

    async def record_feedback(self, record: Dict[str, Any]) -> None:
        await self._push(FEEDBACK_LOG, record)
