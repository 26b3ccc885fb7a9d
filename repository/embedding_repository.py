# repository/embedding_repository.py
import json
from typing import Optional
import numpy as np
from redis.asyncio import Redis
from config.cache import get_redis
from core.entities import EmbeddingIndex
from repository.namespaces import EMBEDDINGS


class EmbeddingRepository:
    """
    Persisted {id, vector} snapshot so a restart does not re-embed the KB.
    Stored as one hash: ids/fingerprint/built_at as text, vectors as raw float32 bytes.
    """

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    async def load(self) -> Optional[EmbeddingIndex]:
        r = await self._client()
        h = await r.hgetall(EMBEDDINGS)
        if not h:
            return None

        def _s(key: bytes) -> str:
            v = h.get(key)
            if v is None:
                return ""
            return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)

        try:
            ids = tuple(json.loads(_s(b"ids") or "[]"))
            dim = int(_s(b"dim") or 0)
            raw = h.get(b"vectors") or b""
            vecs = np.frombuffer(raw, dtype=np.float32)
            if dim <= 0 or vecs.size != len(ids) * dim:
                return None
            return EmbeddingIndex(
                ids=ids,
                embeddings=vecs.reshape(len(ids), dim).copy(),
                built_at=float(_s(b"built_at") or 0.0),
                fingerprint=_s(b"fingerprint"),
            )
        except (ValueError, TypeError):
            return None

    async def save(self, index: EmbeddingIndex) -> None:
        r = await self._client()
        mapping = {
            "ids": json.dumps(list(index.ids)),
            "dim": str(index.dimension),
            "built_at": str(index.built_at),
            "fingerprint": index.fingerprint,
            "vectors": np.ascontiguousarray(index.embeddings, dtype=np.float32).tobytes(),
        }
        async with r.pipeline(transaction=True) as pipe:
            pipe.delete(EMBEDDINGS)
            pipe.hset(EMBEDDINGS, mapping=mapping)
            await pipe.execute()
