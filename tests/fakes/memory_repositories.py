# tests/fakes/memory_repositories.py
from typing import Any, Dict, List, Optional, Sequence
from core.entities import EmbeddingIndex
from model.knowledge import KnowledgeEntry, merge_entries


class InMemoryKnowledgeRepository:
    def __init__(self, entries: Sequence[KnowledgeEntry] = ()) -> None:
        self.entries: List[KnowledgeEntry] = list(entries)
        self.rev = 1 if entries else 0

    async def list_entries(self) -> List[KnowledgeEntry]:
        return list(self.entries)

    async def revision(self) -> int:
        return self.rev

    async def replace(self, entries: Sequence[KnowledgeEntry]) -> int:
        self.entries = merge_entries(entries)
        self.rev += 1
        return self.rev

    async def append(self, entries: Sequence[KnowledgeEntry]) -> int:
        return await self.replace(merge_entries(self.entries, entries))


class InMemoryEmbeddingRepository:
    def __init__(self, index: Optional[EmbeddingIndex] = None, broken: bool = False) -> None:
        self.index = index
        self.broken = broken
        self.saves = 0

    async def load(self) -> Optional[EmbeddingIndex]:
        if self.broken:
            raise ConnectionError("redis down")
        return self.index

    async def save(self, index: EmbeddingIndex) -> None:
        if self.broken:
            raise ConnectionError("redis down")
        self.saves += 1
        self.index = index


class InMemoryAuditRepository:
    def __init__(self) -> None:
        self.adverse: List[Dict[str, Any]] = []
        self.unanswered: List[Dict[str, Any]] = []
        self.feedback: List[Dict[str, Any]] = []

    async def record_adverse(self, record: Dict[str, Any]) -> None:
        self.adverse.append(record)

    async def record_unanswered(self, record: Dict[str, Any]) -> None:
        self.unanswered.append(record)

    async def record_feedback(self, record: Dict[str, Any]) -> None:
        self.feedback.append(record)


class FailingAuditRepository(InMemoryAuditRepository):
    async def record_adverse(self, record: Dict[str, Any]) -> None:
        raise ConnectionError("audit store unavailable")
