# model/knowledge.py
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class KnowledgeEntry(BaseModel):
    """One FAQ entry. Immutable once loaded into a snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    question: str = ""
    answer: str = ""
    tags: Tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> Tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            return tuple(t.strip() for t in v.split("|") if t.strip())
        return tuple(str(t) for t in v if str(t).strip())

    def document_text(self) -> str:
        return f"{self.title} \n {self.question} \n {self.answer} \n {' '.join(self.tags)}"


def normalize_items(
    items: Iterable[Mapping[str, Any]], id_prefix: Optional[str] = None
) -> List[KnowledgeEntry]:
    """
    Fill in missing ids/titles the way the admin import does:
      - id: given id, else position (1-based) or "<prefix>-<i>" for imports
      - title: given title, else first 60 chars of the question, else "FAQ n"
    """
    stamp = str(int(time.time() * 1000))
    out: List[KnowledgeEntry] = []
    for i, raw in enumerate(items):
        question = str(raw.get("question") or raw.get("q") or "")
        answer = str(raw.get("answer") or raw.get("a") or "")
        entry_id = raw.get("id")
        if entry_id in (None, ""):
            entry_id = f"{stamp}-{id_prefix}-{i}" if id_prefix else str(i + 1)
        title = raw.get("title") or (question[:60] if question else f"FAQ {i + 1}")
        out.append(
            KnowledgeEntry(
                id=str(entry_id),
                title=str(title),
                question=question,
                answer=answer,
                tags=raw.get("tags") or (),
            )
        )
    return out


def merge_entries(
    current: Iterable[KnowledgeEntry], incoming: Iterable[KnowledgeEntry] = ()
) -> List[KnowledgeEntry]:
    """
    Upsert by id. An incoming entry replaces the held one in its original
    position; unseen ids are appended in arrival order. Repeated ids inside
    one batch collapse the same way, the last one winning.
    """
    merged: Dict[str, KnowledgeEntry] = {}
    for entry in (*current, *incoming):
        merged[entry.id] = entry
    return list(merged.values())
