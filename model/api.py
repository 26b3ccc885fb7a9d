# model/api.py
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field
from model.knowledge import KnowledgeEntry


class ChatRequest(BaseModel):
    message: str = Field(default="", max_length=4000)
    k: Optional[int] = Field(default=None, ge=1, le=50)


class SourceItem(BaseModel):
    id: str
    title: str
    score: float


class IntentInfo(BaseModel):
    label: str
    score: float
    source: str


class ChatResponse(BaseModel):
    answer: str
    confidence: float
    sources: List[SourceItem] = Field(default_factory=list)
    suggestions: Optional[List[str]] = None
    intent: Optional[IntentInfo] = None


class StreamEvent(BaseModel):
    type: Literal["token", "meta", "done", "error"]
    payload: dict


class FaqListResponse(BaseModel):
    items: List[KnowledgeEntry]


class FaqReplaceRequest(BaseModel):
    items: Any = None


class FaqWriteResponse(BaseModel):
    ok: bool = True
    count: int


class UrlImportRequest(BaseModel):
    url: str = ""


class FeedbackRequest(BaseModel):
    vote: str
    message: str = ""
    answer: str = ""


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    ok: bool
    generationConfigured: bool
    semanticReady: bool
    faqCount: int
    revision: int
