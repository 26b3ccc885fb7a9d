# util/types.py
from typing import List, Literal, TypedDict


# Flow: Narrow types for NDJSON stream payloads.
EventType = Literal["token", "meta", "done", "error"]


class TokenPayload(TypedDict):
    token: str


class SourcePayload(TypedDict):
    id: str
    title: str
    score: float


class IntentPayload(TypedDict):
    label: str
    score: float
    source: str


class MetaPayload(TypedDict, total=False):
    confidence: float
    sources: List[SourcePayload]
    suggestions: List[str]
    intent: IntentPayload
    product: str


class DonePayload(TypedDict):
    text: str


class ErrorPayload(TypedDict, total=False):
    message: str
    detail: str
