# core/streaming.py
import json
from contextlib import aclosing
from typing import AsyncIterator, Dict, Final, Optional
from model.api import StreamEvent
from util.enums import StreamKind
from util.types import MetaPayload

LINE_SEP: Final[str] = "\n"
NDJSON_MEDIA_TYPE: Final[str] = "application/x-ndjson"


def ndjson_line(obj: Dict[str, object]) -> bytes:
    return (json.dumps(obj, separators=(",", ":"), ensure_ascii=False) + LINE_SEP).encode("utf-8")


def token_event(text: str) -> StreamEvent:
    return StreamEvent(type=StreamKind.TOKEN.value, payload={"token": text})


def meta_event(payload: MetaPayload) -> StreamEvent:
    return StreamEvent(type=StreamKind.META.value, payload=dict(payload))


def done_event(text: str) -> StreamEvent:
    return StreamEvent(type=StreamKind.DONE.value, payload={"text": text})


def error_event(message: str, detail: Optional[str] = None) -> StreamEvent:
    payload: Dict[str, object] = {"message": message}
    if detail:
        payload["detail"] = detail
    return StreamEvent(type=StreamKind.ERROR.value, payload=payload)


def is_terminal(event: StreamEvent) -> bool:
    return event.type in (StreamKind.DONE.value, StreamKind.ERROR.value)


async def encode_events(events: AsyncIterator[StreamEvent]) -> AsyncIterator[bytes]:
    """One NDJSON line per event: {"type": ..., "payload": {...}}."""
    async with aclosing(events) as stream:
        async for ev in stream:
            yield ndjson_line({"type": ev.type, "payload": ev.payload})
