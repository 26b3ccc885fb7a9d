# service/chat_service.py
import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional
from core.answer_pipeline import AnswerPipeline, Turn
from core.entities import CallerIdentity
from core.streaming import encode_events
from model.api import ChatResponse, IntentInfo, SourceItem, StreamEvent
from util.enums import ErrorMessage, StreamKind
from util.errors import AppError

logger = logging.getLogger(__name__)


async def _prepend(first: StreamEvent, rest: AsyncIterator[StreamEvent]) -> AsyncIterator[StreamEvent]:
    yield first
    async with aclosing(rest) as events:
        async for ev in events:
            yield ev


class ChatService:
    def __init__(self, pipeline: AnswerPipeline) -> None:
        self._pipeline = pipeline

    async def stream(
        self, message: str, caller: CallerIdentity, k: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        """
        NDJSON byte stream for one question.
        The first event is produced before the response starts, so storage
        failures in the safety check surface as a plain HTTP error.
        """
        turn = Turn(message=message, caller=caller, k=k)
        events = self._pipeline.run(turn)
        first = await events.__anext__()
        return encode_events(_prepend(first, events))

    async def answer(
        self, message: str, caller: CallerIdentity, k: Optional[int] = None
    ) -> ChatResponse:
        if not (message or "").strip():
            raise AppError.of(ErrorMessage.MESSAGE_REQUIRED)
        turn = Turn(message=message, caller=caller, k=k)
        meta: dict = {}
        text: Optional[str] = None
        async for ev in self._pipeline.run(turn):
            if ev.type == StreamKind.META.value:
                meta = ev.payload
            elif ev.type == StreamKind.DONE.value:
                text = ev.payload.get("text", "")
            elif ev.type == StreamKind.ERROR.value:
                logger.error("chat.answer.failed detail=%s", ev.payload.get("detail"))
                raise AppError.of(ErrorMessage.ANSWER_FAILED)
        intent = meta.get("intent")
        return ChatResponse(
            answer=text or "",
            confidence=meta.get("confidence", 0),
            sources=[SourceItem(**s) for s in meta.get("sources", [])],
            suggestions=meta.get("suggestions"),
            intent=IntentInfo(**intent) if intent else None,
        )
