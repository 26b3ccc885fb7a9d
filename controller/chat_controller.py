# controller/chat_controller.py
from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from core.entities import CallerIdentity
from core.streaming import NDJSON_MEDIA_TYPE
from model.api import ChatRequest, ChatResponse
from service.chat_service import ChatService
from util.constants import InternalURIs
from controller.controller_dependencies import get_caller, get_chat_service

chat_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


@chat_router.post(
    InternalURIs.CHAT,
    response_model=ChatResponse,
    status_code=status.HTTP_200_OK,
)
async def chat(
    payload: ChatRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    return await service.answer(payload.message, caller, payload.k)


@chat_router.post(InternalURIs.CHAT_STREAM)
async def chat_stream(
    payload: ChatRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: ChatService = Depends(get_chat_service),
):
    generator = await service.stream(payload.message, caller, payload.k)
    return StreamingResponse(generator, media_type=NDJSON_MEDIA_TYPE)
