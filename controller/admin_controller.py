# controller/admin_controller.py
from fastapi import APIRouter, Depends
from core.entities import CallerIdentity
from model.api import FeedbackRequest, HealthResponse, OkResponse
from service.knowledge_service import KnowledgeService
from service.runtime import Runtime
from util.constants import InternalURIs
from controller.controller_dependencies import (
    get_caller,
    get_knowledge_service,
    get_runtime,
)

admin_router = APIRouter()


@admin_router.post(InternalURIs.FEEDBACK, response_model=OkResponse)
async def feedback(
    payload: FeedbackRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> OkResponse:
    await service.record_feedback(payload, caller)
    return OkResponse()


@admin_router.post(InternalURIs.RELOAD_INTENTS, response_model=OkResponse)
async def reload_intents(runtime: Runtime = Depends(get_runtime)) -> OkResponse:
    await runtime.intents.reload()
    return OkResponse()


@admin_router.get(InternalURIs.HEALTH, response_model=HealthResponse)
async def health(
    service: KnowledgeService = Depends(get_knowledge_service),
) -> HealthResponse:
    return service.health()
