# controller/knowledge_controller.py
from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from model.api import FaqListResponse, FaqReplaceRequest, FaqWriteResponse, UrlImportRequest
from service.knowledge_service import KnowledgeService
from util.constants import InternalURIs
from controller.controller_dependencies import (
    enforce_max_upload_size,
    get_knowledge_service,
)

knowledge_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


@knowledge_router.get(InternalURIs.FAQ, response_model=FaqListResponse)
async def list_faq(
    service: KnowledgeService = Depends(get_knowledge_service),
) -> FaqListResponse:
    return FaqListResponse(items=await service.list_entries())


@knowledge_router.post(InternalURIs.FAQ, response_model=FaqWriteResponse)
async def replace_faq(
    payload: FaqReplaceRequest,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> FaqWriteResponse:
    return FaqWriteResponse(count=await service.replace(payload.items))


@knowledge_router.post(
    InternalURIs.FAQ_IMPORT,
    response_model=FaqWriteResponse,
    dependencies=[Depends(enforce_max_upload_size)],
)
async def import_faq(
    file: UploadFile = File(...),
    append: bool = Query(default=False),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> FaqWriteResponse:
    return FaqWriteResponse(count=await service.import_file(file, append))


@knowledge_router.post(
    InternalURIs.FAQ_IMPORT_PDF,
    response_model=FaqWriteResponse,
    dependencies=[Depends(enforce_max_upload_size)],
)
async def import_faq_pdf(
    file: UploadFile = File(...),
    append: bool = Query(default=False),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> FaqWriteResponse:
    return FaqWriteResponse(count=await service.import_pdf(file, append))


@knowledge_router.post(InternalURIs.FAQ_IMPORT_URL, response_model=FaqWriteResponse)
async def import_faq_url(
    payload: UrlImportRequest,
    append: bool = Query(default=False),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> FaqWriteResponse:
    return FaqWriteResponse(count=await service.import_url(payload.url, append))
