# controller/controller_dependencies.py
from fastapi import File, HTTPException, Request, UploadFile
from config.settings import settings
from core.entities import CallerIdentity
from service.chat_service import ChatService
from service.knowledge_service import KnowledgeService
from service.runtime import Runtime
from util.constants import DEFAULT_PRODUCT, Headers


def client_ip(request: Request) -> str:
    if settings.TRUST_PROXY:
        fwd = request.headers.get(Headers.FORWARDED_FOR)
        if fwd:
            return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_chat_service(request: Request) -> ChatService:
    return ChatService(get_runtime(request).pipeline)


def get_knowledge_service(request: Request) -> KnowledgeService:
    rt = get_runtime(request)
    return KnowledgeService(rt.knowledge, rt.kb, rt.audit, rt.generator)


def get_product(request: Request) -> str:
    product = request.headers.get(Headers.PRODUCT) or request.query_params.get("product")
    return (product or DEFAULT_PRODUCT).strip() or DEFAULT_PRODUCT


def get_caller(request: Request) -> CallerIdentity:
    return CallerIdentity(
        ip=client_ip(request),
        user_agent=request.headers.get(Headers.USER_AGENT, ""),
        product=get_product(request),
    )


def _too_large() -> HTTPException:
    # JSON envelope for 413
    return HTTPException(
        status_code=413,
        detail={
            "ok": False,
            "error": "file_too_large",
            "maxMb": settings.MAX_FILE_MB,
        },
    )


async def enforce_max_upload_size(
    request: Request, file: UploadFile = File(...)
) -> UploadFile:
    max_bytes = settings.MAX_FILE_MB * 1024 * 1024
    # Fast pre-check via Content-Length if present
    cl = request.headers.get("content-length")
    if cl and cl.isdigit() and int(cl) > max_bytes:
        raise _too_large()

    # Hard cap while reading (works even without Content-Length)
    blob = await file.read(max_bytes + 1)
    if len(blob) > max_bytes:
        raise _too_large()

    # Reset so downstream can re-read the file stream
    await file.seek(0)
    return file
