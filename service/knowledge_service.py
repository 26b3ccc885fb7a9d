# service/knowledge_service.py
import asyncio
import csv
import io
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse
import httpx
from fastapi import UploadFile
from core.entities import CallerIdentity
from core.knowledge_base import KnowledgeBase
from core.page_text import PageTooLarge, fetch_page_text
from core.pdf_text import extract_text
from model.api import FeedbackRequest, HealthResponse
from model.knowledge import KnowledgeEntry, normalize_items
from repository.audit_repository import AuditRepository
from repository.knowledge_repository import KnowledgeRepository
from util.enums import ErrorMessage
from util.errors import AppError
from util.functions import one_line, redact_message

logger = logging.getLogger(__name__)

VOTES = ("up", "down")


def parse_json_items(raw: str) -> Optional[List[Dict[str, Any]]]:
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        return None
    return [d for d in data if isinstance(d, dict)]


def parse_csv_items(raw: str) -> Optional[List[Dict[str, Any]]]:
    """CSV with a header row: question,answer[,title,tags,id]; tags are '|'-separated."""
    try:
        reader = csv.DictReader(io.StringIO(raw))
        fields = {(f or "").strip().lower() for f in reader.fieldnames or []}
        if not ({"question", "q"} & fields and {"answer", "a"} & fields):
            return None
        rows = []
        for row in reader:
            clean = {
                (k or "").strip().lower(): (v or "").strip()
                for k, v in row.items()
                if isinstance(v, str)
            }
            rows.append(clean)
    except csv.Error:
        return None
    return rows


def parse_import(raw: bytes) -> List[Dict[str, Any]]:
    text = raw.decode("utf-8-sig", errors="replace")
    items = parse_json_items(text)
    if items is None:
        items = parse_csv_items(text)
    if items is None:
        raise AppError.of(ErrorMessage.UNSUPPORTED_IMPORT)
    return items


class KnowledgeService:
    def __init__(
        self,
        repository: KnowledgeRepository,
        kb: KnowledgeBase,
        audit: AuditRepository,
        generator=None,
        page_fetcher: Callable[[str], Awaitable[str]] = fetch_page_text,
    ) -> None:
        self._repository = repository
        self._kb = kb
        self._audit = audit
        self._generator = generator
        self._fetch_page = page_fetcher

    async def list_entries(self) -> List[KnowledgeEntry]:
        return await self._repository.list_entries()

    async def _store(self, entries: List[KnowledgeEntry], append: bool) -> int:
        if append:
            await self._repository.append(entries)
        else:
            await self._repository.replace(entries)
        snapshot = await self._kb.reload()
        return len(snapshot)

    async def replace(self, items: Any) -> int:
        if not isinstance(items, list):
            raise AppError.of(ErrorMessage.ITEMS_NOT_LIST)
        entries = normalize_items([i for i in items if isinstance(i, dict)])
        return await self._store(entries, append=False)

    async def import_file(self, file: UploadFile, append: bool = False) -> int:
        raw = await file.read()
        items = parse_import(raw)
        entries = normalize_items(items, id_prefix="import")
        count = await self._store(entries, append)
        logger.info("kb.import file=%s items=%d append=%s", file.filename, len(entries), append)
        return count

    def _require_generation(self) -> None:
        if self._generator is None or not self._generator.configured:
            raise AppError.of(ErrorMessage.GENERATION_NOT_CONFIGURED)

    async def _extract_and_store(self, text: str, id_prefix: str, append: bool) -> int:
        items = await self._generator.extract_faqs(text)
        if not items:
            raise AppError.of(ErrorMessage.EXTRACTION_FAILED)
        entries = normalize_items(items, id_prefix=id_prefix)
        count = await self._store(entries, append)
        logger.info("kb.import.%s items=%d append=%s", id_prefix, len(entries), append)
        return count

    async def import_pdf(self, file: UploadFile, append: bool = False) -> int:
        self._require_generation()
        raw = await file.read()
        text = await asyncio.to_thread(extract_text, raw)
        if not text:
            raise AppError.of(ErrorMessage.PDF_UNREADABLE)
        return await self._extract_and_store(text, "pdf", append)

    async def import_url(self, url: str, append: bool = False) -> int:
        self._require_generation()
        url = (url or "").strip()
        if not url:
            raise AppError.of(ErrorMessage.URL_REQUIRED)
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise AppError.of(ErrorMessage.URL_INVALID)
        try:
            text = await self._fetch_page(url)
        except PageTooLarge:
            raise AppError.of(ErrorMessage.URL_TOO_LARGE)
        except httpx.HTTPError as e:
            logger.warning("kb.import.url.fetch_failed host=%s err=%s", parsed.netloc, type(e).__name__)
            raise AppError.of(ErrorMessage.URL_FETCH_FAILED)
        if not text.strip():
            raise AppError.of(ErrorMessage.URL_UNREADABLE)
        return await self._extract_and_store(text, "url", append)

    async def record_feedback(self, payload: FeedbackRequest, caller: CallerIdentity) -> None:
        vote = (payload.vote or "").strip().lower()
        if vote not in VOTES:
            raise AppError.of(ErrorMessage.INVALID_VOTE)
        await self._audit.record_feedback(
            {
                "ts": int(time.time() * 1000),
                "vote": vote,
                "product": caller.product,
                "message": redact_message(payload.message, max_chars=2000),
                "answer": one_line(payload.answer, 4000),
            }
        )
        logger.info("feedback.recorded vote=%s product=%s", vote, caller.product)

    def health(self) -> HealthResponse:
        snap = self._kb.current()
        return HealthResponse(
            ok=True,
            generationConfigured=bool(self._generator is not None and self._generator.configured),
            semanticReady=snap.semantic is not None,
            faqCount=len(snap),
            revision=max(0, snap.revision),
        )
