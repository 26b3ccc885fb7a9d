# service/runtime.py
import asyncio
from dataclasses import dataclass, field
from typing import Optional
from config.settings import settings
from core.answer_pipeline import AnswerPipeline
from core.anthropic_client import AnthropicClient
from core.embeddings_retriever import SemanticRetriever, SentenceEmbedder
from core.intent import IntentClassifier
from core.knowledge_base import KnowledgeBase
from core.llm_confirmer import AdverseConfirmer
from core.safety import AdverseDetector
from repository.audit_repository import AuditRepository
from repository.embedding_repository import EmbeddingRepository
from repository.knowledge_repository import KnowledgeRepository
import logging

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Process-wide components shared by every request (kept on app.state)."""

    knowledge: KnowledgeRepository
    audit: AuditRepository
    kb: KnowledgeBase
    intents: IntentClassifier
    generator: AnthropicClient
    pipeline: AnswerPipeline
    poller: Optional[asyncio.Task] = field(default=None)

    async def start(self) -> None:
        await self.kb.reload()
        self.poller = asyncio.create_task(self.kb.poll(settings.KB_POLL_SECONDS))

    async def stop(self) -> None:
        if self.poller is None:
            return
        self.poller.cancel()
        try:
            await self.poller
        except asyncio.CancelledError:
            pass
        self.poller = None


def build_runtime() -> Runtime:
    knowledge = KnowledgeRepository()
    audit = AuditRepository()
    generator = AnthropicClient()

    semantic = None
    if settings.EMBEDDINGS_ENABLED:
        semantic = SemanticRetriever(SentenceEmbedder(), EmbeddingRepository())
    kb = KnowledgeBase(knowledge, semantic)

    intents = IntentClassifier()
    detector = AdverseDetector.from_settings(confirmer=AdverseConfirmer(generator))
    pipeline = AnswerPipeline(kb, intents, detector, generator, audit)
    logger.info(
        "runtime.ready generation=%s embeddings=%s",
        generator.configured,
        semantic is not None,
    )
    return Runtime(
        knowledge=knowledge,
        audit=audit,
        kb=kb,
        intents=intents,
        generator=generator,
        pipeline=pipeline,
    )
