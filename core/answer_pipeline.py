# core/answer_pipeline.py
"""
Per-request answer state machine.

    START -> GREETING -> SAFETY_CHECK -> RETRIEVE -> POLICY_CHECK -> GENERATE
      |         |             |                          |             |
      v         v             v                          v             v
    ERROR    GREETING      URGENT                      POLICY      GENERATED
                                                  (or FALLBACK)  (FALLBACK / ERROR)

Every run ends in exactly one terminal state. Event order on the wire is
always: zero or more `token`, exactly one `meta`, exactly one of `done` / `error`.
"""
import re
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple
from config.settings import settings
from core.anthropic_client import is_quota_failure
from core.entities import (
    CallerIdentity,
    Candidate,
    ClassificationResult,
    IntentResult,
    KnowledgeSnapshot,
)
from core.fusion import fuse, modes
from core.intent import IntentClassifier, is_greeting
from core.knowledge_base import KnowledgeBase
from core.lexical_index import query as lexical_query
from core.policy import detects_file_loss, synthesize
from core.safety import AdverseDetector
from core.sanitizer import sanitize_answer, sanitize_token
from core.streaming import done_event, error_event, is_terminal, meta_event, token_event
from model.api import StreamEvent
from util.enums import ErrorMessage
from util.functions import one_line, redact_message
from util.types import MetaPayload
import logging

logger = logging.getLogger(__name__)

GREETING_INTRO = "Hi! I'm your FAQ assistant. What would you like to know?"
DEFAULT_TOPICS = ("Billing", "Account", "Files & Security")
URGENT_TEMPLATE = (
    "This may be an adverse event. Please contact {contact} immediately. "
    "We have logged your report for review. If safe, include details like what "
    "happened, when, and any symptoms."
)
NOT_FOUND = "I couldn't find this in the knowledge base."
NOT_SURE = "I'm not sure based on the knowledge base."
TRY_AGAIN = "Something went wrong while answering. Please try again."
MAX_SOURCES = 3
MAX_SUGGESTIONS = 3
CONTEXT_ENTRIES = 8
URGENT_MIN_CONFIDENCE = 0.8

_SUGGESTION_RE = re.compile(r"\b(delete|deletion|retain|retention|upload|file|files|document)\b", re.I)


class State(str, Enum):
    START = "start"
    GREETING = "greeting"
    SAFETY_CHECK = "safety_check"
    RETRIEVE = "retrieve"
    POLICY_CHECK = "policy_check"
    GENERATE = "generate"
    TERMINAL_GREETING = "terminal_greeting"
    TERMINAL_URGENT = "terminal_urgent"
    TERMINAL_POLICY = "terminal_policy"
    TERMINAL_GENERATED = "terminal_generated"
    TERMINAL_FALLBACK = "terminal_fallback"
    TERMINAL_ERROR = "terminal_error"


TERMINAL_STATES = frozenset(
    {
        State.TERMINAL_GREETING,
        State.TERMINAL_URGENT,
        State.TERMINAL_POLICY,
        State.TERMINAL_GENERATED,
        State.TERMINAL_FALLBACK,
        State.TERMINAL_ERROR,
    }
)


@dataclass
class Turn:
    """Mutable state of one request. Never shared between requests."""

    message: str
    caller: CallerIdentity = field(default_factory=CallerIdentity)
    k: Optional[int] = None
    snapshot: Optional[KnowledgeSnapshot] = None
    intent: IntentResult = field(default_factory=IntentResult.none)
    classification: Optional[ClassificationResult] = None
    candidates: List[Candidate] = field(default_factory=list)
    meta: MetaPayload = field(default_factory=dict)
    meta_sent: bool = False
    answer: str = ""
    error: Optional[Dict[str, str]] = None
    next: Optional[State] = None
    trace: List[State] = field(default_factory=list)

    @property
    def best(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None

    @property
    def state(self) -> Optional[State]:
        return self.trace[-1] if self.trace else None


def build_context(candidates: Sequence[Candidate]) -> str:
    return "\n\n".join(
        f"[#{i}] Title: {c.entry.title}\nQ: {c.entry.question}\nA: {c.entry.answer}"
        for i, c in enumerate(candidates, start=1)
    )


def build_prompt(question: str, candidates: Sequence[Candidate]) -> str:
    return (
        f"Knowledge Base:\n{build_context(candidates)}\n\n"
        f"User question: {question}\n\nFinal helpful answer:"
    )


def greeting_reply(snapshot: KnowledgeSnapshot) -> Tuple[str, List[str]]:
    titles = [e.title for e in snapshot.entries if e.title][:MAX_SUGGESTIONS]
    bullets = "\n".join(f"- {t}" for t in (titles or DEFAULT_TOPICS))
    text = f"{GREETING_INTRO}\n\nHere are some topics you can ask about:\n{bullets}"
    return text, titles


def keyword_suggestions(snapshot: KnowledgeSnapshot) -> List[str]:
    return [
        e.title for e in snapshot.entries if e.title and _SUGGESTION_RE.search(e.title)
    ][:MAX_SUGGESTIONS]


class AnswerPipeline:
    def __init__(
        self,
        kb: KnowledgeBase,
        intents: IntentClassifier,
        detector: AdverseDetector,
        generator,
        audit,
        *,
        top_k: int = settings.DEFAULT_TOP_K,
        min_score: float = settings.GENERATION_MIN_SCORE,
        urgent_contact: str = settings.URGENT_CONTACT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kb = kb
        self._intents = intents
        self._detector = detector
        self._generator = generator
        self._audit = audit
        self._top_k = top_k
        self._min_score = min_score
        self._urgent_contact = urgent_contact
        self._clock = clock
        self._handlers = {
            State.START: self._start,
            State.GREETING: self._greeting,
            State.SAFETY_CHECK: self._safety_check,
            State.RETRIEVE: self._retrieve,
            State.POLICY_CHECK: self._policy_check,
            State.GENERATE: self._generate,
            State.TERMINAL_GREETING: self._finish,
            State.TERMINAL_URGENT: self._finish,
            State.TERMINAL_POLICY: self._finish,
            State.TERMINAL_GENERATED: self._finish,
            State.TERMINAL_FALLBACK: self._fallback,
            State.TERMINAL_ERROR: self._fail,
        }

    @property
    def generation_enabled(self) -> bool:
        return bool(getattr(self._generator, "configured", False))

    async def run(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        state = State.START
        while True:
            turn.trace.append(state)
            turn.next = None
            async with aclosing(self._handlers[state](turn)) as events:
                async for ev in events:
                    if ev.type == "meta":
                        turn.meta_sent = True
                    elif is_terminal(ev) and state not in TERMINAL_STATES:
                        raise RuntimeError(f"state {state.value} emitted {ev.type} before finishing")
                    yield ev
            if state in TERMINAL_STATES:
                logger.info(
                    "chat.terminal state=%s product=%s", state.value, turn.caller.product
                )
                return
            if turn.next is None:
                raise RuntimeError(f"state {state.value} did not choose a successor")
            state = turn.next

    # States

    async def _start(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        turn.message = (turn.message or "").strip()
        turn.snapshot = self._kb.current()
        if not turn.message:
            turn.error = {"message": ErrorMessage.MESSAGE_REQUIRED.value.message}
            turn.next = State.TERMINAL_ERROR
        else:
            turn.next = State.GREETING
        return
        yield

    async def _greeting(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        if not is_greeting(turn.message):
            turn.next = State.SAFETY_CHECK
            return
        turn.answer, titles = greeting_reply(turn.snapshot)
        turn.meta = {
            "confidence": 0,
            "sources": [],
            "suggestions": titles,
            "product": turn.caller.product,
        }
        turn.next = State.TERMINAL_GREETING
        yield token_event(turn.answer)

    async def _safety_check(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        turn.intent = self._intents.classify(turn.message, turn.caller.product)
        logger.info(
            "intent.detected label=%s score=%.2f source=%s product=%s",
            turn.intent.label,
            turn.intent.score,
            turn.intent.source.value,
            turn.caller.product,
        )
        cls = await self._detector.assess(turn.message, turn.intent)
        turn.classification = cls
        if not cls.is_adverse:
            turn.next = State.RETRIEVE
            return
        # Audit failures propagate: the report must not be dropped silently
        await self._audit.record_adverse(
            self._audit_record(turn, confidence=cls.confidence, reason=cls.reason)
        )
        logger.warning("safety.adverse conf=%.2f reason=%s", cls.confidence, cls.reason)
        turn.answer = URGENT_TEMPLATE.format(contact=self._urgent_contact)
        turn.meta = {
            "confidence": max(URGENT_MIN_CONFIDENCE, cls.confidence),
            "sources": [],
            **self._intent_meta(turn),
        }
        turn.next = State.TERMINAL_URGENT
        yield token_event(turn.answer)

    async def _retrieve(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        snap = turn.snapshot
        k = turn.k or self._top_k
        lexical = lexical_query(snap.lexical, snap.entries, turn.message, k)
        semantic = None
        retriever = self._kb.semantic
        if retriever is not None:
            semantic = await retriever.retrieve(snap.semantic, snap.by_id, turn.message, k)
        turn.candidates = fuse(lexical, semantic, k)
        logger.info(
            "retrieval.done k=%d got=%d modes=%s",
            k,
            len(turn.candidates),
            modes(turn.candidates),
        )
        best = turn.best
        turn.meta = {
            "confidence": round(best.score, 3) if best else 0,
            "sources": [
                {"id": c.entry.id, "title": c.entry.title, "score": round(c.score, 3)}
                for c in turn.candidates[:MAX_SOURCES]
            ],
            **self._intent_meta(turn),
        }
        if not turn.meta["sources"]:
            suggestions = keyword_suggestions(snap)
            if suggestions:
                turn.meta["suggestions"] = suggestions
        turn.next = State.POLICY_CHECK
        return
        yield

    async def _policy_check(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        if detects_file_loss(turn.message, turn.intent):
            policy = synthesize(turn.message, turn.candidates)
            if policy:
                turn.answer = sanitize_answer(policy)
                turn.next = State.TERMINAL_POLICY
                yield token_event(turn.answer)
                return
        best = turn.best
        if self.generation_enabled and best is not None and best.score > self._min_score:
            turn.next = State.GENERATE
        else:
            turn.next = State.TERMINAL_FALLBACK

    async def _generate(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        prompt = build_prompt(turn.message, turn.candidates[:CONTEXT_ENTRIES])
        parts: List[str] = []
        try:
            stream = self._generator.generate_stream(settings.ANSWER_SYSTEM_PROMPT, prompt)
            async with aclosing(stream) as fragments:
                async for fragment in fragments:
                    clean = sanitize_token(fragment)
                    if not clean:
                        continue
                    parts.append(clean)
                    yield token_event(clean)
        except Exception as e:
            if not is_quota_failure(e):
                logger.error("ai.stream.error err=%s", type(e).__name__)
                turn.error = {"message": TRY_AGAIN, "detail": type(e).__name__}
                turn.next = State.TERMINAL_ERROR
                return
            logger.warning("ai.stream.quota err=%s", type(e).__name__)
            parts = []

        turn.answer = sanitize_answer("".join(parts))
        if not turn.answer:
            # Quota signal or nothing usable: fall back once to the stored answer
            best = turn.best
            turn.answer = sanitize_answer(best.entry.answer if best else "") or NOT_SURE
            yield token_event(turn.answer)
        turn.next = State.TERMINAL_GENERATED

    # Terminals

    async def _finish(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        yield meta_event(turn.meta)
        yield done_event(turn.answer)

    async def _fallback(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        best = turn.best
        if best is not None and best.score > self._min_score:
            turn.answer = sanitize_answer(best.entry.answer)
        else:
            turn.answer = NOT_FOUND
            await self._audit.record_unanswered(self._audit_record(turn))
            logger.info("chat.unanswered product=%s", turn.caller.product)
        yield token_event(turn.answer)
        yield meta_event(turn.meta)
        yield done_event(turn.answer)

    async def _fail(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        if not turn.meta_sent:
            meta = turn.meta or {"confidence": 0, "sources": []}
            yield meta_event(meta)
        err = turn.error or {"message": TRY_AGAIN}
        yield error_event(err["message"], err.get("detail"))

    # Helpers

    def _intent_meta(self, turn: Turn) -> Dict[str, Any]:
        return {
            "intent": {
                "label": turn.intent.label,
                "score": round(turn.intent.score, 3),
                "source": turn.intent.source.value,
            },
            "product": turn.caller.product,
        }

    def _audit_record(self, turn: Turn, **extra: Any) -> Dict[str, Any]:
        return {
            "ts": int(self._clock() * 1000),
            "ip": turn.caller.ip,
            "userAgent": one_line(turn.caller.user_agent, 200),
            "product": turn.caller.product,
            "message": redact_message(turn.message),
            **extra,
        }
