# tests/test_answer_pipeline.py
import pytest
from core.answer_pipeline import (
    GREETING_INTRO,
    NOT_FOUND,
    TRY_AGAIN,
    AnswerPipeline,
    State,
    TERMINAL_STATES,
    Turn,
)
from core.entities import CallerIdentity
from core.intent import IntentClassifier
from core.knowledge_base import KnowledgeBase
from core.safety import AdverseDetector
from core.streaming import done_event, is_terminal
from util.errors import GenerationQuotaError
from fakes.fake_services import FakeGenerator
from fakes.memory_repositories import (
    FailingAuditRepository,
    InMemoryAuditRepository,
    InMemoryKnowledgeRepository,
)

CONTACT = "555-0100"


async def _pipeline(entries=(), generator=None, audit=None):
    kb = KnowledgeBase(InMemoryKnowledgeRepository(entries))
    await kb.reload()
    generator = generator or FakeGenerator(configured=False)
    audit = audit or InMemoryAuditRepository()
    pipeline = AnswerPipeline(
        kb,
        IntentClassifier(trained=False),
        AdverseDetector(),
        generator,
        audit,
        top_k=8,
        min_score=0.05,
        urgent_contact=CONTACT,
    )
    return pipeline, generator, audit


async def _run(pipeline, message, product="default"):
    turn = Turn(
        message=message,
        caller=CallerIdentity(ip="10.0.0.1", user_agent="pytest-agent", product=product),
    )
    events = [ev async for ev in pipeline.run(turn)]
    return turn, events


def _assert_protocol(turn, events):
    kinds = [e.type for e in events]
    assert kinds.count("meta") == 1
    assert sum(1 for e in events if is_terminal(e)) == 1
    assert is_terminal(events[-1])
    assert kinds[-2] == "meta"
    assert set(kinds[:-2]) <= {"token"}
    assert turn.state in TERMINAL_STATES
    assert sum(1 for s in turn.trace if s in TERMINAL_STATES) == 1


def _tokens(events):
    return [e.payload["token"] for e in events if e.type == "token"]


def _meta(events):
    return next(e.payload for e in events if e.type == "meta")


@pytest.mark.asyncio
async def test_empty_kb_is_not_found_and_logged_once():
    pipeline, _, audit = await _pipeline()
    turn, events = await _run(pipeline, "How do I reset my password?")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_FALLBACK
    assert turn.candidates == []
    assert events[-1].payload == {"text": NOT_FOUND}
    assert len(audit.unanswered) == 1
    record = audit.unanswered[0]
    assert record["ip"] == "10.0.0.1"
    assert record["userAgent"] == "pytest-agent"
    assert record["message"] == "How do I reset my password?"
    assert audit.adverse == []


@pytest.mark.asyncio
async def test_allergic_reaction_goes_urgent_without_retrieval(faq_entries):
    gen = FakeGenerator(fragments=["should not be used"])
    pipeline, _, audit = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "I think I might have had an allergic reaction")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_URGENT
    assert State.RETRIEVE not in turn.trace
    assert gen.stream_calls == 0
    assert len(audit.adverse) == 1
    assert audit.adverse[0]["reason"] == "heuristic"
    text = events[-1].payload["text"]
    assert CONTACT in text and text.startswith("This may be an adverse event.")
    meta = _meta(events)
    assert meta["sources"] == []
    assert meta["confidence"] >= 0.8


@pytest.mark.asyncio
async def test_crisis_rule_intent_is_urgent():
    pipeline, _, audit = await _pipeline()
    turn, events = await _run(pipeline, "sometimes I want to die honestly")
    assert turn.state is State.TERMINAL_URGENT
    assert audit.adverse[0]["reason"] == "self_harm"
    assert _meta(events)["intent"]["label"] == "self_harm"


@pytest.mark.asyncio
async def test_audit_failure_propagates():
    pipeline, _, _ = await _pipeline(audit=FailingAuditRepository())
    with pytest.raises(ConnectionError):
        await _run(pipeline, "Severe allergic reaction and rash")


@pytest.mark.asyncio
async def test_greeting_lists_kb_titles(faq_entries):
    pipeline, _, _ = await _pipeline(faq_entries)
    turn, events = await _run(pipeline, "hello!")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_GREETING
    text = events[-1].payload["text"]
    assert text.startswith(GREETING_INTRO)
    assert "- Reset password\n- File retention\n- Billing cycle" in text
    assert _meta(events)["suggestions"] == ["Reset password", "File retention", "Billing cycle"]


@pytest.mark.asyncio
async def test_greeting_on_empty_kb_uses_default_topics():
    pipeline, _, _ = await _pipeline()
    _, events = await _run(pipeline, "hey")
    assert events[-1].payload["text"].endswith("- Billing\n- Account\n- Files & Security")


@pytest.mark.asyncio
async def test_empty_message_is_meta_then_error():
    pipeline, _, _ = await _pipeline()
    turn, events = await _run(pipeline, "   ")
    _assert_protocol(turn, events)
    assert turn.trace == [State.START, State.TERMINAL_ERROR]
    assert [e.type for e in events] == ["meta", "error"]
    assert events[-1].payload["message"] == "message is required"


@pytest.mark.asyncio
async def test_generated_answer_streams_sanitized_tokens(faq_entries):
    gen = FakeGenerator(fragments=["Open Settings", " [1]", " and click Reset."])
    pipeline, _, audit = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "How do I reset my password?")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_GENERATED
    assert _tokens(events) == ["Open Settings", " and click Reset."]
    assert events[-1].payload["text"] == "Open Settings and click Reset."
    meta = _meta(events)
    assert meta["sources"][0]["id"] == "1"
    assert len(meta["sources"]) <= 3
    assert meta["confidence"] == meta["sources"][0]["score"]
    assert meta["product"] == "default"
    assert "[#1] Title: Reset password" in gen.prompts[0]
    assert gen.prompts[0].endswith("User question: How do I reset my password?\n\nFinal helpful answer:")
    assert gen.closed is True
    assert audit.unanswered == []


@pytest.mark.asyncio
async def test_quota_error_falls_back_to_best_answer(faq_entries):
    gen = FakeGenerator(error=GenerationQuotaError("status 429"))
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "How do I reset my password?")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_GENERATED
    expected = faq_entries[0].answer
    assert events[-1].payload == {"text": expected}
    assert _tokens(events) == [expected]


@pytest.mark.asyncio
async def test_empty_generation_degrades_to_best_answer(faq_entries):
    gen = FakeGenerator(fragments=["[1]", " "])
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    _, events = await _run(pipeline, "How do I reset my password?")
    assert events[-1].payload["text"] == faq_entries[0].answer


@pytest.mark.asyncio
async def test_other_generation_failure_is_single_error_event(faq_entries):
    gen = FakeGenerator(fragments=["Open"], error=ValueError("boom"))
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "How do I reset my password?")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_ERROR
    assert [e.type for e in events] == ["token", "meta", "error"]
    assert events[-1].payload == {"message": TRY_AGAIN, "detail": "ValueError"}
    assert gen.stream_calls == 1


@pytest.mark.asyncio
async def test_file_recovery_gets_policy_answer_without_generation(faq_entries):
    gen = FakeGenerator(fragments=["generated"])
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "Can I recover a file I removed?")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_POLICY
    assert turn.intent.label == "file_recovery"
    text = events[-1].payload["text"]
    assert "Files are retained for up to 7 days for download." in text
    assert "Once deleted, files cannot be recovered." in text
    assert gen.stream_calls == 0


@pytest.mark.asyncio
async def test_without_generation_best_answer_is_returned(faq_entries):
    pipeline, _, audit = await _pipeline(faq_entries)
    turn, events = await _run(pipeline, "When am I billed for the invoice?")
    _assert_protocol(turn, events)
    assert turn.state is State.TERMINAL_FALLBACK
    assert events[-1].payload["text"] == faq_entries[2].answer
    assert audit.unanswered == []


@pytest.mark.asyncio
async def test_no_sources_suggests_file_titles(faq_entries):
    pipeline, _, audit = await _pipeline(faq_entries)
    _, events = await _run(pipeline, "quantum zebra migration patterns")
    meta = _meta(events)
    assert meta["sources"] == []
    assert meta["confidence"] == 0
    assert meta["suggestions"] == ["File retention"]
    assert events[-1].payload["text"] == NOT_FOUND
    assert len(audit.unanswered) == 1


@pytest.mark.asyncio
async def test_closing_the_stream_closes_generation(faq_entries):
    gen = FakeGenerator(fragments=["one", " two", " three"])
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    turn = Turn(message="How do I reset my password?")
    agen = pipeline.run(turn)
    first = await agen.__anext__()
    assert first.payload == {"token": "one"}
    await agen.aclose()
    assert gen.closed is True


@pytest.mark.asyncio
async def test_separator_fragments_keep_spacing_and_paragraphs(faq_entries):
    fragments = ["Open", " ", "Settings", ".", "\n\n", "Then", " ", "click", " ", "Reset", "."]
    gen = FakeGenerator(fragments=fragments)
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "How do I reset my password?")
    _assert_protocol(turn, events)
    assert _tokens(events) == fragments
    assert events[-1].payload["text"] == "Open Settings.\n\nThen click Reset."


@pytest.mark.asyncio
async def test_quota_after_partial_stream_appends_stored_answer(faq_entries):
    gen = FakeGenerator(fragments=["Open", " Settings"], error=GenerationQuotaError("status 429"))
    pipeline, _, _ = await _pipeline(faq_entries, generator=gen)
    turn, events = await _run(pipeline, "How do I reset my password?")
    _assert_protocol(turn, events)
    expected = faq_entries[0].answer
    assert turn.state is State.TERMINAL_GENERATED
    assert _tokens(events) == ["Open", " Settings", expected]
    assert events[-1].payload == {"text": expected}


@pytest.mark.asyncio
async def test_non_terminal_state_cannot_finish_the_stream(faq_entries):
    pipeline, _, _ = await _pipeline(faq_entries)

    async def _early_done(turn):
        yield done_event("too soon")

    pipeline._handlers[State.RETRIEVE] = _early_done
    with pytest.raises(RuntimeError):
        await _run(pipeline, "When am I billed for the invoice?")
