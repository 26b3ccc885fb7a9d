# tests/test_safety.py
import pytest
from core.entities import ClassificationResult, IntentResult
from core.llm_confirmer import AdverseConfirmer, parse_confirmation
from core.safety import (
    AdverseDetector,
    AdverseModel,
    Assessment,
    blend_stage,
    crisis_intent_stage,
    finalize,
    heuristic_stage,
    run_stages,
    score_heuristics,
)
from util.enums import IntentSource
from fakes.fake_services import FakeGenerator


def _state(message: str, intent: IntentResult = None) -> Assessment:
    return Assessment(message=message, intent=intent or IntentResult.none())


def test_allergic_reaction_scores_two():
    assert score_heuristics("i think i might have had an allergic reaction") == pytest.approx(2.0)


def test_severe_cue_beats_single_negation():
    score = score_heuristics("i did not have anaphylaxis")
    assert score == pytest.approx(2.0 - 0.8)
    assert score >= 1.0


def test_negations_floor_at_zero():
    assert score_heuristics("no, i never did not") == 0.0


def test_lost_file_and_crisis_patterns_boost():
    assert score_heuristics("i lost my thesis file") >= 2.5
    assert score_heuristics("i feel suicidal") >= 3.0


def test_crisis_intent_is_terminal():
    intent = IntentResult(label="self_harm", score=0.6, source=IntentSource.RULE)
    out = crisis_intent_stage(_state("anything", intent))
    assert out == ClassificationResult(is_adverse=True, confidence=0.6, reason="self_harm")


def test_other_intent_defers():
    intent = IntentResult(label="retention", score=0.9, source=IntentSource.RULE)
    assert isinstance(crisis_intent_stage(_state("x", intent)), Assessment)


def test_heuristic_stage_sets_flag():
    out = heuristic_stage(_state("Severe rash"))
    assert out.heuristic is True
    assert out.score == pytest.approx(3.0)


def test_blend_adds_probability_and_never_unflags():
    model = AdverseModel()
    state = Assessment(message="how do i upload a file", intent=IntentResult.none(), score=2.0, heuristic=True)
    out = blend_stage(model, state)
    assert out.heuristic is True
    assert out.score >= 2.0


def test_blend_can_flip_on_high_probability():
    model = AdverseModel()
    text = "severe allergic reaction and rash"
    p = model.probability(text)
    out = blend_stage(model, _state(text))
    assert out.heuristic is (p >= 0.65)
    assert out.score == pytest.approx(p * 1.5)


def test_finalize_clamps_confidence():
    low = finalize(Assessment(message="", intent=IntentResult.none(), score=0.0))
    assert low == ClassificationResult(is_adverse=False, confidence=0.2, reason="heuristic")
    high = finalize(Assessment(message="", intent=IntentResult.none(), score=10.0, heuristic=True))
    assert high.confidence == 1.0


@pytest.mark.asyncio
async def test_run_stages_stops_at_first_terminal():
    calls = []

    def boom(state):
        calls.append(state)
        raise AssertionError("should not run")

    intent = IntentResult(label="medical_emergency", score=0.7, source=IntentSource.TRAINED)
    out = await run_stages([crisis_intent_stage, boom], _state("help", intent))
    assert out.reason == "medical_emergency"
    assert calls == []


def test_parse_confirmation_is_strict():
    assert parse_confirmation('Sure: {"adverse": true, "confidence": 0.9}').adverse is True
    assert parse_confirmation('{"adverse": "yes", "confidence": 0.9}') is None
    assert parse_confirmation('{"adverse": false, "confidence": true}') is None
    assert parse_confirmation("no json here") is None
    assert parse_confirmation("{broken") is None


@pytest.mark.asyncio
async def test_external_confirmation_cannot_veto_positive_heuristic():
    gen = FakeGenerator(reply='{"adverse": false, "confidence": 0.95}')
    detector = AdverseDetector(confirmer=AdverseConfirmer(gen))
    out = await detector.assess("I had a severe reaction", IntentResult.none())
    assert out.is_adverse is True
    assert out.reason == "llm+heuristic"
    assert out.confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_external_confirmation_adds_positive_vote():
    gen = FakeGenerator(reply='{"adverse": true, "confidence": 0.4}')
    detector = AdverseDetector(confirmer=AdverseConfirmer(gen))
    out = await detector.assess("my cat looks strange today", IntentResult.none())
    assert out.is_adverse is True
    assert out.confidence == pytest.approx(0.4)


@pytest.mark.asyncio
async def test_unparseable_confirmation_falls_back_to_heuristic():
    gen = FakeGenerator(reply="I think so")
    detector = AdverseDetector(confirmer=AdverseConfirmer(gen))
    out = await detector.assess("I had an allergic reaction", IntentResult.none())
    assert out == ClassificationResult(is_adverse=True, confidence=0.5, reason="heuristic")


@pytest.mark.asyncio
async def test_unconfigured_generator_skips_confirmation():
    gen = FakeGenerator(configured=False, reply='{"adverse": true, "confidence": 1}')
    detector = AdverseDetector(confirmer=AdverseConfirmer(gen))
    out = await detector.assess("how do I upload", IntentResult.none())
    assert out.is_adverse is False
    assert gen.generate_calls == 0
