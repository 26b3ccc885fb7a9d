# core/safety.py
"""
Adverse-event detection as a sequence of stages.

Each stage takes the running Assessment and returns either an updated
Assessment (defer to the next stage) or a final ClassificationResult.
Stages may only add evidence for "adverse"; none of them can veto a
positive decision reached earlier.
"""
import inspect
import re
from dataclasses import dataclass, replace
from functools import partial
from typing import Awaitable, Callable, List, Optional, Sequence, Union
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.naive_bayes import MultinomialNB
from sklearn.pipeline import make_pipeline
from config.settings import settings
from core.entities import ClassificationResult, IntentResult
from core.intent import CRISIS_LABELS
from core.llm_confirmer import AdverseConfirmer
from util.functions import clamp
import logging

logger = logging.getLogger(__name__)

POSITIVE_CUES = (
    "adverse", "side effect", "side-effect", "allergy", "allergic", "injury",
    "injuries", "harm", "unsafe", "danger", "dangerous", "emergency", "accident",
    "medical issue", "reaction", "rash", "swelling", "bleeding", "pain", "dizzy",
    "nausea", "vomit", "faint", "burn", "shock",
    # data loss
    "lost document", "lost file", "missing document", "missing file", "data loss",
    "deleted file", "deleted document", "cannot find document", "cannot find file",
    # crisis
    "lost my mind", "suicide", "suicidal", "self harm", "self-harm", "harm myself",
    "kill myself", "want to die", "end my life", "panic attack", "anxiety attack",
)
SEVERE_CUES = ("emergency", "severe", "anaphylaxis", "unconscious", "bleeding", "chest pain", "stroke")
NEGATION_CUES = ("no ", "didn't", "not ", "hasn't", "haven't", "without", "never")

POSITIVE_WEIGHT = 1.0
SEVERE_WEIGHT = 2.0
NEGATION_WEIGHT = 0.8
LOST_FILE_BOOST = 2.5
CRISIS_BOOST = 3.0
HEURISTIC_THRESHOLD = 1.0
BLEND_WEIGHT = 1.5
BLEND_FLIP_PROBABILITY = 0.65
CRISIS_INTENT_THRESHOLD = 0.5
MIN_CONFIDENCE = 0.2

_LOST_RE = re.compile(r"(lost|missing|deleted|removed)[^\n]{0,40}\b(document|file|files|doc|docs|data)\b")
_CANNOT_FIND_RE = re.compile(
    r"(can\s*not|cannot|can['’]t)\s+find[^\n]{0,40}\b(document|file|files|doc|docs|data)\b"
)
_CRISIS_RE = re.compile(
    r"(lost\s+my\s+mind|suicid(e|al)|self[-\s]?harm|harm\s+myself|kill\s+myself|"
    r"want\s+to\s+die|end\s+my\s+life|panic\s+attack|anxiety\s+attack)",
    re.I,
)

ADVERSE_SEEDS = (
    "I had an adverse reaction with swelling and dizziness",
    "This is an emergency, I am injured",
    "Severe allergic reaction and rash",
    "I lost my document and cannot find the file",
    "Data loss: deleted my document by accident",
)
NEUTRAL_SEEDS = (
    "How do I upload a file",
    "Can I work from the cloud",
    "What are the system requirements",
    "Where is the pricing page",
    "No side effects, everything is fine",
)


@dataclass(frozen=True)
class Assessment:
    message: str
    intent: IntentResult
    score: float = 0.0
    heuristic: bool = False

    @property
    def text(self) -> str:
        return self.message.lower()


StageOutcome = Union[Assessment, ClassificationResult]
Stage = Callable[[Assessment], Union[StageOutcome, Awaitable[StageOutcome]]]


def score_heuristics(text: str) -> float:
    """Keyword score for an already lowercased message, floored at 0 before the pattern boosts."""
    score = 0.0
    score += sum(POSITIVE_WEIGHT for cue in POSITIVE_CUES if cue in text)
    score += sum(SEVERE_WEIGHT for cue in SEVERE_CUES if cue in text)
    score -= sum(NEGATION_WEIGHT for cue in NEGATION_CUES if cue in text)
    score = max(0.0, score)
    if _LOST_RE.search(text) or _CANNOT_FIND_RE.search(text):
        score += LOST_FILE_BOOST
    if _CRISIS_RE.search(text):
        score += CRISIS_BOOST
    return score


class AdverseModel:
    """Binary Naive Bayes (adverse vs neutral) trained on a small seed set."""

    def __init__(
        self,
        adverse: Sequence[str] = ADVERSE_SEEDS,
        neutral: Sequence[str] = NEUTRAL_SEEDS,
    ) -> None:
        docs = [t.lower() for t in adverse] + [t.lower() for t in neutral]
        labels = ["adverse"] * len(adverse) + ["neutral"] * len(neutral)
        self._pipeline = make_pipeline(CountVectorizer(ngram_range=(1, 2)), MultinomialNB())
        self._pipeline.fit(docs, labels)
        self._adverse_col = list(self._pipeline.classes_).index("adverse")

    def probability(self, text: str) -> float:
        return float(self._pipeline.predict_proba([text.lower()])[0][self._adverse_col])


# Stages


def crisis_intent_stage(state: Assessment) -> StageOutcome:
    intent = state.intent
    if intent.label in CRISIS_LABELS and intent.score >= CRISIS_INTENT_THRESHOLD:
        return ClassificationResult(is_adverse=True, confidence=intent.score, reason=intent.label)
    return state


def heuristic_stage(state: Assessment) -> StageOutcome:
    score = score_heuristics(state.text)
    return replace(state, score=score, heuristic=score >= HEURISTIC_THRESHOLD)


def blend_stage(model: AdverseModel, state: Assessment) -> StageOutcome:
    p = model.probability(state.text)
    flipped = state.heuristic or p >= BLEND_FLIP_PROBABILITY
    return replace(state, score=state.score + p * BLEND_WEIGHT, heuristic=flipped)


async def confirm_stage(confirmer: AdverseConfirmer, state: Assessment) -> StageOutcome:
    verdict = await confirmer.confirm(state.message)
    if verdict is None:
        return state
    return ClassificationResult(
        is_adverse=state.heuristic or verdict.adverse,
        confidence=clamp(max(verdict.confidence, state.score / 4), MIN_CONFIDENCE, 1.0),
        reason="llm+heuristic",
    )


def finalize(state: Assessment) -> ClassificationResult:
    return ClassificationResult(
        is_adverse=state.heuristic,
        confidence=clamp(state.score / 4, MIN_CONFIDENCE, 1.0),
        reason="heuristic",
    )


async def run_stages(stages: Sequence[Stage], state: Assessment) -> ClassificationResult:
    for stage in stages:
        outcome = stage(state)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, ClassificationResult):
            return outcome
        state = outcome
    return finalize(state)


class AdverseDetector:
    def __init__(
        self,
        model: Optional[AdverseModel] = None,
        confirmer: Optional[AdverseConfirmer] = None,
    ) -> None:
        stages: List[Stage] = [crisis_intent_stage, heuristic_stage]
        if model is not None:
            stages.append(partial(blend_stage, model))
        if confirmer is not None and confirmer.available:
            stages.append(partial(confirm_stage, confirmer))
        self._stages = tuple(stages)

    @classmethod
    def from_settings(cls, confirmer: Optional[AdverseConfirmer] = None) -> "AdverseDetector":
        model = AdverseModel() if settings.ADVERSE_CLASSIFIER_ENABLED else None
        return cls(model=model, confirmer=confirmer)

    @property
    def stages(self) -> Sequence[Stage]:
        return self._stages

    async def assess(self, message: str, intent: IntentResult) -> ClassificationResult:
        result = await run_stages(self._stages, Assessment(message=message or "", intent=intent))
        logger.info(
            "safety.assess adverse=%s conf=%.2f reason=%s",
            result.is_adverse,
            result.confidence,
            result.reason,
        )
        return result
