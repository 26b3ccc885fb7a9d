# core/intent.py
import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Pattern, Tuple
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.naive_bayes import MultinomialNB
from sklearn.pipeline import Pipeline, make_pipeline
from config.settings import settings
from core.entities import IntentResult
from core.lexical_index import tokenize
from util.constants import DEFAULT_PRODUCT
from util.enums import IntentSource
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

RULE_SCORE = 0.6
TRAINED_THRESHOLD = 0.5
CRISIS_LABELS = frozenset({"self_harm", "medical_emergency"})
RULE_GROUPS = ("policy", "adverse")

_GREETING_RE = re.compile(
    r"^(hi|hello|hey|yo|hola|h?eyy?\b|good\s*(morning|afternoon|evening)|\bhelp\b|\bstart\b)[!.\s]*$",
    re.I,
)


def is_greeting(message: str) -> bool:
    low = (message or "").strip().lower()
    return bool(_GREETING_RE.match(low)) or len(tokenize(message)) <= 2


@dataclass(frozen=True)
class IntentRule:
    label: str
    patterns: Tuple[Pattern[str], ...]


@dataclass(frozen=True)
class IntentModel:
    """One loaded intents.json: compiled rules per product plus the optional trained model."""

    rules: Mapping[str, Tuple[IntentRule, ...]]
    trained: Optional[Pipeline] = None


def read_intents(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning("intent.config.unreadable path=%s err=%s", path, type(e).__name__)
        return {DEFAULT_PRODUCT: {"policy": [], "adverse": []}}
    return data if isinstance(data, dict) else {}


def _compile_rules(product: str, cfg: Mapping[str, Any]) -> Tuple[IntentRule, ...]:
    out: List[IntentRule] = []
    # Declared order: every policy intent, then every adverse intent
    for group in RULE_GROUPS:
        for intent in cfg.get(group) or []:
            label = str(intent.get("label") or "").strip()
            if not label:
                continue
            patterns: List[Pattern[str]] = []
            for raw in intent.get("patterns") or []:
                try:
                    patterns.append(re.compile(raw, re.I))
                except re.error:
                    logger.warning("intent.pattern.invalid product=%s label=%s", product, label)
            out.append(IntentRule(label=label, patterns=tuple(patterns)))
    return tuple(out)


def _train(config: Mapping[str, Any]) -> Optional[Pipeline]:
    docs: List[str] = []
    labels: List[str] = []
    for product, cfg in config.items():
        if not isinstance(cfg, dict):
            continue
        for group in RULE_GROUPS:
            for intent in cfg.get(group) or []:
                label = f"{product}.{intent.get('label')}"
                for ex in intent.get("examples") or []:
                    if isinstance(ex, str) and ex.strip():
                        docs.append(ex)
                        labels.append(label)
    if len(set(labels)) < 2:
        return None
    model = make_pipeline(CountVectorizer(ngram_range=(1, 2)), MultinomialNB())
    with timed(logger, "intent.train", docs=len(docs), labels=len(set(labels))):
        model.fit(docs, labels)
    return model


def build_model(config: Mapping[str, Any], trained: bool = True) -> IntentModel:
    rules = {
        str(product): _compile_rules(str(product), cfg)
        for product, cfg in config.items()
        if isinstance(cfg, dict)
    }
    return IntentModel(rules=rules, trained=_train(config) if trained else None)


class IntentClassifier:
    """
    Two-stage intent detection per product.

    1) regex rules for the caller's product (or the default bucket); first
       match in declared order wins with a fixed score
    2) trained Naive Bayes over the intent examples; the top label is accepted
       only if it belongs to the caller's product or the default namespace and
       scores at least 0.5

    reload() builds a new IntentModel off the event loop and swaps it in.
    """

    def __init__(
        self,
        path: str = settings.INTENTS_PATH,
        trained: bool = settings.INTENT_CLASSIFIER_ENABLED,
        model: Optional[IntentModel] = None,
    ) -> None:
        self._path = path
        self._trained = trained
        self._model = model or build_model(read_intents(path), trained)

    @property
    def model(self) -> IntentModel:
        return self._model

    async def reload(self) -> IntentModel:
        config = await asyncio.to_thread(read_intents, self._path)
        model = await asyncio.to_thread(build_model, config, self._trained)
        self._model = model
        logger.info("intent.reload products=%d trained=%s", len(model.rules), model.trained is not None)
        return model

    def _rules_for(self, model: IntentModel, product: str) -> Tuple[IntentRule, ...]:
        if product in model.rules:
            return model.rules[product]
        return model.rules.get(DEFAULT_PRODUCT, ())

    def classify(self, text: str, product: str = DEFAULT_PRODUCT) -> IntentResult:
        if not text or not text.strip():
            return IntentResult.none()
        model = self._model

        for rule in self._rules_for(model, product):
            for pattern in rule.patterns:
                if pattern.search(text):
                    return IntentResult(label=rule.label, score=RULE_SCORE, source=IntentSource.RULE)

        if model.trained is None:
            return IntentResult.none()
        probs = model.trained.predict_proba([text])[0]
        classes = model.trained.classes_
        allowed = (f"{product}.", f"{DEFAULT_PRODUCT}.")
        ranked = sorted(
            (
                (str(label), float(p))
                for label, p in zip(classes, probs)
                if str(label).startswith(allowed)
            ),
            key=lambda t: t[1],
            reverse=True,
        )
        if ranked and ranked[0][1] >= TRAINED_THRESHOLD:
            label, score = ranked[0]
            return IntentResult(
                label=label.split(".", 1)[1], score=score, source=IntentSource.TRAINED
            )
        return IntentResult.none()
