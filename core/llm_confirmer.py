# core/llm_confirmer.py
import json
import re
from dataclasses import dataclass
from typing import Any, Optional
from config.settings import settings
from util.errors import GenerationError
import logging

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Confirmation:
    adverse: bool
    confidence: float


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_confirmation(raw: str) -> Optional[Confirmation]:
    """
    Take the first {...} block of the reply. `adverse` must be a JSON bool and
    `confidence` a JSON number; anything else is unparseable (None).
    """
    m = _JSON_OBJECT_RE.search(raw or "")
    if not m:
        return None
    try:
        parsed = json.loads(m.group(0))
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    adverse = parsed.get("adverse")
    confidence = parsed.get("confidence")
    if not isinstance(adverse, bool) or not _is_number(confidence):
        return None
    return Confirmation(adverse=adverse, confidence=float(confidence))


class AdverseConfirmer:
    """Asks the generation service for a second opinion on a message."""

    def __init__(self, client, timeout: float = settings.CONFIRM_TIMEOUT_SECONDS) -> None:
        self._client = client
        self._timeout = timeout

    @property
    def available(self) -> bool:
        return bool(getattr(self._client, "configured", False))

    async def confirm(self, message: str) -> Optional[Confirmation]:
        if not self.available:
            return None
        try:
            raw = await self._client.generate(
                settings.ADVERSE_CONFIRM_PROMPT,
                f"Message: {message}",
                max_tokens=60,
                timeout=self._timeout,
            )
        except GenerationError as e:
            logger.warning("ai.confirm.failed err=%s", type(e).__name__)
            return None
        result = parse_confirmation(raw)
        if result is None:
            logger.warning("ai.confirm.unparseable")
        else:
            logger.info("ai.confirm.result adverse=%s conf=%.2f", result.adverse, result.confidence)
        return result
