# core/anthropic_client.py
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional
import httpx
from config.settings import settings
from util.errors import GenerationError, GenerationQuotaError, GenerationUnavailable
from util.timing import timed

logger = logging.getLogger(__name__)

QUOTA_STATUSES = {429, 529}
_QUOTA_ERROR_TYPES = {"rate_limit_error", "overloaded_error"}
_QUOTA_TEXT_RE = re.compile(r"429|quota|too\s+many\s+requests|rate.?limit", re.I)


def is_quota_failure(exc: BaseException) -> bool:
    if isinstance(exc, GenerationQuotaError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in QUOTA_STATUSES
    return bool(_QUOTA_TEXT_RE.search(str(exc) or ""))


def _first_text(data: Dict[str, Any]) -> str:
    try:
        content = data.get("content") or []
        if content and isinstance(content, list):
            node = content[0]
            if isinstance(node, dict) and node.get("type") == "text":
                return node.get("text") or ""
    except (AttributeError, TypeError):
        pass
    return ""


def _parse_sse_data(line: str) -> Optional[Dict[str, Any]]:
    if not line.startswith("data:"):
        return None
    raw = line[len("data:"):].strip()
    if not raw:
        return None
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


class AnthropicClient:
    """
    Thin Messages API client.
      - generate(): one-shot text, raises GenerationError on any failure
      - generate_stream(): text deltas in arrival order; the HTTP stream is
        closed as soon as the consumer stops iterating
    """

    def __init__(
        self,
        api_key: Optional[str] = settings.ANTHROPIC_API_KEY,
        model: str = settings.ANTHROPIC_MODEL,
        api_url: str = settings.ANTHROPIC_API_URL,
        timeout: float = settings.GENERATION_TIMEOUT_SECONDS,
        max_tokens: int = settings.GENERATION_MAX_TOKENS,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = api_url
        self._timeout = timeout
        self._max_tokens = max_tokens

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key or "",
            "anthropic-version": settings.ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _payload(
        self, system: str, user: str, max_tokens: Optional[int], temperature: float
    ) -> Dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": user}],
            "temperature": temperature,
        }

    async def generate(
        self,
        system: str,
        user: str,
        *,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
        timeout: Optional[float] = None,
    ) -> str:
        if not self.configured:
            raise GenerationUnavailable("generation not configured")
        payload = self._payload(system, user, max_tokens, temperature)
        with timed(logger, "ai.generate", model=self._model):
            try:
                async with httpx.AsyncClient(timeout=timeout or self._timeout) as client:
                    r = await client.post(self._url, headers=self._headers(), json=payload)
                    if r.status_code in QUOTA_STATUSES:
                        raise GenerationQuotaError(f"status {r.status_code}")
                    r.raise_for_status()
                    data = r.json()
            except GenerationError:
                raise
            except (httpx.HTTPError, ValueError) as e:
                raise GenerationUnavailable(type(e).__name__) from e
        text = _first_text(data if isinstance(data, dict) else {}).strip()
        if not text:
            raise GenerationUnavailable("empty completion")
        return text

    async def generate_stream(
        self,
        system: str,
        user: str,
        *,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
    ) -> AsyncIterator[str]:
        if not self.configured:
            raise GenerationUnavailable("generation not configured")
        payload = self._payload(system, user, max_tokens, temperature)
        payload["stream"] = True
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            async with client.stream(
                "POST", self._url, headers=self._headers(), json=payload
            ) as r:
                if r.status_code in QUOTA_STATUSES:
                    raise GenerationQuotaError(f"status {r.status_code}")
                r.raise_for_status()
                async for line in r.aiter_lines():
                    event = _parse_sse_data(line)
                    if event is None:
                        continue
                    kind = event.get("type")
                    if kind == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield delta["text"]
                    elif kind == "error":
                        err = event.get("error") or {}
                        if err.get("type") in _QUOTA_ERROR_TYPES:
                            raise GenerationQuotaError(str(err.get("type")))
                        raise GenerationUnavailable(str(err.get("type") or "stream error"))
                    elif kind == "message_stop":
                        break

    async def extract_faqs(self, raw_text: str) -> Optional[List[Dict[str, Any]]]:
        """Ask the model for a strict JSON array of FAQ objects; None if unusable."""
        try:
            text = await self.generate(
                settings.FAQ_EXTRACT_PROMPT,
                f"CONTENT:\n{raw_text[:120000]}",
                max_tokens=4000,
            )
        except GenerationError as e:
            logger.warning("ai.extract.failed err=%s", type(e).__name__)
            return None
        start, end = text.find("["), text.rfind("]")
        sliced = text[start : end + 1] if start >= 0 and end > start else text
        try:
            arr = json.loads(sliced)
        except ValueError:
            logger.warning("ai.extract.parse.error")
            return None
        if not isinstance(arr, list):
            return None
        items = [x for x in arr if isinstance(x, dict)]
        logger.info("ai.extract.faqs count=%d", len(items))
        return items
