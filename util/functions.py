# util/functions.py
import re

_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
_DIGITS_RE = re.compile(r"\+?\d[\d\s().-]{6,}\d")
_WS_RE = re.compile(r"\s+")


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def redact_message(text: str, max_chars: int = 500) -> str:
    """
    Mask e-mail addresses and long digit runs (phones, card/account numbers),
    collapse whitespace and clip. Used before anything user-authored is persisted.
    """
    out = _EMAIL_RE.sub("[email]", text or "")
    out = _DIGITS_RE.sub("[number]", out)
    out = _WS_RE.sub(" ", out).strip()
    if len(out) > max_chars:
        out = out[:max_chars] + "…"
    return out


def one_line(text: str, max_chars: int) -> str:
    return _WS_RE.sub(" ", text or "").strip()[:max_chars]
