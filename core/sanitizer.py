# core/sanitizer.py
import re

# Citation markers: "([#1])", "[#2]", "[3]", "FAQ #4", "(FAQ 5)"
_PAREN_CITE_RE = re.compile(r"\(\s*\[\s*#?\d+\s*\]\s*\)")
_BRACKET_CITE_RE = re.compile(r"\[\s*#?\d+\s*\]")
_FAQ_REF_RE = re.compile(r"\b(faq\s*#?\d+)\b", re.I)
_PAREN_FAQ_RE = re.compile(r"\(\s*faq\s*#?\d+\s*\)", re.I)

# "See FAQ #2 for details." / "see [1]" as a whole sentence
_SEE_SENTENCE_RE = re.compile(
    r"[^.!?\n]*\bsee\b[^.!?\n]*(\bfaq\s*#?\d+|\[\s*#?\d+\s*\])[^.!?\n]*[.!?]?", re.I
)
_RELATED_TAIL_RE = re.compile(r"\b(related topics|you might also ask)\b[^\n]*", re.I)
_PERHAPS_RE = re.compile(
    r"\b(perhaps|maybe)\b[^\n]*?(you\s+(meant\s+to\s+ask|might\s+mean|may\s+mean)|might\s+be\s+helpful|might\s+help)[^\n]*",
    re.I,
)
_TOPICS_HELP_RE = re.compile(r"\btopics\b[^\n]*\bmight\s+help\b[^\n]*", re.I)
_LEFTOVER_CUE_RE = re.compile(r"\b(perhaps|maybe|related topics|faq|might\s+help)\b", re.I)
_ALNUM_RE = re.compile(r"[A-Za-z0-9]")

_PARA_SPLIT_RE = re.compile(r"\n\s*\n+")
_RELATED_LEAD_RE = re.compile(r"^\s*(related topics|you might also ask)", re.I)
_RELATED_LINE_RE = re.compile(
    r"^\s*(related topics|you might also ask)[^\n]*$", re.I | re.M
)
_PERHAPS_LINE_RE = re.compile(
    r"^[^\n]*\b(perhaps|maybe)\b[^\n]*\b(might be helpful|you meant to ask|might mean|may mean)\b[^\n]*$",
    re.I | re.M,
)
_MIGHT_HELP_LINE_RE = re.compile(r"^[^\n]*\bmight\s+help\b[^\n]*$", re.I | re.M)
_MULTI_NL_RE = re.compile(r"\n{3,}")
_MULTI_SPACE_RE = re.compile(r"[ \t]{3,}")


def _strip_citations(text: str) -> str:
    out = _PAREN_CITE_RE.sub("", text)
    out = _PAREN_FAQ_RE.sub("", out)
    out = _BRACKET_CITE_RE.sub("", out)
    return _FAQ_REF_RE.sub("", out)


def sanitize_token(fragment: str) -> str:
    """
    Clean one generated fragment before it is streamed.

    Citations and suggestion phrases are stripped; a fragment whose remainder
    still carries a suggestion cue becomes "". So does one that stripping
    reduced to bare whitespace or punctuation. Untouched separator fragments
    (" ", ".", "\\n\\n") pass through as-is.
    """
    if not fragment:
        return ""
    out = _SEE_SENTENCE_RE.sub("", fragment)
    out = _strip_citations(out)
    out = _RELATED_TAIL_RE.sub("", out)
    out = _PERHAPS_RE.sub("", out)
    out = _TOPICS_HELP_RE.sub("", out)
    if _LEFTOVER_CUE_RE.search(out):
        return ""
    if out != fragment and not _ALNUM_RE.search(out):
        return ""
    return out


def sanitize_answer(text: str) -> str:
    """
    Authoritative pass over a full answer; the result is what `done.text` carries.

    Drops "Related topics" / "You might also ask" paragraphs and lines,
    "perhaps ... might help" suggestion lines and "see FAQ #n" sentences, then
    strips inline citation markers and tidies whitespace.
    """
    if not text:
        return ""
    paras = [p for p in _PARA_SPLIT_RE.split(text) if not _RELATED_LEAD_RE.match(p)]
    out = "\n\n".join(paras)
    out = _RELATED_LINE_RE.sub("", out)
    out = _PERHAPS_LINE_RE.sub("", out)
    out = _MIGHT_HELP_LINE_RE.sub("", out)
    out = _SEE_SENTENCE_RE.sub("", out)
    out = _strip_citations(out)
    out = _MULTI_NL_RE.sub("\n\n", out).strip()
    return _MULTI_SPACE_RE.sub(" ", out)
