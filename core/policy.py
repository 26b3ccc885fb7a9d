# core/policy.py
import re
from typing import List, Optional, Sequence
from core.entities import Candidate, IntentResult

FILE_RECOVERY_INTENT = "file_recovery"
INTENT_THRESHOLD = 0.5

_FILE_LOSS_FALLBACK_RE = re.compile(r"\blost\b|\brecover\b|\bdeleted?\b", re.I)
_LOSS_QUERY_RE = re.compile(
    r"(lost|lose|recover|restore|deleted?|missing|find my (file|document))", re.I
)
_RETENTION_RE = re.compile(
    r"(retain|kept|store|stored|save|saved)[^\n]*\b(minute|hour|day|week|month)s?\b", re.I
)
_DELETION_RE = re.compile(r"(delete|deleted|removed|purge|destroy)", re.I)
_WINDOW_RE = re.compile(r"\b(\d+\s*(minute|hour|day|week|month)s?)\b", re.I)

RETAINED_FOR = "Files are retained for up to {window} for download."
RETAINED_LIMITED = "Files are retained for a limited time for download."
REMOVED_AFTER = "After the retention period or if you delete a file, it is removed from our systems."
NOT_RECOVERABLE = "Once deleted, files cannot be recovered."
REUPLOAD = "If you still have the original file, please re-upload it."


def detects_file_loss(message: str, intent: IntentResult) -> bool:
    if intent.label == FILE_RECOVERY_INTENT and intent.score >= INTENT_THRESHOLD:
        return True
    return bool(_FILE_LOSS_FALLBACK_RE.search(message or ""))


def synthesize(query: str, candidates: Sequence[Candidate]) -> Optional[str]:
    """
    Deterministic retention/deletion answer built from the candidates' text.

    Returns None when the query is not about a lost file, or when no candidate
    mentions retention or deletion; the caller then moves on to generation.
    """
    if not _LOSS_QUERY_RE.search(query or ""):
        return None
    text = "\n\n".join(
        f"{c.entry.question}\n{c.entry.answer}" for c in candidates
    ).lower()
    mentions_retention = bool(_RETENTION_RE.search(text))
    mentions_deletion = bool(_DELETION_RE.search(text))
    if not mentions_retention and not mentions_deletion:
        return None

    m = _WINDOW_RE.search(text)
    lines: List[str] = [RETAINED_FOR.format(window=m.group(1)) if m else RETAINED_LIMITED]
    if mentions_deletion:
        lines.append(REMOVED_AFTER)
        lines.append(NOT_RECOVERABLE)
    lines.append(REUPLOAD)
    return " ".join(lines)
