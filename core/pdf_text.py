# core/pdf_text.py
from typing import List
import fitz
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

MAX_IMPORT_CHARS = 120_000


def extract_text(file_bytes: bytes, max_chars: int = MAX_IMPORT_CHARS) -> str:
    """
    Plain text of an uploaded FAQ document, pages joined by blank lines.
    Stops reading once `max_chars` is reached; "" when the PDF cannot be parsed.
    """
    parts: List[str] = []
    size = 0
    try:
        with fitz.open(stream=file_bytes, filetype="pdf") as doc:
            with timed(logger, "faq.pdf.read", pages=doc.page_count):
                for page in doc:
                    txt = (page.get_text("text") or "").strip()
                    if not txt:
                        continue
                    parts.append(txt)
                    size += len(txt)
                    if size >= max_chars:
                        break
    except Exception:
        # never log document contents
        logger.warning("faq.pdf.unreadable", exc_info=True)
        return ""
    text = "\n\n".join(parts)
    logger.info("faq.pdf.text pages=%d chars=%d", len(parts), len(text))
    return text[:max_chars]
