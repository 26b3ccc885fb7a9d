# core/page_text.py
from typing import Optional
import httpx
from bs4 import BeautifulSoup
from config.settings import settings
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

_NOISE_TAGS = ("script", "style", "noscript", "template")
USER_AGENT = "askbase-faq-import/0.1"


class PageTooLarge(Exception):
    pass


def html_text(html: str) -> str:
    """Readable body text of an HTML page, whitespace-collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    body = soup.find("body") or soup
    return " ".join(body.get_text(" ", strip=True).split())


async def fetch_page_text(
    url: str,
    timeout: float = settings.URL_FETCH_TIMEOUT_SECONDS,
    max_bytes: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    GET `url` and return its body text.
    Raises httpx.HTTPError on transport/status failures and PageTooLarge
    when the response exceeds `max_bytes`.
    """
    limit = max_bytes if max_bytes is not None else settings.MAX_FILE_MB * 1024 * 1024
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    ) as client:
        with timed(logger, "faq.url.fetch"):
            resp = await client.get(url)
            resp.raise_for_status()
    if len(resp.content) > limit:
        raise PageTooLarge(f"{len(resp.content)} bytes")
    text = html_text(resp.text)
    logger.info("faq.url.text status=%d chars=%d", resp.status_code, len(text))
    return text
