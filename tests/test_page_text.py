# tests/test_page_text.py
import httpx
import pytest
from core.page_text import PageTooLarge, fetch_page_text, html_text

PAGE = """
<html><head><title>Help</title><style>p { color: red }</style></head>
<body>
  <h1>Billing FAQ</h1>
  <script>track("visit")</script>
  <p>Invoices are sent   on the 1st.</p>
</body></html>
"""


def test_html_text_keeps_body_and_drops_scripts():
    assert html_text(PAGE) == "Billing FAQ Invoices are sent on the 1st."


def test_html_text_of_empty_page():
    assert html_text("") == ""


@pytest.mark.asyncio
async def test_fetch_follows_redirect_and_returns_text():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://help.example.com/faq"})
        assert request.headers["user-agent"].startswith("askbase")
        return httpx.Response(200, html=PAGE)

    text = await fetch_page_text(
        "https://help.example.com/old", transport=httpx.MockTransport(handler)
    )
    assert text.startswith("Billing FAQ")


@pytest.mark.asyncio
async def test_fetch_raises_on_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    with pytest.raises(httpx.HTTPStatusError):
        await fetch_page_text("https://help.example.com/missing", transport=transport)


@pytest.mark.asyncio
async def test_fetch_rejects_oversized_page():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, html=PAGE))
    with pytest.raises(PageTooLarge):
        await fetch_page_text("https://help.example.com/faq", max_bytes=10, transport=transport)
