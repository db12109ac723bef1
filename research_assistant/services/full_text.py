# Full-text fetcher. Downloads a paper URL and turns the body into plain text.
# Supports PDF (pypdf) and HTML (tags stripped); anything else is decoded as UTF-8.

import io
import logging

import httpx

from research_assistant.core.config import FULL_TEXT_TIMEOUT
from research_assistant.core.errors import ProviderError, TransientProviderError
from research_assistant.services.text_processing import clean_text, strip_tags

logger = logging.getLogger(__name__)


def bytes_to_text(raw: bytes, content_type: str = "", url: str = "") -> str:
    """
    Convert a downloaded body to text by content type (or URL suffix when the
    server does not say). Single place for "response bytes → text".
    """
    ctype = (content_type or "").lower()
    if "pdf" in ctype or raw[:5] == b"%PDF-" or url.lower().endswith(".pdf"):
        return _read_pdf(raw)
    text = raw.decode("utf-8", errors="replace")
    if "html" in ctype or "<html" in text[:2000].lower():
        return strip_tags(text)
    return text


def _read_pdf(raw: bytes) -> str:
    from pypdf import PdfReader
    reader = PdfReader(io.BytesIO(raw))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


class FullTextClient:
    """fetch_full_text(url) -> plain text."""

    def __init__(self, timeout: float = FULL_TEXT_TIMEOUT, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = timeout
        self._transport = transport

    async def fetch_full_text(self, url: str) -> str:
        if not url or not url.strip():
            raise ProviderError("No full-text URL available")
        logger.info("[full_text] IN  url=%s", url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, transport=self._transport) as client:
                response = await client.get(url)
        except (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError, httpx.TimeoutException) as e:
            raise TransientProviderError(f"Full-text download failed: {e}") from e
        if response.status_code == 429:
            raise TransientProviderError("Full-text host rate limited", 429)
        if response.status_code != 200:
            raise ProviderError(f"Full-text download returned {response.status_code}")
        try:
            text = bytes_to_text(response.content, response.headers.get("content-type", ""), url)
        except Exception as e:
            raise ProviderError(f"Could not parse full text: {e}") from e
        cleaned = clean_text(text)
        logger.info("[full_text] OUT chars=%d", len(cleaned))
        return cleaned
