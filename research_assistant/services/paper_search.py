"""
Paper search: CORE API client (search works, fetch work detail).

Responsibility: Talk to the search provider and return Paper / PaperDetail records.
An empty result list is a valid response, not an error.
"""

import logging
from typing import Any

import httpx

from research_assistant.core.config import (
    CORE_API_KEY,
    CORE_API_URL,
    SEARCH_API_TIMEOUT,
    SEARCH_FIELDS,
    SEARCH_LIMIT,
)
from research_assistant.core.errors import ProviderError, TransientProviderError
from research_assistant.schemas.papers import Paper, PaperDetail

logger = logging.getLogger(__name__)


def _detail_from_core(item: dict[str, Any]) -> PaperDetail:
    authors = []
    for a in item.get("authors") or []:
        name = a.get("name") if isinstance(a, dict) else a
        if name:
            authors.append(str(name).strip())
    urls = item.get("sourceFulltextUrls") or []
    full_text_url = item.get("downloadUrl") or (urls[0] if urls else None)
    return PaperDetail(
        id=str(item.get("id", "")),
        title=(item.get("title") or "Untitled").strip(),
        abstract=item.get("abstract") or None,
        authors=authors,
        published_date=item.get("publishedDate") or (str(item["yearPublished"]) if item.get("yearPublished") else None),
        full_text_url=full_text_url,
        download_url=item.get("downloadUrl") or None,
    )


class CoreSearchClient:
    """search(query) -> list[Paper]; fetch_detail(id) -> PaperDetail."""

    def __init__(
        self,
        api_key: str = CORE_API_KEY,
        base_url: str = CORE_API_URL,
        limit: int = SEARCH_LIMIT,
        timeout: float = SEARCH_API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.limit = limit
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
        except (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError, httpx.TimeoutException) as e:
            logger.warning("[paper_search] connection error %s %s: %s", method, path, e)
            raise TransientProviderError(f"CORE API connection failed: {e}") from e
        if response.status_code == 429:
            logger.warning("[paper_search] rate limited %s %s", method, path)
            raise TransientProviderError("CORE API rate limit exceeded", 429)
        if response.status_code != 200:
            logger.warning("[paper_search] CORE error %s: %s", response.status_code, response.text[:200])
            raise ProviderError(f"CORE API returned {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            logger.warning("[paper_search] non-JSON body %s %s: %s", method, path, response.text[:200])
            raise ProviderError("CORE API returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderError("Unexpected CORE API response shape")
        return data

    async def search(self, query: str) -> list[Paper]:
        logger.info("[paper_search:search] IN  query=%r limit=%d", query, self.limit)
        if not query or not query.strip():
            return []
        data = await self._request(
            "POST",
            "/search/works",
            json={"q": query.strip(), "limit": self.limit, "fields": list(SEARCH_FIELDS)},
        )
        papers = [Paper.from_core(item) for item in data.get("results") or [] if item.get("id") is not None]
        logger.info("[paper_search:search] OUT results=%d total_hits=%s", len(papers), data.get("totalHits"))
        return papers

    async def fetch_detail(self, paper_id: str) -> PaperDetail:
        logger.info("[paper_search:fetch_detail] IN  id=%s", paper_id)
        data = await self._request("GET", f"/works/{paper_id}")
        detail = _detail_from_core(data)
        logger.info("[paper_search:fetch_detail] OUT title=%r authors=%d", detail.title[:60], len(detail.authors))
        return detail
