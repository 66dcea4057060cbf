from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .base import BaseExtractionStrategy
from ..extraction import extract_mentions
from ..llm import has_llm_credentials
from ..records import Company, RawEntityMention
from ...core.config import Settings, get_settings

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

# One query per relationship family; results are concatenated in this order.
SEARCH_QUERIES: Tuple[str, ...] = (
    "{ticker} major shareholders {exchange}",
    "{name} board directors CEO CFO",
    "{name} external auditor broker share registry",
    "{name} competitors {exchange}",
    "{ticker} takeover private equity interest",
)

# Keep prompt size bounded per fetched page.
MAX_PAGE_CHARS = 4000


def build_search_queries(company: Company) -> List[str]:
    return [
        q.format(name=company.name, ticker=company.ticker, exchange=company.exchange)
        for q in SEARCH_QUERIES
    ]


class SearchFetchStrategy(BaseExtractionStrategy):
    """
    Google Custom Search per relationship family, optional Firecrawl deep
    fetch of the top result pages, then LLM entity extraction over the
    combined text.

    Each HTTP call is retried with exponential backoff on ``httpx.HTTPError``;
    a query or page that still fails is logged and skipped.
    """

    name = "search_fetch"

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        llm_client=None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._llm_client = llm_client

    def is_configured(self) -> bool:
        s = self._settings
        return bool(s.GOOGLE_SEARCH_API_KEY and s.GOOGLE_SEARCH_ENGINE_ID) and has_llm_credentials(s)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    async def _search(self, client: httpx.AsyncClient, query: str) -> List[Dict[str, Any]]:
        resp = await client.get(
            GOOGLE_SEARCH_URL,
            params={
                "q": query,
                "key": self._settings.GOOGLE_SEARCH_API_KEY,
                "cx": self._settings.GOOGLE_SEARCH_ENGINE_ID,
                "num": self._settings.GOOGLE_SEARCH_RESULTS,
            },
        )
        resp.raise_for_status()
        items = resp.json().get("items") or []
        return [i for i in items if isinstance(i, dict)]

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    async def _scrape(self, client: httpx.AsyncClient, url: str) -> str:
        resp = await client.post(
            f"{self._settings.FIRECRAWL_BASE_URL.rstrip('/')}/scrape",
            headers={"Authorization": f"Bearer {self._settings.FIRECRAWL_API_KEY}"},
            json={"url": url, "formats": ["markdown"], "onlyMainContent": True},
        )
        resp.raise_for_status()
        data = resp.json().get("data") or {}
        markdown = data.get("markdown") if isinstance(data, dict) else None
        return (markdown or "")[:MAX_PAGE_CHARS]

    async def _search_soft(self, client: httpx.AsyncClient, query: str, ticker: str) -> List[Dict[str, Any]]:
        try:
            return await self._search(client, query)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Search query failed: %s",
                e,
                extra={"ticker": ticker, "strategy": self.name, "step": "search"},
            )
            return []

    async def _scrape_soft(self, client: httpx.AsyncClient, url: str, ticker: str) -> str:
        try:
            return await self._scrape(client, url)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Page fetch failed for %s: %s",
                url,
                e,
                extra={"ticker": ticker, "strategy": self.name, "step": "fetch"},
            )
            return ""

    async def gather_research(self, company: Company) -> str:
        queries = build_search_queries(company)
        async with self._client() as client:
            results = await asyncio.gather(
                *(self._search_soft(client, q, company.ticker) for q in queries)
            )

            snippets: List[str] = []
            urls: List[str] = []
            for items in results:
                for item in items:
                    title = (item.get("title") or "").strip()
                    snippet = (item.get("snippet") or "").strip()
                    if title or snippet:
                        snippets.append(f"{title}\n{snippet}".strip())
                    link = item.get("link")
                    if isinstance(link, str) and link and link not in urls:
                        urls.append(link)

            pages: List[str] = []
            if self._settings.FIRECRAWL_API_KEY and urls:
                fetched = await asyncio.gather(
                    *(
                        self._scrape_soft(client, u, company.ticker)
                        for u in urls[: self._settings.FIRECRAWL_MAX_PAGES]
                    )
                )
                pages = [p for p in fetched if p.strip()]

        return "\n\n".join(snippets + pages)

    async def extract(self, company: Company) -> List[RawEntityMention]:
        research = await self.gather_research(company)
        if not research.strip():
            logger.info(
                "Search returned no usable text",
                extra={"ticker": company.ticker, "strategy": self.name},
            )
            return []
        return await extract_mentions(
            company, research, client=self._llm_client, timeout=self._settings.EXTRACTION_TIMEOUT_SECONDS
        )
