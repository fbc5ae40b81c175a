"""
Web Search Engine - last-resort link lookup when the knowledge base misses

The default provider scrapes the first organic result from Google's HTML
results page. It is brittle by nature, so every failure (network, timeout,
markup change) is reported as an unsuccessful result instead of raised.
"""
import asyncio
from typing import Optional
from urllib.parse import parse_qs, quote_plus, urlsplit

import aiohttp
from bs4 import BeautifulSoup

from pcru_faq.config import Config
from pcru_faq.exceptions import UpstreamError
from pcru_faq.schemas import WebSearchResult
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()

SEARCH_URL = "https://www.google.com/search?q={query}&num=1&hl=th"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/115 Safari/537.36"
)

RESULT_LINK_SELECTOR = 'a[href^="/url?q="]'
SNIPPET_SELECTOR = "div.BNeawe.s3v9rd.AP7Wnd"


def parse_google_result(page: Optional[str]) -> WebSearchResult:
    """First result link and its snippet from a results page; success=False when no link."""
    if not page:
        return WebSearchResult(success=False)

    soup = BeautifulSoup(page, "html.parser")
    anchor = soup.select_one(RESULT_LINK_SELECTOR)
    if anchor is None:
        return WebSearchResult(success=False)

    # /url?q=<target>&sa=...; parse_qs also percent-decodes the target
    targets = parse_qs(urlsplit(anchor.get("href", "")).query).get("q")
    if not targets or not targets[0].strip():
        return WebSearchResult(success=False)

    snippet_div = soup.select_one(SNIPPET_SELECTOR)
    snippet = snippet_div.get_text(" ", strip=True) if snippet_div else ""
    return WebSearchResult(success=True, link=targets[0].strip(), snippet=snippet)


class WebSearchProvider:
    """Interface for the web-search collaborator."""

    async def search(self, query: str) -> WebSearchResult:
        raise NotImplementedError


class NullWebSearch(WebSearchProvider):
    """Provider used when web search is disabled."""

    async def search(self, query: str) -> WebSearchResult:
        return WebSearchResult(success=False)


class GoogleSearchFallback(WebSearchProvider):
    def __init__(self, timeout: Optional[float] = None):
        self.timeout = float(Config.WEB_SEARCH_TIMEOUT_SECONDS if timeout is None else timeout)

    async def _fetch(self, query: str) -> str:
        url = SEARCH_URL.format(query=quote_plus(query))
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=client_timeout, headers={"User-Agent": USER_AGENT}) as session:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise UpstreamError(f"search page returned HTTP {resp.status}")
                return await resp.text()

    async def search(self, query: str) -> WebSearchResult:
        text = str(query or "").strip()
        if not text:
            return WebSearchResult(success=False)
        try:
            page = await asyncio.wait_for(self._fetch(text), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[WebSearch] Google search fallback timed out after {self.timeout:.1f}s")
            return WebSearchResult(success=False)
        except (aiohttp.ClientError, UpstreamError) as e:
            logger.warning(f"[WebSearch] Google search fallback failed: {e}")
            return WebSearchResult(success=False)

        result = parse_google_result(page)
        if result.success:
            logger.info(f"[WebSearch] Found link for \"{text}\": {result.link}")
        return result
