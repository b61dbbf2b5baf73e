"""
Web-derived fallback provider.
Last tier of the reply chain: an instant-answer lookup, then a scrape of
result snippets from a search page, then a fixed message. Configured
unless web_search_enabled is off.

Version: 1.0.0
"""
import asyncio
import logging
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError

from .base import ProviderReply, ReplyProvider
from ..config.provider_settings import ProviderSettings

logger = logging.getLogger(__name__)

NO_RESULT_MESSAGE = (
    "I couldn't find specific information about that. "
    "Could you please rephrase your question?"
)
UNCLEAR_RESULT_MESSAGE = (
    "I found some information but couldn't extract clear details. "
    "Please try a more specific question."
)
SCRAPE_FAILED_MESSAGE = "I'm having trouble accessing web information right now."

# Class sets marking result snippets on the search page
SNIPPET_CLASSES = (
    frozenset({"BNeawe", "s3v9rd", "AP7Wnd"}),
    frozenset({"BNeawe", "vvjwJb", "AP7Wnd"})
)
MIN_SNIPPET_LENGTH = 20

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr"
})


class SnippetParser(HTMLParser):
    """Collects the text of elements carrying one of the snippet class sets."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.snippets: List[str] = []
        self._depth = 0
        self._buffer: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag in VOID_ELEMENTS:
            return
        if self._depth:
            self._depth += 1
            return
        classes = frozenset((dict(attrs).get("class") or "").split())
        if any(wanted <= classes for wanted in SNIPPET_CLASSES):
            self._depth = 1
            self._buffer = []

    def handle_endtag(self, tag):
        if tag in VOID_ELEMENTS or not self._depth:
            return
        self._depth -= 1
        if self._depth == 0:
            self.snippets.append(" ".join("".join(self._buffer).split()))

    def handle_data(self, data):
        if self._depth:
            self._buffer.append(data)


def extract_instant_answer(data: Dict[str, Any]) -> str:
    """First non-empty of AbstractText, Answer, Definition."""
    for field in ("AbstractText", "Answer", "Definition"):
        value = data.get(field)
        if value:
            return str(value)
    return ""


def extract_snippets(html: str, max_snippets: int = 3) -> List[str]:
    """
    Text of the first ``max_snippets`` snippet elements, keeping only
    those longer than the minimum length.
    """
    parser = SnippetParser()
    parser.feed(html)
    parser.close()
    return [s for s in parser.snippets[:max_snippets] if len(s) > MIN_SNIPPET_LENGTH]


class WebSearchProvider(ReplyProvider):
    """
    Degraded reply source built from public web lookups.

    The instant-answer request may raise (the orchestrator then answers
    with the fixed apology); scrape failures are absorbed into a fixed
    message.
    """

    name = "web_search"
    transient_errors = (aiohttp.ClientConnectionError,)

    def __init__(self, settings: ProviderSettings, session: Optional[ClientSession] = None):
        self.settings = settings
        self.session = session
        self._owns_session = session is None

    @property
    def configured(self) -> bool:
        return self.settings.web_search_enabled

    async def _get_session(self) -> ClientSession:
        if self.session is None or self.session.closed:
            self.session = ClientSession(
                timeout=ClientTimeout(total=self.settings.web_search_timeout_seconds)
            )
            self._owns_session = True
        return self.session

    async def _fetch_instant_answer(self, query: str) -> Dict[str, Any]:
        session = await self._get_session()
        params = {
            "q": query,
            "format": "json",
            "no_html": "1",
            "skip_disambig": "1"
        }
        async with session.get(
            self.settings.instant_answer_url,
            params=params,
            headers={"User-Agent": self.settings.bot_user_agent}
        ) as response:
            response.raise_for_status()
            # Served as application/x-javascript
            return await response.json(content_type=None)

    async def _fetch_search_page(self, query: str) -> str:
        session = await self._get_session()
        async with session.get(
            self.settings.search_page_url,
            params={"q": query},
            headers={"User-Agent": self.settings.browser_user_agent}
        ) as response:
            response.raise_for_status()
            return await response.text()

    async def scrape_search_results(self, query: str) -> str:
        try:
            html = await self._fetch_search_page(query)
            snippets = extract_snippets(html, self.settings.web_search_max_snippets)
        except (ClientError, ValueError, asyncio.TimeoutError) as e:
            logger.warning(f"Search page scrape failed: {e}")
            return SCRAPE_FAILED_MESSAGE

        if snippets:
            return f"Based on web search: {' '.join(snippets)}"
        return UNCLEAR_RESULT_MESSAGE

    async def search(self, query: str) -> ProviderReply:
        """
        Answer a query from the web.

        Raises:
            aiohttp.ClientError: The instant-answer lookup failed
        """
        data = await self._fetch_instant_answer(query)
        result = extract_instant_answer(data) if isinstance(data, dict) else ""

        if not result:
            result = await self.scrape_search_results(query)

        return ProviderReply(response=result or NO_RESULT_MESSAGE, source=self.name)

    async def generate(
        self,
        messages: List[Dict[str, str]],
        use_reasoner: bool = False
    ) -> ProviderReply:
        query = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"),
            ""
        )
        return await self.search(query)

    async def close(self) -> None:
        if self._owns_session and self.session is not None and not self.session.closed:
            await self.session.close()


__all__ = [
    'WebSearchProvider',
    'SnippetParser',
    'extract_instant_answer',
    'extract_snippets',
    'NO_RESULT_MESSAGE',
    'UNCLEAR_RESULT_MESSAGE',
    'SCRAPE_FAILED_MESSAGE'
]
