"""
Content Augmenter
=================

Best-effort replacement of truncated feed text with article text scraped from
a lightweight rendering of the publisher page.

Publishers are described by PublisherRule values in PUBLISHER_RULES; adding a
publisher means adding a rule, not a code branch.
"""

import re
import ssl
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional, Tuple

import aiohttp
import certifi
from bs4 import BeautifulSoup

from ..database.models import AugmentResult
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ContentExtractionError, ErrorCode


@dataclass(frozen=True)
class PublisherRule:
    """Extraction rule for one publisher.

    Attributes:
        name: Publisher label used in logs
        pattern: Regular expression an article URL must match
        rewrite: Maps the article URL to its lightweight rendering
        content_selector: CSS selector for body paragraphs
        headline_selector: CSS selector for the headline
        exclude_selectors: Paragraphs matching any of these are dropped
    """
    name: str
    pattern: re.Pattern
    rewrite: Callable[[str], str]
    content_selector: str
    headline_selector: str = "h1"
    exclude_selectors: Tuple[str, ...] = field(default_factory=tuple)

    def matches(self, url: str) -> bool:
        return bool(self.pattern.match(url))


PUBLISHER_RULES: Tuple[PublisherRule, ...] = (
    PublisherRule(
        name="bbc_news",
        pattern=re.compile(r"^https://www\.bbc\.com/news(/.+)?/articles/.+$"),
        rewrite=lambda url: f"{url}.amp",
        content_selector='main[role="main"] p',
        exclude_selectors=("figure p", "section p"),
    ),
    PublisherRule(
        name="bbc_sport",
        pattern=re.compile(r"^https://www\.bbc\.com/sport(/.+)?/articles/.+$"),
        rewrite=lambda url: f"{url}.amp",
        content_selector='main[role="main"] p',
        exclude_selectors=("figure p", "section p"),
    ),
    PublisherRule(
        name="guardian",
        pattern=re.compile(r"^https://www\.theguardian\.com/.+"),
        rewrite=lambda url: f"{url}/amp",
        content_selector="#maincontent p",
        exclude_selectors=("figure p",),
    ),
)

_WHITESPACE = re.compile(r"\s+")


def find_rule(url: str, rules: Tuple[PublisherRule, ...] = PUBLISHER_RULES) -> Optional[PublisherRule]:
    """Return the first rule matching the URL, if any."""
    return next((rule for rule in rules if rule.matches(url)), None)


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def extract_article_text(html: str, rule: PublisherRule) -> str:
    """Extract headline and body paragraphs joined by blank lines.

    Returns an empty string when the page has no body paragraphs.
    """
    soup = BeautifulSoup(html, "html.parser")

    excluded = {
        id(element)
        for selector in rule.exclude_selectors
        for element in soup.select(selector)
    }
    paragraphs = [
        _normalize(element.get_text())
        for element in soup.select(rule.content_selector)
        if id(element) not in excluded
    ]
    paragraphs = [paragraph for paragraph in paragraphs if paragraph]

    if not paragraphs:
        return ""

    headline = " ".join(
        _normalize(element.get_text()) for element in soup.select(rule.headline_selector)
    ).strip()

    return "\n\n".join([headline, *paragraphs] if headline else paragraphs)


class ContentAugmenter:
    """Fetches and extracts full article text for supported publishers."""

    def __init__(self, rules: Tuple[PublisherRule, ...] = PUBLISHER_RULES, timeout: Optional[float] = None):
        self.settings = get_settings()
        self.rules = rules
        self.timeout = timeout or self.settings.limits.augment_timeout
        self.logger = get_logger_for_component("content_augmenter")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Get an aiohttp session with the short page-fetch timeout."""
        connector = aiohttp.TCPConnector(ssl=self.ssl_context, enable_cleanup_closed=True)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": "text/html,application/xhtml+xml",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def augment(self, url: str, fallback_text: str) -> AugmentResult:
        """Return scraped article text, or the fallback text unchanged.

        Never raises: unsupported URLs, fetch failures, timeouts and pages
        without body paragraphs all yield ``(fallback_text, False)``.

        Args:
            url: Article URL from the entry metadata
            fallback_text: Text to use when augmentation is not possible

        Returns:
            AugmentResult with the query text and whether it was extended
        """
        rule = find_rule(url, self.rules) if url else None
        if rule is None:
            return AugmentResult(query_text=fallback_text, extended=False)

        page_url = rule.rewrite(url)
        self.logger.debug(f"Fetching {rule.name} page: {page_url}")

        try:
            html = await self._fetch_page(page_url)
            text = extract_article_text(html, rule)
        except Exception as e:
            error = ContentExtractionError(
                f"Failed to fetch the page: {e}",
                url=page_url,
                error_code=(
                    ErrorCode.FEED_FETCH_TIMEOUT
                    if isinstance(e, asyncio.TimeoutError)
                    else ErrorCode.CONTENT_EXTRACTION_FAILED
                ),
            )
            self.logger.warning(str(error), extra=error.to_dict())
            return AugmentResult(query_text=fallback_text, extended=False)

        if not text:
            self.logger.info(f"No body paragraphs found at {page_url}")
            return AugmentResult(query_text=fallback_text, extended=False)

        return AugmentResult(query_text=text, extended=True)

    async def _fetch_page(self, page_url: str) -> str:
        async with self.get_session() as session:
            async with session.get(page_url) as response:
                if not 200 <= response.status < 300:
                    raise ContentExtractionError(
                        f"HTTP {response.status}: {response.reason}",
                        url=page_url,
                    )
                return await response.text()

    def supported_publishers(self) -> List[str]:
        return [rule.name for rule in self.rules]
