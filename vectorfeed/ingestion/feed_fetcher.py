"""
Feed Fetcher
============

Fetches a syndication feed over HTTP and parses it into a ParsedFeed.
The fetcher never retries; redelivery of the discovery message is the
retry mechanism.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import aiohttp
import certifi

from ..database.models import ParsedFeed
from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, ErrorCode
from ..utils.validators import URLValidator
from .feed_parser import parse_feed


class FeedFetcher:
    """HTTP feed fetcher with a scoped aiohttp session."""

    ACCEPT = "application/rss+xml, application/atom+xml, application/rdf+xml, application/xml, text/xml, */*"

    def __init__(self, timeout: Optional[int] = None):
        """Initialize feed fetcher.

        Args:
            timeout: Request timeout in seconds (default from config)
        """
        self.settings = get_settings()
        self.timeout = timeout or self.settings.limits.request_timeout
        self.logger = get_logger_for_component("feed_fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit_per_host=5,
            enable_cleanup_closed=True,
        )

        timeout = aiohttp.ClientTimeout(total=self.timeout)

        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": self.ACCEPT,
            "Accept-Encoding": "gzip, deflate",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def fetch(self, feed_url: str) -> ParsedFeed:
        """Fetch and parse a feed using a session scoped to this call.

        Args:
            feed_url: URL of the feed

        Returns:
            ParsedFeed with canonical entries

        Raises:
            FeedFetchError: On network errors, non-2xx responses or unparseable documents
            ValidationError: If the URL is not an acceptable feed URL
        """
        async with self.get_session() as session:
            return await self.fetch_feed(feed_url, session)

    async def fetch_feed(self, feed_url: str, session: aiohttp.ClientSession) -> ParsedFeed:
        """Fetch and parse a single feed with a caller-provided session."""
        validated_url = URLValidator.validate_feed_url(feed_url)
        start_time = datetime.now(timezone.utc)

        self.logger.debug(f"Fetching feed: {validated_url}")

        try:
            async with session.get(validated_url) as response:
                if response.status == 404:
                    raise FeedFetchError(
                        f"Feed not found: HTTP {response.status}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_NOT_FOUND,
                    )
                if response.status in (401, 403):
                    raise FeedFetchError(
                        f"Feed access denied: HTTP {response.status}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_ACCESS_DENIED,
                    )
                if not 200 <= response.status < 300:
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_NETWORK_ERROR,
                    )

                document = await response.read()

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Fetch error: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            ) from e

        feed = parse_feed(document, feed_url)

        self.logger.info(
            f"Fetched {len(feed.entries)} entries from {validated_url} "
            f"in {(datetime.now(timezone.utc) - start_time).total_seconds():.2f}s"
        )
        return feed
