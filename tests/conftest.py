"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for VectorFeed tests.

- Test environment variables are set before any vectorfeed import
- Each test gets its own temporary SQLite database with the schema applied
- HTTP sessions are replaced by mocks; no test touches the network
"""

import pytest
import tempfile
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "vectorfeed_tests"
_TEST_DIR.mkdir(exist_ok=True)

os.environ["VECTORFEED_AI__CLOUDFLARE_ACCOUNT_ID"] = "test-account-id"
os.environ["VECTORFEED_AI__CLOUDFLARE_API_TOKEN"] = "test-api-token"
os.environ["VECTORFEED_DATABASE__PATH"] = str(_TEST_DIR / "vectorfeed_default.db")
os.environ["VECTORFEED_LOGGING__FILE_PATH"] = str(_TEST_DIR / "vectorfeed_test.log")
os.environ["VECTORFEED_DEBUG"] = "true"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db():
    """Temporary database file with the schema created."""
    from vectorfeed.database.schema import DatabaseSchema

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    DatabaseSchema(db_path).create_tables()

    yield db_path

    # Cleanup (WAL side files included)
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except FileNotFoundError:
            pass


@pytest.fixture
def db_connection(temp_db):
    """Create a database connection manager for testing."""
    from vectorfeed.database.connection import DatabaseConnection

    connection = DatabaseConnection(temp_db, pool_size=2)
    yield connection

    # Cleanup connections
    connection.close_all_connections()


@pytest.fixture
def item_repository(db_connection):
    from vectorfeed.storage.item_repository import ItemRepository

    return ItemRepository(db_connection)


@pytest.fixture
def work_queue(db_connection):
    from vectorfeed.processing.work_queue import WorkQueue

    return WorkQueue(db_connection, visibility_timeout=60, max_attempts=3)


# ============================================================================
# HTTP Mocks
# ============================================================================


def make_response(status=200, body=None, text=None, reason="OK"):
    """Mock aiohttp response usable as ``async with session.get(...)``."""
    response = AsyncMock()
    response.status = status
    response.reason = reason
    response.json = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value=text if text is not None else "")
    response.read = AsyncMock(
        return_value=(text or "").encode("utf-8") if isinstance(text, str) else text
    )
    return response


def make_session(response=None, side_effect=None):
    """Mock aiohttp session whose get/post return ``response`` or raise ``side_effect``."""
    session = MagicMock()

    context_manager = MagicMock()
    context_manager.__aenter__ = AsyncMock(return_value=response, side_effect=side_effect)
    context_manager.__aexit__ = AsyncMock(return_value=False)

    session.get = MagicMock(return_value=context_manager)
    session.post = MagicMock(return_value=context_manager)
    return session


def session_factory(session):
    """Replacement for a component's ``get_session`` yielding ``session``."""

    @asynccontextmanager
    async def get_session():
        yield session

    return get_session


# ============================================================================
# Feed Documents
# ============================================================================


SAMPLE_RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example News</title>
    <link>https://example.com/</link>
    <description>Latest stories</description>
    <copyright>Example Ltd</copyright>
    <lastBuildDate>Mon, 06 Jan 2025 10:00:00 GMT</lastBuildDate>
    <item>
      <title>First story</title>
      <link>https://example.com/news/first</link>
      <guid isPermaLink="false">story-1</guid>
      <description>Short summary of the first story.</description>
      <pubDate>Mon, 06 Jan 2025 09:00:00 GMT</pubDate>
      <dc:creator>Jane Reporter</dc:creator>
      <category domain="https://example.com/tags">Politics</category>
      <category>World</category>
      <media:thumbnail url="https://example.com/img/first.jpg" width="240" height="135"/>
    </item>
    <item>
      <title>Second story</title>
      <link>https://example.com/news/second#comments</link>
      <description>Short summary of the second story.</description>
      <content:encoded><![CDATA[<p>Full body of the second story.</p>]]></content:encoded>
      <pubDate>Mon, 06 Jan 2025 08:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

SAMPLE_ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <subtitle>Atom stories</subtitle>
  <link href="https://example.org/"/>
  <updated>2025-01-06T10:00:00Z</updated>
  <entry>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <title>Atom entry</title>
    <link rel="alternate" href="https://example.org/2025/01/atom-entry"/>
    <link rel="edit" href="https://example.org/edit/1"/>
    <published>2025-01-06T09:30:00Z</published>
    <updated>2025-01-06T09:45:00Z</updated>
    <summary>Atom summary text.</summary>
    <author><name>Alex Writer</name></author>
    <category term="technology" scheme="https://example.org/categories"/>
  </entry>
</feed>
"""

SAMPLE_RDF_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns="http://purl.org/rss/1.0/"
         xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel rdf:about="https://example.net/">
    <title>Example RDF</title>
    <link>https://example.net/</link>
    <description>RSS 1.0 stories</description>
    <dc:date>2025-01-06T10:00:00Z</dc:date>
  </channel>
  <item rdf:about="https://example.net/story-a">
    <title>RDF story A</title>
    <link>https://example.net/story-a</link>
    <description>Story A description.</description>
    <dc:date>2025-01-06T07:00:00Z</dc:date>
    <dc:creator>Sam Editor</dc:creator>
  </item>
  <item rdf:about="https://example.net/story-b">
    <title>RDF story B</title>
    <link>https://example.net/story-b</link>
    <description>Story B description.</description>
  </item>
</rdf:RDF>
"""
