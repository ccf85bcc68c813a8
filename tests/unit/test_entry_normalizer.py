"""
Tests for entry identity, canonical text and metadata extraction.
"""

import pytest

from conftest import SAMPLE_RSS_FEED, SAMPLE_ATOM_FEED, SAMPLE_RDF_FEED
from vectorfeed.database.models import Entry, FeedFormat
from vectorfeed.ingestion.feed_parser import parse_feed
from vectorfeed.ingestion.entry_normalizer import (
    generate_id, parse_content, extract_metadata, MAX_ID_LENGTH,
)


def rss_entry(**fields) -> Entry:
    return Entry(format=FeedFormat.RSS, **fields)


class TestGenerateId:
    """Identity derivation."""

    def test_id_takes_precedence(self):
        entry = rss_entry(
            id="entry-id",
            post_id={"#text": "post-7"},
            guid={"#text": "guid-text"},
            link="https://example.com/a",
        )
        assert generate_id(entry) == "entry-id"

    def test_post_id_text_before_guid(self):
        entry = rss_entry(post_id={"#text": "post-7"}, guid="guid-1", link="https://example.com/a")
        assert generate_id(entry) == "post-7"

    def test_guid_text_before_plain_guid(self):
        entry = rss_entry(guid={"@_isPermaLink": "false", "#text": "guid-text"}, link="https://example.com/a")
        assert generate_id(entry) == "guid-text"

    def test_plain_guid_before_link(self):
        entry = rss_entry(guid="guid-1", link="https://example.com/a")
        assert generate_id(entry) == "guid-1"

    def test_link_fallback(self):
        assert generate_id(rss_entry(link="https://example.com/a")) == "https://example.com/a"

    def test_fragment_is_stripped(self):
        entry = rss_entry(link="https://example.com/story#comments")
        assert generate_id(entry) == "https://example.com/story"

    def test_truncated_to_max_length(self):
        entry = rss_entry(guid="x" * 200)
        identity = generate_id(entry)
        assert len(identity) == MAX_ID_LENGTH == 64
        assert identity == "x" * 64

    def test_non_string_value_serialized_stably(self):
        first = rss_entry(guid={"@_isPermaLink": "true", "@_extra": "1"})
        second = rss_entry(guid={"@_extra": "1", "@_isPermaLink": "true"})
        assert generate_id(first) == generate_id(second)
        assert generate_id(first).startswith('{"@_extra": "1"')

    def test_atom_link_object_serialized(self):
        entry = Entry(format=FeedFormat.ATOM, link={"@_href": "https://example.org/x"})
        assert generate_id(entry) == '{"@_href": "https://example.org/x"}'

    def test_identity_is_deterministic(self):
        entry = rss_entry(guid="stable", title="Title one")
        assert generate_id(entry) == generate_id(entry)

    @pytest.mark.parametrize("fields", [
        {},
        {"title": "Headline only", "description": "Body"},
        {"guid": "", "link": ""},
        {"link": "#top"},
    ])
    def test_no_identity_fields(self, fields):
        assert generate_id(rss_entry(**fields)) is None

    def test_untitled_items_do_not_share_identity(self):
        feed = parse_feed(
            """<rss version="2.0"><channel><title>No ids</title>
              <item><title>First</title><description>One</description></item>
              <item><title>Second</title><description>Two</description></item>
            </channel></rss>""",
            "https://example.com/rss.xml",
        )

        assert [generate_id(entry) for entry in feed.entries] == [None, None]

    def test_same_link_different_titles_share_identity(self):
        first = rss_entry(link="https://example.com/story", title="Original headline")
        second = rss_entry(link="https://example.com/story", title="Updated headline")
        assert generate_id(first) == generate_id(second)


class TestParseContent:
    """Canonical text selection."""

    def test_string_content_used_as_is(self):
        entry = rss_entry(content="<p>Body \\u003C kept</p>", description="desc")
        assert parse_content(entry) == "<p>Body \\u003C kept</p>"

    def test_structured_content_is_unescaped(self):
        entry = rss_entry(content={
            "@_type": "html",
            "#text": "\\u003Cp class=\\u0022lead\\u0022\\u003EHello\\u003C/p\\u003E\\nWorld",
        })
        assert parse_content(entry) == '<p class="lead">Hello</p>World'

    def test_description_fallback(self):
        entry = rss_entry(content={"@_src": "https://example.com/video"}, description="A description")
        assert parse_content(entry) == "A description"

    def test_tagged_description_fallback(self):
        entry = rss_entry(description={"@_type": "text", "#text": "Tagged description"})
        assert parse_content(entry) == "Tagged description"

    def test_empty_when_nothing_available(self):
        assert parse_content(rss_entry(title="Only a title")) == ""


class TestExtractMetadata:
    """Fixed-shape metadata records."""

    def test_rss_metadata(self):
        feed = parse_feed(SAMPLE_RSS_FEED, "https://example.com/rss.xml")
        metadata = extract_metadata(feed.entries[0])

        assert metadata.url == "https://example.com/news/first"
        assert metadata.title == "First story"
        assert metadata.description == "Short summary of the first story."
        assert metadata.published == "Mon, 06 Jan 2025 09:00:00 GMT"
        assert metadata.author == "Jane Reporter"
        assert metadata.thumbnail.url == "https://example.com/img/first.jpg"
        assert metadata.thumbnail.width == "240"
        assert [c.label for c in metadata.categories] == ["Politics", "World"]
        assert metadata.categories[0].url == "https://example.com/tags"

    def test_atom_metadata(self):
        feed = parse_feed(SAMPLE_ATOM_FEED, "https://example.org/atom.xml")
        metadata = extract_metadata(feed.entries[0])

        assert metadata.url == "https://example.org/2025/01/atom-entry"
        assert metadata.published == "2025-01-06T09:30:00Z"
        assert metadata.updated == "2025-01-06T09:45:00Z"
        assert metadata.author == "Alex Writer"
        assert metadata.categories[0].label == "technology"
        assert metadata.categories[0].url == "https://example.org/categories"

    def test_rdf_metadata_uses_dublin_core(self):
        feed = parse_feed(SAMPLE_RDF_FEED, "https://example.net/rdf")
        metadata = extract_metadata(feed.entries[0])

        assert metadata.published == "2025-01-06T07:00:00Z"
        assert metadata.author == "Sam Editor"

    def test_published_precedence(self):
        entry = rss_entry(pub_date="pubDate value", dc_date="dc:date value")
        assert extract_metadata(entry).published == "pubDate value"

        entry = rss_entry(published="published value", pub_date="pubDate value")
        assert extract_metadata(entry).published == "published value"

    def test_media_attachments(self):
        entry = rss_entry(media=[
            {"@_url": "https://example.com/a.mp4", "@_type": "video/mp4", "@_width": "640"},
            {"@_url": "https://example.com/b.jpg", "@_type": "image/jpeg"},
        ])
        media = extract_metadata(entry).media
        assert [m.url for m in media] == ["https://example.com/a.mp4", "https://example.com/b.jpg"]
        assert media[0].width == "640"

    def test_fixed_shape_when_fields_missing(self):
        metadata = extract_metadata(rss_entry(link="https://example.com/bare")).to_dict()

        assert metadata["url"] == "https://example.com/bare"
        assert metadata["title"] is None
        assert metadata["thumbnail"] is None
        assert metadata["media"] == []
        assert metadata["categories"] == []
        assert set(metadata) >= {
            "url", "title", "description", "published", "updated", "author",
            "thumbnail", "media", "categories", "copyright", "keywords",
            "publisher", "subject",
        }
