"""
Entry Normalizer
================

Pure functions deriving identity, canonical text and metadata from an Entry.
"""

import json
import re
from typing import Any, Optional

from ..database.models import Category, Entry, EntryMetadata, MediaAttachment, Thumbnail
from .feed_parser import ATTRIBUTE_PREFIX, TEXT_KEY, as_list, link_href, text_of

# Characters; the vector index also caps ids at 64 UTF-8 bytes
MAX_ID_LENGTH = 64

_FRAGMENT = re.compile(r"#.*$", re.DOTALL)

# Escaped markup left behind by feeds that embed JSON-encoded HTML
_ESCAPED_SEQUENCES = (
    ("\\u003C", "<"),
    ("\\u003E", ">"),
    ("\\u0022", '"'),
    ("\\n", ""),
)


def _attr(value: Any, name: str) -> Optional[str]:
    if isinstance(value, dict):
        return value.get(f"{ATTRIBUTE_PREFIX}{name}")
    return None


def _tagged_text(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get(TEXT_KEY)
    return None


def generate_id(entry: Entry) -> Optional[str]:
    """Derive the stable identity of an entry.

    Precedence is id, post-id text, guid text, guid, then link. Non-string
    values are serialized as JSON with sorted keys, any ``#fragment`` is
    removed and the result is truncated to 64 characters.

    Returns:
        The identity, or None when the entry carries none of the identity
        fields
    """
    identity = (
        entry.id
        or _tagged_text(entry.post_id)
        or _tagged_text(entry.guid)
        or entry.guid
        or entry.link
    )
    if not identity:
        return None

    if not isinstance(identity, str):
        identity = json.dumps(identity, sort_keys=True, ensure_ascii=False)

    identity = _FRAGMENT.sub("", identity)
    return identity[:MAX_ID_LENGTH] or None


def _unescape(text: str) -> str:
    for sequence, replacement in _ESCAPED_SEQUENCES:
        text = text.replace(sequence, replacement)
    return text


def parse_content(entry: Entry) -> str:
    """Return the canonical text of an entry.

    Plain string content is used as-is. Structured content carrying ``#text``
    has escaped markup sequences restored. Otherwise the description is used,
    and an entry with neither yields an empty string.
    """
    content = entry.content

    if isinstance(content, str) and content:
        return content

    structured = _tagged_text(content)
    if isinstance(structured, str) and structured:
        return _unescape(structured)

    return text_of(entry.description) or ""


def _author(entry: Entry) -> Optional[str]:
    author = entry.author
    if isinstance(author, list):
        author = author[0] if author else None

    if isinstance(author, dict) and author.get("name"):
        return text_of(author["name"])

    return text_of(entry.dc_creator) or (author if isinstance(author, str) and author else None)


def _thumbnail(entry: Entry) -> Optional[Thumbnail]:
    thumbnails = as_list(entry.thumbnail)
    if not thumbnails:
        return None

    thumbnail = thumbnails[0]
    return Thumbnail(
        url=_attr(thumbnail, "url"),
        width=_attr(thumbnail, "width"),
        height=_attr(thumbnail, "height"),
    )


def _category(value: Any) -> Category:
    if isinstance(value, str):
        return Category(label=value)

    return Category(
        url=_attr(value, "domain") or _attr(value, "scheme"),
        label=_tagged_text(value) or _attr(value, "term"),
    )


def extract_metadata(entry: Entry) -> EntryMetadata:
    """Assemble the fixed-shape metadata record for an entry."""
    return EntryMetadata(
        url=link_href(entry.link),
        title=text_of(entry.title),
        description=text_of(entry.description),
        published=text_of(entry.published or entry.pub_date or entry.date or entry.dc_date),
        updated=text_of(entry.updated),
        author=_author(entry),
        thumbnail=_thumbnail(entry),
        media=[
            MediaAttachment(
                url=_attr(media, "url"),
                type=_attr(media, "type"),
                width=_attr(media, "width"),
                height=_attr(media, "height"),
                credit=_attr(media, "credit"),
            )
            for media in entry.media
        ],
        categories=[_category(category) for category in entry.categories],
        copyright=text_of(entry.copyright),
        keywords=text_of(entry.keywords),
        publisher=text_of(entry.publisher),
        subject=text_of(entry.subject),
    )
