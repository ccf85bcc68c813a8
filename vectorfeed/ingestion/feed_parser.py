"""
Feed Parser
===========

Converts RSS 2.0, RSS 1.0 (RDF) and Atom documents into the canonical
ParsedFeed / Entry models.

XML elements are first turned into a tagged tree:
- an element with neither attributes nor child elements becomes its text
- otherwise a dict with ``@_<attr>`` keys, child elements keyed by their
  qualified name (``dc:creator``), and ``#text`` for direct text content
- repeated child elements become lists
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.element import ProcessingInstruction

from ..database.models import Entry, FeedFormat, ParsedFeed
from ..utils.exceptions import ErrorCode, FeedFetchError

ATTRIBUTE_PREFIX = "@_"
TEXT_KEY = "#text"


def qualified_name(tag: Tag) -> str:
    """Return ``prefix:name`` for namespaced elements, ``name`` otherwise."""
    if tag.prefix and not tag.name.startswith(f"{tag.prefix}:"):
        return f"{tag.prefix}:{tag.name}"
    return tag.name


def _local_name(tag: Tag) -> str:
    return tag.name.split(":")[-1]


def _is_text(node: Any) -> bool:
    return isinstance(node, NavigableString) and not isinstance(
        node, (Comment, ProcessingInstruction)
    )


def element_to_value(tag: Tag) -> Union[str, Dict[str, Any]]:
    """Convert an XML element into the tagged tree shape."""
    attributes = {
        f"{ATTRIBUTE_PREFIX}{key}": value
        for key, value in tag.attrs.items()
        if not str(key).startswith("xmlns")
    }
    children = [child for child in tag.children if isinstance(child, Tag)]
    text = "".join(str(node) for node in tag.children if _is_text(node)).strip()

    if not attributes and not children:
        return text

    node: Dict[str, Any] = dict(attributes)
    for child in children:
        key = qualified_name(child)
        value = element_to_value(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]

    if text:
        node[TEXT_KEY] = text

    return node


def as_list(value: Any) -> List[Any]:
    """Normalize a single element or repeated elements into a list."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def text_of(value: Any) -> Optional[str]:
    """Extract the text of a tagged tree value (None when absent)."""
    if isinstance(value, list):
        return text_of(value[0]) if value else None
    if isinstance(value, dict):
        value = value.get(TEXT_KEY)
    if value is None or value == "":
        return None
    return str(value)


def link_href(value: Any) -> Optional[str]:
    """Resolve a link element to a URL, preferring the ``href`` attribute.

    Atom documents may carry several links; the alternate link wins.
    """
    if isinstance(value, list):
        for link in value:
            if isinstance(link, dict) and link.get(f"{ATTRIBUTE_PREFIX}rel", "alternate") == "alternate":
                return link_href(link)
        return link_href(value[0]) if value else None

    if isinstance(value, dict):
        return value.get(f"{ATTRIBUTE_PREFIX}href") or text_of(value)

    return text_of(value)


def _first_present(node: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = node.get(key)
        if value:
            return value
    return None


def build_entry(raw: Dict[str, Any], feed_format: FeedFormat) -> Entry:
    """Fold a raw item/entry node into the canonical Entry shape."""
    if not isinstance(raw, dict):
        raw = {TEXT_KEY: raw} if raw else {}

    return Entry(
        format=feed_format,
        id=raw.get("id"),
        post_id=raw.get("post-id"),
        guid=raw.get("guid"),
        link=raw.get("link"),
        title=raw.get("title"),
        content=_first_present(raw, "content", "content:encoded"),
        description=_first_present(raw, "description", "summary"),
        published=raw.get("published"),
        pub_date=raw.get("pubDate"),
        date=raw.get("date"),
        dc_date=raw.get("dc:date"),
        updated=raw.get("updated"),
        author=raw.get("author"),
        dc_creator=raw.get("dc:creator"),
        thumbnail=raw.get("media:thumbnail"),
        media=as_list(raw.get("media:content")),
        categories=as_list(raw.get("category")),
        copyright=_first_present(raw, "copyright", "rights", "dc:rights"),
        keywords=_first_present(raw, "media:keywords", "keywords"),
        publisher=raw.get("dc:publisher"),
        subject=raw.get("dc:subject"),
    )


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else {}


def _locate(root: Tag, tree: Dict[str, Any]) -> Tuple[FeedFormat, Dict[str, Any], List[Any]]:
    """Find the channel node and the raw entries for the document's format."""
    root_name = _local_name(root)

    if root_name == "rss":
        channel = _as_dict(tree.get("channel"))
        return FeedFormat.RSS, channel, as_list(channel.get("item"))

    if root_name == "feed":
        return FeedFormat.ATOM, tree, as_list(tree.get("entry"))

    if root_name == "RDF":
        # RSS 1.0 keeps items as siblings of the channel
        channel = _as_dict(tree.get("channel"))
        return FeedFormat.RDF, channel, as_list(tree.get("item"))

    raise FeedFetchError(
        f"Unrecognised feed document root <{qualified_name(root)}>",
        error_code=ErrorCode.FEED_PARSE_ERROR,
        recoverable=False,
    )


def parse_feed(document: Union[str, bytes], feed_url: str) -> ParsedFeed:
    """Parse a feed document into a ParsedFeed.

    Args:
        document: Raw XML document
        feed_url: URL the document was fetched from

    Returns:
        ParsedFeed with canonical entries

    Raises:
        FeedFetchError: If the document is not a recognisable feed
    """
    root = None
    if document and document.strip():
        try:
            soup = BeautifulSoup(document, "xml")
        except ParserRejectedMarkup as e:
            raise FeedFetchError(
                f"Feed document rejected by the XML parser: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
                recoverable=False,
            ) from e
        root = next((child for child in soup.children if isinstance(child, Tag)), None)

    if root is None:
        raise FeedFetchError(
            "Feed document is empty or not XML",
            feed_url=feed_url,
            error_code=ErrorCode.FEED_PARSE_ERROR,
            recoverable=False,
        )

    try:
        feed_format, channel, raw_entries = _locate(root, _as_dict(element_to_value(root)))
    except FeedFetchError as e:
        e.context["feed_url"] = feed_url
        raise

    return ParsedFeed(
        feed_url=feed_url,
        format=feed_format,
        title=text_of(channel.get("title")),
        description=text_of(_first_present(channel, "description", "subtitle")),
        link=link_href(channel.get("link")),
        copyright=text_of(_first_present(channel, "copyright", "rights", "dc:rights")),
        last_updated=text_of(_first_present(channel, "lastBuildDate", "updated", "dc:date")),
        entries=[build_entry(raw, feed_format) for raw in raw_entries],
    )
