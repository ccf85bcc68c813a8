"""
VectorFeed Data Models
======================

Pydantic data models for type safety and validation throughout the pipeline.
Item corresponds to the database schema; Entry and ParsedFeed are the
canonical, format-independent shapes produced at the feed parsing boundary.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any
from dataclasses import dataclass
import json

from pydantic import BaseModel, Field


class ItemStatus(str, Enum):
    """Item lifecycle states."""
    QUEUED = "queued"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class FeedFormat(str, Enum):
    """Syndication format families accepted by the feed parser."""
    RSS = "rss"
    ATOM = "atom"
    RDF = "rdf"


class Item(BaseModel):
    """Persisted lifecycle record for one entry identity."""
    id: str = Field(..., min_length=1, max_length=64, description="Entry identity")
    status: ItemStatus = Field(..., description="Lifecycle status")
    text: Optional[str] = Field(default=None, description="Canonical item text")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Entry metadata")
    created_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))

    def metadata_json(self) -> str:
        """Get metadata as JSON string for database storage."""
        return json.dumps(self.metadata, ensure_ascii=False)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Item":
        """Create Item from database row with JSON parsing."""
        data = dict(row)

        if isinstance(data.get('metadata'), str):
            data['metadata'] = json.loads(data['metadata'])
        elif data.get('metadata') is None:
            data['metadata'] = {}

        return cls(**data)

    def __str__(self) -> str:
        return f"Item({self.id}:{self.status.value})"


class Thumbnail(BaseModel):
    url: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None


class MediaAttachment(BaseModel):
    url: Optional[str] = None
    type: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    credit: Optional[str] = None


class Category(BaseModel):
    label: Optional[str] = None
    url: Optional[str] = None


class EntryMetadata(BaseModel):
    """Fixed-shape metadata record extracted from a feed entry."""
    url: Optional[str] = Field(default=None, description="Article URL")
    title: Optional[str] = None
    description: Optional[str] = None
    published: Optional[str] = Field(default=None, description="Best available publication date")
    updated: Optional[str] = None
    author: Optional[str] = None
    thumbnail: Optional[Thumbnail] = None
    media: List[MediaAttachment] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    copyright: Optional[str] = None
    keywords: Optional[str] = None
    publisher: Optional[str] = None
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary form carried in queue messages and vector metadata."""
        return self.model_dump(mode="json")


class Entry(BaseModel):
    """Canonical feed entry.

    Values keep the tagged XML shape where it matters downstream: an element
    with attributes or children is a dict with ``@_name`` attribute keys and
    ``#text`` element text, a bare element is a plain string.
    """
    format: FeedFormat = Field(..., description="Source format family")
    id: Any = None
    post_id: Any = None
    guid: Any = None
    link: Any = None
    title: Any = None
    content: Any = None
    description: Any = None
    published: Any = None
    pub_date: Any = None
    date: Any = None
    dc_date: Any = None
    updated: Any = None
    author: Any = None
    dc_creator: Any = None
    thumbnail: Any = None
    media: List[Any] = Field(default_factory=list)
    categories: List[Any] = Field(default_factory=list)
    copyright: Any = None
    keywords: Any = None
    publisher: Any = None
    subject: Any = None


class ParsedFeed(BaseModel):
    """Normalized feed document."""
    feed_url: str = Field(..., description="URL the feed was fetched from")
    format: FeedFormat
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    copyright: Optional[str] = None
    last_updated: Optional[str] = None
    entries: List[Entry] = Field(default_factory=list)

    def __str__(self) -> str:
        return f"ParsedFeed({self.title or self.feed_url}: {len(self.entries)} entries)"


class Vector(BaseModel):
    """Embedding output paired with its item identity and metadata."""
    id: str = Field(..., min_length=1)
    values: List[float] = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class AugmentResult:
    """Result of a content augmentation attempt."""
    query_text: str
    extended: bool = False


@dataclass
class VectorMatch:
    """Single vector index query match."""
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None
