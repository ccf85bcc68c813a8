"""
Queue Messages
==============

Pydantic models for the two work queue message shapes, discriminated on
``type``:

    FeedDiscovery:   {"type": "rss",   "id": <feed URL>}
    EntryProcessing: {"type": "entry", "id": <identity>, "data": {"text": ..., "metadata": {...}}}
"""

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError as PydanticValidationError, field_validator

from ..utils.exceptions import MessageValidationError


class FeedDiscoveryMessage(BaseModel):
    """Request to fetch a feed and fan its new entries out."""
    type: Literal["rss"] = "rss"
    id: str = Field(..., min_length=1, description="Feed URL")


class EntryData(BaseModel):
    text: str = Field(default="", description="Canonical entry text")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Entry metadata")

    @field_validator('text', mode='before')
    @classmethod
    def validate_text(cls, v):
        """Treat a missing text as empty."""
        return "" if v is None else v

    @field_validator('metadata', mode='before')
    @classmethod
    def validate_metadata(cls, v):
        return {} if v is None else v


class EntryProcessingMessage(BaseModel):
    """Request to embed and index one entry."""
    type: Literal["entry"] = "entry"
    id: str = Field(..., min_length=1, description="Entry identity")
    data: EntryData = Field(default_factory=EntryData)

    @property
    def url(self) -> Optional[str]:
        url = self.data.metadata.get("url")
        return url if isinstance(url, str) and url else None


QueueMessage = Annotated[
    Union[FeedDiscoveryMessage, EntryProcessingMessage],
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter = TypeAdapter(QueueMessage)


def parse_message(body: Union[str, bytes, Dict[str, Any]]) -> Union[FeedDiscoveryMessage, EntryProcessingMessage]:
    """Parse a raw queue message body.

    Raises:
        MessageValidationError: If the body is not valid JSON or matches neither shape
    """
    try:
        if isinstance(body, (str, bytes)):
            body = json.loads(body)
        return _message_adapter.validate_python(body)
    except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as e:
        raise MessageValidationError(
            f"Invalid queue message: {e}",
            context={"body": str(body)[:500]},
        ) from e


def serialize_message(message: Union[FeedDiscoveryMessage, EntryProcessingMessage]) -> str:
    """Serialize a message for the work queue."""
    return message.model_dump_json()
