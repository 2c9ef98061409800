"""Data models for the knowledge layer."""

import datetime
import re
from datetime import timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite stores datetimes without an offset, so everything read back
    from the store passes through here.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Clean, de-duplicate and sort tags.

    Tags are written to the mirror as ``#name`` separated by spaces, so a
    leading ``#`` is dropped and inner whitespace becomes ``-``.
    """
    if not tags:
        return []
    cleaned = (re.sub(r"\s+", "-", str(t).strip().lstrip("#").strip()) for t in tags)
    return sorted({t for t in cleaned if t})


class LinkKind(str, Enum):
    """Kinds of edges in the link graph."""

    REFERENCE = "reference"  # Extracted from the origin's content
    BACKLINK = "backlink"  # Reciprocal of a reference, stored against the target


class LinkDirection(str, Enum):
    """Which edges of a note a graph query returns."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"


class Link(BaseModel):
    """A directed edge between two notes.

    ``target`` is the title as written when the link comes straight from
    the extractor, and the slug of that title once it has been stored.
    It need not resolve to an existing note.
    """

    origin_id: str = Field(default="", description="ID of the note the edge starts at")
    target: str = Field(..., description="Target identifier")
    kind: LinkKind = Field(default=LinkKind.REFERENCE, description="Edge kind")
    context: str = Field(default="", description="Matched text around the link")

    model_config = {"extra": "forbid", "frozen": True}


class Note(BaseModel):
    """A note in the knowledge base."""

    id: str = Field(..., description="Slug of the title, primary key")
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Body text of the note")
    path: str = Field(default="", description="Location of the vault mirror file")
    tags: List[str] = Field(default_factory=list, description="Tag set")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    modified_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last modified (UTC)"
    )
    links: List[Link] = Field(
        default_factory=list,
        description="Forward links; only populated on create/update results",
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        return normalize_tags(v)


class NoteSummary(BaseModel):
    """Lightweight note record used for listings (no content, no links)."""

    id: str
    title: str
    path: str
    tags: List[str] = Field(default_factory=list)
    created_at: datetime.datetime
    modified_at: datetime.datetime


class SearchResult(BaseModel):
    """A single ranked full-text search hit."""

    note_id: str
    title: str
    preview: str
    score: float = Field(..., description="Relevance; higher is more relevant")
    matches: List[str] = Field(
        default_factory=list, description="Highlighted snippets of matching text"
    )


class GraphResult(BaseModel):
    """Edges returned by a graph query."""

    links: List[Link] = Field(default_factory=list)
    total_count: int = Field(
        default=0, description="Matching edges before the limit was applied"
    )


# Agent tool requests. Agents send JSON, so these are validated from dicts.


class NoteReadRequest(BaseModel):
    """Read a note by ID, or by mirror path when no ID is given."""

    note_id: Optional[str] = None
    path: Optional[str] = None


class NoteWriteRequest(BaseModel):
    """Create a note, or update one when ``note_id`` is given."""

    note_id: Optional[str] = None
    path: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None


class GraphQueryRequest(BaseModel):
    """Query the link graph around a note."""

    note_id: Optional[str] = None
    direction: LinkDirection = LinkDirection.OUTGOING
    limit: Optional[int] = Field(default=None, ge=1)
